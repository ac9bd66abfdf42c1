from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied
from django.db import OperationalError

from nucleo.contexto import ContextoLlamada
from nucleo.dinero import a_decimal, redondear_moneda
from nucleo.excepciones import ConflictoConcurrencia, DatosInvalidos, FallaRegistroParcial
from nucleo.fechas import a_momento
from nucleo.transacciones import reintentar_en_conflicto


@pytest.mark.parametrize("importe, esperado", [
    ("2.345", "2.35"), ("2.344", "2.34"), (None, "0.00"), (7, "7.00"), ("-0.005", "-0.01"),
])
def test_redondear_moneda_half_up(importe, esperado) -> None:
    assert redondear_moneda(importe) == Decimal(esperado)


@pytest.mark.parametrize("valor", [None, True, "doce", ""])
def test_a_decimal_rechaza_no_numericos(valor) -> None:
    with pytest.raises(DatosInvalidos):
        a_decimal(valor, "precio")


def test_a_decimal_no_pasa_por_float() -> None:
    assert a_decimal(0.1, "x") == Decimal("0.1")


def test_a_momento_normaliza_fechas() -> None:
    assert a_momento(date(2026, 3, 1)) == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert a_momento(datetime(2026, 3, 1, 8)).tzinfo is not None
    with pytest.raises(DatosInvalidos):
        a_momento("2026-03-01")


def test_contexto_permisos() -> None:
    admin = ContextoLlamada.admin(1)
    dist = ContextoLlamada.distribuidor(7)

    admin.exigir_admin("probar")
    admin.exigir_propietario_o_admin(7, "probar")
    dist.exigir_propietario_o_admin(7, "probar")
    with pytest.raises(PermissionDenied):
        dist.exigir_admin("probar")
    with pytest.raises(PermissionDenied):
        dist.exigir_propietario_o_admin(8, "probar")


def test_falla_parcial_informa_si_se_revirtio() -> None:
    assert FallaRegistroParcial("x").aplicado_parcialmente is False
    assert FallaRegistroParcial("x", revertido=False).aplicado_parcialmente is True


def test_reintenta_solo_conflictos_de_bloqueo() -> None:
    llamadas = []

    @reintentar_en_conflicto
    def operacion():
        llamadas.append(1)
        if len(llamadas) < 2:
            raise OperationalError("database is locked")
        return "ok"

    assert operacion() == "ok"
    assert len(llamadas) == 2


def test_agotados_los_intentos_es_conflicto(settings) -> None:
    settings.LEDGER = {"REINTENTOS_CONFLICTO": 2}
    llamadas = []

    @reintentar_en_conflicto
    def operacion():
        llamadas.append(1)
        raise OperationalError("deadlock detected")

    with pytest.raises(ConflictoConcurrencia):
        operacion()
    assert len(llamadas) == 2


def test_otros_errores_operativos_se_propagan() -> None:
    @reintentar_en_conflicto
    def operacion():
        raise OperationalError("no such table: ventas_venta")

    with pytest.raises(OperationalError):
        operacion()
