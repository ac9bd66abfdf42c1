from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied

from ganancias.models import MovimientoGanancia, TipoMovimiento
from ganancias.services import (
    NuevoMovimiento,
    obtener_balance,
    obtener_historial,
    registrar_ajuste,
    registrar_movimiento,
    registrar_multiples,
    verificar_cadena,
)
from nucleo.contexto import ContextoLlamada
from nucleo.excepciones import DatosInvalidos, RegistroInmutable, RegistroNoEncontrado

pytestmark = pytest.mark.django_db


def test_saldo_corrido_encadena_montos(d1) -> None:
    a = registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, Decimal("100.00"), "venta 1")
    b = registrar_movimiento(d1.pk, TipoMovimiento.BONUS, "50.255", "bono")
    c = registrar_movimiento(d1.pk, TipoMovimiento.AJUSTE, -30, "corrección")

    assert [m.secuencia for m in (a, b, c)] == [1, 2, 3]
    assert b.monto == Decimal("50.26")
    assert [m.saldo_despues for m in (a, b, c)] == [Decimal("100.00"), Decimal("150.26"), Decimal("120.26")]
    assert verificar_cadena(d1.pk).valida


def test_cada_usuario_tiene_su_propia_cadena(d1, d2) -> None:
    registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 10, "d1")
    m = registrar_movimiento(d2.pk, TipoMovimiento.VENTA_NORMAL, 7, "d2")

    assert m.secuencia == 1
    assert m.saldo_despues == Decimal("7.00")


@pytest.mark.parametrize("tipo, monto", [("propina", 10), (TipoMovimiento.AJUSTE, 0), (TipoMovimiento.AJUSTE, "x")])
def test_movimiento_invalido(d1, tipo, monto) -> None:
    with pytest.raises(DatosInvalidos):
        registrar_movimiento(d1.pk, tipo, monto, "inválido")
    assert not MovimientoGanancia.objects.exists()


def test_usuario_inexistente() -> None:
    with pytest.raises(RegistroNoEncontrado):
        registrar_movimiento(424242, TipoMovimiento.AJUSTE, 1, "nadie")


def test_movimientos_son_inmutables(d1) -> None:
    m = registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 10, "venta")

    m.monto = Decimal("999.00")
    with pytest.raises(RegistroInmutable):
        m.save()
    with pytest.raises(RegistroInmutable):
        m.delete()
    m.refresh_from_db()
    assert m.monto == Decimal("10.00")


def test_registrar_multiples_respeta_orden_de_entrada(administrador, d1) -> None:
    registros = registrar_multiples([
        NuevoMovimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, Decimal("200"), "distribuidor"),
        NuevoMovimiento(administrador.pk, TipoMovimiento.VENTA_NORMAL, Decimal("1000"), "admin"),
    ])

    assert [r.usuario_id for r in registros] == [d1.pk, administrador.pk]
    assert [r.saldo_despues for r in registros] == [Decimal("200.00"), Decimal("1000.00")]


def test_registrar_multiples_es_todo_o_nada(administrador, d1) -> None:
    with pytest.raises(DatosInvalidos):
        registrar_multiples([
            NuevoMovimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, Decimal("200"), "ok"),
            NuevoMovimiento(administrador.pk, "desconocido", Decimal("1"), "mal"),
        ])
    assert not MovimientoGanancia.objects.exists()


def test_balance_resume_por_tipo(d1) -> None:
    registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 100, "v1")
    registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 50, "v2")
    registrar_movimiento(d1.pk, TipoMovimiento.BONUS, 25, "bono")

    balance = obtener_balance(d1.pk, contexto=ContextoLlamada.distribuidor(d1.pk))

    assert balance.saldo_total == Decimal("175.00")
    assert balance.por_tipo[TipoMovimiento.VENTA_NORMAL] == Decimal("150.00")
    assert balance.por_tipo[TipoMovimiento.BONUS] == Decimal("25.00")
    assert balance.por_tipo[TipoMovimiento.AJUSTE] == Decimal("0.00")
    assert balance.cantidad_movimientos == 3
    assert balance.saldo_total == MovimientoGanancia.objects.filter(usuario=d1).last().saldo_despues


def test_balance_sin_movimientos_es_cero(d1, ctx_admin) -> None:
    balance = obtener_balance(d1.pk, contexto=ctx_admin)
    assert balance.saldo_total == Decimal("0.00")
    assert balance.cantidad_movimientos == 0
    assert balance.ultima_actualizacion is None


def test_distribuidor_no_ve_saldo_ajeno(d1, d2) -> None:
    with pytest.raises(PermissionDenied):
        obtener_balance(d2.pk, contexto=ContextoLlamada.distribuidor(d1.pk))
    with pytest.raises(PermissionDenied):
        obtener_historial(d2.pk, contexto=ContextoLlamada.distribuidor(d1.pk))


def test_historial_en_orden_de_escritura_aunque_la_fecha_sea_anterior(d1) -> None:
    registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 10, "hoy")
    registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 20, "atrasada",
                         fecha=datetime(2020, 1, 1, tzinfo=timezone.utc))
    registrar_movimiento(d1.pk, TipoMovimiento.BONUS, 5, "bono")

    pagina = obtener_historial(d1.pk, contexto=ContextoLlamada.distribuidor(d1.pk))
    assert [m.descripcion for m in pagina] == ["hoy", "atrasada", "bono"]

    solo_ventas = obtener_historial(d1.pk, contexto=ContextoLlamada.distribuidor(d1.pk),
                                    tipo=TipoMovimiento.VENTA_NORMAL, limite=1, pagina=2)
    assert [m.descripcion for m in solo_ventas] == ["atrasada"]

    antiguas = obtener_historial(d1.pk, contexto=ContextoLlamada.distribuidor(d1.pk),
                                 hasta=datetime(2021, 1, 1, tzinfo=timezone.utc))
    assert [m.descripcion for m in antiguas] == ["atrasada"]


def test_ajuste_manual_exige_admin(d1, ctx_admin) -> None:
    with pytest.raises(PermissionDenied):
        registrar_ajuste(d1.pk, 10, "autoajuste", contexto=ContextoLlamada.distribuidor(d1.pk))

    m = registrar_ajuste(d1.pk, -15, "descuento por faltante", contexto=ctx_admin)
    assert m.tipo == TipoMovimiento.AJUSTE
    assert m.saldo_despues == Decimal("-15.00")
    assert m.metadatos["registrado_por"] == ctx_admin.usuario_id


def test_verificar_cadena_detecta_rotura(d1) -> None:
    registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 10, "v1")
    m2 = registrar_movimiento(d1.pk, TipoMovimiento.VENTA_NORMAL, 20, "v2")
    MovimientoGanancia.objects.filter(pk=m2.pk).update(saldo_despues=Decimal("99.00"))

    cadena = verificar_cadena(d1.pk)
    assert not cadena.valida
    assert cadena.primera_rotura == 2
