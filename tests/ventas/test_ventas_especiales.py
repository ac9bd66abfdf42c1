from __future__ import annotations

from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied

from ganancias.models import MovimientoGanancia, TipoMovimiento
from ganancias.services import verificar_cadena
from nucleo.contexto import ContextoLlamada
from nucleo.excepciones import DatosInvalidos, YaProcesado
from ventas.models import EstadoVentaEspecial, VentaEspecial
from ventas.services import anular_venta_especial, registrar_venta_especial

pytestmark = pytest.mark.django_db


@pytest.fixture
def evento(producto, administrador, d1, ctx_admin) -> VentaEspecial:
    # ganancia_total = (1500 − 500) × 4 = 4000
    return registrar_venta_especial(
        contexto=ctx_admin,
        producto=producto.pk,
        cantidad=4,
        precio_especial=1500,
        costo=500,
        nombre_evento="Feria de invierno",
        distribucion=[
            {"usuario_id": administrador.pk, "monto": "2500.00"},
            {"usuario_id": d1.pk, "monto": 1500, "nombre": "Ana (stand)", "porcentaje": Decimal("37.50")},
        ],
    )


def test_registrar_venta_especial_reparte_segun_tabla(evento, producto, administrador, d1) -> None:
    assert evento.ganancia_total == Decimal("4000.00")
    assert evento.total == Decimal("6000.00")
    assert evento.nombre_producto == producto.nombre
    assert evento.distribucion.count() == 2

    asientos = dict(
        MovimientoGanancia.objects.filter(tipo=TipoMovimiento.VENTA_ESPECIAL).values_list("usuario", "monto")
    )
    assert asientos == {administrador.pk: Decimal("2500.00"), d1.pk: Decimal("1500.00")}


def test_venta_especial_no_mueve_stock(evento, producto) -> None:
    producto.refresh_from_db()
    assert producto.stock_bodega == 100


def test_distribucion_debe_sumar_la_ganancia(administrador, ctx_admin) -> None:
    with pytest.raises(DatosInvalidos):
        registrar_venta_especial(
            contexto=ctx_admin, nombre_producto="Pack regalo", cantidad=1, precio_especial=100, costo=40,
            distribucion=[{"usuario_id": administrador.pk, "monto": 59}],
        )
    assert not VentaEspecial.objects.exists()


def test_tolerancia_de_un_centavo(administrador, d1, ctx_admin) -> None:
    especial = registrar_venta_especial(
        contexto=ctx_admin, nombre_producto="Pack regalo", cantidad=1, precio_especial=100, costo=0,
        distribucion=[{"usuario_id": administrador.pk, "monto": "66.67"}, {"usuario_id": d1.pk, "monto": "33.34"}],
    )
    assert especial.ganancia_total == Decimal("100.00")


def test_venta_especial_exige_admin_y_distribucion(d1, ctx_admin) -> None:
    with pytest.raises(PermissionDenied):
        registrar_venta_especial(
            contexto=ContextoLlamada.distribuidor(d1.pk), nombre_producto="x", cantidad=1,
            precio_especial=10, costo=0, distribucion=[{"usuario_id": d1.pk, "monto": 10}],
        )
    with pytest.raises(DatosInvalidos):
        registrar_venta_especial(contexto=ctx_admin, nombre_producto="x", cantidad=1,
                                 precio_especial=10, costo=0, distribucion=[])


def test_anular_venta_especial_compensa_una_vez(evento, administrador, d1, ctx_admin) -> None:
    anulada = anular_venta_especial(evento.pk, contexto=ctx_admin)

    assert anulada.estado == EstadoVentaEspecial.CANCELADA
    ajustes = MovimientoGanancia.objects.filter(tipo=TipoMovimiento.AJUSTE)
    assert sorted(ajustes.values_list("monto", flat=True)) == [Decimal("-2500.00"), Decimal("-1500.00")]
    assert verificar_cadena(d1.pk).saldo_puntero == Decimal("0.00")

    with pytest.raises(YaProcesado):
        anular_venta_especial(evento.pk, contexto=ctx_admin)
    assert ajustes.count() == 2
