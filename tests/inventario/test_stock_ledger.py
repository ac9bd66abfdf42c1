from __future__ import annotations

import pytest
from django.core.exceptions import PermissionDenied
from django.db import IntegrityError, connection, transaction
from django.db.models import F
from django.test.utils import CaptureQueriesContext

from inventario.models import Producto, StockDistribuidor, TransferenciaStock
from inventario.services import (
    alertas_stock_bajo,
    asignar_a_distribuidor,
    consumir,
    devolver_desde_distribuidor,
    historial_transferencias,
    ingresar_a_bodega,
    retirar_de_distribuidor,
    stock_de,
    transferir,
    verificar_conservacion,
)
from nucleo.contexto import ContextoLlamada
from nucleo.excepciones import (
    DatosInvalidos,
    RegistroNoEncontrado,
    StockInsuficienteBodega,
    StockInsuficienteDistribuidor,
)

pytestmark = pytest.mark.django_db


def test_ingresar_a_bodega_sube_total_y_bodega(producto, ctx_admin) -> None:
    ingresar_a_bodega(producto.pk, 20, contexto=ctx_admin)

    producto.refresh_from_db()
    assert producto.stock_total == 120
    assert producto.stock_bodega == 120


def test_ingresar_a_bodega_exige_admin(producto, d1) -> None:
    with pytest.raises(PermissionDenied):
        ingresar_a_bodega(producto.pk, 5, contexto=ContextoLlamada.distribuidor(d1.pk))


def test_asignar_mueve_de_bodega_a_distribuidor(producto, d1, ctx_admin) -> None:
    fila = asignar_a_distribuidor(producto.pk, d1.pk, 30, contexto=ctx_admin)

    producto.refresh_from_db()
    assert producto.stock_bodega == 70
    assert fila.cantidad == 30
    assert stock_de(producto.pk, d1.pk) == 30


def test_asignar_acumula_sobre_fila_existente(con_stock, d1, ctx_admin) -> None:
    asignar_a_distribuidor(con_stock.pk, d1.pk, 10, contexto=ctx_admin)

    assert StockDistribuidor.objects.get(producto=con_stock, distribuidor=d1).cantidad == 40
    assert StockDistribuidor.objects.filter(producto=con_stock, distribuidor=d1).count() == 1


def test_asignar_sin_stock_en_bodega_no_cambia_nada(producto, d1, ctx_admin) -> None:
    with pytest.raises(StockInsuficienteBodega):
        asignar_a_distribuidor(producto.pk, d1.pk, 101, contexto=ctx_admin)

    producto.refresh_from_db()
    assert producto.stock_bodega == 100
    assert stock_de(producto.pk, d1.pk) == 0


@pytest.mark.parametrize("cantidad", [0, -3, 2.5, True, "4"])
def test_cantidad_invalida_se_rechaza(producto, d1, ctx_admin, cantidad) -> None:
    with pytest.raises(DatosInvalidos):
        asignar_a_distribuidor(producto.pk, d1.pk, cantidad, contexto=ctx_admin)


def test_asignar_a_staff_no_es_distribuidor(producto, administrador, ctx_admin) -> None:
    with pytest.raises(DatosInvalidos):
        asignar_a_distribuidor(producto.pk, administrador.pk, 5, contexto=ctx_admin)


def test_asignar_producto_inexistente(d1, ctx_admin) -> None:
    with pytest.raises(RegistroNoEncontrado):
        asignar_a_distribuidor(999_999, d1.pk, 1, contexto=ctx_admin)


def test_retirar_devuelve_a_bodega(con_stock, d1, ctx_admin) -> None:
    fila = retirar_de_distribuidor(con_stock.pk, d1.pk, 12, contexto=ctx_admin)

    con_stock.refresh_from_db()
    assert fila.cantidad == 18
    assert con_stock.stock_bodega == 82


def test_retirar_mas_de_lo_que_tiene_falla(con_stock, d1, ctx_admin) -> None:
    with pytest.raises(StockInsuficienteDistribuidor):
        retirar_de_distribuidor(con_stock.pk, d1.pk, 31, contexto=ctx_admin)

    assert stock_de(con_stock.pk, d1.pk) == 30


def test_transferir_registra_fotos_antes_y_despues(con_stock, d1, d2) -> None:
    t = transferir(con_stock.pk, d1.pk, d2.pk, 10, contexto=ContextoLlamada.distribuidor(d1.pk), notas="feria")

    assert (t.stock_origen_antes, t.stock_origen_despues) == (30, 20)
    assert (t.stock_destino_antes, t.stock_destino_despues) == (0, 10)
    assert t.estado == "completed"
    assert stock_de(con_stock.pk, d1.pk) == 20
    assert stock_de(con_stock.pk, d2.pk) == 10


def test_transferir_sin_stock_suficiente_no_deja_registro(con_stock, d1, d2, ctx_admin) -> None:
    retirar_de_distribuidor(con_stock.pk, d1.pk, 5, contexto=ctx_admin)

    with pytest.raises(StockInsuficienteDistribuidor):
        transferir(con_stock.pk, d1.pk, d2.pk, 30, contexto=ctx_admin)

    assert TransferenciaStock.objects.count() == 0
    assert stock_de(con_stock.pk, d1.pk) == 25
    assert stock_de(con_stock.pk, d2.pk) == 0


def test_transferir_a_si_mismo_se_rechaza(con_stock, d1, ctx_admin) -> None:
    with pytest.raises(DatosInvalidos):
        transferir(con_stock.pk, d1.pk, d1.pk, 1, contexto=ctx_admin)


def test_distribuidor_no_transfiere_stock_ajeno(con_stock, d1, d2) -> None:
    with pytest.raises(PermissionDenied):
        transferir(con_stock.pk, d1.pk, d2.pk, 1, contexto=ContextoLlamada.distribuidor(d2.pk))

    assert stock_de(con_stock.pk, d1.pk) == 30


def test_historial_filtra_por_cualquier_lado(con_stock, d1, d2, d3, ctx_admin) -> None:
    transferir(con_stock.pk, d1.pk, d2.pk, 5, contexto=ctx_admin)
    transferir(con_stock.pk, d2.pk, d3.pk, 2, contexto=ctx_admin)

    assert historial_transferencias(distribuidor_id=d2.pk).paginator.count == 2
    assert historial_transferencias(distribuidor_id=d3.pk).paginator.count == 1
    pagina = historial_transferencias(producto_id=con_stock.pk, limite=1)
    assert pagina.paginator.num_pages == 2
    assert pagina.object_list[0].distribuidor_destino_id == d3.pk


def test_alertas_stock_bajo(producto, d1, ctx_admin) -> None:
    asignar_a_distribuidor(producto.pk, d1.pk, 93, contexto=ctx_admin)
    alertas = alertas_stock_bajo()

    assert [p.pk for p in alertas.bodega] == [producto.pk]
    assert alertas.distribuidores == []

    retirar_de_distribuidor(producto.pk, d1.pk, 89, contexto=ctx_admin)
    propias = alertas_stock_bajo(distribuidor_id=d1.pk)
    assert [f.cantidad for f in propias.distribuidores] == [4]
    assert propias.bodega == []


def test_conservacion_tras_secuencia_de_operaciones(producto, d1, d2, ctx_admin) -> None:
    asignar_a_distribuidor(producto.pk, d1.pk, 40, contexto=ctx_admin)
    transferir(producto.pk, d1.pk, d2.pk, 15, contexto=ctx_admin)
    retirar_de_distribuidor(producto.pk, d2.pk, 5, contexto=ctx_admin)
    ingresar_a_bodega(producto.pk, 7, contexto=ctx_admin)

    estado = verificar_conservacion(producto.pk)
    assert estado.cuadra
    assert estado.stock_total == 107
    assert estado.stock_bodega + estado.stock_distribuidores == 107


def test_bd_rechaza_bodega_mayor_que_total(producto) -> None:
    with pytest.raises(IntegrityError), transaction.atomic():
        Producto.objects.filter(pk=producto.pk).update(stock_bodega=F("stock_total") + 1)


def test_consumir_no_toca_bodega(con_stock, d1) -> None:
    assert consumir(con_stock.pk, d1.pk, 4) == 26

    con_stock.refresh_from_db()
    assert con_stock.stock_bodega == 70
    with pytest.raises(StockInsuficienteDistribuidor):
        consumir(con_stock.pk, d1.pk, 27)


def test_baja_por_defecto_no_vuelve_a_bodega(con_stock, d1) -> None:
    assert devolver_desde_distribuidor(con_stock.pk, d1.pk, 5) == 25

    con_stock.refresh_from_db()
    assert con_stock.stock_bodega == 70
    assert con_stock.stock_total == 100


def _primera_consulta(consultas, tabla: str) -> int:
    return next(i for i, q in enumerate(consultas) if f'"{tabla}"' in q["sql"])


@pytest.mark.parametrize("operacion", ["asignar", "retirar", "transferir"])
def test_producto_se_toma_antes_que_el_stock_del_distribuidor(con_stock, d1, d2, ctx_admin, operacion) -> None:
    llamadas = {
        "asignar": lambda: asignar_a_distribuidor(con_stock.pk, d1.pk, 1, contexto=ctx_admin),
        "retirar": lambda: retirar_de_distribuidor(con_stock.pk, d1.pk, 1, contexto=ctx_admin),
        "transferir": lambda: transferir(con_stock.pk, d1.pk, d2.pk, 1, contexto=ctx_admin),
    }

    with CaptureQueriesContext(connection) as capturadas:
        llamadas[operacion]()

    consultas = capturadas.captured_queries
    assert _primera_consulta(consultas, "inventario_producto") < _primera_consulta(
        consultas, "inventario_stockdistribuidor")
