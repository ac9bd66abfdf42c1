from __future__ import annotations

from decimal import Decimal

import pytest

from ganancias.models import MovimientoGanancia, TipoMovimiento
from ganancias.services import registrar_movimiento, verificar_cadena
from inventario.services import asignar_a_distribuidor, retirar_de_distribuidor, stock_de, verificar_conservacion
from nucleo.excepciones import StockInsuficienteDistribuidor

pytestmark = pytest.mark.django_db(transaction=True)


def test_dos_retiros_concurrentes_solo_uno_gana(con_stock, d1, ctx_admin, en_paralelo) -> None:
    retirar_de_distribuidor(con_stock.pk, d1.pk, 5, contexto=ctx_admin)  # 30 → 25

    resultados = en_paralelo(
        lambda: retirar_de_distribuidor(con_stock.pk, d1.pk, 15, contexto=ctx_admin), 2
    )

    fallidos = [r for r in resultados if isinstance(r, Exception)]
    assert len(fallidos) == 1
    assert isinstance(fallidos[0], StockInsuficienteDistribuidor)
    assert stock_de(con_stock.pk, d1.pk) == 10
    assert verificar_conservacion(con_stock.pk).cuadra


def test_asignar_y_retirar_en_paralelo_cuadran(con_stock, d1, ctx_admin, en_paralelo) -> None:
    operaciones = [
        lambda: asignar_a_distribuidor(con_stock.pk, d1.pk, 3, contexto=ctx_admin),
        lambda: retirar_de_distribuidor(con_stock.pk, d1.pk, 2, contexto=ctx_admin),
    ] * 3
    turno = iter(range(len(operaciones)))

    resultados = en_paralelo(lambda: operaciones[next(turno)](), len(operaciones))

    assert not [r for r in resultados if isinstance(r, Exception)]
    assert stock_de(con_stock.pk, d1.pk) == 33
    con_stock.refresh_from_db()
    assert con_stock.stock_bodega == 67
    assert verificar_conservacion(con_stock.pk).cuadra


def test_asientos_concurrentes_mantienen_la_cadena(d1, en_paralelo) -> None:
    resultados = en_paralelo(
        lambda: registrar_movimiento(d1.pk, TipoMovimiento.AJUSTE, Decimal("10.50"), "carga concurrente"), 6
    )

    assert not [r for r in resultados if isinstance(r, Exception)]
    secuencias = sorted(MovimientoGanancia.objects.filter(usuario=d1).values_list("secuencia", flat=True))
    assert secuencias == [1, 2, 3, 4, 5, 6]
    cadena = verificar_cadena(d1.pk)
    assert cadena.valida
    assert cadena.saldo_puntero == Decimal("63.00")
