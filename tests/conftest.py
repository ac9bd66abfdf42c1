from __future__ import annotations

import threading
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.db import connection

from inventario.models import Producto
from inventario.services import asignar_a_distribuidor, ingresar_a_bodega
from nucleo.contexto import ContextoLlamada


@pytest.fixture
def administrador():
    return get_user_model().objects.create_superuser("jefe", "jefe@example.com", "clave-admin")


@pytest.fixture
def ctx_admin(administrador) -> ContextoLlamada:
    return ContextoLlamada.admin(administrador.pk)


def _distribuidor(username: str):
    return get_user_model().objects.create_user(username, f"{username}@example.com", "clave",
                                                first_name=username.capitalize())


@pytest.fixture
def d1():
    return _distribuidor("ana")


@pytest.fixture
def d2():
    return _distribuidor("bruno")


@pytest.fixture
def d3():
    return _distribuidor("carla")


@pytest.fixture
def producto(ctx_admin) -> Producto:
    """Producto P con 100 unidades en bodega (stock_total = stock_bodega = 100)."""
    p = Producto.objects.create(
        nombre="Perfume Aurora",
        precio_compra=Decimal("400.00"),
        precio_distribuidor=Decimal("600.00"),
        precio_cliente=Decimal("1000.00"),
    )
    ingresar_a_bodega(p.pk, 100, contexto=ctx_admin)
    p.refresh_from_db()
    return p


@pytest.fixture
def con_stock(producto, d1, ctx_admin):
    """D1 con 30 unidades de P asignadas."""
    asignar_a_distribuidor(producto.pk, d1.pk, 30, contexto=ctx_admin)
    return producto


@pytest.fixture
def en_paralelo():
    """
    Corre `funcion` en `veces` hilos que arrancan juntos y devuelve, por hilo,
    el resultado o la excepción. Requiere django_db(transaction=True).
    """
    def correr(funcion, veces: int) -> list:
        barrera = threading.Barrier(veces)
        resultados = [None] * veces

        def tarea(i):
            try:
                barrera.wait()
                resultados[i] = funcion()
            except Exception as exc:  # se inspecciona en el test
                resultados[i] = exc
            finally:
                connection.close()

        hilos = [threading.Thread(target=tarea, args=(i,)) for i in range(veces)]
        for hilo in hilos:
            hilo.start()
        for hilo in hilos:
            hilo.join(timeout=60)
        return resultados

    return correr
