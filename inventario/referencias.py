"""
Referencia a producto como tipo suma.

    ReferenciaProducto = ProductoNoResuelto(id) | ProductoResuelto(producto)

Se resuelve una sola vez en el borde del service (`resolver_producto`); de ahí
hacia adentro el código trabaja siempre con un Producto ya cargado y nunca
pregunta "¿es un id o un objeto?".
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from nucleo.excepciones import RegistroNoEncontrado

from .models import Producto


@dataclass(frozen=True)
class ProductoNoResuelto:
    producto_id: int


@dataclass(frozen=True)
class ProductoResuelto:
    producto: Producto

    @property
    def producto_id(self) -> int:
        return self.producto.pk


ReferenciaProducto = Union[ProductoNoResuelto, ProductoResuelto]


def resolver_producto(referencia: ReferenciaProducto, bloquear: bool = False) -> ProductoResuelto:
    """
    Carga el producto de una referencia.

    Args:
        referencia: referencia sin resolver (solo id) o ya resuelta.
        bloquear: si True, relee la fila con SELECT ... FOR UPDATE aunque ya
            estuviera resuelta (debe llamarse dentro de transaction.atomic).

    Raises:
        RegistroNoEncontrado: si el producto no existe.
    """
    if isinstance(referencia, ProductoResuelto) and not bloquear:
        return referencia
    queryset = Producto.objects.select_for_update() if bloquear else Producto.objects.all()
    try:
        return ProductoResuelto(queryset.get(pk=referencia.producto_id))
    except Producto.DoesNotExist:
        raise RegistroNoEncontrado(f"No existe Producto id={referencia.producto_id}.")


def como_referencia(valor) -> ReferenciaProducto:
    """
    Convierte la entrada del llamador (id, Producto o referencia) en una
    ReferenciaProducto. Es la única conversión; después no se vuelve a
    preguntar por el tipo.
    """
    if isinstance(valor, (ProductoNoResuelto, ProductoResuelto)):
        return valor
    if isinstance(valor, Producto):
        return ProductoResuelto(valor)
    return ProductoNoResuelto(valor)
