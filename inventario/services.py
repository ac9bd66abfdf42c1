# inventario/services.py
"""
Servicios (reglas de negocio) del ledger de stock.

Propósito:
    Centralizar TODA mutación de stock: bodega central y stock por distribuidor.
    Este módulo es la “fuente de verdad” de las cantidades; views/otras apps solo
    llaman a estas funciones.

Responsabilidades:
    - Ingreso a bodega, asignación, retiro y transferencia entre distribuidores.
    - Consumo por venta (distribuidor o bodega) y baja definitiva por defecto.
    - Reposición al revertir una venta.
    - Consultas de apoyo: alertas de stock bajo, historial de transferencias y
      verificación de conservación.

Diseño/Notas:
    - Cada operación corre dentro de transaction.atomic: todo o nada.
    - Anti-negativos: el descuento es un UPDATE condicional
          UPDATE ... SET cantidad = cantidad - n WHERE cantidad >= n
      evaluado contra el valor persistido al momento de escribir (no contra un
      valor leído antes). 0 filas afectadas ⇒ stock insuficiente, no se toca nada.
    - Orden de bloqueo único para todo el motor:
          1) fila Producto (SELECT ... FOR UPDATE vía `_bloquear_producto`)
          2) filas StockDistribuidor, en orden ascendente de distribuidor_id
          3) cuentas del ledger, en orden ascendente de usuario_id
      Toda operación que toca producto y distribuidor toma primero el producto.
    - Conservación por construcción: lo que sale de un lugar entra en otro, o
      queda registrado como vendido / defectuoso, nunca ambas cosas.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.apps import apps
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import F, Q, Sum
from django.utils import timezone

from nucleo.contexto import ContextoLlamada
from nucleo.cuentas import exigir_distribuidor
from nucleo.excepciones import (
    DatosInvalidos,
    RegistroNoEncontrado,
    StockInsuficienteBodega,
    StockInsuficienteDistribuidor,
)
from nucleo.transacciones import reintentar_en_conflicto

from .models import Producto, StockDistribuidor, TransferenciaStock
from .referencias import ProductoNoResuelto, resolver_producto

logger = logging.getLogger("distribucion.stock")


# ─────────────────────────────────────────────────────────────────────────────
# Utilidades
# ─────────────────────────────────────────────────────────────────────────────
def validar_cantidad(cantidad) -> int:
    """
    Valida que la cantidad sea un entero estrictamente positivo.

    Raises:
        DatosInvalidos: si no es int (bool no cuenta) o es ≤ 0.
    """
    if isinstance(cantidad, bool) or not isinstance(cantidad, int):
        raise DatosInvalidos(f"La cantidad debe ser un entero, se recibió {cantidad!r}.")
    if cantidad <= 0:
        raise DatosInvalidos(f"La cantidad debe ser mayor que 0, se recibió {cantidad}.")
    return cantidad


def _producto_o_error(producto_id) -> Producto:
    try:
        return Producto.objects.get(pk=producto_id)
    except Producto.DoesNotExist:
        raise RegistroNoEncontrado(f"No existe Producto id={producto_id}.")


def _bloquear_producto(producto_id) -> Producto:
    """Primer paso del orden de bloqueo: la fila del producto."""
    return resolver_producto(ProductoNoResuelto(producto_id), bloquear=True).producto


def _cantidad_distribuidor(producto_id, distribuidor_id) -> int:
    return (
        StockDistribuidor.objects
        .filter(producto_id=producto_id, distribuidor_id=distribuidor_id)
        .values_list("cantidad", flat=True)
        .first()
    ) or 0


# ─────────────────────────────────────────────────────────────────────────────
# Helpers de delta (atómico + anti-negativos)
# Deben llamarse dentro de transaction.atomic.
# ─────────────────────────────────────────────────────────────────────────────
def _descontar_bodega(producto_id, cantidad: int) -> None:
    """
    Resta `cantidad` de stock_bodega solo si alcanza (UPDATE condicional).

    Raises:
        RegistroNoEncontrado: si el producto no existe.
        StockInsuficienteBodega: si stock_bodega < cantidad al momento de escribir.
    """
    filas = Producto.objects.filter(pk=producto_id, stock_bodega__gte=cantidad).update(
        stock_bodega=F("stock_bodega") - cantidad,
        actualizado_en=timezone.now(),
    )
    if filas == 0:
        producto = _producto_o_error(producto_id)
        raise StockInsuficienteBodega(
            f"Stock insuficiente en bodega para '{producto}'. "
            f"Disponible: {producto.stock_bodega}, requerido: {cantidad}."
        )


def _sumar_bodega(producto_id, cantidad: int, ingreso: bool = False) -> None:
    """
    Suma `cantidad` a stock_bodega. Con `ingreso=True` también a stock_total
    (unidades nuevas que entran al sistema).
    """
    cambios = {"stock_bodega": F("stock_bodega") + cantidad, "actualizado_en": timezone.now()}
    if ingreso:
        cambios["stock_total"] = F("stock_total") + cantidad
    filas = Producto.objects.filter(pk=producto_id).update(**cambios)
    if filas == 0:
        raise RegistroNoEncontrado(f"No existe Producto id={producto_id}.")


def _descontar_distribuidor(producto_id, distribuidor_id, cantidad: int) -> None:
    """
    Resta `cantidad` del stock del distribuidor solo si alcanza.

    Raises:
        StockInsuficienteDistribuidor: si no tiene la fila o la cantidad no alcanza.
    """
    filas = StockDistribuidor.objects.filter(
        producto_id=producto_id,
        distribuidor_id=distribuidor_id,
        cantidad__gte=cantidad,
    ).update(cantidad=F("cantidad") - cantidad, actualizado_en=timezone.now())
    if filas == 0:
        disponible = _cantidad_distribuidor(producto_id, distribuidor_id)
        raise StockInsuficienteDistribuidor(
            f"Stock insuficiente del distribuidor id={distribuidor_id} para producto "
            f"id={producto_id}. Disponible: {disponible}, requerido: {cantidad}."
        )


def _sumar_distribuidor(producto_id, distribuidor_id, cantidad: int) -> None:
    """Suma `cantidad` al stock del distribuidor, creando la fila si no existe."""
    StockDistribuidor.objects.get_or_create(producto_id=producto_id, distribuidor_id=distribuidor_id)
    StockDistribuidor.objects.filter(producto_id=producto_id, distribuidor_id=distribuidor_id).update(
        cantidad=F("cantidad") + cantidad,
        actualizado_en=timezone.now(),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Ingreso a bodega
# ─────────────────────────────────────────────────────────────────────────────
@reintentar_en_conflicto
def ingresar_a_bodega(producto_id, cantidad: int, *, contexto: ContextoLlamada) -> Producto:
    """
    Ingresa unidades nuevas al sistema (compra/reposición de bodega).

    Efectos:
        - stock_total += cantidad
        - stock_bodega += cantidad

    Raises:
        PermissionDenied: si quien llama no es admin.
        DatosInvalidos / RegistroNoEncontrado.
    """
    contexto.exigir_admin("ingresar stock a bodega")
    validar_cantidad(cantidad)
    with transaction.atomic():
        _sumar_bodega(producto_id, cantidad, ingreso=True)
        producto = _producto_o_error(producto_id)
    logger.info(f"Ingreso a bodega: producto={producto_id} +{cantidad} (bodega={producto.stock_bodega})")
    return producto


# ─────────────────────────────────────────────────────────────────────────────
# Asignación / retiro
# ─────────────────────────────────────────────────────────────────────────────
@reintentar_en_conflicto
def asignar_a_distribuidor(producto_id, distribuidor_id, cantidad: int, *,
                           contexto: ContextoLlamada) -> StockDistribuidor:
    """
    Mueve unidades de la bodega al stock de un distribuidor.

    Reglas:
        - cantidad > 0.
        - stock_bodega ≥ cantidad, verificado al momento de escribir.
        - Crea la fila StockDistribuidor si no existía.

    Returns:
        StockDistribuidor: fila actualizada.

    Raises:
        PermissionDenied, DatosInvalidos, RegistroNoEncontrado,
        StockInsuficienteBodega (nada cambia).
    """
    contexto.exigir_admin("asignar stock")
    validar_cantidad(cantidad)
    exigir_distribuidor(distribuidor_id)
    with transaction.atomic():
        _bloquear_producto(producto_id)
        _descontar_bodega(producto_id, cantidad)
        _sumar_distribuidor(producto_id, distribuidor_id, cantidad)
        stock = StockDistribuidor.objects.get(producto_id=producto_id, distribuidor_id=distribuidor_id)
    logger.info(
        f"Asignación: producto={producto_id} distribuidor={distribuidor_id} "
        f"cantidad={cantidad} (stock distribuidor={stock.cantidad})"
    )
    return stock


@reintentar_en_conflicto
def retirar_de_distribuidor(producto_id, distribuidor_id, cantidad: int, *,
                            contexto: ContextoLlamada) -> StockDistribuidor:
    """
    Devuelve unidades del distribuidor a la bodega (simétrico de asignar).

    Raises:
        PermissionDenied, DatosInvalidos, RegistroNoEncontrado,
        StockInsuficienteDistribuidor (nada cambia).
    """
    contexto.exigir_admin("retirar stock")
    validar_cantidad(cantidad)
    with transaction.atomic():
        _bloquear_producto(producto_id)
        _descontar_distribuidor(producto_id, distribuidor_id, cantidad)
        _sumar_bodega(producto_id, cantidad)
        stock = StockDistribuidor.objects.get(producto_id=producto_id, distribuidor_id=distribuidor_id)
    logger.info(
        f"Retiro: producto={producto_id} distribuidor={distribuidor_id} "
        f"cantidad={cantidad} (stock distribuidor={stock.cantidad})"
    )
    return stock


# ─────────────────────────────────────────────────────────────────────────────
# Transferencia entre distribuidores
# ─────────────────────────────────────────────────────────────────────────────
@reintentar_en_conflicto
def transferir(producto_id, origen_id, destino_id, cantidad: int, *,
               contexto: ContextoLlamada, notas: str = "") -> TransferenciaStock:
    """
    Transfiere unidades de un distribuidor a otro y deja el registro de auditoría.

    Flujo (una sola transacción):
        1) Bloquea el producto y asegura que exista la fila del destino.
        2) Bloquea ambas filas en orden ascendente de distribuidor_id.
        3) Verifica origen ≥ cantidad con la fila bloqueada (foto "antes").
        4) Aplica los dos deltas y relee (foto "después").
        5) Crea TransferenciaStock con las cuatro cantidades.

    Si algo falla no se crea ninguna transferencia y ningún stock cambia.

    Raises:
        PermissionDenied: si un distribuidor intenta transferir stock ajeno.
        DatosInvalidos: origen == destino, cantidad ≤ 0, destino no distribuidor.
        StockInsuficienteDistribuidor: el origen no alcanza.
    """
    contexto.exigir_propietario_o_admin(origen_id, "transferir stock")
    validar_cantidad(cantidad)
    if origen_id == destino_id:
        raise DatosInvalidos("El distribuidor de origen y el de destino deben ser distintos.")
    exigir_distribuidor(destino_id)

    with transaction.atomic():
        _bloquear_producto(producto_id)
        StockDistribuidor.objects.get_or_create(producto_id=producto_id, distribuidor_id=destino_id)
        filas = {
            fila.distribuidor_id: fila
            for fila in StockDistribuidor.objects.select_for_update()
            .filter(producto_id=producto_id, distribuidor_id__in=[origen_id, destino_id])
            .order_by("distribuidor_id")
        }
        origen = filas.get(origen_id)
        destino = filas[destino_id]
        origen_antes = origen.cantidad if origen else 0
        destino_antes = destino.cantidad
        if origen_antes < cantidad:
            raise StockInsuficienteDistribuidor(
                f"Stock insuficiente del distribuidor id={origen_id} para transferir. "
                f"Disponible: {origen_antes}, requerido: {cantidad}."
            )

        _descontar_distribuidor(producto_id, origen_id, cantidad)
        _sumar_distribuidor(producto_id, destino_id, cantidad)
        origen.refresh_from_db(fields=["cantidad"])
        destino.refresh_from_db(fields=["cantidad"])

        transferencia = TransferenciaStock.objects.create(
            producto_id=producto_id,
            distribuidor_origen_id=origen_id,
            distribuidor_destino_id=destino_id,
            cantidad=cantidad,
            stock_origen_antes=origen_antes,
            stock_origen_despues=origen.cantidad,
            stock_destino_antes=destino_antes,
            stock_destino_despues=destino.cantidad,
            notas=notas or "",
        )
    logger.info(
        f"Transferencia #{transferencia.pk}: producto={producto_id} {origen_id}→{destino_id} "
        f"cantidad={cantidad} (origen {origen_antes}→{origen.cantidad}, "
        f"destino {destino_antes}→{destino.cantidad})"
    )
    return transferencia


# ─────────────────────────────────────────────────────────────────────────────
# Consumo por venta (usados por ventas.services dentro de su transacción)
# ─────────────────────────────────────────────────────────────────────────────
def consumir(producto_id, distribuidor_id, cantidad: int) -> int:
    """
    Descuenta unidades vendidas por un distribuidor. Sin efecto en bodega.

    Returns:
        int: stock restante del distribuidor.

    Raises:
        StockInsuficienteDistribuidor.
    """
    validar_cantidad(cantidad)
    with transaction.atomic():
        _descontar_distribuidor(producto_id, distribuidor_id, cantidad)
        restante = _cantidad_distribuidor(producto_id, distribuidor_id)
    logger.info(f"Consumo: producto={producto_id} distribuidor={distribuidor_id} -{cantidad} (resta {restante})")
    return restante


def consumir_de_bodega(producto_id, cantidad: int) -> int:
    """
    Descuenta unidades de una venta directa del admin (sale de bodega).

    Returns:
        int: stock de bodega restante.

    Raises:
        StockInsuficienteBodega.
    """
    validar_cantidad(cantidad)
    with transaction.atomic():
        _descontar_bodega(producto_id, cantidad)
        restante = _producto_o_error(producto_id).stock_bodega
    logger.info(f"Consumo de bodega: producto={producto_id} -{cantidad} (resta {restante})")
    return restante


def reponer_a_distribuidor(producto_id, distribuidor_id, cantidad: int) -> None:
    """Devuelve al distribuidor las unidades de una venta anulada."""
    validar_cantidad(cantidad)
    with transaction.atomic():
        _producto_o_error(producto_id)
        _sumar_distribuidor(producto_id, distribuidor_id, cantidad)
    logger.info(f"Reposición: producto={producto_id} distribuidor={distribuidor_id} +{cantidad}")


def reponer_a_bodega(producto_id, cantidad: int) -> None:
    """Devuelve a bodega las unidades de una venta directa anulada."""
    validar_cantidad(cantidad)
    with transaction.atomic():
        _sumar_bodega(producto_id, cantidad)
    logger.info(f"Reposición a bodega: producto={producto_id} +{cantidad}")


# ─────────────────────────────────────────────────────────────────────────────
# Baja definitiva por defecto (usados por defectuosos.services)
# Las unidades SALEN del sistema: no vuelven a bodega ni a otro distribuidor.
# ─────────────────────────────────────────────────────────────────────────────
def devolver_desde_bodega(producto_id, cantidad: int) -> int:
    """
    Da de baja unidades defectuosas de la bodega.

    Raises:
        StockInsuficienteBodega.
    """
    validar_cantidad(cantidad)
    with transaction.atomic():
        _descontar_bodega(producto_id, cantidad)
        restante = _producto_o_error(producto_id).stock_bodega
    logger.info(f"Baja por defecto en bodega: producto={producto_id} -{cantidad} (resta {restante})")
    return restante


def devolver_desde_distribuidor(producto_id, distribuidor_id, cantidad: int) -> int:
    """
    Da de baja unidades defectuosas del stock de un distribuidor.

    Raises:
        StockInsuficienteDistribuidor.
    """
    validar_cantidad(cantidad)
    with transaction.atomic():
        _descontar_distribuidor(producto_id, distribuidor_id, cantidad)
        restante = _cantidad_distribuidor(producto_id, distribuidor_id)
    logger.info(
        f"Baja por defecto: producto={producto_id} distribuidor={distribuidor_id} "
        f"-{cantidad} (resta {restante})"
    )
    return restante


# ─────────────────────────────────────────────────────────────────────────────
# Consultas
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class AlertasStock:
    bodega: List[Producto]
    distribuidores: List[StockDistribuidor]


def alertas_stock_bajo(distribuidor_id=None) -> AlertasStock:
    """
    Productos y filas de distribuidor en o bajo su umbral de alerta.

    Args:
        distribuidor_id: si se indica, solo las filas de ese distribuidor
            (y la lista de bodega queda vacía).
    """
    distribuidores = (
        StockDistribuidor.objects
        .select_related("producto", "distribuidor")
        .filter(cantidad__lte=F("alerta_stock_bajo"))
    )
    if distribuidor_id is not None:
        return AlertasStock(bodega=[], distribuidores=list(distribuidores.filter(distribuidor_id=distribuidor_id)))
    bodega = Producto.objects.filter(stock_bodega__lte=F("alerta_stock_bajo")).order_by(
        F("stock_bodega") - F("alerta_stock_bajo"), "nombre"
    )
    return AlertasStock(bodega=list(bodega), distribuidores=list(distribuidores))


def historial_transferencias(*, distribuidor_id=None, producto_id=None,
                             pagina: int = 1, limite: int = 50):
    """
    Transferencias más recientes primero.

    Args:
        distribuidor_id: filtra por origen O destino.
        producto_id: filtra por producto.

    Returns:
        django.core.paginator.Page
    """
    qs = TransferenciaStock.objects.select_related(
        "producto", "distribuidor_origen", "distribuidor_destino"
    )
    if distribuidor_id is not None:
        qs = qs.filter(Q(distribuidor_origen_id=distribuidor_id) | Q(distribuidor_destino_id=distribuidor_id))
    if producto_id is not None:
        qs = qs.filter(producto_id=producto_id)
    return Paginator(qs, limite).get_page(pagina)


@dataclass(frozen=True)
class EstadoConservacion:
    producto_id: int
    stock_total: int
    stock_bodega: int
    stock_distribuidores: int
    unidades_vendidas: int
    unidades_defectuosas: int

    @property
    def cuadra(self) -> bool:
        return (self.stock_bodega + self.stock_distribuidores
                == self.stock_total - self.unidades_vendidas - self.unidades_defectuosas)


def verificar_conservacion(producto_id) -> EstadoConservacion:
    """
    Audita la conservación de un producto:

        bodega + Σ distribuidores + vendidas (no anuladas) + defectuosas confirmadas = stock_total

    Lee las ventas y reportes vía apps.get_model para no acoplar inventario a
    esas apps al importar.
    """
    Venta = apps.get_model("ventas", "Venta")
    ReporteDefectuoso = apps.get_model("defectuosos", "ReporteDefectuoso")

    producto = _producto_o_error(producto_id)
    en_distribuidores = StockDistribuidor.objects.filter(producto_id=producto_id).aggregate(
        s=Sum("cantidad"))["s"] or 0
    vendidas = Venta.objects.filter(producto_id=producto_id, anulada=False).aggregate(s=Sum("cantidad"))["s"] or 0
    defectuosas = ReporteDefectuoso.objects.filter(
        producto_id=producto_id, estado="confirmado"
    ).aggregate(s=Sum("cantidad"))["s"] or 0
    return EstadoConservacion(
        producto_id=producto.pk,
        stock_total=producto.stock_total,
        stock_bodega=producto.stock_bodega,
        stock_distribuidores=en_distribuidores,
        unidades_vendidas=vendidas,
        unidades_defectuosas=defectuosas,
    )


def stock_de(producto_id, distribuidor_id: Optional[int] = None) -> int:
    """Cantidad actual en bodega (distribuidor_id=None) o de un distribuidor."""
    if distribuidor_id is None:
        return _producto_o_error(producto_id).stock_bodega
    return _cantidad_distribuidor(producto_id, distribuidor_id)
