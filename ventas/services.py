# ventas/services.py
"""
Servicios (reglas de negocio) para la app 'ventas'.

Propósito:
    Orquestar una venta completa: stock, comisión, reparto de ganancia y
    asientos en el ledger, manteniendo a los llamadores como orquestadores finos.

Responsabilidades:
    - registrar_venta: valida, congela la comisión, descuenta stock, guarda la
      venta y registra las ganancias de admin y distribuidor.
    - confirmar_pago: pendiente → confirmado (idempotente).
    - eliminar_venta: anula la venta, repone el stock y compensa el ledger con
      ajustes. La fila de la venta se conserva (los asientos la referencian).
    - registrar_venta_especial / anular_venta_especial: ventas de evento con
      tabla de distribución propia.

Diseño/Notas:
    - Una venta = UNA transacción (stock + venta + ledger). Si el asiento en el
      ledger falla, se revierte todo y se informa FallaRegistroParcial con
      revertido=True: nunca queda una venta a medias.
    - Orden de bloqueos fijo: stock primero, después cuentas del ledger (por
      usuario_id ascendente).
    - Una venta no puede caer en una ventana ya evaluada: fecha_venta debe ser
      posterior o igual al cierre de la última evaluación finalizada. Así la
      comisión congelada es siempre la del nivel vigente y el ranking de un
      período cerrado no cambia después de publicado su ganador.
    - Fórmulas (redondeo HALF_UP a 2 decimales):
        * venta de distribuidor:
            ganancia_admin        := (precio_distribuidor − precio_compra) × cantidad
            ganancia_distribuidor := precio_venta × cantidad × porcentaje / 100
        * venta directa del admin (sin distribuidor, sale de bodega):
            ganancia_admin        := (precio_venta − precio_compra) × cantidad
            ganancia_distribuidor := 0
    - Este módulo es la “fuente de verdad” para importes de Ventas.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from django.db import DataError, IntegrityError, transaction
from django.utils import timezone

from gamificacion.comisiones import cierre_evaluado, resolver_comision
from ganancias.models import MovimientoGanancia, TipoMovimiento
from ganancias.services import NuevoMovimiento, registrar_multiples
from inventario import services as stock
from inventario.referencias import como_referencia, resolver_producto
from nucleo.contexto import ContextoLlamada
from nucleo.cuentas import exigir_distribuidor, exigir_usuario, obtener_admin_id
from nucleo.dinero import CERO, a_decimal, redondear_moneda
from nucleo.excepciones import (
    DatosInvalidos,
    FallaRegistroParcial,
    RegistroNoEncontrado,
    YaProcesado,
)
from nucleo.fechas import a_momento
from nucleo.transacciones import reintentar_en_conflicto

from .models import (
    DistribucionVentaEspecial,
    EstadoPago,
    EstadoVentaEspecial,
    Venta,
    VentaEspecial,
)

logger = logging.getLogger("distribucion.ventas")

TOLERANCIA_DISTRIBUCION = Decimal("0.01")


# ─────────────────────────────────────────────────────────────────────────────
# Utilidades
# ─────────────────────────────────────────────────────────────────────────────
def _importe_no_negativo(valor, campo: str) -> Decimal:
    importe = a_decimal(valor, campo)
    if importe < 0:
        raise DatosInvalidos(f"{campo} no puede ser negativo.")
    return redondear_moneda(importe)


def _codigo_venta(venta: Venta) -> str:
    """VTA-<año de la venta>-<id con 4 dígitos>."""
    return f"VTA-{timezone.localtime(venta.fecha_venta).year}-{venta.pk:04d}"


def _asentar(movimientos: List[NuevoMovimiento], referencia: str) -> List[MovimientoGanancia]:
    """
    Registra los movimientos dentro de la transacción de la venta.

    Un error al asentar se convierte en FallaRegistroParcial; al propagarse fuera
    del atomic de la venta, la transacción completa (stock incluido) se revierte.
    """
    if not movimientos:
        return []
    try:
        return registrar_multiples(movimientos)
    except (IntegrityError, DataError, RegistroNoEncontrado, DatosInvalidos) as exc:
        logger.error(f"Falló el registro de ganancias de {referencia}; se revierte la venta.", exc_info=True)
        raise FallaRegistroParcial(
            f"No se pudo registrar la ganancia de {referencia}: {exc}. "
            f"La venta no se registró y el stock quedó como estaba.",
            revertido=True,
        ) from exc


def _compensar(movimientos, descripcion: str, referencia: str, metadatos: dict) -> List[MovimientoGanancia]:
    """Un ajuste de signo opuesto por cada movimiento original."""
    ajustes = [
        NuevoMovimiento(
            usuario_id=original.usuario_id,
            tipo=TipoMovimiento.AJUSTE,
            monto=-original.monto,
            descripcion=descripcion,
            producto=original.producto,
            referencia=referencia,
            metadatos={**metadatos, "movimiento_original": original.secuencia},
        )
        for original in movimientos
    ]
    return registrar_multiples(ajustes) if ajustes else []


# ─────────────────────────────────────────────────────────────────────────────
# Registro de venta
# ─────────────────────────────────────────────────────────────────────────────
@reintentar_en_conflicto
def registrar_venta(producto, distribuidor_id, cantidad: int, precio_venta, *,
                    contexto: ContextoLlamada, fecha_venta=None, notas: str = "") -> Venta:
    """
    Registra una venta completa.

    Args:
        producto: id, Producto o ReferenciaProducto.
        distribuidor_id: quien vende; None ⇒ venta directa del admin desde bodega.
        cantidad (int): > 0.
        precio_venta: precio unitario (≥ 0).
        fecha_venta: fecha de negocio (por defecto, ahora). Determina la comisión
            vigente y la ventana de ranking donde cuenta la venta.
            No puede ser anterior al cierre de la última evaluación finalizada.

    Flujo (una transacción):
        1) Validación de entrada y resolución de producto/usuarios.
        2) Resolución de la comisión en fecha_venta (queda congelada).
        3) Consumo de stock (distribuidor o bodega), verificado al escribir.
        4) Creación de la venta con su código y reparto.
        5) Asientos venta_normal: distribuidor y admin (montos ≠ 0).

    Returns:
        Venta: pendiente de pago.

    Raises:
        PermissionDenied: distribuidor registrando por otro / venta directa sin admin.
        DatosInvalidos: entrada inválida o fecha_venta dentro de un período ya
            evaluado.
        RegistroNoEncontrado, StockInsuficiente*: nada cambió.
        FallaRegistroParcial (revertido=True): falló el ledger; nada cambió.
    """
    if distribuidor_id is None:
        contexto.exigir_admin("registrar ventas directas")
    else:
        contexto.exigir_propietario_o_admin(distribuidor_id, "registrar ventas")
    stock.validar_cantidad(cantidad)
    precio = _importe_no_negativo(precio_venta, "precio_venta")
    fecha = a_momento(fecha_venta) if fecha_venta is not None else timezone.now()

    producto = resolver_producto(como_referencia(producto)).producto
    if distribuidor_id is not None:
        exigir_distribuidor(distribuidor_id)
    admin_id = obtener_admin_id()

    with transaction.atomic():
        cierre = cierre_evaluado()
        if cierre is not None and fecha < cierre:
            raise DatosInvalidos(
                f"La fecha de venta {fecha:%Y-%m-%d %H:%M} cae en un período ya evaluado "
                f"(cerrado hasta {cierre:%Y-%m-%d %H:%M})."
            )
        comision = resolver_comision(distribuidor_id, fecha)
        if distribuidor_id is None:
            ganancia_admin = redondear_moneda((precio - producto.precio_compra) * cantidad)
            ganancia_distribuidor = CERO
        else:
            ganancia_admin = redondear_moneda((producto.precio_distribuidor - producto.precio_compra) * cantidad)
            ganancia_distribuidor = redondear_moneda(precio * cantidad * comision.porcentaje / Decimal("100"))

        if distribuidor_id is None:
            stock.consumir_de_bodega(producto.pk, cantidad)
        else:
            stock.consumir(producto.pk, distribuidor_id, cantidad)

        venta = Venta.objects.create(
            producto=producto,
            distribuidor_id=distribuidor_id,
            cantidad=cantidad,
            precio_compra=producto.precio_compra,
            precio_distribuidor=producto.precio_distribuidor,
            precio_venta=precio,
            total=redondear_moneda(precio * cantidad),
            porcentaje_distribuidor=comision.porcentaje,
            bono_comision=comision.bono,
            ganancia_admin=ganancia_admin,
            ganancia_distribuidor=ganancia_distribuidor,
            registrado_por_id=contexto.usuario_id,
            notas=notas or "",
            fecha_venta=fecha,
        )
        venta.codigo = _codigo_venta(venta)
        venta.save(update_fields=["codigo"])

        comunes = dict(fecha=fecha, venta=venta, producto=producto, referencia=venta.codigo)
        movimientos = []
        if distribuidor_id is not None and ganancia_distribuidor != CERO:
            movimientos.append(NuevoMovimiento(
                usuario_id=distribuidor_id, tipo=TipoMovimiento.VENTA_NORMAL, monto=ganancia_distribuidor,
                descripcion=f"Venta {venta.codigo}: {producto.nombre} x {cantidad}",
                metadatos={"porcentaje": str(comision.porcentaje), "cantidad": cantidad},
                **comunes,
            ))
        if ganancia_admin != CERO:
            movimientos.append(NuevoMovimiento(
                usuario_id=admin_id, tipo=TipoMovimiento.VENTA_NORMAL, monto=ganancia_admin,
                descripcion=f"Venta {venta.codigo}: {producto.nombre} x {cantidad}",
                metadatos={"cantidad": cantidad, "directa": distribuidor_id is None},
                **comunes,
            ))
        _asentar(movimientos, venta.codigo)

    logger.info(
        f"Venta {venta.codigo}: producto={producto.pk} distribuidor={distribuidor_id} "
        f"cantidad={cantidad} precio={precio} comision={comision.porcentaje}% "
        f"ganancia_admin={ganancia_admin} ganancia_distribuidor={ganancia_distribuidor}"
    )
    return venta


# ─────────────────────────────────────────────────────────────────────────────
# Confirmación de pago
# ─────────────────────────────────────────────────────────────────────────────
@reintentar_en_conflicto
def confirmar_pago(venta_id, *, contexto: ContextoLlamada) -> Venta:
    """
    pendiente → confirmado. Repetir la confirmación no es error: devuelve la
    venta sin cambios y no registra nada en el ledger.

    Raises:
        YaProcesado: la venta está anulada.
    """
    contexto.exigir_admin("confirmar pagos")
    with transaction.atomic():
        filas = Venta.objects.filter(pk=venta_id, estado_pago=EstadoPago.PENDIENTE, anulada=False).update(
            estado_pago=EstadoPago.CONFIRMADO,
            pago_confirmado_en=timezone.now(),
            pago_confirmado_por_id=contexto.usuario_id,
        )
        try:
            venta = Venta.objects.get(pk=venta_id)
        except Venta.DoesNotExist:
            raise RegistroNoEncontrado(f"No existe Venta id={venta_id}.")
        if venta.anulada:
            raise YaProcesado(f"La venta {venta.codigo} está anulada; no se confirma su pago.")
    if filas:
        logger.info(f"Pago confirmado: venta {venta.codigo}")
    else:
        logger.debug(f"Pago de {venta.codigo} ya estaba confirmado")
    return venta


# ─────────────────────────────────────────────────────────────────────────────
# Eliminación (anulación) de venta
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class VentaEliminada:
    codigo: str
    producto_id: int
    distribuidor_id: Optional[int]
    unidades_repuestas: int
    ajustes: List[MovimientoGanancia]


@reintentar_en_conflicto
def eliminar_venta(venta_id, *, contexto: ContextoLlamada, motivo: str = "") -> VentaEliminada:
    """
    Anula una venta (pagada o no).

    Efectos (una transacción):
        - Repone `cantidad` donde salió: stock del distribuidor o bodega.
        - Por cada asiento de la venta, un `ajuste` de signo opuesto en la misma
          cuenta. Los asientos originales quedan en el historial sin cambios.
        - Marca la venta como anulada. La fila se conserva: deja de contar en
          ranking y conservación, y los asientos la siguen referenciando.

    Raises:
        YaProcesado: la venta ya estaba anulada.
    """
    contexto.exigir_admin("eliminar ventas")
    with transaction.atomic():
        try:
            venta = Venta.objects.select_for_update().get(pk=venta_id)
        except Venta.DoesNotExist:
            raise RegistroNoEncontrado(f"No existe Venta id={venta_id}.")

        if venta.anulada:
            raise YaProcesado(f"La venta {venta.codigo} ya está anulada.")

        if venta.distribuidor_id is None:
            stock.reponer_a_bodega(venta.producto_id, venta.cantidad)
        else:
            stock.reponer_a_distribuidor(venta.producto_id, venta.distribuidor_id, venta.cantidad)

        originales = list(
            MovimientoGanancia.objects.filter(venta=venta, tipo=TipoMovimiento.VENTA_NORMAL).order_by("id")
        )
        codigo = venta.codigo
        ajustes = _compensar(
            originales,
            descripcion=f"Anulación de venta {codigo}" + (f": {motivo}" if motivo else ""),
            referencia=codigo,
            metadatos={"venta_anulada": codigo, "anulada_por": contexto.usuario_id},
        )
        resultado = VentaEliminada(
            codigo=codigo,
            producto_id=venta.producto_id,
            distribuidor_id=venta.distribuidor_id,
            unidades_repuestas=venta.cantidad,
            ajustes=ajustes,
        )
        venta.anulada = True
        venta.anulada_en = timezone.now()
        venta.anulada_por_id = contexto.usuario_id
        venta.motivo_anulacion = (motivo or "")[:255]
        venta.save(update_fields=["anulada", "anulada_en", "anulada_por", "motivo_anulacion"])

    logger.info(
        f"Venta {codigo} anulada: {resultado.unidades_repuestas} unidades repuestas, "
        f"{len(ajustes)} ajustes registrados"
    )
    return resultado


# ─────────────────────────────────────────────────────────────────────────────
# Ventas especiales
# ─────────────────────────────────────────────────────────────────────────────
@reintentar_en_conflicto
def registrar_venta_especial(*, contexto: ContextoLlamada, cantidad: int, precio_especial, costo,
                             distribucion: List[dict], producto=None, nombre_producto: str = "",
                             nombre_evento: str = "", observaciones: str = "",
                             fecha_venta=None) -> VentaEspecial:
    """
    Registra una venta de evento y reparte su ganancia según `distribucion`.

    Args:
        distribucion: lista de {"usuario_id", "monto", "nombre"?, "porcentaje"?, "notas"?}.
            La suma de montos debe igualar ganancia_total (±0.01).

    Efectos:
        - VentaEspecial + una línea por reparto.
        - Un asiento `venta_especial` por línea con monto ≠ 0.
        - Sin efecto en stock.
    """
    contexto.exigir_admin("registrar ventas especiales")
    stock.validar_cantidad(cantidad)
    precio = _importe_no_negativo(precio_especial, "precio_especial")
    costo_unitario = _importe_no_negativo(costo, "costo")
    fecha = a_momento(fecha_venta) if fecha_venta is not None else timezone.now()
    if producto is not None:
        producto = resolver_producto(como_referencia(producto)).producto
        nombre_producto = nombre_producto or producto.nombre
    if not (nombre_producto or "").strip():
        raise DatosInvalidos("La venta especial requiere un producto o un nombre de producto.")
    if not distribucion:
        raise DatosInvalidos("La venta especial requiere al menos una línea de distribución.")

    ganancia_total = redondear_moneda((precio - costo_unitario) * cantidad)
    lineas = []
    for linea in distribucion:
        usuario = exigir_usuario(linea.get("usuario_id"))
        lineas.append({
            "usuario": usuario,
            "nombre": (linea.get("nombre") or usuario.get_username())[:150],
            "monto": redondear_moneda(a_decimal(linea.get("monto"), "monto")),
            "porcentaje": linea.get("porcentaje"),
            "notas": (linea.get("notas") or "")[:255],
        })
    suma = sum((l["monto"] for l in lineas), CERO)
    if abs(suma - ganancia_total) > TOLERANCIA_DISTRIBUCION:
        raise DatosInvalidos(
            f"La distribución ({suma}) no coincide con la ganancia total ({ganancia_total})."
        )

    with transaction.atomic():
        especial = VentaEspecial.objects.create(
            producto=producto,
            nombre_producto=nombre_producto.strip()[:150],
            cantidad=cantidad,
            precio_especial=precio,
            costo=costo_unitario,
            total=redondear_moneda(precio * cantidad),
            ganancia_total=ganancia_total,
            nombre_evento=nombre_evento or "",
            observaciones=observaciones or "",
            fecha_venta=fecha,
            registrado_por_id=contexto.usuario_id,
        )
        referencia = f"VE-{especial.pk:04d}"
        movimientos = []
        for linea in lineas:
            DistribucionVentaEspecial.objects.create(
                venta_especial=especial,
                usuario=linea["usuario"],
                nombre=linea["nombre"],
                monto=linea["monto"],
                porcentaje=linea["porcentaje"],
                notas=linea["notas"],
            )
            if linea["monto"] != CERO:
                movimientos.append(NuevoMovimiento(
                    usuario_id=linea["usuario"].pk, tipo=TipoMovimiento.VENTA_ESPECIAL, monto=linea["monto"],
                    descripcion=f"Venta especial {referencia}: {especial.nombre_producto}"
                                + (f" ({nombre_evento})" if nombre_evento else ""),
                    fecha=fecha, venta_especial=especial, producto=producto, referencia=referencia,
                ))
        _asentar(movimientos, referencia)

    logger.info(
        f"Venta especial {referencia}: {especial.nombre_producto} x {cantidad} "
        f"ganancia={ganancia_total} repartida en {len(lineas)} líneas"
    )
    return especial


@reintentar_en_conflicto
def anular_venta_especial(venta_especial_id, *, contexto: ContextoLlamada) -> VentaEspecial:
    """
    active → cancelled, con un ajuste compensatorio por cada asiento.

    Raises:
        YaProcesado: si ya estaba cancelada.
    """
    contexto.exigir_admin("anular ventas especiales")
    with transaction.atomic():
        try:
            especial = VentaEspecial.objects.select_for_update().get(pk=venta_especial_id)
        except VentaEspecial.DoesNotExist:
            raise RegistroNoEncontrado(f"No existe VentaEspecial id={venta_especial_id}.")
        if especial.estado == EstadoVentaEspecial.CANCELADA:
            raise YaProcesado(f"La venta especial {especial.pk} ya está cancelada.")

        referencia = f"VE-{especial.pk:04d}"
        originales = MovimientoGanancia.objects.filter(
            venta_especial=especial, tipo=TipoMovimiento.VENTA_ESPECIAL
        ).order_by("id")
        ajustes = _compensar(
            list(originales),
            descripcion=f"Anulación de venta especial {referencia}",
            referencia=referencia,
            metadatos={"venta_especial_anulada": especial.pk, "anulada_por": contexto.usuario_id},
        )
        especial.estado = EstadoVentaEspecial.CANCELADA
        especial.save(update_fields=["estado"])

    logger.info(f"Venta especial {referencia} anulada: {len(ajustes)} ajustes registrados")
    return especial
