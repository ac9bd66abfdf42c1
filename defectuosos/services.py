# defectuosos/services.py
"""
Servicios del flujo de productos defectuosos.

Responsabilidades:
    - reportar: crea el reporte (de bodega: confirmado en el acto y da de baja
      las unidades; de distribuidor: pendiente).
    - confirmar / rechazar: transición desde pendiente, una sola vez.
    - listar_reportes: listado con totales por estado.

Diseño/Notas:
    - Las unidades confirmadas SALEN del sistema (no vuelven a bodega).
    - El reporte de un distribuidor valida su stock al reportar pero no lo
      descuenta; confirmar vuelve a validar al escribir. Si ya no alcanza, falla
      y el reporte sigue pendiente.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from inventario import services as stock
from inventario.referencias import como_referencia, resolver_producto
from nucleo.contexto import ContextoLlamada
from nucleo.cuentas import exigir_distribuidor
from nucleo.excepciones import (
    DatosInvalidos,
    RegistroNoEncontrado,
    StockInsuficienteDistribuidor,
    YaProcesado,
)
from nucleo.transacciones import reintentar_en_conflicto

from .models import EstadoReporte, ReporteDefectuoso

logger = logging.getLogger("distribucion.defectuosos")


@reintentar_en_conflicto
def reportar(producto, distribuidor_id, cantidad: int, motivo: str, *,
             contexto: ContextoLlamada) -> ReporteDefectuoso:
    """
    Registra un reporte de unidades defectuosas.

    Args:
        producto: id, Producto o ReferenciaProducto.
        distribuidor_id: dueño del stock afectado; None ⇒ bodega (solo admin).

    Raises:
        PermissionDenied, DatosInvalidos, RegistroNoEncontrado,
        StockInsuficienteBodega / StockInsuficienteDistribuidor.
    """
    if distribuidor_id is None:
        contexto.exigir_admin("reportar defectos de bodega")
    else:
        contexto.exigir_propietario_o_admin(distribuidor_id, "reportar defectos")
    stock.validar_cantidad(cantidad)
    if not (motivo or "").strip():
        raise DatosInvalidos("El reporte requiere un motivo.")
    producto = resolver_producto(como_referencia(producto)).producto

    with transaction.atomic():
        if distribuidor_id is None:
            stock.devolver_desde_bodega(producto.pk, cantidad)
            reporte = ReporteDefectuoso.objects.create(
                producto=producto, cantidad=cantidad, motivo=motivo.strip(),
                estado=EstadoReporte.CONFIRMADO, confirmado_en=timezone.now(),
                procesado_por_id=contexto.usuario_id,
            )
        else:
            exigir_distribuidor(distribuidor_id)
            disponible = stock.stock_de(producto.pk, distribuidor_id)
            if disponible < cantidad:
                raise StockInsuficienteDistribuidor(
                    f"El distribuidor id={distribuidor_id} tiene {disponible} unidades de '{producto}', "
                    f"no puede reportar {cantidad}."
                )
            reporte = ReporteDefectuoso.objects.create(
                producto=producto, distribuidor_id=distribuidor_id, cantidad=cantidad, motivo=motivo.strip(),
            )

    logger.info(
        f"Reporte defectuoso #{reporte.pk}: producto={producto.pk} "
        f"origen={distribuidor_id or 'bodega'} cantidad={cantidad} estado={reporte.estado}"
    )
    return reporte


def _pendiente_bloqueado(reporte_id) -> ReporteDefectuoso:
    try:
        reporte = ReporteDefectuoso.objects.select_for_update().get(pk=reporte_id)
    except ReporteDefectuoso.DoesNotExist:
        raise RegistroNoEncontrado(f"No existe ReporteDefectuoso id={reporte_id}.")
    if reporte.estado != EstadoReporte.PENDIENTE:
        raise YaProcesado(f"El reporte #{reporte.pk} ya fue {reporte.estado}.")
    return reporte


@reintentar_en_conflicto
def confirmar(reporte_id, notas: str = "", *, contexto: ContextoLlamada) -> ReporteDefectuoso:
    """
    pendiente → confirmado y baja definitiva de las unidades.

    Raises:
        YaProcesado: el reporte no está pendiente.
        StockInsuficienteDistribuidor: el distribuidor ya no tiene esas unidades.
    """
    contexto.exigir_admin("confirmar reportes de defectos")
    with transaction.atomic():
        reporte = _pendiente_bloqueado(reporte_id)
        if reporte.es_de_bodega:
            stock.devolver_desde_bodega(reporte.producto_id, reporte.cantidad)
        else:
            stock.devolver_desde_distribuidor(reporte.producto_id, reporte.distribuidor_id, reporte.cantidad)
        reporte.estado = EstadoReporte.CONFIRMADO
        reporte.confirmado_en = timezone.now()
        reporte.procesado_por_id = contexto.usuario_id
        reporte.notas_admin = notas or ""
        reporte.save(update_fields=["estado", "confirmado_en", "procesado_por", "notas_admin"])
    logger.info(f"Reporte defectuoso #{reporte.pk} confirmado: -{reporte.cantidad} unidades")
    return reporte


@reintentar_en_conflicto
def rechazar(reporte_id, notas: str = "", *, contexto: ContextoLlamada) -> ReporteDefectuoso:
    """pendiente → rechazado. Sin efecto en stock."""
    contexto.exigir_admin("rechazar reportes de defectos")
    with transaction.atomic():
        reporte = _pendiente_bloqueado(reporte_id)
        reporte.estado = EstadoReporte.RECHAZADO
        reporte.procesado_por_id = contexto.usuario_id
        reporte.notas_admin = notas or ""
        reporte.save(update_fields=["estado", "procesado_por", "notas_admin"])
    logger.info(f"Reporte defectuoso #{reporte.pk} rechazado")
    return reporte


@dataclass(frozen=True)
class ListadoReportes:
    reportes: List[ReporteDefectuoso]
    por_estado: Dict[str, int]
    cantidad_total: int


def listar_reportes(*, contexto: ContextoLlamada, estado: Optional[str] = None,
                    distribuidor_id=None) -> ListadoReportes:
    """
    Reportes filtrados y totales por estado. Un distribuidor solo ve los suyos.
    """
    if not contexto.es_admin:
        distribuidor_id = contexto.usuario_id
    if estado is not None and estado not in EstadoReporte.values:
        raise DatosInvalidos(f"Estado de reporte desconocido: {estado!r}.")

    qs = ReporteDefectuoso.objects.select_related("producto", "distribuidor")
    if distribuidor_id is not None:
        qs = qs.filter(distribuidor_id=distribuidor_id)
    por_estado = {e: 0 for e in EstadoReporte.values}
    por_estado.update(dict(qs.values("estado").annotate(n=Count("id")).order_by().values_list("estado", "n")))
    if estado is not None:
        qs = qs.filter(estado=estado)
    return ListadoReportes(
        reportes=list(qs),
        por_estado=por_estado,
        cantidad_total=qs.aggregate(s=Sum("cantidad"))["s"] or 0,
    )
