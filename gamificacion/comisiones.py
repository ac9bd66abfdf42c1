"""
Resolución del porcentaje de comisión de un distribuidor en un instante dado.

Regla:
    porcentaje = porcentaje_base + bono de posición

    El bono de posición (+5 / +3 / +2 por defecto) proviene de la evaluación
    finalizada más reciente cuya ventana ya terminó en ese instante
    (fecha_fin ≤ en). Rige hasta que se finaliza una evaluación posterior. Sin
    evaluación previa, o fuera del top 3, solo aplica la base.

    Ventas sin distribuidor (venta directa del admin): 0 % para distribuidor.

El porcentaje devuelto se congela en la venta; este módulo nunca toca ventas ya
registradas.

Las ventas no pueden fecharse antes de `cierre_evaluado()`: el nivel que se
resuelve es siempre el de la última evaluación finalizada.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.db.models import Max
from django.utils import timezone

from nucleo.dinero import CERO
from nucleo.fechas import a_momento

from .models import ConfiguracionGamificacion, EstadoEvaluacion, EvaluacionPeriodo, NivelComision

CIEN = Decimal("100.00")


@dataclass(frozen=True)
class ResolucionComision:
    porcentaje_base: Decimal
    bono: Decimal = CERO
    posicion: Optional[int] = None
    evaluacion_id: Optional[int] = None

    @property
    def porcentaje(self) -> Decimal:
        return min(self.porcentaje_base + self.bono, CIEN)


SOLO_ADMIN = ResolucionComision(porcentaje_base=CERO)


def evaluacion_vigente(en=None) -> Optional[EvaluacionPeriodo]:
    """Última evaluación finalizada cuya ventana terminó a más tardar en `en`."""
    momento = a_momento(en) if en is not None else timezone.now()
    return (
        EvaluacionPeriodo.objects
        .filter(estado=EstadoEvaluacion.FINALIZADA, fecha_fin__lte=momento)
        .order_by("-fecha_fin", "-id")
        .first()
    )


def cierre_evaluado() -> Optional[datetime]:
    """Fin de la última ventana finalizada (None si nunca se evaluó ninguna)."""
    return (
        EvaluacionPeriodo.objects
        .filter(estado=EstadoEvaluacion.FINALIZADA)
        .aggregate(cierre=Max("fecha_fin"))["cierre"]
    )


def resolver_comision(distribuidor_id, en=None) -> ResolucionComision:
    if distribuidor_id is None:
        return SOLO_ADMIN
    config = ConfiguracionGamificacion.obtener()
    evaluacion = evaluacion_vigente(en)
    if evaluacion is None:
        return ResolucionComision(porcentaje_base=config.porcentaje_base)
    nivel = NivelComision.objects.filter(evaluacion=evaluacion, distribuidor_id=distribuidor_id).first()
    if nivel is None:
        return ResolucionComision(porcentaje_base=config.porcentaje_base, evaluacion_id=evaluacion.pk)
    return ResolucionComision(
        porcentaje_base=config.porcentaje_base,
        bono=nivel.bono_porcentaje,
        posicion=nivel.posicion,
        evaluacion_id=evaluacion.pk,
    )


def tasa_para(distribuidor_id, en=None) -> Decimal:
    """Porcentaje (0..100) que cobra el distribuidor por una venta en `en`."""
    return resolver_comision(distribuidor_id, en).porcentaje
