"""
Cálculo de ventanas de evaluación según ConfiguracionGamificacion.periodo.

Todas las ventanas son semiabiertas [inicio, fin) y se calculan sobre días
locales (TIME_ZONE del proyecto):

    daily     día calendario
    weekly    semana que empieza el domingo
    biweekly  bloques de 14 días desde el ancla
    custom    bloques de `dias_personalizado` días desde el ancla
    monthly   mes calendario

Ancla de biweekly/custom: `inicio_periodo_actual` si está configurado; si no,
el día 1 del mes (y entonces el último bloque se corta al fin de mes, para que
dos meses no compartan ventana).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from django.utils import timezone

from nucleo.fechas import a_momento, inicio_del_dia

from .models import ConfiguracionGamificacion, PeriodoEvaluacion


@dataclass(frozen=True)
class Ventana:
    tipo: str
    inicio: datetime
    fin: datetime

    def contiene(self, momento: datetime) -> bool:
        return self.inicio <= momento < self.fin


def _primero_del_mes_siguiente(dia: date) -> date:
    return (dia.replace(day=28) + timedelta(days=4)).replace(day=1)


def _bloque(dia: date, ancla: date, largo: int, tope: date = None):
    desplazamiento = (dia - ancla).days // largo
    inicio = ancla + timedelta(days=desplazamiento * largo)
    fin = inicio + timedelta(days=largo)
    if tope is not None and fin > tope:
        fin = tope
    return inicio, fin


def ventana_actual(config: ConfiguracionGamificacion, en: datetime = None) -> Ventana:
    """Ventana del período configurado que contiene el instante `en` (ahora por defecto)."""
    dia = timezone.localdate(a_momento(en) if en is not None else timezone.now())
    periodo = config.periodo

    if periodo == PeriodoEvaluacion.DIARIO:
        inicio, fin = dia, dia + timedelta(days=1)
    elif periodo == PeriodoEvaluacion.SEMANAL:
        inicio = dia - timedelta(days=(dia.weekday() + 1) % 7)
        fin = inicio + timedelta(days=7)
    elif periodo == PeriodoEvaluacion.MENSUAL:
        inicio, fin = dia.replace(day=1), _primero_del_mes_siguiente(dia)
    else:
        largo = 14 if periodo == PeriodoEvaluacion.QUINCENAL else max(1, config.dias_personalizado)
        if config.inicio_periodo_actual:
            inicio, fin = _bloque(dia, timezone.localdate(config.inicio_periodo_actual), largo)
        else:
            inicio, fin = _bloque(dia, dia.replace(day=1), largo, tope=_primero_del_mes_siguiente(dia))

    return Ventana(tipo=periodo, inicio=inicio_del_dia(inicio), fin=inicio_del_dia(fin))


def ventana_anterior(config: ConfiguracionGamificacion, en: datetime = None) -> Ventana:
    """Ventana inmediatamente anterior a la que contiene `en`."""
    actual = ventana_actual(config, en)
    return ventana_actual(config, actual.inicio - timedelta(microseconds=1))
