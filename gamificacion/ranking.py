# gamificacion/ranking.py
"""
Ranking de distribuidores y evaluación de períodos.

Propósito:
    Recalcular el ranking desde las ventas de una ventana y, al evaluar una
    ventana cerrada, dejar el ganador, los bonos y los niveles de comisión del
    período siguiente.

Responsabilidades:
    - calcular_ranking / obtener_ranking: lectura pura desde Venta (sin caché).
    - evaluar_periodo: máquina de estados cerrada → finalizada de una ventana.
    - evaluar_periodo_vencido: evaluación programada de la ventana anterior.
    - marcar_bono_pagado, listar_ganadores.

Diseño/Notas:
    - Orden del ranking (único y explícito):
        1) ingresos_totales DESC
        2) ganancia_total (admin + distribuidor) DESC
        3) primera venta de la ventana ASC (quien llegó antes)
        4) distribuidor_id ASC
    - Exclusividad por ventana: la fila EvaluacionPeriodo (UNIQUE por
      fecha_inicio/fecha_fin) se inserta al comenzar; una segunda evaluación de la
      misma ventana espera ese bloqueo y termina en PeriodoYaEvaluado.
    - Puntos := total_ventas × puntos_por_venta + ingresos × puntos_por_peso.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, Min, Sum
from django.utils import timezone

from ganancias.models import TipoMovimiento
from ganancias.services import NuevoMovimiento, registrar_multiples
from nucleo.contexto import ContextoLlamada
from nucleo.dinero import CERO, redondear_moneda
from nucleo.excepciones import (
    PeriodoYaEvaluado,
    RangoFechasInvalido,
    RegistroNoEncontrado,
    SinVentasEnPeriodo,
    YaProcesado,
)
from nucleo.fechas import a_momento
from nucleo.transacciones import reintentar_en_conflicto
from ventas.models import EstadoPago, Venta

from .models import (
    ConfiguracionGamificacion,
    EstadoEvaluacion,
    EvaluacionPeriodo,
    GanadorPeriodo,
    NivelComision,
    PeriodoEvaluacion,
)
from .periodos import Ventana, ventana_actual, ventana_anterior

logger = logging.getLogger("distribucion.ranking")

NIVEL_INICIAL = "beginner"
POSICIONES_PREMIADAS = 3


@dataclass(frozen=True)
class PosicionRanking:
    posicion: int
    distribuidor_id: int
    nombre: str
    email: str
    total_ventas: int
    total_unidades: int
    ingresos_totales: Decimal
    ganancia_total: Decimal
    puntos_totales: Decimal
    nivel: str
    periodos_ganados: int
    primera_venta: datetime


# ─────────────────────────────────────────────────────────────────────────────
# Cálculo
# ─────────────────────────────────────────────────────────────────────────────
def _validar_rango(desde, hasta):
    desde, hasta = a_momento(desde), a_momento(hasta)
    if desde > hasta:
        raise RangoFechasInvalido(f"La fecha de inicio ({desde}) es posterior a la de fin ({hasta}).")
    return desde, hasta


def nivel_para(ingresos: Decimal, metas: dict) -> str:
    """Nivel más alto cuya meta (monto_minimo) alcanzan los ingresos."""
    alcanzados = [
        (Decimal(str(meta.get("monto_minimo", 0))), nombre)
        for nombre, meta in (metas or {}).items()
        if Decimal(str(meta.get("monto_minimo", 0))) <= ingresos
    ]
    return max(alcanzados)[1] if alcanzados else NIVEL_INICIAL


def calcular_ranking(desde, hasta, config: Optional[ConfiguracionGamificacion] = None) -> List[PosicionRanking]:
    """
    Ranking de la ventana [desde, hasta) desde las ventas de distribuidores.

    Solo aparecen distribuidores con al menos una venta no anulada en la
    ventana. Si la configuración lo indica, solo cuentan ventas con pago
    confirmado.
    """
    desde, hasta = _validar_rango(desde, hasta)
    config = config or ConfiguracionGamificacion.obtener()

    ventas = Venta.objects.filter(
        distribuidor__isnull=False, anulada=False, fecha_venta__gte=desde, fecha_venta__lt=hasta
    )
    if config.ranking_solo_confirmadas:
        ventas = ventas.filter(estado_pago=EstadoPago.CONFIRMADO)
    filas = list(
        ventas.values("distribuidor")
        .annotate(
            total_ventas=Count("id"),
            total_unidades=Sum("cantidad"),
            ingresos=Sum("total"),
            ganancia_admin=Sum("ganancia_admin"),
            ganancia_distribuidor=Sum("ganancia_distribuidor"),
            primera_venta=Min("fecha_venta"),
        )
        .order_by()
    )
    for fila in filas:
        fila["ingresos"] = redondear_moneda(fila["ingresos"])
        fila["ganancia"] = redondear_moneda((fila["ganancia_admin"] or CERO) + (fila["ganancia_distribuidor"] or CERO))
    filas.sort(key=lambda f: (-f["ingresos"], -f["ganancia"], f["primera_venta"], f["distribuidor"]))

    ids = [f["distribuidor"] for f in filas]
    usuarios = get_user_model().objects.in_bulk(ids)
    victorias = dict(
        GanadorPeriodo.objects.filter(ganador_id__in=ids)
        .values("ganador").annotate(n=Count("id")).order_by()
        .values_list("ganador", "n")
    )

    ranking = []
    for posicion, fila in enumerate(filas, start=1):
        usuario = usuarios[fila["distribuidor"]]
        puntos = fila["total_ventas"] * config.puntos_por_venta + fila["ingresos"] * config.puntos_por_peso
        ranking.append(PosicionRanking(
            posicion=posicion,
            distribuidor_id=usuario.pk,
            nombre=usuario.get_full_name() or usuario.get_username(),
            email=usuario.email or "",
            total_ventas=fila["total_ventas"],
            total_unidades=fila["total_unidades"] or 0,
            ingresos_totales=fila["ingresos"],
            ganancia_total=fila["ganancia"],
            puntos_totales=redondear_moneda(puntos),
            nivel=nivel_para(fila["ingresos"], config.metas_ventas),
            periodos_ganados=victorias.get(usuario.pk, 0),
            primera_venta=fila["primera_venta"],
        ))
    return ranking


def obtener_ranking(periodo: str = "current", desde=None, hasta=None, en=None) -> List[PosicionRanking]:
    """
    Ranking para mostrar.

    Args:
        periodo: "current" (ventana configurada que contiene `en`/ahora) o
            "custom" (requiere desde y hasta).
    """
    config = ConfiguracionGamificacion.obtener()
    if periodo == "current":
        ventana = ventana_actual(config, en)
        return calcular_ranking(ventana.inicio, ventana.fin, config)
    if periodo == "custom":
        if desde is None or hasta is None:
            raise RangoFechasInvalido("El ranking personalizado requiere fecha de inicio y de fin.")
        return calcular_ranking(desde, hasta, config)
    raise RangoFechasInvalido(f"Período de ranking desconocido: {periodo!r}.")


# ─────────────────────────────────────────────────────────────────────────────
# Evaluación de período
# ─────────────────────────────────────────────────────────────────────────────
def _tabla_top(posiciones: List[PosicionRanking], config: ConfiguracionGamificacion) -> list:
    return [
        {
            "posicion": p.posicion,
            "distribuidor_id": p.distribuidor_id,
            "nombre": p.nombre,
            "ingresos_totales": str(p.ingresos_totales),
            "total_ventas": p.total_ventas,
            "bono": str(config.bono_por_posicion(p.posicion)),
        }
        for p in posiciones
    ]


@reintentar_en_conflicto
def evaluar_periodo(fecha_inicio, fecha_fin, notas: str = "", *, contexto: ContextoLlamada,
                    tipo_periodo: Optional[str] = None) -> GanadorPeriodo:
    """
    Evalúa la ventana [fecha_inicio, fecha_fin) y finaliza el período.

    Flujo (una transacción):
        1) Toma la ventana: inserta EvaluacionPeriodo en estado 'cerrada'
           (si ya existe → PeriodoYaEvaluado).
        2) Calcula el ranking desde las ventas.
        3) Registra un bono (tipo 'bonus') para las posiciones 1..3 con bono > 0.
        4) Guarda NivelComision de las posiciones 1..3, vigente desde fecha_fin.
        5) Crea GanadorPeriodo (posición 1 + tabla top 3) y pasa a 'finalizada'.

    Raises:
        PermissionDenied: si no es admin.
        RangoFechasInvalido: fecha_inicio > fecha_fin, o la ventana aún no terminó.
        PeriodoYaEvaluado: la ventana ya fue evaluada (o se está evaluando).
        SinVentasEnPeriodo: ningún distribuidor vendió en la ventana (nada se escribe).
    """
    contexto.exigir_admin("evaluar períodos")
    inicio, fin = _validar_rango(fecha_inicio, fecha_fin)
    config = ConfiguracionGamificacion.obtener()
    tipo = tipo_periodo or PeriodoEvaluacion.PERSONALIZADO
    ahora = timezone.now()
    if fin > ahora:
        raise RangoFechasInvalido(f"La ventana termina el {fin:%Y-%m-%d %H:%M}: todavía no cerró.")

    with transaction.atomic():
        if EvaluacionPeriodo.objects.filter(fecha_inicio=inicio, fecha_fin=fin).exists():
            raise PeriodoYaEvaluado(f"La ventana {inicio:%Y-%m-%d} → {fin:%Y-%m-%d} ya fue evaluada.")
        try:
            with transaction.atomic():
                evaluacion = EvaluacionPeriodo.objects.create(
                    tipo_periodo=tipo, fecha_inicio=inicio, fecha_fin=fin,
                    estado=EstadoEvaluacion.CERRADA, evaluado_por_id=contexto.usuario_id, notas=notas or "",
                )
        except IntegrityError:
            raise PeriodoYaEvaluado(f"La ventana {inicio:%Y-%m-%d} → {fin:%Y-%m-%d} ya fue evaluada.")

        posiciones = calcular_ranking(inicio, fin, config)
        if not posiciones:
            raise SinVentasEnPeriodo(f"No hay ventas de distribuidores entre {inicio:%Y-%m-%d} y {fin:%Y-%m-%d}.")
        premiados = posiciones[:POSICIONES_PREMIADAS]

        # registrar_multiples toma las cuentas por usuario_id ascendente, no por posición.
        registrar_multiples([
            NuevoMovimiento(
                usuario_id=p.distribuidor_id, tipo=TipoMovimiento.BONUS, monto=config.bono_por_posicion(p.posicion),
                descripcion=f"Bono posición #{p.posicion} ({inicio:%Y-%m-%d} → {fin:%Y-%m-%d})",
                referencia=f"EVAL-{evaluacion.pk}",
                metadatos={"evaluacion": evaluacion.pk, "posicion": p.posicion},
            )
            for p in premiados
            if config.bono_por_posicion(p.posicion) > 0
        ])
        for p in premiados:
            NivelComision.objects.create(
                evaluacion=evaluacion,
                distribuidor_id=p.distribuidor_id,
                posicion=p.posicion,
                bono_porcentaje=config.bono_comision_por_posicion(p.posicion),
                vigente_desde=fin,
            )

        primero = premiados[0]
        ganador = GanadorPeriodo.objects.create(
            evaluacion=evaluacion,
            tipo_periodo=tipo,
            fecha_inicio=inicio,
            fecha_fin=fin,
            ganador_id=primero.distribuidor_id,
            ganador_nombre=primero.nombre,
            ganador_email=primero.email,
            cantidad_ventas=primero.total_ventas,
            ingresos_totales=primero.ingresos_totales,
            monto_bono=config.bono_por_posicion(1),
            top=_tabla_top(premiados, config),
            notas=notas or "",
        )
        evaluacion.estado = EstadoEvaluacion.FINALIZADA
        evaluacion.finalizado_en = ahora
        evaluacion.save(update_fields=["estado", "finalizado_en"])
        ConfiguracionGamificacion.objects.filter(pk=config.pk).update(ultima_evaluacion=ahora)

    logger.info(
        f"Período {inicio:%Y-%m-%d} → {fin:%Y-%m-%d} evaluado: ganador={primero.distribuidor_id} "
        f"ingresos={primero.ingresos_totales} ({len(posiciones)} distribuidores)"
    )
    return ganador


def evaluar_periodo_vencido(en=None, *, contexto: ContextoLlamada) -> Optional[GanadorPeriodo]:
    """
    Evalúa la ventana anterior a la actual si todavía no se evaluó.

    Pensado para correr desde un cron/tarea. Devuelve None si la ventana ya
    estaba evaluada o no tuvo ventas.
    """
    config = ConfiguracionGamificacion.obtener()
    ventana: Ventana = ventana_anterior(config, en)
    if EvaluacionPeriodo.objects.filter(fecha_inicio=ventana.inicio, fecha_fin=ventana.fin).exists():
        return None
    try:
        return evaluar_periodo(ventana.inicio, ventana.fin, "Evaluación automática",
                               contexto=contexto, tipo_periodo=ventana.tipo)
    except (PeriodoYaEvaluado, SinVentasEnPeriodo) as exc:
        logger.info(f"Ventana {ventana.inicio:%Y-%m-%d} → {ventana.fin:%Y-%m-%d} sin evaluar: {exc.message}")
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Ganadores
# ─────────────────────────────────────────────────────────────────────────────
@reintentar_en_conflicto
def marcar_bono_pagado(ganador_id, *, contexto: ContextoLlamada) -> GanadorPeriodo:
    """Marca el bono del ganador como pagado (una sola vez)."""
    contexto.exigir_admin("marcar bonos como pagados")
    with transaction.atomic():
        try:
            ganador = GanadorPeriodo.objects.select_for_update().get(pk=ganador_id)
        except GanadorPeriodo.DoesNotExist:
            raise RegistroNoEncontrado(f"No existe GanadorPeriodo id={ganador_id}.")
        if ganador.bono_pagado:
            raise YaProcesado(f"El bono de {ganador} ya figura como pagado.")
        ganador.bono_pagado = True
        ganador.bono_pagado_en = timezone.now()
        ganador.save(update_fields=["bono_pagado", "bono_pagado_en"])
    logger.info(f"Bono pagado: ganador #{ganador.pk} ({ganador.ganador_nombre})")
    return ganador


def listar_ganadores(distribuidor_id=None):
    qs = GanadorPeriodo.objects.select_related("ganador")
    if distribuidor_id is not None:
        qs = qs.filter(ganador_id=distribuidor_id)
    return qs
