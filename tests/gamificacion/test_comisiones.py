from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from gamificacion.comisiones import resolver_comision, tasa_para
from gamificacion.models import (
    ConfiguracionGamificacion,
    EstadoEvaluacion,
    EvaluacionPeriodo,
    NivelComision,
    PeriodoEvaluacion,
)

pytestmark = pytest.mark.django_db

MARZO = datetime(2026, 3, 1, tzinfo=timezone.utc)
ABRIL = datetime(2026, 4, 1, tzinfo=timezone.utc)


def _evaluacion(inicio, fin, estado=EstadoEvaluacion.FINALIZADA) -> EvaluacionPeriodo:
    return EvaluacionPeriodo.objects.create(
        tipo_periodo=PeriodoEvaluacion.MENSUAL, fecha_inicio=inicio, fecha_fin=fin, estado=estado,
    )


def test_venta_directa_no_tiene_comision() -> None:
    assert tasa_para(None) == Decimal("0.00")


def test_sin_evaluaciones_aplica_la_base(d1) -> None:
    resolucion = resolver_comision(d1.pk)
    assert resolucion.porcentaje == Decimal("20.00")
    assert resolucion.posicion is None
    assert resolucion.evaluacion_id is None


def test_base_configurable(d1) -> None:
    config = ConfiguracionGamificacion.obtener()
    config.porcentaje_base = Decimal("15.00")
    config.save()

    assert tasa_para(d1.pk) == Decimal("15.00")


def test_bono_rige_desde_el_fin_de_la_ventana(d1, d2) -> None:
    evaluacion = _evaluacion(MARZO, ABRIL)
    NivelComision.objects.create(evaluacion=evaluacion, distribuidor=d1, posicion=1,
                                 bono_porcentaje=Decimal("5.00"), vigente_desde=ABRIL)

    assert tasa_para(d1.pk, datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc)) == Decimal("20.00")
    assert tasa_para(d1.pk, ABRIL) == Decimal("25.00")
    assert resolver_comision(d1.pk, datetime(2026, 4, 20, tzinfo=timezone.utc)).posicion == 1
    assert tasa_para(d2.pk, ABRIL) == Decimal("20.00")


def test_la_evaluacion_siguiente_reemplaza_el_nivel(d1) -> None:
    marzo = _evaluacion(MARZO, ABRIL)
    NivelComision.objects.create(evaluacion=marzo, distribuidor=d1, posicion=1,
                                 bono_porcentaje=Decimal("5.00"), vigente_desde=ABRIL)
    mayo = datetime(2026, 5, 1, tzinfo=timezone.utc)
    _evaluacion(ABRIL, mayo)

    assert tasa_para(d1.pk, datetime(2026, 4, 15, tzinfo=timezone.utc)) == Decimal("25.00")
    assert tasa_para(d1.pk, datetime(2026, 5, 2, tzinfo=timezone.utc)) == Decimal("20.00")


def test_evaluacion_no_finalizada_no_cuenta(d1) -> None:
    evaluacion = _evaluacion(MARZO, ABRIL, estado=EstadoEvaluacion.CERRADA)
    NivelComision.objects.create(evaluacion=evaluacion, distribuidor=d1, posicion=1,
                                 bono_porcentaje=Decimal("5.00"), vigente_desde=ABRIL)

    assert tasa_para(d1.pk, datetime(2026, 4, 2, tzinfo=timezone.utc)) == Decimal("20.00")


def test_porcentaje_no_supera_cien(d1) -> None:
    config = ConfiguracionGamificacion.obtener()
    config.porcentaje_base = Decimal("98.00")
    config.save()
    evaluacion = _evaluacion(MARZO, ABRIL)
    NivelComision.objects.create(evaluacion=evaluacion, distribuidor=d1, posicion=1,
                                 bono_porcentaje=Decimal("5.00"), vigente_desde=ABRIL)

    assert tasa_para(d1.pk, ABRIL) == Decimal("100.00")
