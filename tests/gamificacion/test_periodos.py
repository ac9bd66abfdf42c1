from __future__ import annotations

from datetime import datetime, timezone

import pytest

from gamificacion.models import ConfiguracionGamificacion, PeriodoEvaluacion
from gamificacion.periodos import ventana_actual, ventana_anterior

pytestmark = pytest.mark.django_db

MIERCOLES = datetime(2026, 10, 21, 15, 30, tzinfo=timezone.utc)


def _config(periodo, **extra) -> ConfiguracionGamificacion:
    config = ConfiguracionGamificacion.obtener()
    config.periodo = periodo
    for campo, valor in extra.items():
        setattr(config, campo, valor)
    config.save()
    return config


def _dias(ventana):
    return ventana.inicio.date().isoformat(), ventana.fin.date().isoformat()


def test_diaria() -> None:
    config = _config(PeriodoEvaluacion.DIARIO)
    assert _dias(ventana_actual(config, MIERCOLES)) == ("2026-10-21", "2026-10-22")
    assert _dias(ventana_anterior(config, MIERCOLES)) == ("2026-10-20", "2026-10-21")


def test_semanal_empieza_en_domingo() -> None:
    config = _config(PeriodoEvaluacion.SEMANAL)
    assert _dias(ventana_actual(config, MIERCOLES)) == ("2026-10-18", "2026-10-25")
    assert _dias(ventana_anterior(config, MIERCOLES)) == ("2026-10-11", "2026-10-18")
    domingo = datetime(2026, 10, 18, tzinfo=timezone.utc)
    assert _dias(ventana_actual(config, domingo)) == ("2026-10-18", "2026-10-25")


def test_mensual() -> None:
    config = _config(PeriodoEvaluacion.MENSUAL)
    assert _dias(ventana_actual(config, MIERCOLES)) == ("2026-10-01", "2026-11-01")
    assert _dias(ventana_anterior(config, datetime(2026, 3, 5, tzinfo=timezone.utc))) == ("2026-02-01", "2026-03-01")
    assert _dias(ventana_actual(config, datetime(2026, 12, 31, tzinfo=timezone.utc))) == ("2026-12-01", "2027-01-01")


def test_quincenal_sin_ancla_se_corta_a_fin_de_mes() -> None:
    config = _config(PeriodoEvaluacion.QUINCENAL)
    assert _dias(ventana_actual(config, MIERCOLES)) == ("2026-10-15", "2026-10-29")
    fin_de_mes = datetime(2026, 10, 30, tzinfo=timezone.utc)
    assert _dias(ventana_actual(config, fin_de_mes)) == ("2026-10-29", "2026-11-01")
    assert _dias(ventana_anterior(config, datetime(2026, 11, 2, tzinfo=timezone.utc))) == ("2026-10-29", "2026-11-01")


def test_personalizado_con_ancla() -> None:
    config = _config(PeriodoEvaluacion.PERSONALIZADO, dias_personalizado=10,
                     inicio_periodo_actual=datetime(2026, 10, 1, tzinfo=timezone.utc))
    assert _dias(ventana_actual(config, MIERCOLES)) == ("2026-10-21", "2026-10-31")
    assert _dias(ventana_anterior(config, MIERCOLES)) == ("2026-10-11", "2026-10-21")
    antes_del_ancla = datetime(2026, 9, 25, tzinfo=timezone.utc)
    assert _dias(ventana_actual(config, antes_del_ancla)) == ("2026-09-21", "2026-10-01")


def test_ventana_semiabierta() -> None:
    config = _config(PeriodoEvaluacion.DIARIO)
    ventana = ventana_actual(config, MIERCOLES)
    assert ventana.contiene(ventana.inicio)
    assert not ventana.contiene(ventana.fin)
