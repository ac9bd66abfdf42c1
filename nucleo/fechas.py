"""Normalización de fechas de negocio a datetimes con zona horaria."""
from __future__ import annotations

from datetime import date, datetime, time

from django.utils import timezone

from .excepciones import DatosInvalidos


def inicio_del_dia(dia: date) -> datetime:
    return timezone.make_aware(datetime.combine(dia, time.min))


def a_momento(valor) -> datetime:
    """
    date → inicio de ese día local; datetime ingenuo → hora local;
    datetime aware → sin cambios.

    Raises:
        DatosInvalidos: si no es date ni datetime.
    """
    if isinstance(valor, datetime):
        return valor if timezone.is_aware(valor) else timezone.make_aware(valor)
    if isinstance(valor, date):
        return inicio_del_dia(valor)
    raise DatosInvalidos(f"Se esperaba una fecha, se recibió {valor!r}.")
