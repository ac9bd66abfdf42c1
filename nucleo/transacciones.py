"""
Reintento de operaciones ante conflictos de bloqueo.

Propósito:
    Las operaciones del motor leen-validan-escriben dentro de transaction.atomic
    y bloquean filas. Si la base no entrega el bloqueo a tiempo (SQLite
    "database is locked", PostgreSQL lock timeout / deadlock) la transacción
    completa ya se revirtió, así que es seguro repetirla entera.

Reglas:
    - Solo la llamada más externa reintenta. Dentro de un atomic ajeno el error
      se propaga tal cual para que lo maneje quien abrió la transacción.
    - Agotados los intentos se lanza ConflictoConcurrencia (nada quedó aplicado).
"""
from __future__ import annotations

import logging
from functools import wraps

from django.db import OperationalError, transaction

from .config import ajuste
from .excepciones import ConflictoConcurrencia

logger = logging.getLogger("distribucion.nucleo")

_MARCAS_DE_BLOQUEO = ("lock", "deadlock", "serialize")


def _es_conflicto_de_bloqueo(exc: OperationalError) -> bool:
    mensaje = str(exc).lower()
    return any(marca in mensaje for marca in _MARCAS_DE_BLOQUEO)


def reintentar_en_conflicto(funcion):
    """Decorador: repite la operación completa si falló por un bloqueo."""

    @wraps(funcion)
    def envoltura(*args, **kwargs):
        if transaction.get_connection().in_atomic_block:
            return funcion(*args, **kwargs)

        intentos = max(1, int(ajuste("REINTENTOS_CONFLICTO")))
        for intento in range(1, intentos + 1):
            try:
                return funcion(*args, **kwargs)
            except OperationalError as exc:
                if not _es_conflicto_de_bloqueo(exc):
                    raise
                logger.warning(
                    f"Conflicto de bloqueo en {funcion.__name__} "
                    f"(intento {intento}/{intentos}): {exc}"
                )
                ultimo_error = exc
        raise ConflictoConcurrencia(
            f"{funcion.__name__}: no se obtuvo el bloqueo tras {intentos} intentos."
        ) from ultimo_error

    return envoltura
