"""
Redondeo monetario.

Una única función de redondeo (HALF_UP, 2 decimales) para todos los importes
del motor, así no se mezclan modos/precisiones entre apps.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .excepciones import DatosInvalidos

CENTAVO = Decimal("0.01")
CERO = Decimal("0.00")


def redondear_moneda(importe) -> Decimal:
    """
    Redondea un importe a 2 decimales con HALF_UP.

    Args:
        importe (Decimal | int | str | None): None se trata como 0.

    Returns:
        Decimal: importe con exactamente 2 decimales.
    """
    return Decimal(importe or 0).quantize(CENTAVO, rounding=ROUND_HALF_UP)


def a_decimal(valor, campo: str) -> Decimal:
    """
    Convierte una entrada del llamador a Decimal sin pasar por float.

    Raises:
        DatosInvalidos: si el valor no es numérico (o es bool).
    """
    if isinstance(valor, bool) or valor is None:
        raise DatosInvalidos(f"{campo} debe ser numérico.")
    try:
        return Decimal(str(valor))
    except (InvalidOperation, ValueError):
        raise DatosInvalidos(f"{campo} debe ser numérico, se recibió {valor!r}.")
