"""Lectura de los ajustes del motor (settings.LEDGER) con valores por defecto."""
from django.conf import settings

DEFECTOS = {
    "USUARIO_ADMIN": "",
    "REINTENTOS_CONFLICTO": 3,
}


def ajuste(nombre: str):
    return getattr(settings, "LEDGER", {}).get(nombre, DEFECTOS[nombre])
