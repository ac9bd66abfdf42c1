"""
Ganancias - configuración de la app.

Ledger de ganancias: historial append-only con saldo corrido por usuario.
"""

from django.apps import AppConfig


class GananciasConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ganancias"
    verbose_name = "Ganancias"
