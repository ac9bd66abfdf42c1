"""
Ventas - configuración de la app.

Registro de ventas (normales y especiales), confirmación de pago y anulación.
"""

from django.apps import AppConfig


class VentasConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ventas"
    verbose_name = "Ventas"
