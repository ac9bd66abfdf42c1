"""
Inventario - configuración de la app.

Bodega central, stock por distribuidor y transferencias (ledger de stock).
"""

from django.apps import AppConfig


class InventarioConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "inventario"
    verbose_name = "Inventario"
