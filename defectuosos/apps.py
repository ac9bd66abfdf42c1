"""
Defectuosos - configuración de la app.
"""

from django.apps import AppConfig


class DefectuososConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "defectuosos"
    verbose_name = "Productos defectuosos"
