"""
Gamificación - configuración de la app.

Ranking de distribuidores, ganadores por período y niveles de comisión.
"""

from django.apps import AppConfig


class GamificacionConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "gamificacion"
    verbose_name = "Gamificación"
