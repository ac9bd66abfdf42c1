"""
Rutas del proyecto.

Solo el sitio admin: el motor se usa llamando a los services de cada app.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]
