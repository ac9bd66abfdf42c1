"""
Admin de la app Gamificación.

- ConfiguracionGamificacion: fila única editable (sin alta ni baja).
- EvaluacionPeriodo, GanadorPeriodo y NivelComision: solo lectura; los escribe
  gamificacion.ranking al evaluar un período.
"""
from django.contrib import admin
from .models import ConfiguracionGamificacion, EvaluacionPeriodo, GanadorPeriodo, NivelComision


class ConfiguracionGamificacionAdmin(admin.ModelAdmin):
    list_display = ('periodo', 'porcentaje_base', 'bono_primero', 'bono_segundo', 'bono_tercero',
                    'ultima_evaluacion')
    readonly_fields = ('ultima_evaluacion', 'actualizado_en')

    def has_add_permission(self, request):
        return not ConfiguracionGamificacion.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False


class SoloLecturaAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class EvaluacionPeriodoAdmin(SoloLecturaAdmin):
    list_display = ('fecha_inicio', 'fecha_fin', 'tipo_periodo', 'estado', 'evaluado_por', 'finalizado_en')
    list_filter = ('estado', 'tipo_periodo')


class GanadorPeriodoAdmin(SoloLecturaAdmin):
    list_display = ('ganador_nombre', 'fecha_inicio', 'fecha_fin', 'cantidad_ventas', 'ingresos_totales',
                    'monto_bono', 'bono_pagado')
    list_filter = ('bono_pagado', 'tipo_periodo')


class NivelComisionAdmin(SoloLecturaAdmin):
    list_display = ('distribuidor', 'posicion', 'bono_porcentaje', 'vigente_desde', 'evaluacion')


admin.site.register(ConfiguracionGamificacion, ConfiguracionGamificacionAdmin)
admin.site.register(EvaluacionPeriodo, EvaluacionPeriodoAdmin)
admin.site.register(GanadorPeriodo, GanadorPeriodoAdmin)
admin.site.register(NivelComision, NivelComisionAdmin)
