from django.contrib import admin
from .models import ReporteDefectuoso


# Los cambios de estado pasan por defectuosos.services (mueven stock).
class ReporteDefectuosoAdmin(admin.ModelAdmin):
    list_display = ('producto', 'distribuidor', 'cantidad', 'estado', 'fecha_reporte', 'confirmado_en',
                    'procesado_por')
    list_filter = ('estado',)
    search_fields = ('motivo', 'producto__nombre')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


admin.site.register(ReporteDefectuoso, ReporteDefectuosoAdmin)
