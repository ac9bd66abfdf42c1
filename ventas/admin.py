from django.contrib import admin
from .models import DistribucionVentaEspecial, Venta, VentaEspecial


# Los importes de una venta quedan congelados al registrarla: solo lectura.
class VentaAdmin(admin.ModelAdmin):
    list_display = ('codigo', 'producto', 'distribuidor', 'cantidad', 'precio_venta', 'porcentaje_distribuidor',
                    'ganancia_admin', 'ganancia_distribuidor', 'estado_pago', 'anulada', 'fecha_venta')
    list_filter = ('estado_pago', 'anulada', 'distribuidor')
    search_fields = ('codigo',)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class DistribucionVentaEspecialInline(admin.TabularInline):
    model = DistribucionVentaEspecial
    extra = 0
    can_delete = False
    readonly_fields = ('usuario', 'nombre', 'monto', 'porcentaje', 'notas')


class VentaEspecialAdmin(admin.ModelAdmin):
    list_display = ('nombre_producto', 'nombre_evento', 'cantidad', 'precio_especial', 'ganancia_total',
                    'estado', 'fecha_venta')
    list_filter = ('estado',)
    inlines = [DistribucionVentaEspecialInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


admin.site.register(Venta, VentaAdmin)
admin.site.register(VentaEspecial, VentaEspecialAdmin)
