"""
Admin de la app Ganancias.

Los movimientos y saldos son de solo lectura: el ledger solo crece vía
ganancias.services (los ajustes se registran como un movimiento nuevo).
"""
from django.contrib import admin
from .models import MovimientoGanancia, SaldoUsuario


class SoloLecturaAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class MovimientoGananciaAdmin(SoloLecturaAdmin):
    list_display = ('usuario', 'secuencia', 'tipo', 'monto', 'saldo_despues', 'fecha', 'referencia', 'descripcion')
    list_filter = ('tipo',)
    search_fields = ('referencia', 'descripcion')


class SaldoUsuarioAdmin(SoloLecturaAdmin):
    list_display = ('usuario', 'saldo', 'secuencia', 'actualizado_en')


admin.site.register(MovimientoGanancia, MovimientoGananciaAdmin)
admin.site.register(SaldoUsuario, SaldoUsuarioAdmin)
