"""
Admin de la app Inventario.

Propósito:
    Configurar la interfaz de administración para Producto, Categoria,
    StockDistribuidor y TransferenciaStock.

Diseño/Notas:
    - Las cantidades (stock_total, stock_bodega, StockDistribuidor.cantidad) son
      de solo lectura: se mueven únicamente vía inventario.services.
    - TransferenciaStock es un registro de auditoría: no se agrega, edita ni borra
      desde el admin.
"""

from django.contrib import admin
from .models import Categoria, Producto, StockDistribuidor, TransferenciaStock


# ─────────────────────────────────────────────────────────────────────────────
# Admin: Producto
# ─────────────────────────────────────────────────────────────────────────────
class ProductoAdmin(admin.ModelAdmin):
    """
    Admin de Producto.

    Protección:
        - `stock_total` y `stock_bodega` siempre readonly; el ingreso a bodega y
          las asignaciones pasan por services para respetar la conservación.
    """
    readonly_fields = ('stock_total', 'stock_bodega', 'creado_en', 'actualizado_en')
    list_display = ('nombre', 'categoria', 'precio_compra', 'precio_distribuidor', 'precio_cliente',
                    'stock_total', 'stock_bodega', 'alerta_stock_bajo', 'stock_bajo')
    list_filter = ('categoria',)
    search_fields = ('nombre',)

    @admin.display(boolean=True, description='Stock bajo')
    def stock_bajo(self, obj):
        return obj.stock_bajo


# ─────────────────────────────────────────────────────────────────────────────
# Admin: Categoria
# ─────────────────────────────────────────────────────────────────────────────
class CategoriaAdmin(admin.ModelAdmin):
    list_display = ('nombre',)


# ─────────────────────────────────────────────────────────────────────────────
# Admin: StockDistribuidor
# ─────────────────────────────────────────────────────────────────────────────
class StockDistribuidorAdmin(admin.ModelAdmin):
    """Solo el umbral de alerta es editable."""
    readonly_fields = ('producto', 'distribuidor', 'cantidad', 'creado_en', 'actualizado_en')
    list_display = ('producto', 'distribuidor', 'cantidad', 'alerta_stock_bajo', 'actualizado_en')
    list_filter = ('distribuidor',)

    def has_add_permission(self, request):
        return False


# ─────────────────────────────────────────────────────────────────────────────
# Admin: TransferenciaStock (solo lectura)
# ─────────────────────────────────────────────────────────────────────────────
class TransferenciaStockAdmin(admin.ModelAdmin):
    list_display = ('producto', 'distribuidor_origen', 'distribuidor_destino', 'cantidad',
                    'stock_origen_antes', 'stock_origen_despues',
                    'stock_destino_antes', 'stock_destino_despues', 'estado', 'creado_en')
    list_filter = ('estado',)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ─────────────────────────────────────────────────────────────────────────────
# Registro de modelos
# ─────────────────────────────────────────────────────────────────────────────
admin.site.register(Producto, ProductoAdmin)
admin.site.register(Categoria, CategoriaAdmin)
admin.site.register(StockDistribuidor, StockDistribuidorAdmin)
admin.site.register(TransferenciaStock, TransferenciaStockAdmin)
