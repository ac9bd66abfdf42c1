"""
Modelos de Inventario: Categoria, Producto, StockDistribuidor y TransferenciaStock.

Responsabilidades:
- Definir la bodega central (stock por producto) y el stock asignado a cada distribuidor.
- Incluir validaciones a nivel de BD (CHECK CONSTRAINTS) que reflejan los invariantes
  de no-negatividad: aunque una actualización se salte los services, la BD la rechaza.
- Registrar cada transferencia entre distribuidores con su foto antes/después.

Diseño:
- Relaciones PROTECT para evitar borrados cascada peligrosos.
- Las cantidades SOLO se modifican vía inventario.services (fuente de verdad del stock).
- `__str__` legible para admin y selects.
"""

from decimal import Decimal
from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: Categoria
# ─────────────────────────────────────────────────────────────────────────────
class Categoria(models.Model):
    """
    Categoría de producto (clasificación simple).

    Campos:
    - nombre (str, único): nombre visible de la categoría.
    """
    nombre = models.CharField(max_length=100, unique=True)

    class Meta:
        ordering = ['nombre']

    def __str__(self):
        return self.nombre


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: Producto
# ─────────────────────────────────────────────────────────────────────────────
class Producto(models.Model):
    """
    Producto del catálogo con su stock en bodega.

    Campos principales:
    - nombre, descripcion (opc), categoria (FK, PROTECT, opcional)
    - precio_compra, precio_distribuidor, precio_cliente (opc): independientes entre sí;
      el motor no deriva unos de otros.
    - stock_total: unidades que alguna vez ingresaron al sistema.
    - stock_bodega: unidades aún no asignadas a ningún distribuidor.
    - alerta_stock_bajo: umbral para el listado de alertas de bodega.

    Constraints (BD):
    - precios ≥ 0.
    - producto_stock_bodega_lte_total: stock_bodega ≤ stock_total.
    (stock_bodega ≥ 0 lo garantiza PositiveIntegerField.)

    Conservación (por producto, en cualquier punto de reposo):
        stock_bodega + Σ StockDistribuidor.cantidad
            = stock_total − Σ unidades vendidas − Σ unidades defectuosas confirmadas
    """
    nombre = models.CharField(max_length=150)
    descripcion = models.TextField(blank=True)
    categoria = models.ForeignKey('Categoria', on_delete=models.PROTECT, related_name='productos',
                                  null=True, blank=True)
    precio_compra = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    precio_distribuidor = models.DecimalField(max_digits=12, decimal_places=2,
                                              validators=[MinValueValidator(Decimal('0'))])
    precio_cliente = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True,
                                         validators=[MinValueValidator(Decimal('0'))])
    stock_total = models.PositiveIntegerField(default=0)
    stock_bodega = models.PositiveIntegerField(default=0)
    alerta_stock_bajo = models.PositiveIntegerField(default=10)
    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['nombre']
        indexes = [
            models.Index(fields=['categoria']),
            models.Index(fields=['stock_bodega']),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(precio_compra__gte=0), name='producto_precio_compra_gte_0'),
            models.CheckConstraint(condition=models.Q(precio_distribuidor__gte=0),
                                   name='producto_precio_distribuidor_gte_0'),
            models.CheckConstraint(condition=models.Q(precio_cliente__gte=0) | models.Q(precio_cliente__isnull=True),
                                   name='producto_precio_cliente_gte_0_or_null'),
            models.CheckConstraint(condition=models.Q(stock_bodega__lte=models.F('stock_total')),
                                   name='producto_stock_bodega_lte_total'),
        ]

    @property
    def stock_bajo(self) -> bool:
        return self.stock_bodega <= self.alerta_stock_bajo

    def __str__(self):
        return self.nombre


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: StockDistribuidor
# ─────────────────────────────────────────────────────────────────────────────
class StockDistribuidor(models.Model):
    """
    Unidades de un producto asignadas a un distribuidor.

    Una fila por (producto, distribuidor); se crea al primer ingreso y no se borra
    aunque quede en 0 (conserva su alerta configurada).

    Constraints:
    - uniq_stock_producto_distribuidor.
    - cantidad ≥ 0 (PositiveIntegerField + CHECK explícito).
    """
    producto = models.ForeignKey('Producto', on_delete=models.PROTECT, related_name='stock_distribuidores')
    distribuidor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                     related_name='stock_asignado')
    cantidad = models.PositiveIntegerField(default=0)
    alerta_stock_bajo = models.PositiveIntegerField(default=5)
    creado_en = models.DateTimeField(auto_now_add=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['distribuidor', 'producto']
        indexes = [
            models.Index(fields=['distribuidor', 'cantidad']),
        ]
        constraints = [
            models.UniqueConstraint(fields=['producto', 'distribuidor'], name='uniq_stock_producto_distribuidor'),
            models.CheckConstraint(condition=models.Q(cantidad__gte=0), name='stock_distribuidor_cantidad_gte_0'),
        ]

    @property
    def stock_bajo(self) -> bool:
        return self.cantidad <= self.alerta_stock_bajo

    def __str__(self):
        return f"{self.producto} x {self.cantidad} ({self.distribuidor})"


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: TransferenciaStock
# ─────────────────────────────────────────────────────────────────────────────
class EstadoTransferencia(models.TextChoices):
    COMPLETADA = 'completed', 'Completada'
    FALLIDA = 'failed', 'Fallida'
    CANCELADA = 'cancelled', 'Cancelada'


class TransferenciaStock(models.Model):
    """
    Registro inmutable de una transferencia entre distribuidores.

    Campos:
        producto, distribuidor_origen, distribuidor_destino (FK, PROTECT)
        cantidad (> 0)
        stock_origen_antes/despues, stock_destino_antes/despues
            Foto tomada DENTRO de la misma transacción que movió el stock.
        estado: 'completed' por defecto. Las transferencias rechazadas no se
            persisten (no hay fila 'failed' por un rechazo).
        notas, creado_en
    """
    producto = models.ForeignKey('Producto', on_delete=models.PROTECT, related_name='transferencias')
    distribuidor_origen = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                            related_name='transferencias_enviadas')
    distribuidor_destino = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                             related_name='transferencias_recibidas')
    cantidad = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    stock_origen_antes = models.PositiveIntegerField()
    stock_origen_despues = models.PositiveIntegerField()
    stock_destino_antes = models.PositiveIntegerField(default=0)
    stock_destino_despues = models.PositiveIntegerField()
    estado = models.CharField(max_length=10, choices=EstadoTransferencia.choices,
                              default=EstadoTransferencia.COMPLETADA)
    notas = models.TextField(blank=True)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-creado_en', '-id']
        indexes = [
            models.Index(fields=['distribuidor_origen', 'creado_en']),
            models.Index(fields=['distribuidor_destino', 'creado_en']),
            models.Index(fields=['producto', 'creado_en']),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(cantidad__gt=0), name='transferencia_cantidad_gt_0'),
            models.CheckConstraint(condition=~models.Q(distribuidor_origen=models.F('distribuidor_destino')),
                                   name='transferencia_origen_distinto_destino'),
        ]

    def __str__(self):
        return (f"{self.producto} x {self.cantidad}: "
                f"{self.distribuidor_origen} → {self.distribuidor_destino}")
