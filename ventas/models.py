"""
Modelos de Ventas: Venta, VentaEspecial y DistribucionVentaEspecial.

Propósito:
    Representar cada venta con su reparto de ganancia CONGELADO al momento de
    registrarla, y las ventas especiales (eventos) con su tabla de distribución.

Responsabilidades:
    - Venta: una línea (producto × cantidad) vendida por un distribuidor o,
      si distribuidor es NULL, directamente por el admin desde bodega.
    - VentaEspecial: venta de evento sin efecto en stock; su ganancia se reparte
      según una tabla explícita (DistribucionVentaEspecial).

Diseño/Notas:
    - precio_compra / precio_distribuidor se copian del producto al registrar la
      venta: cambiar precios después no altera ventas pasadas.
    - porcentaje_distribuidor, bono_comision, ganancia_admin y
      ganancia_distribuidor se calculan UNA vez en services y no se recalculan.
    - Transiciones permitidas: estado_pago pendiente → confirmado, y anulada
      False → True. Una venta nunca se borra: sus asientos en el ledger la
      siguen referenciando.
    - Constraints aseguran no negatividad y rangos válidos (0..100 en %).
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


class EstadoPago(models.TextChoices):
    PENDIENTE = 'pendiente', 'Pendiente'
    CONFIRMADO = 'confirmado', 'Confirmado'


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: Venta
# ─────────────────────────────────────────────────────────────────────────────
class Venta(models.Model):
    """
    Venta de un producto.

    Campos:
        codigo                   VTA-<año>-<NNNN>, asignado al registrar
        producto                 FK → inventario.Producto (PROTECT)
        distribuidor             FK → User, NULL ⇒ venta directa del admin
        cantidad                 > 0
        precio_compra            snapshot del costo unitario
        precio_distribuidor      snapshot del precio al distribuidor
        precio_venta             precio unitario de venta (≥ 0)
        total                    precio_venta × cantidad
        porcentaje_distribuidor  tasa vigente al momento de la venta (congelada)
        bono_comision            parte de la tasa que vino del ranking
        ganancia_admin / ganancia_distribuidor   reparto congelado
        estado_pago              pendiente | confirmado
        anulada                  True tras eliminar_venta (stock repuesto, ganancias compensadas)
        fecha_venta              fecha de negocio (la usan ranking y comisiones)

    Meta:
        - ordering: recientes primero (fecha_venta DESC, id DESC).
        - indexes: por fecha y por distribuidor+fecha (ranking por ventana).
    """
    codigo = models.CharField(max_length=20, unique=True, null=True, blank=True)
    producto = models.ForeignKey('inventario.Producto', on_delete=models.PROTECT, related_name='ventas')
    distribuidor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True,
                                     related_name='ventas')
    cantidad = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    precio_compra = models.DecimalField(max_digits=12, decimal_places=2)
    precio_distribuidor = models.DecimalField(max_digits=12, decimal_places=2)
    precio_venta = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    total = models.DecimalField(max_digits=14, decimal_places=2)
    porcentaje_distribuidor = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'),
                                                  validators=[MinValueValidator(Decimal('0')),
                                                              MaxValueValidator(Decimal('100'))])
    bono_comision = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    ganancia_admin = models.DecimalField(max_digits=14, decimal_places=2)
    ganancia_distribuidor = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    estado_pago = models.CharField(max_length=10, choices=EstadoPago.choices, default=EstadoPago.PENDIENTE)
    pago_confirmado_en = models.DateTimeField(null=True, blank=True)
    pago_confirmado_por = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True,
                                            blank=True, related_name='pagos_confirmados')
    registrado_por = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                       related_name='ventas_registradas')
    anulada = models.BooleanField(default=False)
    anulada_en = models.DateTimeField(null=True, blank=True)
    anulada_por = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='ventas_anuladas')
    motivo_anulacion = models.CharField(max_length=255, blank=True)
    notas = models.TextField(blank=True)
    fecha_venta = models.DateTimeField(default=timezone.now)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-fecha_venta', '-id']
        indexes = [
            models.Index(fields=['fecha_venta']),
            models.Index(fields=['distribuidor', 'fecha_venta']),
            models.Index(fields=['estado_pago']),
            models.Index(fields=['anulada']),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(cantidad__gt=0), name='venta_cantidad_gt_0'),
            models.CheckConstraint(condition=models.Q(precio_venta__gte=0), name='venta_precio_venta_gte_0'),
            models.CheckConstraint(condition=models.Q(porcentaje_distribuidor__gte=0)
                                   & models.Q(porcentaje_distribuidor__lte=100),
                                   name='venta_porcentaje_0_100'),
            models.CheckConstraint(condition=models.Q(ganancia_distribuidor__gte=0),
                                   name='venta_ganancia_distribuidor_gte_0'),
        ]

    @property
    def es_directa(self) -> bool:
        return self.distribuidor_id is None

    def __str__(self):
        return f"{self.codigo or f'Venta {self.pk}'} - {self.producto} x {self.cantidad}"


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: VentaEspecial (cabecera)
# ─────────────────────────────────────────────────────────────────────────────
class EstadoVentaEspecial(models.TextChoices):
    ACTIVA = 'active', 'Activa'
    CANCELADA = 'cancelled', 'Cancelada'


class VentaEspecial(models.Model):
    """
    Venta de evento con reparto de ganancia libre.

    ganancia_total = (precio_especial − costo) × cantidad; la suma de la tabla de
    distribución debe coincidir con ella (tolerancia ±0.01).
    No descuenta stock.
    """
    producto = models.ForeignKey('inventario.Producto', on_delete=models.PROTECT, null=True, blank=True,
                                 related_name='ventas_especiales')
    nombre_producto = models.CharField(max_length=150)
    cantidad = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    precio_especial = models.DecimalField(max_digits=12, decimal_places=2)
    costo = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=14, decimal_places=2)
    ganancia_total = models.DecimalField(max_digits=14, decimal_places=2)
    nombre_evento = models.CharField(max_length=150, blank=True)
    observaciones = models.TextField(blank=True)
    estado = models.CharField(max_length=10, choices=EstadoVentaEspecial.choices, default=EstadoVentaEspecial.ACTIVA)
    fecha_venta = models.DateTimeField(default=timezone.now)
    registrado_por = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                       related_name='ventas_especiales_registradas')
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-fecha_venta', '-id']
        constraints = [
            models.CheckConstraint(condition=models.Q(cantidad__gt=0), name='venta_especial_cantidad_gt_0'),
            models.CheckConstraint(condition=models.Q(precio_especial__gte=0) & models.Q(costo__gte=0),
                                   name='venta_especial_precios_gte_0'),
        ]

    def __str__(self):
        return f"Venta especial {self.pk} - {self.nombre_producto} x {self.cantidad}"


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: DistribucionVentaEspecial (línea)
# ─────────────────────────────────────────────────────────────────────────────
class DistribucionVentaEspecial(models.Model):
    venta_especial = models.ForeignKey(VentaEspecial, on_delete=models.CASCADE, related_name='distribucion')
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                related_name='distribuciones_venta_especial')
    nombre = models.CharField(max_length=150)
    monto = models.DecimalField(max_digits=14, decimal_places=2)
    porcentaje = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    notas = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.nombre}: {self.monto}"
