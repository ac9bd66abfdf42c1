"""
Modelo de Defectuosos: ReporteDefectuoso.

Máquina de estados:
    pendiente → confirmado | rechazado   (ambos terminales)

- distribuidor NULL ⇒ el defecto se detectó en bodega; el reporte nace
  confirmado y las unidades salen de bodega en el mismo paso.
- Con distribuidor, las unidades salen de su stock recién al confirmar.
"""
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class EstadoReporte(models.TextChoices):
    PENDIENTE = 'pendiente', 'Pendiente'
    CONFIRMADO = 'confirmado', 'Confirmado'
    RECHAZADO = 'rechazado', 'Rechazado'


class ReporteDefectuoso(models.Model):
    producto = models.ForeignKey('inventario.Producto', on_delete=models.PROTECT, related_name='reportes_defectuosos')
    distribuidor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True,
                                     related_name='reportes_defectuosos')
    cantidad = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    motivo = models.TextField()
    estado = models.CharField(max_length=10, choices=EstadoReporte.choices, default=EstadoReporte.PENDIENTE)
    fecha_reporte = models.DateTimeField(default=timezone.now)
    confirmado_en = models.DateTimeField(null=True, blank=True)
    procesado_por = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='reportes_defectuosos_procesados')
    notas_admin = models.TextField(blank=True)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-fecha_reporte', '-id']
        indexes = [
            models.Index(fields=['estado']),
            models.Index(fields=['distribuidor', 'estado']),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(cantidad__gt=0), name='reporte_defectuoso_cantidad_gt_0'),
        ]

    @property
    def es_de_bodega(self) -> bool:
        return self.distribuidor_id is None

    def __str__(self):
        origen = self.distribuidor or 'bodega'
        return f"{self.producto} x {self.cantidad} ({origen}, {self.estado})"
