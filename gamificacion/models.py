"""
Modelos de Gamificación: configuración, evaluaciones de período, ganadores y
niveles de comisión.

Responsabilidades:
    - ConfiguracionGamificacion: fila única (pk=1) editable por el admin.
    - EvaluacionPeriodo: “candado” de una ventana [fecha_inicio, fecha_fin) y su
      máquina de estados (cerrada → finalizada).
    - GanadorPeriodo: registro inmutable del primer lugar de cada ventana.
    - NivelComision: posición 1..3 obtenida en una evaluación; define el bono de
      comisión vigente hasta la evaluación siguiente.

Diseño/Notas:
    - El ranking “en vivo” NO se persiste: se recalcula siempre desde las ventas.
    - Unicidad de ventana en BD: dos evaluaciones concurrentes de la misma ventana
      no pueden terminar ambas.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


def metas_por_defecto():
    return {
        'bronze': {'monto_minimo': 10000, 'bono': 0, 'insignia': 'Bronce'},
        'silver': {'monto_minimo': 25000, 'bono': 0, 'insignia': 'Plata'},
        'gold': {'monto_minimo': 50000, 'bono': 0, 'insignia': 'Oro'},
        'platinum': {'monto_minimo': 100000, 'bono': 0, 'insignia': 'Platino'},
    }


class PeriodoEvaluacion(models.TextChoices):
    DIARIO = 'daily', 'Diario'
    SEMANAL = 'weekly', 'Semanal'
    QUINCENAL = 'biweekly', 'Quincenal'
    MENSUAL = 'monthly', 'Mensual'
    PERSONALIZADO = 'custom', 'Personalizado'


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: ConfiguracionGamificacion (singleton)
# ─────────────────────────────────────────────────────────────────────────────
class ConfiguracionGamificacion(models.Model):
    """
    Configuración global del ranking y de las comisiones.

    Campos:
        periodo, dias_personalizado, inicio_periodo_actual (ancla opcional)
        bono_primero/segundo/tercero        bonos en dinero al evaluar
        puntos_por_venta, puntos_por_peso   fórmula de puntos
        metas_ventas (JSON)                 nivel → {monto_minimo, bono, insignia}
        porcentaje_base                     comisión base del distribuidor (%)
        bono_comision_primero/segundo/tercero  puntos porcentuales extra por posición
        ranking_solo_confirmadas            si el ranking cuenta solo ventas pagadas
        ultima_evaluacion                   fecha/hora de la última evaluación
    """
    periodo = models.CharField(max_length=10, choices=PeriodoEvaluacion.choices,
                               default=PeriodoEvaluacion.MENSUAL)
    dias_personalizado = models.PositiveIntegerField(default=30, validators=[MinValueValidator(1)])
    inicio_periodo_actual = models.DateTimeField(null=True, blank=True)

    bono_primero = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('1000.00'))
    bono_segundo = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('500.00'))
    bono_tercero = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('250.00'))

    puntos_por_venta = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('1.00'))
    puntos_por_peso = models.DecimalField(max_digits=8, decimal_places=4, default=Decimal('0.1000'))
    metas_ventas = models.JSONField(default=metas_por_defecto, blank=True)

    porcentaje_base = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('20.00'),
                                          validators=[MinValueValidator(Decimal('0')),
                                                      MaxValueValidator(Decimal('100'))])
    bono_comision_primero = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('5.00'))
    bono_comision_segundo = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('3.00'))
    bono_comision_tercero = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('2.00'))

    ranking_solo_confirmadas = models.BooleanField(default=False)
    ultima_evaluacion = models.DateTimeField(null=True, blank=True)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'configuración de gamificación'
        verbose_name_plural = 'configuración de gamificación'
        constraints = [
            models.CheckConstraint(condition=models.Q(porcentaje_base__gte=0) & models.Q(porcentaje_base__lte=100),
                                   name='config_porcentaje_base_0_100'),
            models.CheckConstraint(condition=models.Q(bono_primero__gte=0) & models.Q(bono_segundo__gte=0)
                                   & models.Q(bono_tercero__gte=0),
                                   name='config_bonos_gte_0'),
        ]

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def obtener(cls) -> "ConfiguracionGamificacion":
        """Devuelve la fila única, creándola con los valores por defecto."""
        config, _ = cls.objects.get_or_create(pk=1)
        return config

    def bono_por_posicion(self, posicion: int) -> Decimal:
        return {1: self.bono_primero, 2: self.bono_segundo, 3: self.bono_tercero}.get(posicion, Decimal('0.00'))

    def bono_comision_por_posicion(self, posicion: int) -> Decimal:
        return {
            1: self.bono_comision_primero,
            2: self.bono_comision_segundo,
            3: self.bono_comision_tercero,
        }.get(posicion, Decimal('0.00'))

    def __str__(self):
        return f"Gamificación ({self.get_periodo_display()})"


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: EvaluacionPeriodo (candado de ventana)
# ─────────────────────────────────────────────────────────────────────────────
class EstadoEvaluacion(models.TextChoices):
    CERRADA = 'cerrada', 'Cerrada (evaluando)'
    FINALIZADA = 'finalizada', 'Finalizada'


class EvaluacionPeriodo(models.Model):
    """
    Una fila por ventana evaluada.

    Se inserta en estado 'cerrada' al comenzar la evaluación (el UNIQUE de la
    ventana bloquea a cualquier otra evaluación concurrente) y pasa a
    'finalizada' en la misma transacción, junto con el ganador y los bonos.
    """
    tipo_periodo = models.CharField(max_length=10, choices=PeriodoEvaluacion.choices)
    fecha_inicio = models.DateTimeField()
    fecha_fin = models.DateTimeField()
    estado = models.CharField(max_length=10, choices=EstadoEvaluacion.choices, default=EstadoEvaluacion.CERRADA)
    evaluado_por = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True,
                                     related_name='evaluaciones_periodo')
    finalizado_en = models.DateTimeField(null=True, blank=True)
    notas = models.TextField(blank=True)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-fecha_fin', '-id']
        constraints = [
            models.UniqueConstraint(fields=['fecha_inicio', 'fecha_fin'], name='uniq_evaluacion_ventana'),
            models.CheckConstraint(condition=models.Q(fecha_inicio__lte=models.F('fecha_fin')),
                                   name='evaluacion_inicio_lte_fin'),
        ]

    def __str__(self):
        return f"{self.fecha_inicio:%Y-%m-%d} → {self.fecha_fin:%Y-%m-%d} ({self.estado})"


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: GanadorPeriodo
# ─────────────────────────────────────────────────────────────────────────────
class GanadorPeriodo(models.Model):
    """
    Primer lugar de una ventana evaluada (más el top 3 como tabla JSON).

    Inmutable salvo `bono_pagado`/`bono_pagado_en`, que se marcan una sola vez.
    """
    evaluacion = models.OneToOneField(EvaluacionPeriodo, on_delete=models.PROTECT, related_name='ganador')
    tipo_periodo = models.CharField(max_length=10, choices=PeriodoEvaluacion.choices)
    fecha_inicio = models.DateTimeField()
    fecha_fin = models.DateTimeField()
    ganador = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='periodos_ganados')
    ganador_nombre = models.CharField(max_length=150)
    ganador_email = models.EmailField(blank=True)
    cantidad_ventas = models.PositiveIntegerField()
    ingresos_totales = models.DecimalField(max_digits=14, decimal_places=2)
    monto_bono = models.DecimalField(max_digits=12, decimal_places=2)
    bono_pagado = models.BooleanField(default=False)
    bono_pagado_en = models.DateTimeField(null=True, blank=True)
    top = models.JSONField(default=list, blank=True)
    notas = models.TextField(blank=True)
    creado_en = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-fecha_fin', '-id']
        verbose_name = 'ganador de período'
        verbose_name_plural = 'ganadores de período'

    def __str__(self):
        return f"{self.ganador_nombre} ({self.fecha_inicio:%Y-%m-%d} → {self.fecha_fin:%Y-%m-%d})"


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: NivelComision
# ─────────────────────────────────────────────────────────────────────────────
class NivelComision(models.Model):
    """
    Posición (1..3) de un distribuidor en una evaluación y el bono de comisión
    que le corresponde desde `vigente_desde` hasta la siguiente evaluación.
    """
    evaluacion = models.ForeignKey(EvaluacionPeriodo, on_delete=models.PROTECT, related_name='niveles')
    distribuidor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                     related_name='niveles_comision')
    posicion = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(3)])
    bono_porcentaje = models.DecimalField(max_digits=5, decimal_places=2)
    vigente_desde = models.DateTimeField()

    class Meta:
        ordering = ['-vigente_desde', 'posicion']
        constraints = [
            models.UniqueConstraint(fields=['evaluacion', 'distribuidor'], name='uniq_nivel_evaluacion_distribuidor'),
            models.UniqueConstraint(fields=['evaluacion', 'posicion'], name='uniq_nivel_evaluacion_posicion'),
        ]

    def __str__(self):
        return f"#{self.posicion} {self.distribuidor} (+{self.bono_porcentaje}%)"
