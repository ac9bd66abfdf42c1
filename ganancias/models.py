"""
Modelos de Ganancias: SaldoUsuario y MovimientoGanancia.

Propósito:
    Llevar, por usuario, un historial append-only de movimientos de ganancia con
    saldo corrido (saldo_despues).

Responsabilidades:
    - SaldoUsuario: “puntero” al último saldo y a la última secuencia de cada
      usuario. Es la fila que serializa las escrituras concurrentes a una misma
      cuenta.
    - MovimientoGanancia: una fila por evento que afecta el saldo (venta, venta
      especial, ajuste, bono). Nunca se edita ni se borra.

Diseño/Notas:
    - El orden del historial es `secuencia` (orden lógico de escritura por
      usuario), no `fecha`: la fecha es un dato de negocio que el llamador puede
      fijar en el pasado.
    - Invariante de cadena: para la entrada n de un usuario,
          saldo_despues[n] = saldo_despues[n-1] + monto[n]   (saldo_despues[0-1] = 0)
    - Los vínculos a venta/producto son SET_NULL: anular una venta no puede
      borrar historia; el texto `referencia` conserva el código.
"""
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from nucleo.excepciones import RegistroInmutable


class TipoMovimiento(models.TextChoices):
    VENTA_NORMAL = 'venta_normal', 'Venta normal'
    VENTA_ESPECIAL = 'venta_especial', 'Venta especial'
    AJUSTE = 'ajuste', 'Ajuste'
    BONUS = 'bonus', 'Bono'


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: SaldoUsuario (puntero de saldo por cuenta)
# ─────────────────────────────────────────────────────────────────────────────
class SaldoUsuario(models.Model):
    """
    Último saldo y última secuencia de un usuario.

    Se actualiza SIEMPRE con F() dentro de la transacción del movimiento: el
    UPDATE bloquea la fila hasta el commit, así dos escrituras a la misma cuenta
    no se intercalan.
    """
    usuario = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                   related_name='saldo_ganancias')
    saldo = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    secuencia = models.PositiveBigIntegerField(default=0)
    actualizado_en = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'saldo de usuario'
        verbose_name_plural = 'saldos de usuario'

    def __str__(self):
        return f"{self.usuario}: {self.saldo} (#{self.secuencia})"


# ─────────────────────────────────────────────────────────────────────────────
# MODELO: MovimientoGanancia (entrada del ledger)
# ─────────────────────────────────────────────────────────────────────────────
class MovimientoGanancia(models.Model):
    """
    Entrada inmutable del ledger de ganancias.

    Campos:
        usuario        FK → User (PROTECT)
        secuencia      1, 2, 3… por usuario (único con usuario)
        tipo           venta_normal | venta_especial | ajuste | bonus
        monto          con signo (los ajustes compensatorios son negativos)
        saldo_despues  saldo del usuario tras aplicar este movimiento
        fecha          fecha de negocio (de la venta, del período…)
        descripcion, referencia (p. ej. código de venta), metadatos (JSON)
        venta / venta_especial / producto: vínculos opcionales (PROTECT: un asiento no pierde su origen)
    """
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
                                related_name='movimientos_ganancia')
    secuencia = models.PositiveBigIntegerField()
    tipo = models.CharField(max_length=20, choices=TipoMovimiento.choices)
    monto = models.DecimalField(max_digits=14, decimal_places=2)
    saldo_despues = models.DecimalField(max_digits=14, decimal_places=2)
    fecha = models.DateTimeField(default=timezone.now)
    descripcion = models.CharField(max_length=255)
    venta = models.ForeignKey('ventas.Venta', on_delete=models.PROTECT, null=True, blank=True,
                              related_name='movimientos_ganancia')
    venta_especial = models.ForeignKey('ventas.VentaEspecial', on_delete=models.PROTECT, null=True, blank=True,
                                       related_name='movimientos_ganancia')
    producto = models.ForeignKey('inventario.Producto', on_delete=models.PROTECT, null=True, blank=True,
                                 related_name='movimientos_ganancia')
    referencia = models.CharField(max_length=50, blank=True)
    metadatos = models.JSONField(default=dict, blank=True)
    creado_en = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['usuario', 'secuencia']
        indexes = [
            models.Index(fields=['usuario', 'tipo']),
            models.Index(fields=['usuario', 'fecha']),
        ]
        constraints = [
            models.UniqueConstraint(fields=['usuario', 'secuencia'], name='uniq_movimiento_usuario_secuencia'),
            models.CheckConstraint(condition=models.Q(secuencia__gte=1), name='movimiento_secuencia_gte_1'),
        ]

    def save(self, *args, **kwargs):
        # Append-only: solo se permite el INSERT inicial.
        if self.pk is not None and not self._state.adding:
            raise RegistroInmutable("Los movimientos de ganancia no se modifican; registra un ajuste.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise RegistroInmutable("Los movimientos de ganancia no se eliminan; registra un ajuste.")

    def __str__(self):
        return f"{self.usuario} #{self.secuencia} {self.tipo} {self.monto:+}"
