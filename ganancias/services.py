# ganancias/services.py
"""
Servicios del ledger de ganancias.

Propósito:
    Registrar movimientos de ganancia (append-only) y exponer saldo e historial
    por usuario.

Responsabilidades:
    - registrar_movimiento: agrega UNA entrada con su saldo corrido.
    - registrar_multiples: varias entradas (p. ej. admin + distribuidor de una
      venta) en una sola transacción.
    - registrar_ajuste: ajuste manual del admin.
    - obtener_balance / obtener_historial: lectura.
    - verificar_cadena: auditoría del encadenamiento de saldos.

Diseño/Notas:
    - Serialización por usuario: el UPDATE con F() sobre SaldoUsuario toma el
      bloqueo de fila de esa cuenta y lo retiene hasta el commit; la segunda
      escritura concurrente a la misma cuenta espera y ve el saldo ya sumado.
    - La secuencia sale del mismo UPDATE, y (usuario, secuencia) es único en BD:
      dos entradas nunca comparten posición en la cadena.
    - Cuando una transacción escribe en varias cuentas las bloquea en orden
      ascendente de usuario_id.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Count, F, Max, Sum

from nucleo.contexto import ContextoLlamada
from nucleo.cuentas import exigir_usuario
from nucleo.dinero import CERO, a_decimal, redondear_moneda
from nucleo.excepciones import DatosInvalidos
from nucleo.transacciones import reintentar_en_conflicto

from .models import MovimientoGanancia, SaldoUsuario, TipoMovimiento

logger = logging.getLogger("distribucion.ganancias")


@dataclass
class NuevoMovimiento:
    """Datos de una entrada a registrar (ver registrar_movimiento)."""
    usuario_id: int
    tipo: str
    monto: Decimal
    descripcion: str
    fecha: Optional[datetime] = None
    venta: object = None
    venta_especial: object = None
    producto: object = None
    referencia: str = ""
    metadatos: dict = field(default_factory=dict)


@dataclass(frozen=True)
class BalanceUsuario:
    usuario_id: int
    saldo_total: Decimal
    por_tipo: Dict[str, Decimal]
    cantidad_movimientos: int
    ultima_actualizacion: Optional[datetime]


# ─────────────────────────────────────────────────────────────────────────────
# Escritura
# ─────────────────────────────────────────────────────────────────────────────
def _validar(movimiento: NuevoMovimiento) -> Decimal:
    if movimiento.tipo not in TipoMovimiento.values:
        raise DatosInvalidos(f"Tipo de movimiento desconocido: {movimiento.tipo!r}.")
    monto = redondear_moneda(a_decimal(movimiento.monto, "monto"))
    if monto == CERO:
        raise DatosInvalidos("El monto de un movimiento no puede ser 0.")
    if not (movimiento.descripcion or "").strip():
        raise DatosInvalidos("El movimiento requiere una descripción.")
    return monto


def _agregar(movimiento: NuevoMovimiento, monto: Decimal) -> MovimientoGanancia:
    """
    Agrega la entrada. Debe llamarse dentro de transaction.atomic.

    1) Asegura el puntero SaldoUsuario.
    2) UPDATE saldo = saldo + monto, secuencia = secuencia + 1 (toma el bloqueo).
    3) Relee el puntero ya actualizado y crea la entrada con esos valores.
    """
    SaldoUsuario.objects.get_or_create(usuario_id=movimiento.usuario_id)
    SaldoUsuario.objects.filter(usuario_id=movimiento.usuario_id).update(
        saldo=F("saldo") + monto,
        secuencia=F("secuencia") + 1,
    )
    puntero = SaldoUsuario.objects.select_for_update().get(usuario_id=movimiento.usuario_id)

    extra = {"fecha": movimiento.fecha} if movimiento.fecha is not None else {}
    return MovimientoGanancia.objects.create(
        usuario_id=movimiento.usuario_id,
        secuencia=puntero.secuencia,
        tipo=movimiento.tipo,
        monto=monto,
        saldo_despues=puntero.saldo,
        descripcion=movimiento.descripcion.strip()[:255],
        venta=movimiento.venta,
        venta_especial=movimiento.venta_especial,
        producto=movimiento.producto,
        referencia=movimiento.referencia or "",
        metadatos=movimiento.metadatos or {},
        **extra,
    )


@reintentar_en_conflicto
def registrar_movimiento(usuario_id, tipo: str, monto, descripcion: str, *,
                         fecha=None, venta=None, venta_especial=None, producto=None,
                         referencia: str = "", metadatos: Optional[dict] = None) -> MovimientoGanancia:
    """
    Agrega un movimiento al ledger del usuario.

    Args:
        usuario_id: cuenta afectada.
        tipo: uno de TipoMovimiento.
        monto: importe con signo (≠ 0); se redondea a 2 decimales HALF_UP.
        descripcion: texto visible en el historial.

    Returns:
        MovimientoGanancia: con `secuencia` y `saldo_despues` ya calculados.

    Raises:
        DatosInvalidos, RegistroNoEncontrado (usuario inexistente).
    """
    movimiento = NuevoMovimiento(usuario_id, tipo, monto, descripcion, fecha=fecha, venta=venta,
                                 venta_especial=venta_especial, producto=producto,
                                 referencia=referencia, metadatos=metadatos or {})
    importe = _validar(movimiento)
    exigir_usuario(usuario_id)
    with transaction.atomic():
        registro = _agregar(movimiento, importe)
    logger.info(
        f"Movimiento {registro.tipo} usuario={usuario_id} #{registro.secuencia} "
        f"monto={registro.monto} saldo={registro.saldo_despues}"
    )
    return registro


@reintentar_en_conflicto
def registrar_multiples(movimientos: Iterable[NuevoMovimiento]) -> List[MovimientoGanancia]:
    """
    Registra varias entradas en una sola transacción (todas o ninguna).

    Cada entrada sigue serializada por su propia cuenta; las cuentas se tocan en
    orden ascendente de usuario_id. El resultado respeta el orden de entrada.
    """
    movimientos = list(movimientos)
    importes = [_validar(m) for m in movimientos]
    for usuario_id in {m.usuario_id for m in movimientos}:
        exigir_usuario(usuario_id)

    orden = sorted(range(len(movimientos)), key=lambda i: movimientos[i].usuario_id)
    registros: List[Optional[MovimientoGanancia]] = [None] * len(movimientos)
    with transaction.atomic():
        for i in orden:
            registros[i] = _agregar(movimientos[i], importes[i])
    for registro in registros:
        logger.info(
            f"Movimiento {registro.tipo} usuario={registro.usuario_id} #{registro.secuencia} "
            f"monto={registro.monto} saldo={registro.saldo_despues}"
        )
    return registros


def registrar_ajuste(usuario_id, monto, descripcion: str, *, contexto: ContextoLlamada,
                     referencia: str = "") -> MovimientoGanancia:
    """Ajuste manual (positivo o negativo) registrado por el admin."""
    contexto.exigir_admin("registrar ajustes de ganancia")
    return registrar_movimiento(
        usuario_id, TipoMovimiento.AJUSTE, monto, descripcion,
        referencia=referencia, metadatos={"registrado_por": contexto.usuario_id},
    )


# ─────────────────────────────────────────────────────────────────────────────
# Lectura
# ─────────────────────────────────────────────────────────────────────────────
def obtener_balance(usuario_id, *, contexto: ContextoLlamada) -> BalanceUsuario:
    """
    Saldo y resumen del usuario.

    `saldo_total` es el saldo del puntero, que coincide con el saldo_despues de
    la última entrada (0 si no tiene movimientos).
    """
    contexto.exigir_propietario_o_admin(usuario_id, "consultar el saldo")
    exigir_usuario(usuario_id)

    saldo = SaldoUsuario.objects.filter(usuario_id=usuario_id).values_list("saldo", flat=True).first()
    movimientos = MovimientoGanancia.objects.filter(usuario_id=usuario_id)
    por_tipo = {tipo: CERO for tipo in TipoMovimiento.values}
    for fila in movimientos.values("tipo").annotate(total=Sum("monto")).order_by():
        por_tipo[fila["tipo"]] = redondear_moneda(fila["total"])
    resumen = movimientos.aggregate(cantidad=Count("id"), ultima=Max("creado_en"))

    return BalanceUsuario(
        usuario_id=int(usuario_id),
        saldo_total=redondear_moneda(saldo),
        por_tipo=por_tipo,
        cantidad_movimientos=resumen["cantidad"],
        ultima_actualizacion=resumen["ultima"],
    )


def obtener_historial(usuario_id, *, contexto: ContextoLlamada, tipo: Optional[str] = None,
                      desde=None, hasta=None, pagina: int = 1, limite: int = 50):
    """
    Historial paginado en orden de escritura (secuencia ascendente).

    Args:
        tipo: filtra por TipoMovimiento.
        desde / hasta: rango [desde, hasta) sobre `fecha`.
        pagina / limite: paginación (Paginator de Django).

    Returns:
        django.core.paginator.Page de MovimientoGanancia.
    """
    contexto.exigir_propietario_o_admin(usuario_id, "consultar el historial")
    if tipo is not None and tipo not in TipoMovimiento.values:
        raise DatosInvalidos(f"Tipo de movimiento desconocido: {tipo!r}.")
    if isinstance(limite, bool) or not isinstance(limite, int) or limite <= 0:
        raise DatosInvalidos("El límite de página debe ser un entero positivo.")

    qs = MovimientoGanancia.objects.filter(usuario_id=usuario_id)
    if tipo is not None:
        qs = qs.filter(tipo=tipo)
    if desde is not None:
        qs = qs.filter(fecha__gte=desde)
    if hasta is not None:
        qs = qs.filter(fecha__lt=hasta)
    return Paginator(qs.order_by("secuencia"), limite).get_page(pagina)


@dataclass(frozen=True)
class EstadoCadena:
    usuario_id: int
    movimientos: int
    saldo_puntero: Decimal
    saldo_recalculado: Decimal
    primera_rotura: Optional[int] = None

    @property
    def valida(self) -> bool:
        return self.primera_rotura is None and self.saldo_puntero == self.saldo_recalculado


def verificar_cadena(usuario_id) -> EstadoCadena:
    """
    Reproduce los movimientos del usuario en orden de secuencia y comprueba que
    cada saldo_despues sea la suma acumulada y que las secuencias sean 1..n.

    Returns:
        EstadoCadena: `primera_rotura` es la secuencia de la primera entrada
        inconsistente (None si la cadena es válida).
    """
    acumulado = CERO
    rotura = None
    cantidad = 0
    filas = (MovimientoGanancia.objects.filter(usuario_id=usuario_id)
             .order_by("secuencia").values_list("secuencia", "monto", "saldo_despues"))
    for esperado, (secuencia, monto, saldo_despues) in enumerate(filas.iterator(), start=1):
        cantidad += 1
        acumulado += monto
        if rotura is None and (secuencia != esperado or saldo_despues != acumulado):
            rotura = secuencia
    saldo = SaldoUsuario.objects.filter(usuario_id=usuario_id).values_list("saldo", flat=True).first()
    if rotura is not None:
        logger.error(f"Cadena de saldos inconsistente: usuario={usuario_id} desde #{rotura}")
    return EstadoCadena(
        usuario_id=int(usuario_id),
        movimientos=cantidad,
        saldo_puntero=redondear_moneda(saldo),
        saldo_recalculado=redondear_moneda(acumulado),
        primera_rotura=rotura,
    )
