"""
Errores de negocio del motor de stock y ganancias.

Propósito:
    Dar a cada falla un tipo propio y un `code` estable, para que la capa que
    invoca (API/UI) distinga "no pasó nada" de "pasó a medias".

Diseño/Notas:
    - Todas heredan de django.core.exceptions.ValidationError: es el tipo que la
      app ya usa para reglas de negocio rotas, y las capas superiores lo saben
      presentar.
    - `aplicado_parcialmente` es False en todos los casos que produce el motor:
      cada operación corre en una única transacción y se revierte completa.
"""
from __future__ import annotations

from django.core.exceptions import ValidationError


class ErrorLedger(ValidationError):
    """Base de todos los errores del motor."""

    codigo = "error_ledger"
    aplicado_parcialmente = False

    def __init__(self, mensaje: str):
        super().__init__(mensaje, code=self.codigo)


# ─────────────────────────────────────────────────────────────────────────────
# Entrada inválida
# ─────────────────────────────────────────────────────────────────────────────
class DatosInvalidos(ErrorLedger):
    """Entrada mal formada (cantidad ≤ 0, precio negativo, tipo desconocido…)."""
    codigo = "datos_invalidos"


class RangoFechasInvalido(DatosInvalidos):
    codigo = "rango_fechas_invalido"


class SinVentasEnPeriodo(DatosInvalidos):
    codigo = "sin_ventas_en_periodo"


class RegistroNoEncontrado(ErrorLedger):
    codigo = "no_encontrado"


# ─────────────────────────────────────────────────────────────────────────────
# Stock
# ─────────────────────────────────────────────────────────────────────────────
class StockInsuficiente(ErrorLedger):
    codigo = "stock_insuficiente"


class StockInsuficienteBodega(StockInsuficiente):
    codigo = "stock_insuficiente_bodega"


class StockInsuficienteDistribuidor(StockInsuficiente):
    codigo = "stock_insuficiente_distribuidor"


# ─────────────────────────────────────────────────────────────────────────────
# Concurrencia / estados
# ─────────────────────────────────────────────────────────────────────────────
class ConflictoConcurrencia(ErrorLedger):
    """Se agotaron los reintentos esperando un bloqueo. Reintentar la operación completa."""
    codigo = "conflicto_concurrencia"


class YaProcesado(ErrorLedger):
    """El registro ya está en un estado terminal; no se modificó nada."""
    codigo = "ya_procesado"


class PeriodoYaEvaluado(YaProcesado):
    codigo = "periodo_ya_evaluado"


class RegistroInmutable(ErrorLedger):
    codigo = "registro_inmutable"


# ─────────────────────────────────────────────────────────────────────────────
# Registro de ganancias
# ─────────────────────────────────────────────────────────────────────────────
class FallaRegistroParcial(ErrorLedger):
    """
    Falló el asiento en el ledger después de descontar stock.

    Con la política de transacción única la venta completa se revierte, por eso
    `revertido` es True: el stock y la venta quedaron como antes de la llamada.
    """
    codigo = "falla_registro_parcial"

    def __init__(self, mensaje: str, revertido: bool = True):
        super().__init__(mensaje)
        self.revertido = revertido
        self.aplicado_parcialmente = not revertido
