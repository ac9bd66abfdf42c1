"""
Contexto explícito de la llamada.

Cada operación pública del motor recibe un ContextoLlamada en vez de consultar
un "usuario actual" global: quién llama y con qué rol.
"""
from __future__ import annotations

from dataclasses import dataclass

from django.core.exceptions import PermissionDenied
from django.db import models


class Rol(models.TextChoices):
    ADMIN = "admin", "Administrador"
    DISTRIBUIDOR = "distribuidor", "Distribuidor"


@dataclass(frozen=True)
class ContextoLlamada:
    usuario_id: int
    rol: str = Rol.DISTRIBUIDOR

    @classmethod
    def admin(cls, usuario_id: int) -> "ContextoLlamada":
        return cls(usuario_id=usuario_id, rol=Rol.ADMIN)

    @classmethod
    def distribuidor(cls, usuario_id: int) -> "ContextoLlamada":
        return cls(usuario_id=usuario_id, rol=Rol.DISTRIBUIDOR)

    @property
    def es_admin(self) -> bool:
        return self.rol == Rol.ADMIN

    def exigir_admin(self, accion: str) -> None:
        """Lanza PermissionDenied si quien llama no es admin."""
        if not self.es_admin:
            raise PermissionDenied(f"Solo el administrador puede {accion}.")

    def exigir_propietario_o_admin(self, usuario_id, accion: str) -> None:
        """Admin pasa siempre; un distribuidor solo sobre su propia cuenta/stock."""
        if self.es_admin:
            return
        if usuario_id is None or int(usuario_id) != int(self.usuario_id):
            raise PermissionDenied(f"No puedes {accion} de otro usuario.")
