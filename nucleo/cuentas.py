"""
Cuentas de usuario que participan en el ledger.

- La cuenta admin recibe la ganancia de cada venta; se toma de
  settings.LEDGER["USUARIO_ADMIN"] o, si no está configurada, del primer
  superusuario.
- Los distribuidores son usuarios activos sin is_staff.
"""
from __future__ import annotations

from django.contrib.auth import get_user_model

from .config import ajuste
from .excepciones import DatosInvalidos, RegistroNoEncontrado


def obtener_admin_id() -> int:
    User = get_user_model()
    username = ajuste("USUARIO_ADMIN")
    if username:
        admin_id = User.objects.filter(**{User.USERNAME_FIELD: username}).values_list("pk", flat=True).first()
    else:
        admin_id = User.objects.filter(is_superuser=True).order_by("pk").values_list("pk", flat=True).first()
    if admin_id is None:
        raise RegistroNoEncontrado("No hay una cuenta de administrador configurada para el ledger.")
    return admin_id


def exigir_usuario(usuario_id):
    """Devuelve el usuario o lanza RegistroNoEncontrado."""
    User = get_user_model()
    try:
        return User.objects.get(pk=usuario_id)
    except User.DoesNotExist:
        raise RegistroNoEncontrado(f"No existe usuario id={usuario_id}.")


def exigir_distribuidor(usuario_id):
    """Un distribuidor es un usuario activo que no es staff."""
    usuario = exigir_usuario(usuario_id)
    if usuario.is_staff or not usuario.is_active:
        raise DatosInvalidos(f"El usuario '{usuario}' no es un distribuidor activo.")
    return usuario
