from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import PermissionDeniedError

logger = logging.getLogger(__name__)

SELF_DISABLE_MESSAGE = "Restricción de seguridad: No puede eliminar su propia cuenta de sesión."


@dataclass(frozen=True)
class AdminSession:
    """Administrador con sesión abierta en el panel."""
    user_id: Optional[int]
    email: Optional[str] = None
    rol: str = "administrador"


def resolve_session(user_repository, email: str | None) -> AdminSession:
    """Armar la sesión a partir del correo configurado (TIENDA_ADMIN_SESSION_EMAIL)."""
    if not email:
        return AdminSession(user_id=None)
    user_id = user_repository.get_id_by_email(email)
    if user_id is None:
        logger.warning("El correo de sesión %s no corresponde a ningún usuario", email)
    return AdminSession(user_id=user_id, email=email)


def is_own_account(session: AdminSession | None, record_id) -> bool:
    if session is None or session.user_id is None or record_id is None:
        return False
    try:
        return int(record_id) == int(session.user_id)
    except (TypeError, ValueError):
        return False


def guard_visibility_change(session: AdminSession | None, entity: str, record_id, target_visible: bool) -> None:
    """Impedir que el administrador inhabilite su propia cuenta.

    Se llama antes de tocar el repositorio; no hace ninguna consulta.
    """
    if entity == "usuario" and not target_visible and is_own_account(session, record_id):
        logger.warning("Intento de inhabilitar la cuenta de la sesión actual (ID %s)", record_id)
        raise PermissionDeniedError(SELF_DISABLE_MESSAGE)
