from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Cargar variables desde .env si existe
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Configuración de la aplicación.

    Todos los valores se leen del entorno (o de un archivo .env):

    - DATABASE_URL: URL de SQLAlchemy; si no existe se usa SQLite en la carpeta de datos.
    - ADMIN_APP_DATA_DIR: carpeta de datos persistente.
    - ADMIN_APP_SKIP_CREATE_ALL: no crear tablas al construir la session factory.
    - TIENDA_ADMIN_PAGE_SIZE: filas por página en las tablas (10).
    - TIENDA_ADMIN_SEARCH_DEBOUNCE_MS: espera del buscador en milisegundos (300).
    - TIENDA_ADMIN_MEDIA_DIR / TIENDA_ADMIN_MEDIA_BASE_URL: destino de imágenes subidas.
    - TIENDA_ADMIN_SESSION_EMAIL: correo del administrador de la sesión actual.
    - TIENDA_ADMIN_LOG_LEVEL: nivel de logging (INFO).
    """

    database_url: str | None = None
    data_dir: Path | None = None
    skip_create_all: bool = False
    page_size: int = 10
    search_debounce_ms: int = 300
    media_dir: Path | None = None
    media_base_url: str | None = None
    session_email: str | None = None
    log_level: str = "INFO"
    theme: str = "light"


def load_settings() -> Settings:
    data_dir = os.getenv("ADMIN_APP_DATA_DIR")
    media_dir = os.getenv("TIENDA_ADMIN_MEDIA_DIR")
    page_size = _env_int("TIENDA_ADMIN_PAGE_SIZE", 10)
    debounce = _env_int("TIENDA_ADMIN_SEARCH_DEBOUNCE_MS", 300)
    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        data_dir=Path(data_dir).expanduser() if data_dir else None,
        skip_create_all=_env_flag("ADMIN_APP_SKIP_CREATE_ALL"),
        page_size=page_size if page_size > 0 else 10,
        search_debounce_ms=max(0, debounce),
        media_dir=Path(media_dir).expanduser() if media_dir else None,
        media_base_url=os.getenv("TIENDA_ADMIN_MEDIA_BASE_URL") or None,
        session_email=os.getenv("TIENDA_ADMIN_SESSION_EMAIL") or None,
        log_level=(os.getenv("TIENDA_ADMIN_LOG_LEVEL") or "INFO").upper(),
        theme=(os.getenv("APP_THEME") or "light").lower(),
    )
