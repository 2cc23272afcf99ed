from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from .errors import UploadError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 2 * 1024 * 1024


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content: bytes

    @classmethod
    def from_path(cls, path: str | Path) -> "UploadedFile":
        p = Path(path)
        return cls(filename=p.name, content=p.read_bytes())

    @property
    def size(self) -> int:
        return len(self.content)


def unique_name(filename: str) -> str:
    """``<milisegundos>-<aleatorio>.<ext>`` para no pisar archivos existentes."""
    ext = Path(filename).suffix.lower().lstrip(".") or "bin"
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


class LocalMediaStorage:
    """Bucket de imágenes sobre una carpeta local.

    Si hay ``base_url`` la URL pública es ``<base_url>/<nombre>``; si no, se
    devuelve la URI ``file://`` del archivo guardado.
    """

    def __init__(self, root: str | Path, base_url: str | None = None, max_bytes: int = MAX_UPLOAD_BYTES):
        self.root = Path(root)
        self.base_url = base_url
        self.max_bytes = max_bytes

    def upload(self, file: UploadedFile) -> str:
        if not file.content:
            raise UploadError("El archivo seleccionado está vacío.")
        if file.size > self.max_bytes:
            mb = self.max_bytes / (1024 * 1024)
            raise UploadError(f"La imagen excede el tamaño máximo permitido ({mb:g} MB).")

        name = unique_name(file.filename)
        target = self.root / name
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            target.write_bytes(file.content)
        except OSError as e:
            logger.error("No se pudo guardar %s en %s: %s", file.filename, self.root, e)
            raise UploadError(f"Error al subir la imagen: {e}") from e

        logger.info("Imagen guardada: %s (%d bytes)", target, file.size)
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{name}"
        return target.resolve().as_uri()
