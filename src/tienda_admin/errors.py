from __future__ import annotations


class AdminError(Exception):
    """Error base del panel; ``str(exc)`` es el mensaje que ve el usuario."""


class ConfigurationError(AdminError):
    """Falta el esquema o el repositorio de una tabla."""


class FetchError(AdminError):
    """Fallo al leer registros (listado o registro individual)."""


class RecordNotFoundError(FetchError):
    def __init__(self, entity: str, record_id) -> None:
        super().__init__(f"Registro {entity} ID {record_id} no encontrado.")
        self.entity = entity
        self.record_id = record_id


class ValidationError(AdminError):
    """Regla de validación violada antes de enviar un formulario."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class DuplicateKeyError(AdminError):
    """Violación de unicidad reportada por la base de datos."""


class WriteError(AdminError):
    """Fallo al crear, actualizar o inhabilitar un registro."""


class UploadError(WriteError):
    pass


class RecalculationError(WriteError):
    """No se pudo persistir el total recalculado de una orden."""


class PermissionDeniedError(AdminError):
    pass
