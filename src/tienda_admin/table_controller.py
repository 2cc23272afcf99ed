from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from .errors import AdminError, ConfigurationError, PermissionDeniedError
from .permissions import AdminSession, guard_visibility_change
from .schema import Column, EntitySchema, resolve_path

logger = logging.getLogger(__name__)

MAX_PAGE_BUTTONS = 5


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


@dataclass(frozen=True)
class RowView:
    id: Any
    cells: tuple[str, ...]
    visible: bool = True


@dataclass(frozen=True)
class PageView:
    """Proyección de la tabla para la página actual; no guarda referencias al controlador."""
    title: str
    headers: tuple[str, ...]
    rows: tuple[RowView, ...] = ()
    page: int = 1
    total_pages: int = 0
    total_records: int = 0
    page_buttons: tuple[int, ...] = ()
    message: Optional[str] = None
    is_error: bool = False
    loading: bool = False
    search_term: str = ""
    allow_create: bool = True

    @property
    def can_prev(self) -> bool:
        return self.page > 1

    @property
    def can_next(self) -> bool:
        return self.page < self.total_pages

    # primera/anterior y siguiente/última se habilitan igual
    can_first = can_prev
    can_last = can_next

    @property
    def summary(self) -> str:
        return f"Total: {self.total_records} registros visibles ({len(self.rows)} en esta página)"

    @property
    def page_label(self) -> str:
        return f"Página {self.page} de {self.total_pages}"


def format_cell(column: Column, record: dict) -> str:
    value = resolve_path(record, column.path)
    if column.fmt is not None:
        text = column.fmt(value)
    else:
        text = "" if value is None else str(value)
    if column.truncate and len(text) > column.truncate:
        text = text[:column.truncate] + "..."
    return text


def page_window(page: int, total_pages: int, size: int = MAX_PAGE_BUTTONS) -> tuple[int, ...]:
    """Hasta ``size`` botones de página centrados en la página actual."""
    if total_pages <= 0:
        return ()
    start = max(1, page - size // 2)
    end = min(total_pages, start + size - 1)
    start = max(1, end - size + 1)
    return tuple(range(start, end + 1))


def _confirm_refuse(title: str, message: str) -> bool:
    logger.warning("Sin diálogo de confirmación; se cancela: %s", message)
    return False


def _notify_log(level: str, message: str) -> None:
    logger.log(logging.WARNING if level in ("warning", "error") else logging.INFO, message)


class TableController:
    """Tabla paginada, con búsqueda y filtro secundario, de una entidad.

    El estado (``all_rows``, ``page``, ``search_term``, ``secondary_value``) es
    la única fuente de verdad; ``render_page()`` lo proyecta en un ``PageView``
    que la vista Qt sólo dibuja. Los errores del repositorio nunca salen de
    aquí: se convierten en un mensaje dentro de la tabla o en una notificación.
    """

    def __init__(
        self,
        schema: EntitySchema,
        repository,
        *,
        page_size: int = 10,
        scheduler: Scheduler | None = None,
        debounce_ms: int = 300,
        confirm: Callable[[str, str], bool] | None = None,
        notify: Callable[[str, str], None] | None = None,
        session: AdminSession | None = None,
        on_edit: Callable[[str, Any], None] | None = None,
    ):
        self.schema = schema
        self.repository = repository
        self.page_size = max(1, int(page_size))
        self.scheduler = scheduler
        self.debounce_ms = debounce_ms
        self.confirm = confirm or _confirm_refuse
        self.notify = notify or _notify_log
        self.session = session
        self.on_edit = on_edit

        self.all_rows: list[dict] = []
        self.page = 1
        self.search_term = ""
        self.secondary_value: Optional[str] = None
        self.error: Optional[str] = None
        self.loading = False
        self.active = False
        self.view: Optional[PageView] = None

        self._request_token = 0
        self._pending = None
        self._listeners: list[Callable[[PageView], None]] = []
        # la vista Qt lo reemplaza por una carga en segundo plano
        self.load_strategy: Optional[Callable[[], None]] = None

    @property
    def name(self) -> str:
        return self.schema.name

    # --- Suscripción / ciclo de vida ---

    def subscribe(self, listener: Callable[[PageView], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[PageView], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def activate(self) -> None:
        self.active = True
        self.refresh()

    def refresh(self) -> None:
        (self.load_strategy or self.load)()

    def deactivate(self) -> None:
        self.active = False
        self._cancel_pending()
        # invalida cualquier carga en curso
        self._request_token += 1
        self.loading = False

    def _emit(self) -> PageView:
        self.view = self.render_page()
        if self.active:
            for listener in list(self._listeners):
                listener(self.view)
        return self.view

    # --- Carga ---

    def fetch_rows(self) -> list[dict]:
        if self.repository is None:
            raise ConfigurationError(f"Configuración o Servicio no encontrado para la tabla: {self.name}")
        return self.repository.fetch_visible(self.schema.select_spec())

    def load(self) -> None:
        """Traer todas las filas visibles y volver a la página 1 sin búsqueda."""
        token = self.begin_load()
        try:
            rows = self.fetch_rows()
        except Exception as e:  # frontera de la UI: se muestra en la tabla
            self.fail_load(token, e)
            return
        self.finish_load(token, rows)

    def begin_load(self) -> int:
        self._request_token += 1
        self._cancel_pending()
        self.loading = True
        self.error = None
        self._emit()
        return self._request_token

    def is_current(self, token: int) -> bool:
        return token == self._request_token

    def finish_load(self, token: int, rows: list[dict]) -> bool:
        if not self.is_current(token):
            logger.info("Se descarta una respuesta vieja de %s (token %s)", self.name, token)
            return False
        self.all_rows = list(rows)
        self.page = 1
        self.search_term = ""
        self.loading = False
        self.error = None
        self._emit()
        return True

    def fail_load(self, token: int, exc: BaseException) -> bool:
        if not self.is_current(token):
            return False
        self.loading = False
        self.all_rows = []
        if isinstance(exc, ConfigurationError):
            self.error = str(exc)
            logger.error(self.error)
        else:
            self.error = f"Error al cargar la tabla {self.schema.title}: {exc}"
            logger.error(self.error, exc_info=None if isinstance(exc, AdminError) else exc)
        self._emit()
        return True

    # --- Filtro y proyección ---

    def _secondary_active(self) -> bool:
        sf = self.schema.secondary_filter
        return bool(sf and self.secondary_value and self.secondary_value != sf.all_value)

    def apply_filter(self, rows: list[dict]) -> list[dict]:
        result = list(rows)
        if self._secondary_active():
            sf = self.schema.secondary_filter
            wanted = str(self.secondary_value).lower()
            result = [r for r in result if str(resolve_path(r, sf.path) or "").lower() == wanted]
        term = self.search_term.strip().lower()
        if term:
            result = [
                r for r in result
                if any(term in str(resolve_path(r, p) or "").lower() for p in self.schema.search_fields)
            ]
        return result

    def _empty_message(self) -> str:
        term = self.search_term.strip()
        if term:
            return f'No se encontraron registros que coincidan con "{term}".'
        if self._secondary_active():
            return "No se encontraron registros para el filtro seleccionado."
        return self.schema.empty_message

    def total_pages(self) -> int:
        return math.ceil(len(self.apply_filter(self.all_rows)) / self.page_size)

    def render_page(self) -> PageView:
        base = dict(
            title=self.schema.title,
            headers=tuple(self.schema.headers),
            search_term=self.search_term,
            allow_create=self.schema.allow_create,
        )
        if self.loading:
            return PageView(message="Cargando datos...", loading=True, **base)
        if self.error:
            return PageView(message=self.error, is_error=True, **base)

        filtered = self.apply_filter(self.all_rows)
        count = len(filtered)
        total_pages = math.ceil(count / self.page_size)
        if count == 0:
            self.page = 1
            return PageView(message=self._empty_message(), **base)
        if self.page < 1 or self.page > total_pages:
            self.page = 1

        start = (self.page - 1) * self.page_size
        chunk = filtered[start:start + self.page_size]
        rows = tuple(
            RowView(
                id=r.get(self.schema.id_field),
                cells=tuple(format_cell(c, r) for c in self.schema.columns),
                visible=bool(r.get("visible", True)),
            )
            for r in chunk
        )
        return PageView(
            rows=rows,
            page=self.page,
            total_pages=total_pages,
            total_records=count,
            page_buttons=page_window(self.page, total_pages),
            **base,
        )

    def go_to_page(self, n: int) -> bool:
        if n < 1 or n > self.total_pages():
            return False
        self.page = n
        self._emit()
        return True

    # --- Búsqueda ---

    def _cancel_pending(self) -> None:
        if self._pending is not None and self.scheduler is not None:
            self.scheduler.cancel(self._pending)
        self._pending = None

    def set_search_term(self, term: str) -> None:
        self.search_term = term or ""
        self._cancel_pending()
        if not self.search_term.strip() or self.scheduler is None or self.debounce_ms <= 0:
            self._fire_search()
            return
        self._pending = self.scheduler.call_later(self.debounce_ms, self._fire_search)

    def _fire_search(self) -> None:
        self._pending = None
        self.page = 1
        self._emit()

    def set_secondary_filter(self, value: Optional[str]) -> None:
        self.secondary_value = value
        self.search_term = ""
        self._cancel_pending()
        self.page = 1
        self._emit()

    # --- Acciones por fila ---

    def find_row(self, record_id) -> Optional[dict]:
        for r in self.all_rows:
            if str(r.get(self.schema.id_field)) == str(record_id):
                return r
        return None

    def request_edit(self, record_id) -> None:
        if self.on_edit is not None:
            self.on_edit(self.name, record_id)

    def request_delete(self, record_id) -> bool:
        """Inhabilitar (o alternar) un registro previa confirmación; True si se escribió."""
        row = self.find_row(record_id)
        toggle = self.schema.visibility_mode == "toggle"
        current = bool(row.get("visible", True)) if row is not None else True
        target = not current if toggle else False

        try:
            guard_visibility_change(self.session, self.name, record_id, target)
        except PermissionDeniedError as e:
            self.notify("warning", str(e))
            return False
        if row is not None and current == target:
            return False

        if toggle:
            accion = "ocultar" if not target else "mostrar"
            question = f"¿Desea {accion} el registro con ID {record_id}?"
        else:
            question = f"¿Está seguro de eliminar el registro con ID {record_id}?"
        if not self.confirm("Confirmar eliminación", question):
            return False

        try:
            if toggle:
                self.repository.toggle_visibility(record_id)
            else:
                self.repository.set_visibility(record_id, False)
        except AdminError as e:
            self.notify("error", f"Error al eliminar el registro: {e}")
            return False
        self.notify("info", "Registro eliminado correctamente.")
        self.refresh()
        return True
