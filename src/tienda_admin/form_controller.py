from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .errors import AdminError, ConfigurationError, PermissionDeniedError, ValidationError
from .permissions import AdminSession, guard_visibility_change
from .repository import FormPayload, Option
from .schema import EntitySchema, FieldKind, FormField
from .storage import UploadedFile
from .validation import validate_form

logger = logging.getLogger(__name__)


class FormMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


@dataclass
class FieldState:
    form_field: FormField
    value: Any = None
    options: list[Option] = field(default_factory=list)
    enabled: bool = True
    placeholder: str = ""


def _same(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def _has_option(options: list[Option], value) -> bool:
    return any(_same(o.value, value) for o in options)


def _normalize(value):
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if value.isdigit():
            return int(value)
    return value


class FormController:
    """Formulario de alta/edición de una entidad.

    Resuelve las listas de opciones (incluidas las cascadas
    departamento → municipio → localidad → zona), valida y envía al
    repositorio. Si algo falla el formulario sigue abierto con sus valores
    y ``error`` contiene el mensaje a mostrar.
    """

    def __init__(
        self,
        schema: EntitySchema,
        repositories: dict,
        *,
        session: AdminSession | None = None,
        on_saved: Callable[[], None] | None = None,
    ):
        self.schema = schema
        self.repositories = repositories
        self.repository = repositories.get(schema.name)
        self.session = session
        self.on_saved = on_saved

        self.mode: Optional[FormMode] = None
        self.record_id = None
        self.states: dict[str, FieldState] = {}
        self.files: dict[str, UploadedFile] = {}
        self.error: Optional[str] = None
        self.error_field: Optional[str] = None
        self.is_open = False
        self.ready = False
        self._listeners: list[Callable[["FormController"], None]] = []

    # --- Suscripción ---

    def subscribe(self, listener: Callable[["FormController"], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def title(self) -> str:
        accion = "Editar" if self.mode is FormMode.EDIT else "Nuevo registro"
        return f"{accion} - {self.schema.title}"

    def value(self, name: str):
        return self.states[name].value

    def values(self) -> dict:
        return {name: s.value for name, s in self.states.items()}

    def _repo(self, entity: str):
        repo = self.repositories.get(entity)
        if repo is None:
            raise ConfigurationError(f"Configuración o Servicio no encontrado para la tabla: {entity}")
        return repo

    # --- Apertura ---

    def open(self, mode: FormMode | str, record_id=None) -> bool:
        self.mode = FormMode(mode)
        self.record_id = record_id if self.mode is FormMode.EDIT else None
        self.files = {}
        self.error = None
        self.error_field = None
        self.ready = False
        self.is_open = True
        self.states = {
            f.name: FieldState(
                f,
                options=[Option(v, label) for v, label in (f.options or ())],
                enabled=not f.disabled,
                placeholder=f.placeholder if self.mode is FormMode.EDIT else "",
            )
            for f in self.schema.form_fields
        }

        if self.repository is None:
            self.error = f"Configuración o Servicio no encontrado para la tabla: {self.schema.name}"
            self._emit()
            return False

        if self.mode is FormMode.EDIT:
            try:
                record = self.repository.get_by_id(record_id)
                values = self._derive_chain(record)
            except AdminError as e:
                logger.error("No se pudo abrir %s ID %s: %s", self.schema.name, record_id, e)
                self.error = f"Error al cargar datos del ID {record_id}. {e}"
                self._emit()
                return False
        else:
            values = {f.name: (True if f.kind is FieldKind.CHECKBOX else None) for f in self.schema.form_fields}

        for name, state in self.states.items():
            # nunca se muestra el hash guardado
            state.value = None if state.form_field.kind is FieldKind.PASSWORD else values.get(name)

        try:
            self._load_all_options()
        except AdminError as e:
            logger.error("No se pudieron cargar las opciones de %s: %s", self.schema.name, e)
            self.error = f"Error al cargar las opciones del formulario. {e}"
            self._emit()
            return False

        self.ready = True
        self._emit()
        return True

    def _derive_chain(self, record: dict) -> dict:
        """Completar hacia arriba los niveles virtuales de una cascada.

        Editando una zona sólo se conoce ``id_localidad``; de la localidad se
        obtiene ``id_municipio`` y del municipio ``id_departamento``.
        """
        values = {f.name: record.get(f.name) for f in self.schema.form_fields}
        for f in reversed(self.schema.form_fields):
            parent = f.depends_on
            if not parent or values.get(parent) is not None or values.get(f.name) is None:
                continue
            source = self._repo(f.options_source)
            parent_record = source.get_by_id(values[f.name])
            values[parent] = parent_record.get(source.schema.parent_key)
        return values

    def _load_all_options(self) -> None:
        # de arriba hacia abajo: cada nivel se acota con el valor ya resuelto del padre
        for f in self.schema.form_fields:
            if not f.options_source:
                continue
            state = self.states[f.name]
            if f.depends_on:
                parent_value = self.states[f.depends_on].value
                if parent_value is None:
                    state.options, state.enabled, state.value = [], False, None
                    continue
                state.options = self._repo(f.options_source).list_options(parent_value)
            else:
                state.options = self._repo(f.options_source).list_options()
            state.enabled = not f.disabled
            if not _has_option(state.options, state.value):
                state.value = None

    # --- Edición de campos ---

    def set_value(self, name: str, value) -> None:
        state = self.states[name]
        if state.form_field.is_select:
            self.select(name, value)
            return
        state.value = value
        self._emit()

    def select(self, name: str, value) -> None:
        self.states[name].value = _normalize(value)
        self._cascade(name)
        self._emit()

    def _cascade(self, name: str) -> None:
        parent_value = self.states[name].value
        for dep in self.schema.dependents_of(name):
            state = self.states[dep.name]
            previous = state.value
            state.enabled, state.options, state.value = False, [], None
            self._emit()
            if parent_value is not None:
                try:
                    state.options = self._repo(dep.options_source).list_options(parent_value)
                except AdminError as e:
                    logger.error("Error al cargar opciones de %s: %s", dep.name, e)
                    self.error = f"Error al cargar {dep.label}: {e}"
                else:
                    state.enabled = not dep.disabled
                    if _has_option(state.options, previous):
                        state.value = previous
            # los niveles inferiores se limpian aunque este haya fallado
            self._cascade(dep.name)

    def attach_file(self, name: str, file: UploadedFile | None) -> None:
        if file is None:
            self.files.pop(name, None)
        else:
            self.files[name] = file
        self._emit()

    # --- Envío ---

    def validate(self) -> dict:
        return validate_form(self.schema.form_fields, self.values(), editing=self.mode is FormMode.EDIT)

    def _payload_fields(self, cleaned: dict) -> dict:
        fields = {}
        for f in self.schema.form_fields:
            if f.virtual or f.kind is FieldKind.FILE or f.name == self.schema.id_field or f.disabled:
                continue
            fields[f.name] = cleaned.get(f.name)
        return fields

    def submit(self) -> bool:
        if not self.is_open or not self.ready:
            return False
        self.error = None
        self.error_field = None
        try:
            fields = self._payload_fields(self.validate())
            if "visible" in fields and self.mode is FormMode.EDIT:
                guard_visibility_change(self.session, self.schema.name, self.record_id, fields["visible"])
        except (ValidationError, PermissionDeniedError) as e:
            self.error = str(e)
            self.error_field = getattr(e, "field", None)
            self._emit()
            return False

        payload = FormPayload(fields, dict(self.files)) if self.files else fields
        try:
            if self.mode is FormMode.CREATE:
                self.repository.create(payload)
            else:
                self.repository.update(self.record_id, payload)
        except AdminError as e:
            logger.error("No se pudo guardar %s: %s", self.schema.name, e)
            self.error = str(e)
            self._emit()
            return False

        logger.info("%s guardado (%s)", self.schema.name, self.mode.value)
        self.close()
        if self.on_saved is not None:
            self.on_saved()
        return True

    def close(self) -> None:
        self.is_open = False
        self.ready = False
        self._emit()
