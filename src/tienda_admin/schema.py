"""Registro de esquemas por entidad.

Cada tabla del panel se describe una sola vez aquí: columnas del listado,
campos de búsqueda, relaciones a cargar, campos del formulario y las
particularidades de cada entidad (borrado reversible, columnas ocultas,
descripciones truncadas...). Los controladores no conocen ninguna entidad
concreta; todo lo que varía entre tablas sale de este módulo.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from .errors import ConfigurationError
from .models import (
    Categoria, Departamento, Direccion, Localidad, Municipio,
    Orden, OrdenDetalle, Producto, Usuario, Zona,
)


class FieldKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    TEXTAREA = "textarea"
    PASSWORD = "password"
    EMAIL = "email"
    FILE = "file"
    HIDDEN = "hidden"
    SELECT = "select"
    CHECKBOX = "checkbox"


@dataclass(frozen=True)
class Column:
    label: str
    path: str  # admite rutas con punto: "categoria.nombre"
    truncate: Optional[int] = None
    fmt: Optional[Callable[[Any], str]] = None


@dataclass(frozen=True)
class FormField:
    name: str
    label: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    options: Optional[tuple[tuple[Any, str], ...]] = None
    options_source: Optional[str] = None  # entidad que provee list_options()
    depends_on: Optional[str] = None      # campo hermano que acota las opciones
    rule: Optional[str] = None            # letters | ci | celular | email | password
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    integer: bool = False
    placeholder: str = ""
    disabled: bool = False
    virtual: bool = False                 # sólo guía la cascada, no se envía

    @property
    def is_select(self) -> bool:
        return self.kind is FieldKind.SELECT


@dataclass(frozen=True)
class SecondaryFilter:
    path: str
    label: str
    options: tuple[tuple[str, str], ...]
    all_value: str = "todos"


@dataclass(frozen=True)
class EntitySchema:
    name: str
    title: str
    model: type
    id_field: str
    columns: tuple[Column, ...]
    search_fields: tuple[str, ...] = ()
    joins: tuple[str, ...] = ()
    order_by: Optional[str] = None
    form_fields: tuple[FormField, ...] = ()
    secondary_filter: Optional[SecondaryFilter] = None
    allow_create: bool = True
    visibility_mode: str = "soft_delete"  # soft_delete | toggle
    option_label: Any = "nombre"          # nombre de campo o callable(record) -> str
    parent_key: Optional[str] = None
    duplicate_message: Optional[str] = None
    empty_message: str = "No hay registros para mostrar."
    derive: Optional[Callable[[dict], dict]] = None

    @property
    def headers(self) -> list[str]:
        return [c.label for c in self.columns]

    def select_spec(self) -> tuple[str, ...]:
        return self.joins

    def field(self, name: str) -> FormField:
        for f in self.form_fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def dependents_of(self, name: str) -> list[FormField]:
        return [f for f in self.form_fields if f.depends_on == name]

    def label_for(self, record: dict) -> str:
        if callable(self.option_label):
            return self.option_label(record)
        return str(record.get(self.option_label) or "")


def resolve_path(record: dict, path: str) -> Any:
    """Leer un valor anidado (``municipio.departamento.nombre``); None si falta algún nivel."""
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


# --- Formateadores y campos derivados ---

def _yes_no(value) -> str:
    return "Sí" if value else "No"


def _money(value) -> str:
    return f"{float(value or 0):.2f}"


def _masked(_value) -> str:
    return "********"


def _join_names(*parts) -> str:
    return " ".join(p for p in parts if p)


def _derive_usuario(record: dict) -> dict:
    record["nombre_completo"] = _join_names(
        record.get("primer_nombre"), record.get("segundo_nombre"),
        record.get("apellido_paterno"), record.get("apellido_materno"),
    )
    return record


def _full_address(direccion: dict | None) -> str:
    if not direccion:
        return ""
    street = _join_names(direccion.get("calle_avenida"), direccion.get("numero_casa_edificio"))
    chain = [
        street,
        resolve_path(direccion, "zona.nombre"),
        resolve_path(direccion, "zona.localidad.nombre"),
        resolve_path(direccion, "zona.localidad.municipio.nombre"),
        resolve_path(direccion, "zona.localidad.municipio.departamento.nombre"),
    ]
    return ", ".join(p for p in chain if p)


def _derive_direccion(record: dict) -> dict:
    usuario = record.get("usuario")
    if usuario:
        _derive_usuario(usuario)
    record["direccion_completa"] = _full_address(record)
    return record


def _derive_orden(record: dict) -> dict:
    usuario = record.get("usuario")
    if usuario:
        _derive_usuario(usuario)
    record["direccion_completa"] = _full_address(record.get("direccion"))
    return record


def _usuario_label(record: dict) -> str:
    _derive_usuario(record)
    return f"{record['nombre_completo']} (CI {record.get('ci') or '-'})"


def _direccion_label(record: dict) -> str:
    return _join_names(record.get("calle_avenida"), record.get("numero_casa_edificio"))


def _producto_label(record: dict) -> str:
    return f"{record.get('nombre')} - Bs {_money(record.get('precio'))}"


ROLES = (("cliente", "Cliente"), ("empleado", "Empleado"), ("administrador", "Administrador"))
METODOS_PAGO = (("QR", "QR"), ("EFECTIVO", "Efectivo"), ("TARJETA", "Tarjeta"))
ESTADOS_ORDEN = (("PENDIENTE", "Pendiente"), ("ENTREGADO", "Entregado"), ("CANCELADO", "Cancelado"))

_VISIBLE_COLUMN = Column("Visible", "visible", fmt=_yes_no)
_VISIBLE_FIELD = FormField("visible", "Visible", FieldKind.CHECKBOX)


def _geo_chain(*levels: str) -> tuple[FormField, ...]:
    """Selects en cascada departamento → municipio → localidad → zona.

    Los niveles indicados en ``levels`` se crean en orden; todos menos el
    último son virtuales (no se guardan, sólo acotan el siguiente nivel).
    """
    specs = {
        "id_departamento": ("Departamento", "departamento", None),
        "id_municipio": ("Municipio", "municipio", "id_departamento"),
        "id_localidad": ("Localidad", "localidad", "id_municipio"),
        "id_zona": ("Zona", "zona", "id_localidad"),
    }
    fields = []
    for i, name in enumerate(levels):
        label, source, parent = specs[name]
        fields.append(FormField(
            name, label, FieldKind.SELECT, required=True,
            options_source=source,
            depends_on=parent if parent in levels else None,
            virtual=i < len(levels) - 1,
        ))
    return tuple(fields)


SCHEMAS: dict[str, EntitySchema] = {}


def _register(schema: EntitySchema) -> EntitySchema:
    check_schema(schema)
    SCHEMAS[schema.name] = schema
    return schema


def check_schema(schema: EntitySchema) -> None:
    """El campo identificador nunca puede ser un campo editable del formulario."""
    for f in schema.form_fields:
        if f.name == schema.id_field and f.kind is not FieldKind.HIDDEN and not f.disabled:
            raise ConfigurationError(
                f"La tabla {schema.name} expone su identificador '{f.name}' como campo editable"
            )


def get_schema(name: str) -> EntitySchema:
    try:
        return SCHEMAS[name]
    except KeyError:
        raise ConfigurationError(f"Configuración o Servicio no encontrado para la tabla: {name}") from None


_register(EntitySchema(
    name="producto",
    title="Productos",
    model=Producto,
    id_field="id",
    joins=("categoria",),
    columns=(
        Column("ID", "id"),
        Column("Nombre", "nombre"),
        Column("Descripción", "descripcion", truncate=50),
        Column("Precio", "precio", fmt=_money),
        Column("Stock", "stock"),
        Column("Categoría", "categoria.nombre"),
        Column("Imagen", "imagen_url"),
        _VISIBLE_COLUMN,
    ),
    search_fields=("nombre", "descripcion"),
    form_fields=(
        FormField("id", "ID", FieldKind.HIDDEN),
        FormField("nombre", "Nombre", required=True, max_length=200),
        FormField("descripcion", "Descripción", FieldKind.TEXTAREA),
        FormField("precio", "Precio", FieldKind.NUMBER, required=True, min_value=0),
        FormField("stock", "Stock", FieldKind.NUMBER, required=True, min_value=0, integer=True),
        FormField("id_categoria", "Categoría", FieldKind.SELECT, required=True, options_source="categoria"),
        FormField("file_upload", "Imagen (máx. 2 MB)", FieldKind.FILE),
        FormField("imagen_url", "URL de imagen", FieldKind.HIDDEN),
        _VISIBLE_FIELD,
    ),
    option_label=_producto_label,
    parent_key="id_categoria",
    empty_message="No hay productos registrados.",
))

_register(EntitySchema(
    name="categoria",
    title="Categorías",
    model=Categoria,
    id_field="id",
    columns=(Column("ID", "id"), Column("Nombre", "nombre")),
    search_fields=("nombre",),
    form_fields=(
        FormField("id", "ID", FieldKind.HIDDEN),
        FormField("nombre", "Nombre", required=True, max_length=50),
    ),
    visibility_mode="toggle",
    duplicate_message='Ya existe una categoría con el nombre "{nombre}".',
    empty_message="No hay categorías registradas.",
))

_register(EntitySchema(
    name="usuario",
    title="Usuarios",
    model=Usuario,
    id_field="id",
    columns=(
        Column("ID", "id"),
        Column("CI", "ci"),
        Column("Nombre completo", "nombre_completo"),
        Column("Celular", "celular"),
        Column("Correo", "correo_electronico"),
        Column("Contraseña", "contrasena", fmt=_masked),
        Column("Rol", "rol"),
        _VISIBLE_COLUMN,
    ),
    search_fields=("nombre_completo", "ci"),
    secondary_filter=SecondaryFilter("rol", "Rol", (("todos", "Todos"),) + ROLES),
    form_fields=(
        FormField("id", "ID", FieldKind.HIDDEN),
        FormField("ci", "C.I.", required=True, rule="ci"),
        FormField("primer_nombre", "Primer nombre", required=True, rule="letters", max_length=80),
        FormField("segundo_nombre", "Segundo nombre", rule="letters", max_length=80),
        FormField("apellido_paterno", "Apellido paterno", required=True, rule="letters", max_length=80),
        FormField("apellido_materno", "Apellido materno", required=True, rule="letters", max_length=80),
        FormField("celular", "Celular", required=True, rule="celular"),
        FormField("correo_electronico", "Correo electrónico", FieldKind.EMAIL, required=True, rule="email"),
        FormField("contrasena", "Contraseña", FieldKind.PASSWORD, required=True, rule="password",
                  placeholder="Dejar vacío para mantener la actual"),
        FormField("rol", "Rol", FieldKind.SELECT, required=True, options=ROLES),
        _VISIBLE_FIELD,
    ),
    option_label=_usuario_label,
    derive=_derive_usuario,
    duplicate_message='Ya existe un usuario con el C.I. "{ci}" o el correo "{correo_electronico}".',
    empty_message="No hay usuarios registrados.",
))

_register(EntitySchema(
    name="direccion",
    title="Direcciones",
    model=Direccion,
    id_field="id_direccion",
    joins=("usuario", "zona.localidad.municipio.departamento"),
    columns=(
        Column("ID", "id_direccion"),
        Column("Usuario", "usuario.nombre_completo"),
        Column("Calle/Avenida", "calle_avenida"),
        Column("Número", "numero_casa_edificio"),
        Column("Zona", "zona.nombre"),
        Column("Localidad", "zona.localidad.nombre"),
        Column("Referencia", "referencia_adicional", truncate=50),
    ),
    search_fields=("calle_avenida", "usuario.nombre_completo", "zona.nombre"),
    form_fields=(
        FormField("id_direccion", "ID", FieldKind.HIDDEN),
        FormField("id_usuario", "Usuario", FieldKind.SELECT, required=True, options_source="usuario"),
        *_geo_chain("id_departamento", "id_municipio", "id_localidad", "id_zona"),
        FormField("calle_avenida", "Calle/Avenida", required=True, max_length=150),
        FormField("numero_casa_edificio", "Número casa/edificio", max_length=20),
        FormField("referencia_adicional", "Referencia adicional", FieldKind.TEXTAREA),
    ),
    option_label=_direccion_label,
    parent_key="id_usuario",
    derive=_derive_direccion,
    empty_message="No hay direcciones registradas.",
))

_register(EntitySchema(
    name="orden",
    title="Órdenes",
    model=Orden,
    id_field="id",
    joins=("usuario", "direccion.zona.localidad.municipio.departamento"),
    order_by="id",
    columns=(
        Column("N°", "id"),
        Column("Fecha", "fecha", fmt=lambda v: v.strftime("%Y-%m-%d %H:%M") if v else ""),
        Column("Cliente", "usuario.nombre_completo"),
        Column("Dirección", "direccion_completa", truncate=50),
        Column("Método de pago", "metodo_pago"),
        Column("Estado", "estado"),
        Column("Total", "total", fmt=_money),
    ),
    search_fields=("id", "usuario.nombre_completo", "estado"),
    secondary_filter=SecondaryFilter("estado", "Estado", (("todos", "Todos"),) + ESTADOS_ORDEN),
    form_fields=(
        FormField("id", "ID", FieldKind.HIDDEN),
        FormField("id_usuario", "Cliente", FieldKind.SELECT, required=True, options_source="usuario"),
        FormField("id_direccion", "Dirección", FieldKind.SELECT, required=True,
                  options_source="direccion", depends_on="id_usuario"),
        FormField("metodo_pago", "Método de pago", FieldKind.SELECT, required=True, options=METODOS_PAGO),
        FormField("estado", "Estado", FieldKind.SELECT, required=True, options=ESTADOS_ORDEN),
        FormField("observaciones", "Observaciones", FieldKind.TEXTAREA),
    ),
    option_label=lambda r: f"Orden #{r.get('id')}",
    derive=_derive_orden,
    empty_message="No hay órdenes registradas.",
))

_register(EntitySchema(
    name="orden_detalle",
    title="Detalle de órdenes",
    model=OrdenDetalle,
    id_field="id",
    joins=("producto",),
    columns=(
        Column("N° Orden", "id"),
        Column("Cliente", "cliente"),
        Column("Unidades", "unidades"),
        Column("Total", "total", fmt=_money),
    ),
    search_fields=("id", "cliente"),
    form_fields=(
        FormField("id", "ID", FieldKind.HIDDEN),
        FormField("id_orden", "Orden", FieldKind.HIDDEN),
        FormField("id_producto", "Producto", FieldKind.SELECT, required=True, options_source="producto"),
        FormField("cantidad", "Cantidad", FieldKind.NUMBER, required=True, min_value=1, integer=True),
        FormField("precio_unitario", "Precio unitario", FieldKind.NUMBER, disabled=True),
    ),
    allow_create=False,
    parent_key="id_orden",
    empty_message="No hay órdenes registradas.",
))

_register(EntitySchema(
    name="departamento",
    title="Departamentos",
    model=Departamento,
    id_field="id_departamento",
    columns=(Column("ID", "id_departamento"), Column("Nombre", "nombre"), _VISIBLE_COLUMN),
    search_fields=("nombre",),
    form_fields=(
        FormField("id_departamento", "ID", FieldKind.HIDDEN),
        FormField("nombre", "Nombre", required=True, rule="letters", max_length=50),
        _VISIBLE_FIELD,
    ),
    visibility_mode="toggle",
    duplicate_message='Ya existe un departamento con el nombre "{nombre}".',
    empty_message="No hay departamentos registrados.",
))

_register(EntitySchema(
    name="municipio",
    title="Municipios",
    model=Municipio,
    id_field="id_municipio",
    joins=("departamento",),
    columns=(
        Column("ID", "id_municipio"),
        Column("Nombre", "nombre"),
        Column("Departamento", "departamento.nombre"),
        _VISIBLE_COLUMN,
    ),
    search_fields=("nombre", "departamento.nombre"),
    form_fields=(
        FormField("id_municipio", "ID", FieldKind.HIDDEN),
        FormField("nombre", "Nombre", required=True, max_length=100),
        *_geo_chain("id_departamento"),
        _VISIBLE_FIELD,
    ),
    visibility_mode="toggle",
    parent_key="id_departamento",
    duplicate_message='Ya existe un municipio con el nombre "{nombre}" en el departamento seleccionado.',
    empty_message="No hay municipios registrados.",
))

_register(EntitySchema(
    name="localidad",
    title="Localidades",
    model=Localidad,
    id_field="id_localidad",
    joins=("municipio.departamento",),
    columns=(
        Column("ID", "id_localidad"),
        Column("Nombre", "nombre"),
        Column("Municipio", "municipio.nombre"),
        Column("Departamento", "municipio.departamento.nombre"),
    ),
    search_fields=("nombre", "municipio.nombre"),
    form_fields=(
        FormField("id_localidad", "ID", FieldKind.HIDDEN),
        FormField("nombre", "Nombre", required=True, max_length=100),
        *_geo_chain("id_departamento", "id_municipio"),
    ),
    parent_key="id_municipio",
    duplicate_message='Ya existe una localidad con el nombre "{nombre}" en el municipio seleccionado.',
    empty_message="No hay localidades registradas.",
))

_register(EntitySchema(
    name="zona",
    title="Zonas",
    model=Zona,
    id_field="id_zona",
    joins=("localidad.municipio.departamento",),
    columns=(
        Column("ID", "id_zona"),
        Column("Nombre", "nombre"),
        Column("Localidad", "localidad.nombre"),
        Column("Municipio", "localidad.municipio.nombre"),
    ),
    search_fields=("nombre", "localidad.nombre"),
    form_fields=(
        FormField("id_zona", "ID", FieldKind.HIDDEN),
        FormField("nombre", "Nombre", required=True, max_length=100),
        *_geo_chain("id_departamento", "id_municipio", "id_localidad"),
    ),
    parent_key="id_localidad",
    duplicate_message='Ya existe una zona con el nombre "{nombre}" en la localidad seleccionada.',
    empty_message="No hay zonas registradas.",
))

# Orden de la barra lateral
ENTITY_ORDER: Sequence[str] = (
    "producto", "categoria", "usuario", "direccion", "orden",
    "orden_detalle", "departamento", "municipio", "localidad", "zona",
)
