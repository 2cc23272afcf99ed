from __future__ import annotations

import hashlib
import hmac
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy import func, inspect as sa_inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload, sessionmaker

from .errors import (
    ConfigurationError, DuplicateKeyError, FetchError, RecordNotFoundError,
    UploadError, WriteError,
)
from .models import Base, Departamento, Orden, OrdenDetalle, Usuario
from .schema import SCHEMAS, EntitySchema, get_schema
from .storage import LocalMediaStorage, UploadedFile

logger = logging.getLogger(__name__)

DEPARTAMENTOS_BOLIVIA = (
    "Beni", "Chuquisaca", "Cochabamba", "La Paz", "Oruro",
    "Pando", "Potosí", "Santa Cruz", "Tarija",
)


def _hash_password(password: str) -> str:
    salt = os.urandom(16)
    iters = 100_000
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iters)
    return f"pbkdf2_sha256${iters}${salt.hex()}${dk.hex()}"


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        algo, iter_s, salt_hex, dk_hex = hashed.split("$")
        if algo != "pbkdf2_sha256":
            return False
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(dk_hex)
        test = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, int(iter_s))
    except ValueError:
        return False
    return hmac.compare_digest(test, expected)


@dataclass(frozen=True)
class Option:
    value: Any
    label: str


@dataclass
class FormPayload:
    """Formulario con archivos adjuntos (equivalente a un multipart)."""
    fields: dict
    files: dict[str, UploadedFile] = field(default_factory=dict)


def _split_payload(payload) -> tuple[dict, dict]:
    if isinstance(payload, FormPayload):
        return dict(payload.fields), dict(payload.files)
    return dict(payload), {}


def _is_unique_violation(exc: IntegrityError) -> bool:
    msg = str(exc.orig).lower()
    return "unique" in msg or "duplicate" in msg


def _join_options(model, joins: Iterable[str]) -> list:
    """Convertir rutas ``zona.localidad.municipio`` en cadenas de joinedload."""
    opts = []
    for path in joins:
        current = model
        loader = None
        for part in path.split("."):
            attr = getattr(current, part)
            loader = joinedload(attr) if loader is None else loader.joinedload(attr)
            current = attr.property.mapper.class_
        opts.append(loader)
    return opts


def to_record(obj, joins: Iterable[str] = ()) -> dict:
    """Instancia ORM -> dict; los padres incluidos en ``joins`` quedan anidados."""
    record = {attr.key: getattr(obj, attr.key) for attr in sa_inspect(obj).mapper.column_attrs}
    nested: dict[str, list[str]] = {}
    for path in joins:
        head, _, rest = path.partition(".")
        nested.setdefault(head, [])
        if rest:
            nested[head].append(rest)
    for head, rests in nested.items():
        child = getattr(obj, head)
        record[head] = to_record(child, rests) if child is not None else None
    return record


class EntityRepository:
    """CRUD genérico de una entidad sobre SQLAlchemy.

    Todas las operaciones abren su propia sesión. Los errores de SQLAlchemy se
    registran en el log y se relanzan como errores del panel (``FetchError``,
    ``WriteError``, ``DuplicateKeyError``), que son los que ven los controladores.
    """

    def __init__(self, schema: EntitySchema, session_factory: sessionmaker,
                 storage: LocalMediaStorage | None = None):
        self.schema = schema
        self._session_factory = session_factory
        self.storage = storage

    @property
    def model(self):
        return self.schema.model

    def _record(self, obj, joins: Iterable[str]) -> dict:
        record = to_record(obj, joins)
        if self.schema.derive is not None:
            record = self.schema.derive(record)
        return record

    def _column_names(self) -> set[str]:
        return {attr.key for attr in sa_inspect(self.model).column_attrs}

    # --- Lectura ---

    def fetch_visible(self, select_spec: Optional[Iterable[str]] = None) -> list[dict]:
        joins = self.schema.joins if select_spec is None else tuple(select_spec)
        order_col = getattr(self.model, self.schema.order_by or self.schema.id_field)
        try:
            with self._session_factory() as session:
                rows = (
                    session.query(self.model)
                    .options(*_join_options(self.model, joins))
                    .filter(self.model.visible == True)  # noqa: E712
                    .order_by(order_col.asc())
                    .all()
                )
                return [self._record(o, joins) for o in rows]
        except SQLAlchemyError as e:
            logger.exception("Error al listar %s", self.schema.name)
            raise FetchError(str(e)) from e

    def get_by_id(self, record_id) -> dict:
        joins = self.schema.joins
        try:
            with self._session_factory() as session:
                obj = session.get(self.model, record_id, options=_join_options(self.model, joins))
                if obj is None:
                    raise RecordNotFoundError(self.schema.name, record_id)
                return self._record(obj, joins)
        except SQLAlchemyError as e:
            logger.exception("Error al obtener %s ID %s", self.schema.name, record_id)
            raise FetchError(str(e)) from e

    def list_options(self, parent_id=None) -> list[Option]:
        if parent_id is not None and not self.schema.parent_key:
            raise ConfigurationError(f"La tabla {self.schema.name} no admite opciones filtradas")
        try:
            with self._session_factory() as session:
                q = session.query(self.model).filter(self.model.visible == True)  # noqa: E712
                if parent_id is not None:
                    q = q.filter(getattr(self.model, self.schema.parent_key) == parent_id)
                q = q.order_by(getattr(self.model, self.schema.id_field).asc())
                return [
                    Option(getattr(o, self.schema.id_field), self.schema.label_for(to_record(o)))
                    for o in q.all()
                ]
        except SQLAlchemyError as e:
            logger.exception("Error al listar opciones de %s", self.schema.name)
            raise FetchError(str(e)) from e

    # --- Escritura ---

    def _prepare(self, fields: dict, files: dict, existing) -> dict:
        """Filtrar el payload a columnas reales; las subclases añaden su lógica."""
        columns = self._column_names()
        return {
            k: v for k, v in fields.items()
            if k in columns and k != self.schema.id_field
        }

    def _duplicate_message(self, values: dict) -> str:
        template = self.schema.duplicate_message or "Ya existe un registro con los mismos datos en {title}."
        try:
            return template.format(title=self.schema.title, **values)
        except (KeyError, IndexError):
            return template

    def _raise_write(self, e: SQLAlchemyError, action: str, values: dict):
        if isinstance(e, IntegrityError) and _is_unique_violation(e):
            logger.warning("Clave duplicada al %s %s: %s", action, self.schema.name, e.orig)
            raise DuplicateKeyError(self._duplicate_message(values)) from e
        logger.exception("Error al %s %s", action, self.schema.name)
        raise WriteError(f"Error al {action} el registro de {self.schema.title}: {e}") from e

    def create(self, payload):
        fields, files = _split_payload(payload)
        values = self._prepare(fields, files, existing=None)
        try:
            with self._session_factory() as session:
                obj = self.model(**values)
                session.add(obj)
                session.commit()
                new_id = getattr(obj, self.schema.id_field)
        except SQLAlchemyError as e:
            self._raise_write(e, "crear", values)
        logger.info("%s creado con ID %s", self.schema.name, new_id)
        return new_id

    def update(self, record_id, payload) -> None:
        fields, files = _split_payload(payload)
        snapshot = dict(fields)
        try:
            with self._session_factory() as session:
                obj = session.get(self.model, record_id)
                if obj is None:
                    raise RecordNotFoundError(self.schema.name, record_id)
                values = self._prepare(fields, files, existing=obj)
                snapshot = {**to_record(obj), **values}
                for key, value in values.items():
                    setattr(obj, key, value)
                session.commit()
        except SQLAlchemyError as e:
            self._raise_write(e, "actualizar", snapshot)
        logger.info("%s ID %s actualizado", self.schema.name, record_id)

    def set_visibility(self, record_id, target_visible: bool) -> bool:
        """Fijar ``visible``; si ya tiene ese valor no se escribe nada."""
        target = bool(target_visible)
        try:
            with self._session_factory() as session:
                obj = session.get(self.model, record_id)
                if obj is None:
                    raise RecordNotFoundError(self.schema.name, record_id)
                if bool(obj.visible) == target:
                    return target
                obj.visible = target
                session.commit()
        except SQLAlchemyError as e:
            self._raise_write(e, "cambiar la visibilidad de", {})
        logger.info("%s ID %s visible=%s", self.schema.name, record_id, target)
        return target

    def toggle_visibility(self, record_id) -> bool:
        try:
            with self._session_factory() as session:
                obj = session.get(self.model, record_id)
                if obj is None:
                    raise RecordNotFoundError(self.schema.name, record_id)
                obj.visible = not bool(obj.visible)
                new_state = obj.visible
                session.commit()
        except SQLAlchemyError as e:
            self._raise_write(e, "cambiar la visibilidad de", {})
        logger.info("%s ID %s visible=%s", self.schema.name, record_id, new_state)
        return new_state

    def upload_file(self, file: UploadedFile) -> str:
        if self.storage is None:
            raise UploadError("No hay almacenamiento configurado para subir archivos.")
        return self.storage.upload(file)


class ProductRepository(EntityRepository):

    def _prepare(self, fields: dict, files: dict, existing) -> dict:
        values = super()._prepare(fields, files, existing)
        upload = files.get("file_upload")
        if upload is not None:
            values["imagen_url"] = self.upload_file(upload)
        elif existing is not None and not values.get("imagen_url"):
            # Sin archivo nuevo se conserva la imagen actual
            values.pop("imagen_url", None)
        return values

    def get_product_details(self, product_id) -> dict:
        record = self.get_by_id(product_id)
        return {"id": record["id"], "nombre": record["nombre"], "precio": float(record["precio"] or 0)}


class UserRepository(EntityRepository):

    def _prepare(self, fields: dict, files: dict, existing) -> dict:
        values = super()._prepare(fields, files, existing)
        password = values.pop("contrasena", None)
        if password:
            values["contrasena"] = _hash_password(password)
        return values

    def _scalar(self, column, criterion, what: str):
        try:
            with self._session_factory() as session:
                return session.query(column).filter(criterion).scalar()
        except SQLAlchemyError as e:
            logger.exception("Error al buscar %s de usuario", what)
            raise FetchError(str(e)) from e

    def get_id_by_ci(self, ci: str) -> Optional[int]:
        return self._scalar(Usuario.id, Usuario.ci == str(ci).strip(), "ID")

    def get_ci_by_id(self, user_id: int) -> Optional[str]:
        return self._scalar(Usuario.ci, Usuario.id == user_id, "C.I.")

    def get_id_by_email(self, email: str) -> Optional[int]:
        return self._scalar(Usuario.id, func.lower(Usuario.correo_electronico) == email.strip().lower(), "ID")


class OrderRepository(EntityRepository):

    def _prepare(self, fields: dict, files: dict, existing) -> dict:
        values = super()._prepare(fields, files, existing)
        # El total se mantiene desde las líneas de la orden, nunca desde el formulario
        values.pop("total", None)
        return values

    def update_total(self, order_id: int, total: float) -> float:
        value = round(float(total), 2)
        try:
            with self._session_factory() as session:
                order = session.get(Orden, order_id)
                if order is None:
                    raise RecordNotFoundError(self.schema.name, order_id)
                order.total = value
                session.commit()
        except SQLAlchemyError as e:
            logger.exception("Error al actualizar el total de la orden %s", order_id)
            raise WriteError(f"Error al actualizar el total de la orden #{order_id}: {e}") from e
        logger.info("Orden #%s total=%.2f", order_id, value)
        return value


class OrderLineRepository(EntityRepository):

    def fetch_by_order(self, order_id: int) -> list[dict]:
        joins = ("producto",)
        try:
            with self._session_factory() as session:
                rows = (
                    session.query(OrdenDetalle)
                    .options(*_join_options(OrdenDetalle, joins))
                    .filter(OrdenDetalle.id_orden == order_id, OrdenDetalle.visible == True)  # noqa: E712
                    .order_by(OrdenDetalle.id.asc())
                    .all()
                )
                return [to_record(o, joins) for o in rows]
        except SQLAlchemyError as e:
            logger.exception("Error al obtener las líneas de la orden %s", order_id)
            raise FetchError(str(e)) from e

    def hide_lines(self, line_ids: Iterable[int]) -> int:
        """Inhabilitar varias líneas en una sola transacción; devuelve cuántas cambiaron."""
        ids = list(line_ids)
        if not ids:
            return 0
        try:
            with self._session_factory() as session:
                changed = (
                    session.query(OrdenDetalle)
                    .filter(OrdenDetalle.id.in_(ids), OrdenDetalle.visible == True)  # noqa: E712
                    .update({OrdenDetalle.visible: False}, synchronize_session=False)
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.exception("Error al inhabilitar líneas %s", ids)
            raise WriteError(f"Error al eliminar los productos de la orden: {e}") from e
        logger.info("Líneas inhabilitadas: %s", changed)
        return changed

    def fetch_order_summaries(self) -> list[dict]:
        """Una fila por orden visible con el total de unidades de sus líneas visibles."""
        try:
            with self._session_factory() as session:
                units = dict(
                    session.query(OrdenDetalle.id_orden, func.sum(OrdenDetalle.cantidad))
                    .filter(OrdenDetalle.visible == True)  # noqa: E712
                    .group_by(OrdenDetalle.id_orden)
                    .all()
                )
                orders = (
                    session.query(Orden)
                    .options(joinedload(Orden.usuario))
                    .filter(Orden.visible == True)  # noqa: E712
                    .order_by(Orden.id.asc())
                    .all()
                )
                rows = []
                for o in orders:
                    u = o.usuario
                    cliente = " ".join(p for p in (u.primer_nombre, u.apellido_paterno) if p) if u else ""
                    rows.append({
                        "id": o.id,
                        "cliente": cliente,
                        "unidades": int(units.get(o.id) or 0),
                        "total": o.total,
                        "visible": True,
                    })
                return rows
        except SQLAlchemyError as e:
            logger.exception("Error al resumir las órdenes")
            raise FetchError(str(e)) from e


_REPOSITORY_CLASSES = {
    "producto": ProductRepository,
    "usuario": UserRepository,
    "orden": OrderRepository,
    "orden_detalle": OrderLineRepository,
}


def build_repositories(session_factory: sessionmaker,
                       storage: LocalMediaStorage | None = None) -> dict[str, EntityRepository]:
    repos = {}
    for name in SCHEMAS:
        cls = _REPOSITORY_CLASSES.get(name, EntityRepository)
        repos[name] = cls(get_schema(name), session_factory, storage=storage)
    return repos


def init_db(engine, seed: bool = True) -> None:
    """Crea tablas y, si la tabla está vacía, carga los departamentos de Bolivia."""
    Base.metadata.create_all(bind=engine)
    if not seed:
        return
    Session = sessionmaker(bind=engine)
    with Session() as session:
        if session.query(Departamento.id_departamento).first() is None:
            session.add_all(Departamento(nombre=n) for n in DEPARTAMENTOS_BOLIVIA)
            session.commit()
            logger.info("Departamentos iniciales cargados (%d)", len(DEPARTAMENTOS_BOLIVIA))
