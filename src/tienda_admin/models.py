from __future__ import annotations

from datetime import datetime
from typing import List

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base declarativa común para todos los modelos."""
    pass


# --- Catálogo ---

class Categoria(Base):
    __tablename__ = "categoria"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    productos: Mapped[List["Producto"]] = relationship(back_populates="categoria")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Categoria(id={self.id!r}, nombre={self.nombre!r})"


class Producto(Base):
    __tablename__ = "producto"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(200), nullable=False)
    descripcion: Mapped[str | None] = mapped_column(Text)
    precio: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    imagen_url: Mapped[str | None] = mapped_column(String(500))
    id_categoria: Mapped[int | None] = mapped_column(Integer, ForeignKey("categoria.id"))
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    categoria: Mapped["Categoria | None"] = relationship(back_populates="productos")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Producto(id={self.id!r}, nombre={self.nombre!r}, precio={self.precio!r})"


# --- Usuarios ---

class Usuario(Base):
    __tablename__ = "usuario"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ci: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    primer_nombre: Mapped[str] = mapped_column(String(80), nullable=False)
    segundo_nombre: Mapped[str | None] = mapped_column(String(80))
    apellido_paterno: Mapped[str] = mapped_column(String(80), nullable=False)
    apellido_materno: Mapped[str] = mapped_column(String(80), nullable=False)
    celular: Mapped[str] = mapped_column(String(20), nullable=False)
    correo_electronico: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    contrasena: Mapped[str | None] = mapped_column(String(255))
    rol: Mapped[str] = mapped_column(String(30), default="cliente", nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    direcciones: Mapped[List["Direccion"]] = relationship(back_populates="usuario")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Usuario(id={self.id!r}, ci={self.ci!r})"


# --- Jerarquía geográfica: departamento → municipio → localidad → zona ---

class Departamento(Base):
    __tablename__ = "departamento"

    id_departamento: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    municipios: Mapped[List["Municipio"]] = relationship(back_populates="departamento")


class Municipio(Base):
    __tablename__ = "municipio"
    __table_args__ = (UniqueConstraint("nombre", "id_departamento", name="uq_municipio_nombre_departamento"),)

    id_municipio: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(100), nullable=False)
    id_departamento: Mapped[int] = mapped_column(Integer, ForeignKey("departamento.id_departamento"), nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    departamento: Mapped["Departamento"] = relationship(back_populates="municipios")
    localidades: Mapped[List["Localidad"]] = relationship(back_populates="municipio")


class Localidad(Base):
    __tablename__ = "localidad"
    __table_args__ = (UniqueConstraint("nombre", "id_municipio", name="uq_localidad_nombre_municipio"),)

    id_localidad: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(100), nullable=False)
    id_municipio: Mapped[int] = mapped_column(Integer, ForeignKey("municipio.id_municipio"), nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    municipio: Mapped["Municipio"] = relationship(back_populates="localidades")
    zonas: Mapped[List["Zona"]] = relationship(back_populates="localidad")


class Zona(Base):
    __tablename__ = "zona"
    __table_args__ = (UniqueConstraint("nombre", "id_localidad", name="uq_zona_nombre_localidad"),)

    id_zona: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(100), nullable=False)
    id_localidad: Mapped[int] = mapped_column(Integer, ForeignKey("localidad.id_localidad"), nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    localidad: Mapped["Localidad"] = relationship(back_populates="zonas")


class Direccion(Base):
    __tablename__ = "direccion"

    id_direccion: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_usuario: Mapped[int] = mapped_column(Integer, ForeignKey("usuario.id"), nullable=False)
    id_zona: Mapped[int] = mapped_column(Integer, ForeignKey("zona.id_zona"), nullable=False)
    calle_avenida: Mapped[str] = mapped_column(String(150), nullable=False)
    numero_casa_edificio: Mapped[str | None] = mapped_column(String(20))
    referencia_adicional: Mapped[str | None] = mapped_column(Text)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    usuario: Mapped["Usuario"] = relationship(back_populates="direcciones")
    zona: Mapped["Zona"] = relationship()


# --- Órdenes ---

class Orden(Base):
    __tablename__ = "orden"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fecha: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    total: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)  # denormalizado desde orden_detalle
    metodo_pago: Mapped[str] = mapped_column(String(20), nullable=False)  # QR | EFECTIVO | TARJETA
    estado: Mapped[str] = mapped_column(String(20), default="PENDIENTE", nullable=False)  # PENDIENTE | ENTREGADO | CANCELADO
    observaciones: Mapped[str | None] = mapped_column(Text)
    id_usuario: Mapped[int] = mapped_column(Integer, ForeignKey("usuario.id"), nullable=False)
    id_direccion: Mapped[int | None] = mapped_column(Integer, ForeignKey("direccion.id_direccion"))
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    usuario: Mapped["Usuario"] = relationship()
    direccion: Mapped["Direccion | None"] = relationship()
    detalles: Mapped[List["OrdenDetalle"]] = relationship(back_populates="orden")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Orden(id={self.id!r}, total={self.total!r}, estado={self.estado!r})"


class OrdenDetalle(Base):
    __tablename__ = "orden_detalle"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_orden: Mapped[int] = mapped_column(Integer, ForeignKey("orden.id"), nullable=False)
    id_producto: Mapped[int] = mapped_column(Integer, ForeignKey("producto.id"), nullable=False)
    cantidad: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    precio_unitario: Mapped[float] = mapped_column(Float, nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    orden: Mapped["Orden"] = relationship(back_populates="detalles")
    producto: Mapped["Producto"] = relationship()

    def __repr__(self) -> str:  # pragma: no cover
        return f"OrdenDetalle(id={self.id!r}, id_orden={self.id_orden!r}, cantidad={self.cantidad!r})"
