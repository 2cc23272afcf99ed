# Ensure project root is on sys.path so `import src.tienda_admin...` works when running tests in various environments.
import os
import sys
from pathlib import Path

# Usar una base de datos aislada para pruebas (evita contaminar data/tienda.db)
ROOT_PATH = Path(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
DATA_DIR = ROOT_PATH / 'data'
DATA_DIR.mkdir(parents=True, exist_ok=True)
TEST_DB = DATA_DIR / 'tienda_test.db'

# Forzar DATABASE_URL a una DB de pruebas
os.environ.setdefault('DATABASE_URL', f'sqlite:///{TEST_DB.as_posix()}')
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')
os.environ.pop('TIENDA_ADMIN_SESSION_EMAIL', None)

# Resetear la DB de pruebas al inicio de la sesión de pytest
if TEST_DB.exists():
    TEST_DB.unlink()

ROOT = str(ROOT_PATH)
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import pytest
from PySide6.QtWidgets import QApplication

from src.tienda_admin.db import make_engine, make_session_factory
from src.tienda_admin.models import Categoria, Localidad, Municipio, Orden, Producto, Usuario, Zona
from src.tienda_admin.repository import build_repositories, init_db
from src.tienda_admin.storage import LocalMediaStorage


class ManualScheduler:
    """Scheduler de pruebas: los callbacks se disparan a mano con ``run_pending``."""

    def __init__(self):
        self._next = 0
        self.calls = {}

    def call_later(self, delay_ms, callback):
        self._next += 1
        self.calls[self._next] = (delay_ms, callback)
        return self._next

    def cancel(self, handle):
        self.calls.pop(handle, None)

    @property
    def pending(self):
        return len(self.calls)

    def run_pending(self):
        calls, self.calls = self.calls, {}
        for _delay, callback in calls.values():
            callback()


@pytest.fixture(scope="session")
def qapp():
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture
def engine():
    engine = make_engine(":memory:")
    init_db(engine, seed=True)
    return engine


@pytest.fixture
def session_factory(engine):
    Session = make_session_factory(engine)
    return Session


@pytest.fixture
def storage(tmp_path):
    return LocalMediaStorage(tmp_path / "media", "https://cdn.tienda.test/productos")


@pytest.fixture
def repos(session_factory, storage):
    return build_repositories(session_factory, storage)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def make_user(session_factory):
    def _make(ci="1234567", primer_nombre="Ana", apellido_paterno="Rojas", apellido_materno="Mamani",
              celular="71234567", correo=None, rol="cliente", **extra):
        with session_factory() as session:
            u = Usuario(
                ci=ci,
                primer_nombre=primer_nombre,
                apellido_paterno=apellido_paterno,
                apellido_materno=apellido_materno,
                celular=celular,
                correo_electronico=correo or f"{ci}@tienda.test",
                rol=rol,
                **extra,
            )
            session.add(u)
            session.commit()
            return u.id
    return _make


@pytest.fixture
def make_product(session_factory):
    def _make(nombre="Producto", precio=10.0, stock=5, categoria=None, **extra):
        with session_factory() as session:
            id_categoria = None
            if categoria:
                cat = session.query(Categoria).filter_by(nombre=categoria).first()
                if cat is None:
                    cat = Categoria(nombre=categoria)
                    session.add(cat)
                    session.flush()
                id_categoria = cat.id
            p = Producto(nombre=nombre, precio=precio, stock=stock, id_categoria=id_categoria, **extra)
            session.add(p)
            session.commit()
            return p.id
    return _make


@pytest.fixture
def make_order(session_factory, make_user):
    def _make(id_usuario=None, total=0.0, estado="PENDIENTE"):
        if id_usuario is None:
            id_usuario = make_user()
        with session_factory() as session:
            o = Orden(id_usuario=id_usuario, total=total, metodo_pago="QR", estado=estado)
            session.add(o)
            session.commit()
            return o.id
    return _make


@pytest.fixture
def geo(session_factory):
    """Municipio, localidad y zona de prueba dentro de La Paz."""
    from src.tienda_admin.models import Departamento

    with session_factory() as session:
        la_paz = session.query(Departamento).filter_by(nombre="La Paz").one()
        mun = Municipio(nombre="Nuestra Señora de La Paz", id_departamento=la_paz.id_departamento)
        session.add(mun)
        session.flush()
        loc = Localidad(nombre="Centro", id_municipio=mun.id_municipio)
        session.add(loc)
        session.flush()
        zona = Zona(nombre="Sopocachi", id_localidad=loc.id_localidad)
        session.add(zona)
        session.commit()
        return {
            "id_departamento": la_paz.id_departamento,
            "id_municipio": mun.id_municipio,
            "id_localidad": loc.id_localidad,
            "id_zona": zona.id_zona,
        }
