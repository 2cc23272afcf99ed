from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import cast

from PySide6.QtGui import QAction, QKeySequence
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QStackedWidget,
    QStatusBar,
    QWidget,
)
from sqlalchemy.orm import sessionmaker

from .config import Settings, load_settings
from .db import check_connection, get_media_dir, make_engine, make_session_factory
from .errors import AdminError
from .events import events
from .form_controller import FormController, FormMode
from .order_aggregate import OrderAggregateManager
from .permissions import AdminSession, resolve_session
from .registry import build_registry
from .repository import build_repositories, init_db
from .schema import ENTITY_ORDER, get_schema
from .storage import LocalMediaStorage
from .ui.entity_view import EntityTableView, qt_confirm, qt_notify
from .ui.form_dialog import EntityFormDialog
from .ui.order_details_dialog import OrderDetailsDialog
from .ui.scheduling import QtScheduler
from .ui.sidebar import SidebarNav

logger = logging.getLogger(__name__)

START_MODULE = "producto"


class MainWindow(QMainWindow):
    def __init__(self, session_factory: sessionmaker | None = None, settings: Settings | None = None) -> None:
        super().__init__()
        self._settings = settings or load_settings()
        self.setWindowTitle("Tienda - Panel de Administración")

        if session_factory is None:
            engine = make_engine()
            self._db_info = check_connection(engine)
            if self._db_info["ok"]:
                init_db(engine, seed=True)
            session_factory = make_session_factory(engine)
        else:
            bind = session_factory.kw.get("bind")
            self._db_info = check_connection(bind) if bind is not None else None
        self._session_factory = session_factory

        storage = LocalMediaStorage(get_media_dir(), self._settings.media_base_url)
        self._repos = build_repositories(session_factory, storage)
        try:
            self._session = resolve_session(self._repos["usuario"], self._settings.session_email)
        except AdminError as e:
            logger.error("No se pudo resolver la sesión: %s", e)
            self._session = AdminSession(user_id=None, email=self._settings.session_email)

        self._scheduler = QtScheduler(self)
        self._order_manager = OrderAggregateManager(
            self._repos["orden"],
            self._repos["orden_detalle"],
            self._repos["producto"],
            confirm=qt_confirm(self),
            on_total_changed=events.order_total_changed.emit,
        )
        self._registry = build_registry(
            self._repos,
            self._order_manager,
            page_size=self._settings.page_size,
            scheduler=self._scheduler,
            debounce_ms=self._settings.search_debounce_ms,
            confirm=qt_confirm(self),
            notify=qt_notify(self),
            session=self._session,
            on_edit=self.open_edit,
        )

        self._create_actions()

        container = QWidget(self)
        layout = QHBoxLayout(container)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)
        self._sidebar = SidebarNav(ENTITY_ORDER, session_label=self._session.email, parent=self)
        layout.addWidget(self._sidebar, 0)
        self._stack = QStackedWidget(self)
        layout.addWidget(self._stack, 1)

        self._views: dict[str, EntityTableView] = {}
        for name in ENTITY_ORDER:
            view = EntityTableView(self._registry.get(name), self)
            view.newRequested.connect(self.open_create)
            self._stack.addWidget(view)
            self._views[name] = view

        self.setCentralWidget(container)
        self.setStatusBar(QStatusBar(self))
        self.lbl_connection = QLabel(self)
        self.statusBar().addPermanentWidget(self.lbl_connection)
        self.resize(1200, 720)

        self._sidebar.moduleSelected.connect(self.show_module)
        events.record_saved.connect(self._on_record_saved)
        events.order_total_changed.connect(self._on_order_total_changed)
        self._show_connection_status()
        self.show_module(START_MODULE)

    @property
    def registry(self):
        return self._registry

    def view(self, name: str) -> EntityTableView:
        return self._views[name]

    def _create_actions(self) -> None:
        self.act_refresh = QAction("&Actualizar", self)
        self.act_refresh.setShortcut(QKeySequence("F5"))
        self.act_refresh.triggered.connect(self._refresh_active)
        self.addAction(self.act_refresh)

        self.act_exit = QAction("&Salir", self)
        self.act_exit.setShortcut(QKeySequence("Ctrl+Q"))
        self.act_exit.triggered.connect(self.close)
        self.addAction(self.act_exit)

    def show_module(self, name: str) -> None:
        try:
            controller = self._registry.activate(name)
        except AdminError as e:
            QMessageBox.warning(self, "Configuración", str(e))
            return
        self._stack.setCurrentWidget(self._views[controller.name])
        self._sidebar.select_module(controller.name)
        self.statusBar().showMessage(get_schema(name).title)

    def _show_connection_status(self) -> None:
        info = self._db_info
        if info is None:
            return
        if info["ok"]:
            self.lbl_connection.setText(f"Conectado a {info['backend']} ({info['elapsed_ms']:.1f} ms)")
            return
        logger.error("Sin conexión a la base de datos %s: %s", info["url"], info["error"])
        self.lbl_connection.setText("Sin conexión a la base de datos")
        QMessageBox.warning(
            self,
            "Conexión fallida",
            f"No fue posible conectar a la base de datos.\n\n"
            f"URL: {info['url']}\n"
            f"Error: {info['error']}",
        )

    def _refresh_active(self) -> None:
        if self._registry.active is not None:
            self._registry.active.refresh()

    # --- Formularios ---

    def _form_controller(self, name: str) -> FormController:
        return FormController(
            get_schema(name),
            self._repos,
            session=self._session,
            on_saved=lambda: events.record_saved.emit(name),
        )

    def open_create(self, name: str) -> None:
        dlg = EntityFormDialog(self._form_controller(name), FormMode.CREATE, parent=self)
        dlg.exec()

    def open_edit(self, name: str, record_id) -> None:
        if name == "orden_detalle":
            OrderDetailsDialog(self._order_manager, int(record_id), self).exec()
            return
        dlg = EntityFormDialog(self._form_controller(name), FormMode.EDIT, record_id, parent=self)
        dlg.exec()

    def _on_record_saved(self, name: str) -> None:
        self.statusBar().showMessage("Registro guardado correctamente", 3000)
        controller = self._registry.get(name)
        if controller.active:
            controller.refresh()

    def _on_order_total_changed(self, order_id: int, total: float) -> None:
        self.statusBar().showMessage(f"Orden #{order_id}: total actualizado a {total:.2f}", 3000)
        active = self._registry.active
        if active is not None and active.name in ("orden", "orden_detalle"):
            active.refresh()


def create_qt_app():
    """Crea y retorna una instancia de QApplication.

    Separado para facilitar pruebas y evitar crear múltiples instancias.
    """
    app = cast(QApplication, QApplication.instance() or QApplication(sys.argv))
    theme = load_settings().theme
    style_file = "styles-dark.qss" if theme == "dark" else "styles.qss"
    styles_path = Path(__file__).with_name(style_file)
    if styles_path.exists():
        try:
            app.setStyleSheet(styles_path.read_text(encoding="utf-8"))
        except OSError as e:
            logger.warning("No se pudo cargar %s: %s", styles_path, e)
    return app
