from __future__ import annotations

import logging
from typing import Callable

from PySide6.QtCore import Qt, QThread, Signal
from PySide6.QtWidgets import (
    QAbstractItemView,
    QButtonGroup,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from ..table_controller import MAX_PAGE_BUTTONS, PageView, TableController

logger = logging.getLogger(__name__)

_BUTTON_STYLE = """
    QPushButton {
        background-color: #f8f9fa;
        border: 1px solid #e0e0e0;
        border-radius: 6px;
        padding: 6px 12px;
        color: #2c3e50;
    }
    QPushButton:hover { background-color: #eef2f7; }
    QPushButton:checked { background-color: #10b981; color: white; font-weight: bold; }
    QPushButton:disabled { background-color: #f0f0f0; color: #bdc3c7; }
"""


def qt_confirm(parent: QWidget) -> Callable[[str, str], bool]:
    def _confirm(title: str, message: str) -> bool:
        reply = QMessageBox.question(
            parent,
            title,
            message,
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No,
        )
        return reply == QMessageBox.StandardButton.Yes
    return _confirm


def qt_notify(parent: QWidget) -> Callable[[str, str], None]:
    def _notify(level: str, message: str) -> None:
        if level == "error":
            QMessageBox.critical(parent, "Error", message)
        elif level == "warning":
            QMessageBox.warning(parent, "Atención", message)
        else:
            QMessageBox.information(parent, "Éxito", message)
    return _notify


class _LoadRowsThread(QThread):
    loaded = Signal(int, object)
    failed = Signal(int, object)

    def __init__(self, token: int, fetch: Callable[[], list]) -> None:
        super().__init__()
        self._token = token
        self._fetch = fetch

    def run(self) -> None:  # type: ignore[override]
        try:
            rows = self._fetch()
        except Exception as e:  # se informa en la tabla vía failed
            self.failed.emit(self._token, e)
            return
        self.loaded.emit(self._token, rows)


class EntityTableView(QWidget):
    """Tabla paginada de una entidad; dibuja los ``PageView`` de su controlador.

    Todas las señales se conectan una sola vez al construir la vista; cada
    render sólo cambia textos y visibilidad, nunca vuelve a conectar.
    """

    newRequested = Signal(str)  # entidad

    def __init__(self, controller: TableController, parent=None) -> None:
        super().__init__(parent)
        self.controller = controller
        self._loaders: list[_LoadRowsThread] = []
        self._page_numbers: list[int] = []
        self._setupUi()
        controller.subscribe(self.render)
        controller.load_strategy = self.reload_async

    # --- Construcción ---

    def _setupUi(self) -> None:
        schema = self.controller.schema
        main_layout = QVBoxLayout(self)
        main_layout.setContentsMargins(20, 20, 20, 20)
        main_layout.setSpacing(15)

        title = QLabel(schema.title, self)
        title.setStyleSheet("font-weight: bold; font-size: 18px;")
        main_layout.addWidget(title)

        top_bar = QHBoxLayout()
        top_bar.addWidget(QLabel("Buscar:"))
        self.search_edit = QLineEdit(self)
        self.search_edit.setPlaceholderText("🔍 Buscar...")
        self.search_edit.setClearButtonEnabled(True)
        self.search_edit.textChanged.connect(self.controller.set_search_term)
        top_bar.addWidget(self.search_edit, 1)

        self.filter_combo: QComboBox | None = None
        if schema.secondary_filter is not None:
            sf = schema.secondary_filter
            self.filter_combo = QComboBox(self)
            self.filter_combo.setToolTip(f"Filtrar por {sf.label.lower()}")
            for value, label in sf.options:
                self.filter_combo.addItem(label, value)
            self.filter_combo.currentIndexChanged.connect(self._on_filter_changed)
            top_bar.addWidget(self.filter_combo)

        self.btn_new = QPushButton("➕ Nuevo", self)
        self.btn_edit = QPushButton("✏️ Editar", self)
        self.btn_delete = QPushButton("🗑️ Eliminar", self)
        self.btn_refresh = QPushButton("🔄 Actualizar", self)
        self.btn_new.clicked.connect(lambda: self.newRequested.emit(self.controller.name))
        self.btn_edit.clicked.connect(self._on_edit)
        self.btn_delete.clicked.connect(self._on_delete)
        self.btn_refresh.clicked.connect(self.controller.refresh)
        for btn in (self.btn_new, self.btn_edit, self.btn_delete, self.btn_refresh):
            btn.setCursor(Qt.CursorShape.PointingHandCursor)
            btn.setStyleSheet(_BUTTON_STYLE)
            top_bar.addWidget(btn)
        self.btn_new.setVisible(schema.allow_create)
        main_layout.addLayout(top_bar)

        self._table = self._setupTable()
        main_layout.addWidget(self._table, 1)

        self._message_label = QLabel("", self)
        self._message_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._message_label.setWordWrap(True)
        self._message_label.setVisible(False)
        main_layout.addWidget(self._message_label, 1)

        main_layout.addLayout(self._setupPagination())

        self._status_label = QLabel("Cargando...", self)
        self._status_label.setStyleSheet("color: #666; font-style: italic; padding: 4px;")
        main_layout.addWidget(self._status_label)

    def _setupTable(self) -> QTableWidget:
        headers = self.controller.schema.headers
        table = QTableWidget(0, len(headers), self)
        table.setHorizontalHeaderLabels(headers)
        table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        table.setAlternatingRowColors(True)
        table.verticalHeader().setVisible(False)
        table.horizontalHeader().setStretchLastSection(True)
        table.itemSelectionChanged.connect(self._on_selection_changed)
        table.itemDoubleClicked.connect(self._on_edit)
        return table

    def _setupPagination(self) -> QHBoxLayout:
        bar = QHBoxLayout()
        bar.addStretch()
        self.btn_first = QPushButton("«", self)
        self.btn_prev = QPushButton("‹", self)
        self.btn_next = QPushButton("›", self)
        self.btn_last = QPushButton("»", self)
        self.btn_first.clicked.connect(lambda: self.controller.go_to_page(1))
        self.btn_prev.clicked.connect(lambda: self.controller.go_to_page(self.controller.page - 1))
        self.btn_next.clicked.connect(lambda: self.controller.go_to_page(self.controller.page + 1))
        self.btn_last.clicked.connect(lambda: self.controller.go_to_page(self.controller.total_pages()))

        self._page_group = QButtonGroup(self)
        self._page_group.setExclusive(True)
        self._page_buttons: list[QPushButton] = []
        bar.addWidget(self.btn_first)
        bar.addWidget(self.btn_prev)
        for i in range(MAX_PAGE_BUTTONS):
            btn = QPushButton("", self)
            btn.setCheckable(True)
            btn.setVisible(False)
            self._page_group.addButton(btn, i)
            self._page_buttons.append(btn)
            bar.addWidget(btn)
        # un único manejador para todos los botones de página
        self._page_group.idClicked.connect(self._on_page_clicked)
        bar.addWidget(self.btn_next)
        bar.addWidget(self.btn_last)

        self._page_label = QLabel("", self)
        bar.addWidget(self._page_label)
        bar.addStretch()
        for btn in (self.btn_first, self.btn_prev, self.btn_next, self.btn_last, *self._page_buttons):
            btn.setCursor(Qt.CursorShape.PointingHandCursor)
            btn.setStyleSheet(_BUTTON_STYLE)
        return bar

    # --- Carga en segundo plano ---

    def reload_async(self) -> None:
        """Pide las filas en un QThread; el controlador descarta respuestas viejas."""
        token = self.controller.begin_load()
        loader = _LoadRowsThread(token, self.controller.fetch_rows)
        loader.loaded.connect(self._on_rows_loaded)
        loader.failed.connect(self._on_rows_failed)
        loader.finished.connect(lambda: self._loaders.remove(loader) if loader in self._loaders else None)
        self._loaders.append(loader)
        loader.start()

    def _on_rows_loaded(self, token: int, rows: list) -> None:
        self.controller.finish_load(token, rows)

    def _on_rows_failed(self, token: int, exc: Exception) -> None:
        self.controller.fail_load(token, exc)

    def wait_for_loaders(self, msecs: int = 5000) -> None:
        for loader in list(self._loaders):
            loader.wait(msecs)

    # --- Render ---

    def render(self, view: PageView) -> None:
        if self.search_edit.text() != view.search_term:
            self.search_edit.blockSignals(True)
            self.search_edit.setText(view.search_term)
            self.search_edit.blockSignals(False)

        self._table.setUpdatesEnabled(False)
        try:
            self._table.clearContents()
            self._table.setRowCount(0)
            for row in view.rows:
                r = self._table.rowCount()
                self._table.insertRow(r)
                for col, text in enumerate(row.cells):
                    item = QTableWidgetItem(text)
                    if col == 0:
                        item.setData(Qt.ItemDataRole.UserRole, row.id)
                    self._table.setItem(r, col, item)
        finally:
            self._table.setUpdatesEnabled(True)

        has_message = view.message is not None
        self._table.setVisible(not has_message)
        self._message_label.setVisible(has_message)
        if has_message:
            color = "#c0392b" if view.is_error else "#666"
            self._message_label.setStyleSheet(f"color: {color}; font-size: 14px; padding: 20px;")
            self._message_label.setText(view.message)

        self._page_numbers = list(view.page_buttons)
        for i, btn in enumerate(self._page_buttons):
            if i < len(self._page_numbers):
                n = self._page_numbers[i]
                btn.setText(str(n))
                btn.setChecked(n == view.page)
                btn.setVisible(True)
            else:
                btn.setVisible(False)
        self.btn_first.setEnabled(view.can_first)
        self.btn_prev.setEnabled(view.can_prev)
        self.btn_next.setEnabled(view.can_next)
        self.btn_last.setEnabled(view.can_last)
        self._page_label.setText(view.page_label if view.total_pages else "")

        if view.loading:
            self._status_label.setText("Cargando...")
        elif view.is_error:
            self._status_label.setText("")
        else:
            self._status_label.setText(view.summary)
        self._on_selection_changed()

    # --- Acciones ---

    def selected_id(self):
        row = self._table.currentRow()
        if row < 0 or self._table.isHidden():
            return None
        item = self._table.item(row, 0)
        return item.data(Qt.ItemDataRole.UserRole) if item else None

    def _on_page_clicked(self, index: int) -> None:
        if 0 <= index < len(self._page_numbers):
            self.controller.go_to_page(self._page_numbers[index])

    def _on_filter_changed(self, index: int) -> None:
        self.controller.set_secondary_filter(self.filter_combo.itemData(index))

    def _on_edit(self, *_args) -> None:
        rid = self.selected_id()
        if rid is None:
            QMessageBox.information(self, "Editar", "Selecciona un registro primero")
            return
        self.controller.request_edit(rid)

    def _on_delete(self) -> None:
        rid = self.selected_id()
        if rid is None:
            QMessageBox.warning(self, "Eliminar", "Selecciona un registro primero")
            return
        self.controller.request_delete(rid)

    def _on_selection_changed(self) -> None:
        has_sel = self._table.currentRow() >= 0 and self._table.rowCount() > 0
        self.btn_edit.setEnabled(has_sel)
        self.btn_delete.setEnabled(has_sel)
