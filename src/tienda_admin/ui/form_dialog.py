from __future__ import annotations

import logging
from pathlib import Path

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDialog,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ..form_controller import FormController, FormMode
from ..schema import FieldKind, FormField
from ..storage import UploadedFile

logger = logging.getLogger(__name__)

_PLACEHOLDER_OPTION = "Seleccione..."


class EntityFormDialog(QDialog):
    """Formulario modal generado a partir de los campos del esquema."""

    def __init__(self, controller: FormController, mode: FormMode | str, record_id=None, parent=None) -> None:
        super().__init__(parent)
        self.controller = controller
        self.resize(520, 480)
        self.setSizeGripEnabled(True)
        self._widgets: dict[str, QWidget] = {}
        self._file_labels: dict[str, QLabel] = {}
        self._syncing = False
        self._setupUi()
        controller.subscribe(self._sync_from_controller)
        controller.open(mode, record_id)
        self.setWindowTitle(controller.title)

    # --- Construcción ---

    def _setupUi(self) -> None:
        main_layout = QVBoxLayout(self)
        main_layout.setSpacing(20)
        main_layout.setContentsMargins(30, 30, 30, 30)

        self._error_label = QLabel("", self)
        self._error_label.setWordWrap(True)
        self._error_label.setStyleSheet("color: #c0392b; font-weight: bold;")
        self._error_label.setVisible(False)
        main_layout.addWidget(self._error_label)

        self._form_container = QWidget(self)
        form = QFormLayout(self._form_container)
        form.setContentsMargins(0, 0, 0, 0)
        form.setSpacing(12)
        form.setLabelAlignment(Qt.AlignmentFlag.AlignLeft)
        for f in self.controller.schema.form_fields:
            if f.kind is FieldKind.HIDDEN:
                continue
            widget = self._make_widget(f)
            self._widgets[f.name] = widget
            form.addRow(f"{f.label} (*)" if f.required else f.label, widget)
        main_layout.addWidget(self._form_container)
        main_layout.addStretch()

        buttons = QHBoxLayout()
        buttons.addStretch()
        self.btn_cancel = QPushButton("Cancelar", self)
        self.btn_ok = QPushButton("Guardar", self)
        self.btn_ok.setStyleSheet(
            "QPushButton { background-color: #10b981; border: 1px solid #059669; border-radius: 6px;"
            " padding: 8px 16px; color: white; font-weight: bold; }"
        )
        for btn in (self.btn_cancel, self.btn_ok):
            btn.setCursor(Qt.CursorShape.PointingHandCursor)
            buttons.addWidget(btn)
        main_layout.addLayout(buttons)

        self.btn_ok.clicked.connect(self._on_accept)
        self.btn_cancel.clicked.connect(self.reject)

    def _make_widget(self, f: FormField) -> QWidget:
        if f.kind is FieldKind.SELECT:
            combo = QComboBox(self)
            combo.setMinimumHeight(32)
            combo.currentIndexChanged.connect(lambda _i, name=f.name: self._on_select(name))
            return combo
        if f.kind is FieldKind.CHECKBOX:
            return QCheckBox(self)
        if f.kind is FieldKind.TEXTAREA:
            edit = QPlainTextEdit(self)
            edit.setFixedHeight(80)
            return edit
        if f.kind is FieldKind.FILE:
            box = QWidget(self)
            row = QHBoxLayout(box)
            row.setContentsMargins(0, 0, 0, 0)
            btn = QPushButton("Seleccionar archivo...", box)
            btn.clicked.connect(lambda _c=False, name=f.name: self._choose_file(name))
            label = QLabel("Ningún archivo seleccionado", box)
            label.setStyleSheet("color: #888888; font-size: 11px; font-style: italic;")
            row.addWidget(btn)
            row.addWidget(label, 1)
            self._file_labels[f.name] = label
            return box
        edit = QLineEdit(self)
        edit.setMinimumHeight(32)
        if f.kind is FieldKind.PASSWORD:
            edit.setEchoMode(QLineEdit.EchoMode.Password)
        return edit

    # --- Sincronización con el controlador ---

    def _sync_from_controller(self, controller: FormController) -> None:
        self._syncing = True
        try:
            ok = controller.error is None
            self._error_label.setVisible(not ok)
            self._error_label.setText(controller.error or "")
            # si no se pudo abrir, se muestra sólo el mensaje
            self._form_container.setVisible(controller.ready or controller.mode is None)
            self.btn_ok.setEnabled(controller.ready)
            for name, widget in self._widgets.items():
                state = controller.states.get(name)
                if state is None:
                    continue
                widget.setEnabled(state.enabled)
                if isinstance(widget, QComboBox):
                    self._fill_combo(widget, state.options, state.value)
                elif isinstance(widget, QCheckBox):
                    widget.setChecked(bool(state.value))
                elif isinstance(widget, QPlainTextEdit):
                    text = "" if state.value is None else str(state.value)
                    if widget.toPlainText() != text:
                        widget.setPlainText(text)
                elif isinstance(widget, QLineEdit):
                    text = "" if state.value is None else str(state.value)
                    if widget.text() != text:
                        widget.setText(text)
                    widget.setPlaceholderText(state.placeholder)
            for name, label in self._file_labels.items():
                upload = controller.files.get(name)
                label.setText(upload.filename if upload else "Ningún archivo seleccionado")
        finally:
            self._syncing = False

    def _fill_combo(self, combo: QComboBox, options, value) -> None:
        combo.blockSignals(True)
        try:
            combo.clear()
            combo.addItem(_PLACEHOLDER_OPTION, None)
            selected = 0
            for i, opt in enumerate(options, start=1):
                combo.addItem(opt.label, opt.value)
                if value is not None and str(opt.value) == str(value):
                    selected = i
            combo.setCurrentIndex(selected)
        finally:
            combo.blockSignals(False)

    def _push_text_values(self) -> None:
        for name, widget in self._widgets.items():
            if isinstance(widget, QLineEdit):
                self.controller.states[name].value = widget.text()
            elif isinstance(widget, QPlainTextEdit):
                self.controller.states[name].value = widget.toPlainText()
            elif isinstance(widget, QCheckBox):
                self.controller.states[name].value = widget.isChecked()

    # --- Eventos ---

    def _on_select(self, name: str) -> None:
        if self._syncing:
            return
        self._push_text_values()
        combo = self._widgets[name]
        self.controller.select(name, combo.currentData())

    def _choose_file(self, name: str) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Seleccionar imagen", "", "Imágenes (*.png *.jpg *.jpeg *.webp *.gif)"
        )
        if not path:
            return
        try:
            upload = UploadedFile.from_path(Path(path))
        except OSError as e:
            QMessageBox.warning(self, "Archivo", f"No se pudo leer el archivo:\n{e}")
            return
        self._push_text_values()
        self.controller.attach_file(name, upload)

    def _on_accept(self) -> None:
        self._push_text_values()
        if self.controller.submit():
            self.accept()
            return
        if self.controller.error:
            QMessageBox.warning(self, "Error", self.controller.error)
            field = self.controller.error_field
            if field in self._widgets:
                self._widgets[field].setFocus()
