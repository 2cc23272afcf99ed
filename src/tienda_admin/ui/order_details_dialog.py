from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QSpinBox,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
)

from ..order_aggregate import EditorState, OrderAggregateManager

_COL_PRODUCTO, _COL_CANTIDAD, _COL_PRECIO, _COL_SUBTOTAL = range(4)


class OrderDetailsDialog(QDialog):
    """Editor de los productos de una orden.

    La cantidad se edita en la tabla y el subtotal de la fila se actualiza al
    momento; el total de la orden sólo cambia al guardar la línea.
    """

    def __init__(self, manager: OrderAggregateManager, order_id: int, parent=None):
        super().__init__(parent)
        self.setWindowTitle(f"Detalle de la Orden #{order_id}")
        self.resize(760, 600)
        self.manager = manager
        self._rendering = False
        self._init_ui()
        manager.subscribe(self._render)
        manager.open(order_id)

    def _init_ui(self):
        layout = QVBoxLayout(self)

        self.lbl_error = QLabel("", self)
        self.lbl_error.setWordWrap(True)
        self.lbl_error.setStyleSheet("color: #c0392b; font-weight: bold;")
        self.lbl_error.setVisible(False)
        layout.addWidget(self.lbl_error)

        # --- Información general ---
        grp_general = QGroupBox("Información General")
        form_general = QFormLayout()
        self.txt_order = QLineEdit()
        self.txt_customer = QLineEdit()
        self.txt_status = QLineEdit()
        self.txt_total = QLineEdit()
        for w in (self.txt_order, self.txt_customer, self.txt_status, self.txt_total):
            w.setReadOnly(True)
        self.txt_total.setStyleSheet("font-weight: bold;")
        form_general.addRow("N° Orden:", self.txt_order)
        form_general.addRow("Cliente:", self.txt_customer)
        form_general.addRow("Estado:", self.txt_status)
        form_general.addRow("Total:", self.txt_total)
        grp_general.setLayout(form_general)
        layout.addWidget(grp_general)

        # --- Agregar producto ---
        grp_add = QGroupBox("Agregar producto")
        row_add = QHBoxLayout()
        self.cmb_product = QComboBox()
        self.cmb_product.currentIndexChanged.connect(self._on_product_changed)
        self.txt_price = QLineEdit()
        self.txt_price.setReadOnly(True)
        self.txt_price.setPlaceholderText("Precio unitario")
        self.spn_quantity = QSpinBox()
        self.spn_quantity.setRange(1, 100000)
        self.btn_add = QPushButton("➕ Agregar")
        self.btn_add.clicked.connect(self._on_add)
        row_add.addWidget(self.cmb_product, 2)
        row_add.addWidget(self.txt_price, 1)
        row_add.addWidget(self.spn_quantity)
        row_add.addWidget(self.btn_add)
        grp_add.setLayout(row_add)
        layout.addWidget(grp_add)

        # --- Líneas ---
        self.table = QTableWidget(0, 4)
        self.table.setHorizontalHeaderLabels(["Producto", "Cant.", "Precio Unit.", "Subtotal"])
        self.table.horizontalHeader().setSectionResizeMode(_COL_PRODUCTO, QHeaderView.ResizeMode.Stretch)
        self.table.verticalHeader().setVisible(False)
        self.table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.table.setEditTriggers(
            QAbstractItemView.EditTrigger.DoubleClicked | QAbstractItemView.EditTrigger.EditKeyPressed
        )
        self.table.itemChanged.connect(self._on_item_changed)
        layout.addWidget(self.table, 1)

        actions = QHBoxLayout()
        self.btn_save_line = QPushButton("💾 Guardar cantidad")
        self.btn_remove_line = QPushButton("🗑️ Quitar producto")
        self.btn_clear = QPushButton("Vaciar orden")
        self.btn_close = QPushButton("Cerrar")
        self.btn_save_line.clicked.connect(self._on_save_line)
        self.btn_remove_line.clicked.connect(self._on_remove_line)
        self.btn_clear.clicked.connect(self._on_clear)
        self.btn_close.clicked.connect(self.accept)
        actions.addWidget(self.btn_save_line)
        actions.addWidget(self.btn_remove_line)
        actions.addStretch()
        actions.addWidget(self.btn_clear)
        actions.addWidget(self.btn_close)
        layout.addLayout(actions)

    # --- Render ---

    def _render(self, manager: OrderAggregateManager):
        self._rendering = True
        try:
            self.lbl_error.setVisible(bool(manager.error))
            self.lbl_error.setText(manager.error or "")
            busy = manager.state in (EditorState.LOADING, EditorState.MUTATING)
            ready = manager.state is EditorState.READY
            for w in (self.btn_add, self.btn_save_line, self.btn_remove_line, self.btn_clear, self.table):
                w.setEnabled(ready and not busy)

            order = manager.order or {}
            usuario = order.get("usuario") or {}
            self.txt_order.setText(str(order.get("id", manager.order_id or "")))
            self.txt_customer.setText(usuario.get("nombre_completo") or "")
            self.txt_status.setText(order.get("estado") or "")
            self.txt_total.setText("" if manager.total is None else f"Bs {manager.total:.2f}")

            if self.cmb_product.count() != len(manager.product_options) + 1:
                self.cmb_product.blockSignals(True)
                self.cmb_product.clear()
                self.cmb_product.addItem("Seleccione un producto...", None)
                for opt in manager.product_options:
                    self.cmb_product.addItem(opt.label, opt.value)
                self.cmb_product.blockSignals(False)
            if manager.selected_product is None:
                self.cmb_product.blockSignals(True)
                self.cmb_product.setCurrentIndex(0)
                self.cmb_product.blockSignals(False)
                self.txt_price.clear()
            else:
                self.txt_price.setText(f"{manager.selected_product['precio']:.2f}")

            self.table.setRowCount(0)
            for line in manager.line_views():
                r = self.table.rowCount()
                self.table.insertRow(r)
                name = QTableWidgetItem(line.producto)
                name.setData(Qt.ItemDataRole.UserRole, line.id)
                qty = QTableWidgetItem(str(line.cantidad))
                price = QTableWidgetItem(f"{line.precio_unitario:.2f}")
                subtotal = QTableWidgetItem(f"{line.subtotal:.2f}")
                for item in (name, price, subtotal):
                    item.setFlags(item.flags() & ~Qt.ItemFlag.ItemIsEditable)
                self.table.setItem(r, _COL_PRODUCTO, name)
                self.table.setItem(r, _COL_CANTIDAD, qty)
                self.table.setItem(r, _COL_PRECIO, price)
                self.table.setItem(r, _COL_SUBTOTAL, subtotal)
        finally:
            self._rendering = False

    def _selected_line(self):
        row = self.table.currentRow()
        if row < 0:
            return None, None
        item = self.table.item(row, _COL_PRODUCTO)
        return row, (item.data(Qt.ItemDataRole.UserRole) if item else None)

    # --- Eventos ---

    def _on_product_changed(self, index: int):
        self.manager.select_product(self.cmb_product.itemData(index))

    def _on_item_changed(self, item: QTableWidgetItem):
        if self._rendering or item.column() != _COL_CANTIDAD:
            return
        line_id = self.table.item(item.row(), _COL_PRODUCTO).data(Qt.ItemDataRole.UserRole)
        preview = self.manager.preview_quantity(line_id, item.text())
        self._rendering = True
        try:
            self.table.item(item.row(), _COL_SUBTOTAL).setText("-" if preview is None else f"{preview:.2f}")
        finally:
            self._rendering = False

    def _on_add(self):
        if not self.manager.add_line(self.spn_quantity.value()) and self.manager.error:
            QMessageBox.warning(self, "Agregar producto", self.manager.error)
            return
        self.spn_quantity.setValue(1)

    def _on_save_line(self):
        row, line_id = self._selected_line()
        if line_id is None:
            QMessageBox.information(self, "Guardar", "Selecciona un producto de la orden primero")
            return
        quantity = self.table.item(row, _COL_CANTIDAD).text()
        if not self.manager.update_line(line_id, quantity) and self.manager.error:
            QMessageBox.warning(self, "Guardar", self.manager.error)

    def _on_remove_line(self):
        _row, line_id = self._selected_line()
        if line_id is None:
            QMessageBox.information(self, "Quitar", "Selecciona un producto de la orden primero")
            return
        if not self.manager.remove_line(line_id) and self.manager.error:
            QMessageBox.warning(self, "Quitar", self.manager.error)

    def _on_clear(self):
        reply = QMessageBox.question(
            self,
            "Confirmar",
            "¿Desea eliminar todos los productos de esta orden?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No,
        )
        if reply != QMessageBox.StandardButton.Yes:
            return
        if not self.manager.clear_all() and self.manager.error:
            QMessageBox.warning(self, "Vaciar orden", self.manager.error)

    def done(self, result: int):
        self.manager.unsubscribe(self._render)
        self.manager.close()
        super().done(result)
