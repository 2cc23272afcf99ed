from __future__ import annotations

from PySide6.QtCore import Signal
from PySide6.QtWidgets import QLabel, QPushButton, QSizePolicy, QSpacerItem, QVBoxLayout, QWidget

from ..schema import ENTITY_ORDER, get_schema


class SidebarNav(QWidget):
    moduleSelected = Signal(str)  # nombre de la entidad: producto|categoria|usuario|...

    def __init__(self, modules=ENTITY_ORDER, session_label: str | None = None, parent=None) -> None:
        super().__init__(parent)
        self.setObjectName("SidebarNav")

        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(6)

        if session_label:
            user_lbl = QLabel(f"Sesión: {session_label}", self)
            user_lbl.setObjectName("SidebarUserLabel")
            layout.addWidget(user_lbl)

        self._buttons: dict[str, QPushButton] = {}
        for key in modules:
            btn = QPushButton(get_schema(key).title, self)
            btn.setObjectName(f"nav_{key}")
            btn.setCheckable(True)
            btn.clicked.connect(lambda checked, k=key: self._on_click(k))
            btn.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Fixed)
            layout.addWidget(btn)
            self._buttons[key] = btn

        layout.addItem(QSpacerItem(0, 0, QSizePolicy.Policy.Minimum, QSizePolicy.Policy.Expanding))

    def modules(self) -> list[str]:
        return list(self._buttons)

    def button(self, key: str) -> QPushButton | None:
        return self._buttons.get(key)

    def _on_click(self, key: str) -> None:
        self.select_module(key)
        self.moduleSelected.emit(key)

    def select_module(self, key: str) -> None:
        for k, btn in self._buttons.items():
            btn.setChecked(k == key)
