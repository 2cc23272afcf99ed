from __future__ import annotations

from typing import Callable

from PySide6.QtCore import QObject, QTimer


class QtScheduler(QObject):
    """Temporizadores de un solo disparo sobre el event loop de Qt."""

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._timers: set[QTimer] = set()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> QTimer:
        timer = QTimer(self)
        timer.setSingleShot(True)

        def _fire() -> None:
            self._timers.discard(timer)
            timer.deleteLater()
            callback()

        timer.timeout.connect(_fire)
        self._timers.add(timer)
        timer.start(max(0, int(delay_ms)))
        return timer

    def cancel(self, handle: QTimer) -> None:
        if handle in self._timers:
            handle.stop()
            self._timers.discard(handle)
            handle.deleteLater()

    @property
    def pending(self) -> int:
        return len(self._timers)
