from PySide6.QtCore import QObject, Signal


class _AppEvents(QObject):
    record_saved = Signal(str)                 # entidad
    order_total_changed = Signal(int, float)   # id_orden, total


events = _AppEvents()
