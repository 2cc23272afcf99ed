from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from .errors import AdminError, RecalculationError, ValidationError
from .table_controller import TableController, _confirm_refuse
from .validation import validate_form

logger = logging.getLogger(__name__)


class EditorState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    MUTATING = "mutating"
    CLOSED = "closed"


@dataclass(frozen=True)
class LineView:
    id: int
    id_producto: int
    producto: str
    cantidad: int
    precio_unitario: float
    subtotal: float


def order_total(lines: Iterable[dict]) -> float:
    """Suma de cantidad × precio unitario de las líneas visibles, a 2 decimales."""
    return round(
        sum(int(l["cantidad"]) * float(l["precio_unitario"]) for l in lines if l.get("visible", True)),
        2,
    )


class OrderAggregateManager:
    """Editor de las líneas de una orden.

    Después de cada alta, cambio o baja de una línea se vuelve a leer la lista
    de líneas visibles, se suma, se escribe el total en la orden y recién
    entonces se muestra. Si la escritura del total falla se informa y el total
    mostrado queda como estaba; las líneas no se revierten.
    """

    def __init__(
        self,
        order_repository,
        line_repository,
        product_repository,
        *,
        confirm: Callable[[str, str], bool] | None = None,
        on_total_changed: Callable[[int, float], None] | None = None,
    ):
        self.orders = order_repository
        self.lines_repo = line_repository
        self.products = product_repository
        self.confirm = confirm or _confirm_refuse
        self.on_total_changed = on_total_changed

        self.state = EditorState.IDLE
        self.order_id: Optional[int] = None
        self.order: Optional[dict] = None
        self.lines: list[dict] = []
        self.total: Optional[float] = None
        self.product_options: list = []
        self.selected_product: Optional[dict] = None
        self.error: Optional[str] = None
        self._listeners: list[Callable[["OrderAggregateManager"], None]] = []

    def subscribe(self, listener: Callable[["OrderAggregateManager"], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[["OrderAggregateManager"], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _set_state(self, state: EditorState) -> None:
        self.state = state
        self._emit()

    # --- Apertura / cierre ---

    def open(self, order_id: int) -> bool:
        self.order_id = order_id
        self.error = None
        self.selected_product = None
        self._set_state(EditorState.LOADING)
        try:
            self.order = self.orders.get_by_id(order_id)
            self.lines = self.lines_repo.fetch_by_order(order_id)
            self.product_options = self.products.list_options()
        except AdminError as e:
            logger.error("No se pudo abrir la orden %s: %s", order_id, e)
            self.error = f"Error al cargar el detalle de la orden #{order_id}: {e}"
            self._set_state(EditorState.IDLE)
            return False
        self.total = float(self.order.get("total") or 0)
        self._set_state(EditorState.READY)
        return True

    def close(self) -> None:
        self.lines = []
        self.selected_product = None
        self._set_state(EditorState.CLOSED)

    # --- Vista ---

    def line_views(self) -> list[LineView]:
        views = []
        for l in self.lines:
            producto = l.get("producto") or {}
            cantidad = int(l["cantidad"])
            precio = float(l["precio_unitario"])
            views.append(LineView(
                id=l["id"],
                id_producto=l["id_producto"],
                producto=producto.get("nombre") or f"Producto #{l['id_producto']}",
                cantidad=cantidad,
                precio_unitario=precio,
                subtotal=round(cantidad * precio, 2),
            ))
        return views

    def _find_line(self, line_id) -> Optional[dict]:
        for l in self.lines:
            if str(l["id"]) == str(line_id):
                return l
        return None

    def _parse_quantity(self, quantity) -> int:
        field = self.lines_repo.schema.field("cantidad")
        return validate_form([field], {"cantidad": quantity})["cantidad"]

    # --- Selección de producto ---

    def select_product(self, product_id) -> Optional[float]:
        """Fijar el producto a agregar; el precio unitario sale del producto y no se edita."""
        if product_id in (None, ""):
            self.selected_product = None
            self._emit()
            return None
        try:
            self.selected_product = self.products.get_product_details(product_id)
        except AdminError as e:
            self.selected_product = None
            self.error = f"Error al obtener el producto: {e}"
            self._emit()
            return None
        self.error = None
        self._emit()
        return self.selected_product["precio"]

    def preview_quantity(self, line_id, quantity) -> Optional[float]:
        """Subtotal local de una línea mientras se edita; no toca el total de la orden."""
        line = self._find_line(line_id)
        if line is None:
            return None
        try:
            q = self._parse_quantity(quantity)
        except ValidationError:
            return None
        return round(q * float(line["precio_unitario"]), 2)

    # --- Mutaciones ---

    def add_line(self, quantity) -> bool:
        if self.order_id is None or self.state is not EditorState.READY:
            return False
        if self.selected_product is None:
            self.error = "Debe seleccionar un producto."
            self._emit()
            return False
        try:
            q = self._parse_quantity(quantity)
        except ValidationError as e:
            self.error = str(e)
            self._emit()
            return False
        price = float(self.selected_product["precio"] or 0)
        if price <= 0:
            self.error = "El producto seleccionado no tiene un precio válido."
            self._emit()
            return False
        payload = {
            "id_orden": self.order_id,
            "id_producto": self.selected_product["id"],
            "cantidad": q,
            "precio_unitario": price,
        }
        ok = self._mutate(lambda: self.lines_repo.create(payload))
        if ok:
            self.selected_product = None
        return ok

    def update_line(self, line_id, quantity) -> bool:
        if self.order_id is None or self.state is not EditorState.READY:
            return False
        try:
            q = self._parse_quantity(quantity)
        except ValidationError as e:
            self.error = str(e)
            self._emit()
            return False
        return self._mutate(lambda: self.lines_repo.update(line_id, {"cantidad": q}))

    def remove_line(self, line_id) -> bool:
        if self.order_id is None or self.state is not EditorState.READY:
            return False
        if not self.confirm("Confirmar", "¿Desea quitar este producto de la orden?"):
            return False
        return self._mutate(lambda: self.lines_repo.set_visibility(line_id, False))

    def clear_all(self, order_id: Optional[int] = None) -> bool:
        """Inhabilitar todas las líneas visibles de la orden y dejar su total en 0."""
        if order_id is not None and order_id != self.order_id:
            self.order_id = order_id
            self.lines = []
            self.total = None
        if self.order_id is None:
            return False

        def hide_all():
            current = self.lines_repo.fetch_by_order(self.order_id)
            self.lines_repo.hide_lines([l["id"] for l in current])

        return self._mutate(hide_all)

    def _mutate(self, action: Callable[[], Any]) -> bool:
        self.error = None
        self._set_state(EditorState.MUTATING)
        try:
            action()
        except AdminError as e:
            logger.error("Error al modificar la orden %s: %s", self.order_id, e)
            self.error = str(e)
            self._set_state(EditorState.READY)
            return False
        return self.recalculate()

    def recalculate(self) -> bool:
        """Leer líneas → sumar → escribir total → mostrar; siempre en ese orden."""
        try:
            self.lines = self.lines_repo.fetch_by_order(self.order_id)
            total = order_total(self.lines)
            try:
                persisted = self.orders.update_total(self.order_id, total)
            except AdminError as e:
                raise RecalculationError(
                    f"No se pudo actualizar el total de la orden #{self.order_id}: {e}"
                ) from e
        except AdminError as e:
            logger.error("Recalculo de la orden %s incompleto: %s", self.order_id, e)
            self.error = str(e)
            self._set_state(EditorState.READY)
            return False

        self.total = persisted
        self._set_state(EditorState.READY)
        if self.on_total_changed is not None:
            self.on_total_changed(self.order_id, persisted)
        return True


class OrderSummaryTableController(TableController):
    """Sección "Detalle de órdenes": una fila por orden con sus unidades.

    Editar abre el editor de líneas; eliminar vacía la orden.
    """

    def __init__(self, schema, repository, manager: OrderAggregateManager, **kwargs):
        super().__init__(schema, repository, **kwargs)
        self.manager = manager

    def fetch_rows(self) -> list[dict]:
        if self.repository is None:
            return super().fetch_rows()
        return self.repository.fetch_order_summaries()

    def request_delete(self, record_id) -> bool:
        question = f"¿Desea eliminar todos los productos de la orden #{record_id}?"
        if not self.confirm("Confirmar eliminación", question):
            return False
        ok = self.manager.clear_all(int(record_id))
        if ok:
            self.notify("info", f"Se eliminaron los productos de la orden #{record_id}.")
        else:
            self.notify("error", self.manager.error or "No se pudo vaciar la orden.")
        self.refresh()
        return ok
