from __future__ import annotations

import logging
from typing import Optional

from .errors import ConfigurationError
from .order_aggregate import OrderAggregateManager, OrderSummaryTableController
from .schema import ENTITY_ORDER, get_schema
from .table_controller import TableController

logger = logging.getLogger(__name__)


class ControllerRegistry:
    """Un controlador de tabla por entidad; sólo uno está activo a la vez."""

    def __init__(self) -> None:
        self._controllers: dict[str, TableController] = {}
        self.active_name: Optional[str] = None

    def register(self, name: str, controller: TableController) -> None:
        self._controllers[name] = controller

    def names(self) -> list[str]:
        return list(self._controllers)

    def get(self, name: str) -> TableController:
        try:
            return self._controllers[name]
        except KeyError:
            raise ConfigurationError(f"Configuración o Servicio no encontrado para la tabla: {name}") from None

    @property
    def active(self) -> Optional[TableController]:
        return self._controllers.get(self.active_name) if self.active_name else None

    def activate(self, name: str) -> TableController:
        controller = self.get(name)
        previous = self.active
        if previous is not None and previous is not controller:
            previous.deactivate()
        self.active_name = name
        logger.info("Sección activa: %s", name)
        controller.activate()
        return controller

    def deactivate(self) -> None:
        if self.active is not None:
            self.active.deactivate()
        self.active_name = None


def build_registry(
    repositories: dict,
    manager: OrderAggregateManager,
    **controller_kwargs,
) -> ControllerRegistry:
    """Crear los controladores de las diez secciones.

    ``controller_kwargs`` se pasa tal cual a cada ``TableController``
    (page_size, scheduler, debounce_ms, confirm, notify, session, on_edit).
    """
    registry = ControllerRegistry()
    for name in ENTITY_ORDER:
        schema = get_schema(name)
        repo = repositories.get(name)
        if name == "orden_detalle":
            controller = OrderSummaryTableController(schema, repo, manager, **controller_kwargs)
        else:
            controller = TableController(schema, repo, **controller_kwargs)
        registry.register(name, controller)
    return registry
