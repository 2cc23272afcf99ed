import pytest

from src.tienda_admin.errors import ConfigurationError
from src.tienda_admin.order_aggregate import OrderAggregateManager, OrderSummaryTableController
from src.tienda_admin.registry import build_registry
from src.tienda_admin.schema import ENTITY_ORDER


@pytest.fixture
def registry(repos):
    manager = OrderAggregateManager(repos["orden"], repos["orden_detalle"], repos["producto"])
    return build_registry(repos, manager, page_size=5)


def test_one_controller_per_section(registry):
    assert registry.names() == list(ENTITY_ORDER)
    assert isinstance(registry.get("orden_detalle"), OrderSummaryTableController)
    assert registry.get("zona").page_size == 5


def test_unknown_section(registry):
    with pytest.raises(ConfigurationError) as exc:
        registry.activate("proveedor")
    assert str(exc.value) == "Configuración o Servicio no encontrado para la tabla: proveedor"
    assert registry.active is None


def test_only_active_controller_notifies(registry):
    seen = []
    registry.get("producto").subscribe(lambda v: seen.append(("producto", v.title)))
    registry.get("departamento").subscribe(lambda v: seen.append(("departamento", v.title)))

    registry.activate("producto")
    registry.activate("departamento")
    assert registry.get("producto").active is False
    assert registry.active is registry.get("departamento")

    seen.clear()
    registry.get("producto").set_secondary_filter(None)
    registry.get("departamento").go_to_page(2)
    assert seen == [("departamento", "Departamentos")]
    assert registry.get("departamento").view.page == 2


def test_deactivate(registry):
    registry.activate("categoria")
    registry.deactivate()
    assert registry.active is None
    assert registry.get("categoria").active is False
