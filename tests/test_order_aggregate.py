import pytest

from src.tienda_admin.errors import WriteError
from src.tienda_admin.order_aggregate import EditorState, OrderAggregateManager, order_total
from src.tienda_admin.registry import build_registry


@pytest.fixture
def manager(repos):
    changes = []
    m = OrderAggregateManager(
        repos["orden"], repos["orden_detalle"], repos["producto"],
        confirm=lambda title, msg: True,
        on_total_changed=lambda oid, total: changes.append((oid, total)),
    )
    m.changes = changes
    return m


@pytest.fixture
def order_id(make_order):
    return make_order()


def _add(manager, product_id, quantity):
    manager.select_product(product_id)
    return manager.add_line(quantity)


def _stored_total(repos, oid):
    return repos["orden"].get_by_id(oid)["total"]


def test_order_total_ignores_hidden_lines():
    lines = [
        {"cantidad": 2, "precio_unitario": 1.10},
        {"cantidad": 1, "precio_unitario": 3.333},
        {"cantidad": 9, "precio_unitario": 100.0, "visible": False},
    ]
    assert order_total(lines) == 5.53
    assert order_total([]) == 0


def test_add_line_updates_total(manager, order_id, make_product, repos):
    pid = make_product(nombre="Polera", precio=15.0)
    assert manager.open(order_id) is True
    assert manager.state is EditorState.READY

    assert manager.select_product(pid) == 15.0
    assert manager.add_line(3) is True
    assert manager.total == 45.0
    assert _stored_total(repos, order_id) == 45.0
    assert manager.changes == [(order_id, 45.0)]

    [line] = manager.line_views()
    assert (line.producto, line.cantidad, line.precio_unitario, line.subtotal) == ("Polera", 3, 15.0, 45.0)
    assert manager.selected_product is None


def test_total_matches_lines_after_each_mutation(manager, order_id, make_product, repos):
    polera = make_product(nombre="Polera", precio=15.0)
    llavero = make_product(nombre="Llavero", precio=2.5)
    manager.open(order_id)
    _add(manager, polera, 3)
    _add(manager, llavero, 2)
    assert manager.total == 50.0

    first, second = (l.id for l in manager.line_views())
    assert manager.update_line(first, "1") is True
    assert manager.total == 20.0
    assert manager.remove_line(second) is True
    assert manager.total == 15.0

    assert _stored_total(repos, order_id) == order_total(repos["orden_detalle"].fetch_by_order(order_id))


def test_clear_all_sets_total_to_zero(manager, order_id, make_product, repos):
    pid = make_product(precio=4.0)
    manager.open(order_id)
    _add(manager, pid, 2)
    _add(manager, pid, 5)

    assert manager.clear_all() is True
    assert manager.lines == []
    assert manager.total == 0
    assert _stored_total(repos, order_id) == 0


def test_failed_total_write_keeps_previous_total(manager, order_id, make_product, repos, monkeypatch):
    pid = make_product(precio=15.0)
    manager.open(order_id)
    _add(manager, pid, 3)

    def broken(oid, total):
        raise WriteError("sin conexión")

    monkeypatch.setattr(repos["orden"], "update_total", broken)
    assert _add(manager, pid, 1) is False
    assert manager.error == f"No se pudo actualizar el total de la orden #{order_id}: sin conexión"
    assert manager.total == 45.0
    # la línea nueva quedó guardada
    assert len(manager.lines) == 2
    assert manager.state is EditorState.READY


def test_preview_does_not_persist(manager, order_id, make_product, repos):
    pid = make_product(precio=15.0)
    manager.open(order_id)
    _add(manager, pid, 3)
    line_id = manager.lines[0]["id"]

    assert manager.preview_quantity(line_id, "4") == 60.0
    assert manager.preview_quantity(line_id, "0") is None
    assert manager.total == 45.0
    assert _stored_total(repos, order_id) == 45.0
    assert manager.lines[0]["cantidad"] == 3


def test_add_requires_product_and_valid_quantity(manager, order_id, make_product):
    manager.open(order_id)
    assert manager.add_line(1) is False
    assert manager.error == "Debe seleccionar un producto."

    gratis = make_product(nombre="Muestra", precio=0)
    manager.select_product(gratis)
    assert manager.add_line(1) is False
    assert manager.error == "El producto seleccionado no tiene un precio válido."

    manager.select_product(make_product(precio=3.0))
    assert manager.add_line("0") is False
    assert manager.error == 'El campo "Cantidad" debe ser mayor o igual a 1.'
    assert manager.lines == []


def test_remove_line_needs_confirmation(repos, order_id, make_product):
    m = OrderAggregateManager(repos["orden"], repos["orden_detalle"], repos["producto"],
                              confirm=lambda title, msg: False)
    m.open(order_id)
    _add(m, make_product(precio=1.0), 1)
    assert m.remove_line(m.lines[0]["id"]) is False
    assert len(m.lines) == 1


def test_open_missing_order(manager):
    assert manager.open(404) is False
    assert manager.state is EditorState.IDLE
    assert "Registro orden ID 404 no encontrado." in manager.error


def test_close(manager, order_id):
    manager.open(order_id)
    manager.close()
    assert manager.state is EditorState.CLOSED


def test_summary_section_delete_clears_order(repos, manager, order_id, make_product):
    manager.open(order_id)
    _add(manager, make_product(precio=10.0), 2)
    manager.close()

    registry = build_registry(repos, manager, confirm=lambda title, msg: True)
    summary = registry.activate("orden_detalle")
    row = summary.view.rows[0]
    assert row.cells == (str(order_id), "Ana Rojas", "2", "20.00")

    assert summary.request_delete(order_id) is True
    assert _stored_total(repos, order_id) == 0
    assert summary.view.rows[0].cells[2] == "0"
