from src.tienda_admin.errors import FetchError
from src.tienda_admin.permissions import SELF_DISABLE_MESSAGE, AdminSession
from src.tienda_admin.schema import get_schema
from src.tienda_admin.table_controller import TableController, page_window


class SpyRepository:
    """Repositorio en memoria que registra las escrituras."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.writes = []

    def fetch_visible(self, select_spec=None):
        if self.error:
            raise self.error
        return [dict(r) for r in self.rows]

    def set_visibility(self, record_id, target):
        self.writes.append(("set_visibility", record_id, target))
        return target

    def toggle_visibility(self, record_id):
        self.writes.append(("toggle", record_id))
        return False


def _controller(name, repo, **kwargs):
    views = []
    c = TableController(get_schema(name), repo, **kwargs)
    c.subscribe(views.append)
    c.activate()
    return c, views


def test_pagination_of_23_products(repos, make_product):
    for i in range(23):
        make_product(nombre=f"Producto {i:02d}")
    c, views = _controller("producto", repos["producto"], page_size=10)

    view = views[-1]
    assert len(view.rows) == 10
    assert view.total_pages == 3
    assert view.summary == "Total: 23 registros visibles (10 en esta página)"
    assert view.page_label == "Página 1 de 3"
    assert not view.can_prev and view.can_next

    assert c.go_to_page(3) is True
    assert len(views[-1].rows) == 3
    assert not views[-1].can_next

    emitted = len(views)
    assert c.go_to_page(4) is False
    assert c.go_to_page(0) is False
    assert len(views) == emitted
    assert c.page == 3


def test_stale_page_returns_to_first_when_rows_shrink():
    rows = [{"id": i, "nombre": f"Producto {i:02d}", "descripcion": "", "visible": True} for i in range(1, 26)]
    c, _views = _controller("producto", SpyRepository(rows), page_size=10)
    assert c.go_to_page(3) is True

    c.all_rows = c.all_rows[:5]
    view = c.render_page()
    assert view.page == 1
    assert view.total_pages == 1
    assert [r.id for r in view.rows] == [1, 2, 3, 4, 5]
    assert c.page == 1


def test_page_window():
    assert page_window(1, 3) == (1, 2, 3)
    assert page_window(1, 10) == (1, 2, 3, 4, 5)
    assert page_window(7, 10) == (5, 6, 7, 8, 9)
    assert page_window(10, 10) == (6, 7, 8, 9, 10)
    assert page_window(1, 0) == ()


def test_description_is_truncated(repos, make_product):
    make_product(nombre="Mochila", descripcion="x" * 80)
    _c, views = _controller("producto", repos["producto"])
    cell = views[-1].rows[0].cells[2]
    assert cell == "x" * 50 + "..."


def test_search_narrows_monotonically():
    rows = [{"id": i, "nombre": n, "descripcion": "", "visible": True}
            for i, n in enumerate(["Taza", "Tazón", "Tapa", "Mesa"], start=1)]
    c, _views = _controller("producto", SpyRepository(rows))

    c.set_search_term("ta")
    broad = {r.id for r in c.view.rows}
    c.set_search_term("taz")
    narrow = {r.id for r in c.view.rows}
    assert narrow <= broad
    assert narrow == {1, 2}


def test_search_is_debounced(scheduler):
    rows = [{"id": 1, "nombre": "Taza", "visible": True}, {"id": 2, "nombre": "Mesa", "visible": True}]
    c, views = _controller("producto", SpyRepository(rows), scheduler=scheduler, debounce_ms=300)
    emitted = len(views)

    c.set_search_term("m")
    c.set_search_term("me")
    c.set_search_term("mes")
    assert len(views) == emitted
    assert scheduler.pending == 1

    scheduler.run_pending()
    assert len(views) == emitted + 1
    assert [r.id for r in views[-1].rows] == [2]


def test_clearing_search_is_immediate(scheduler):
    rows = [{"id": 1, "nombre": "Taza", "visible": True}]
    c, views = _controller("producto", SpyRepository(rows), scheduler=scheduler)
    c.set_search_term("zz")
    c.set_search_term("")
    assert scheduler.pending == 0
    assert len(views[-1].rows) == 1


def test_municipality_search_by_department(repos):
    deps = {o.label: o.value for o in repos["departamento"].list_options()}
    repos["municipio"].create({"nombre": "Viacha", "id_departamento": deps["La Paz"]})
    repos["municipio"].create({"nombre": "Caracollo", "id_departamento": deps["Oruro"]})
    c, _views = _controller("municipio", repos["municipio"])

    c.set_search_term("la paz")
    assert [r.cells[1] for r in c.view.rows] == ["Viacha"]
    assert c.view.rows[0].cells[2] == "La Paz"


def test_empty_messages():
    c, _views = _controller("producto", SpyRepository([]))
    assert c.view.message == "No hay productos registrados."
    assert not c.view.is_error

    c2, _ = _controller("producto", SpyRepository([{"id": 1, "nombre": "Taza", "visible": True}]))
    c2.set_search_term("zzz")
    assert c2.view.message == 'No se encontraron registros que coincidan con "zzz".'


def test_fetch_error_is_shown_in_table():
    c, _views = _controller("producto", SpyRepository(error=FetchError("sin conexión")))
    assert c.view.is_error
    assert c.view.message == "Error al cargar la tabla Productos: sin conexión"
    assert c.view.rows == ()


def test_missing_repository_message():
    c, _views = _controller("zona", None)
    assert c.view.message == "Configuración o Servicio no encontrado para la tabla: zona"


def test_secondary_filter_resets_search():
    rows = [
        {"id": 1, "nombre_completo": "Ana Rojas", "ci": "1", "rol": "cliente", "visible": True},
        {"id": 2, "nombre_completo": "Beto Cruz", "ci": "2", "rol": "administrador", "visible": True},
        {"id": 3, "nombre_completo": "Ana Vela", "ci": "3", "rol": "administrador", "visible": True},
    ]
    c, _views = _controller("usuario", SpyRepository(rows))
    c.set_search_term("ana")
    assert c.view.total_records == 2

    c.set_secondary_filter("administrador")
    assert c.search_term == ""
    assert {r.id for r in c.view.rows} == {2, 3}

    c.set_secondary_filter("todos")
    assert c.view.total_records == 3


def test_stale_response_is_discarded():
    c = TableController(get_schema("producto"), SpyRepository())
    old = c.begin_load()
    new = c.begin_load()
    assert c.finish_load(old, [{"id": 1, "nombre": "Viejo", "visible": True}]) is False
    assert c.finish_load(new, [{"id": 2, "nombre": "Nuevo", "visible": True}]) is True
    assert [r.id for r in c.render_page().rows] == [2]


def test_deactivate_drops_inflight_load_and_listeners():
    c, views = _controller("producto", SpyRepository([{"id": 1, "nombre": "Taza", "visible": True}]))
    token = c.begin_load()
    c.deactivate()
    emitted = len(views)
    assert c.finish_load(token, []) is False
    c.go_to_page(1)
    assert len(views) == emitted


def test_delete_hides_after_confirmation(repos, make_product):
    pid = make_product(nombre="Taza")
    notes = []
    c, _views = _controller(
        "producto", repos["producto"],
        confirm=lambda title, msg: True,
        notify=lambda level, msg: notes.append((level, msg)),
    )
    assert c.request_delete(pid) is True
    assert notes == [("info", "Registro eliminado correctamente.")]
    assert c.view.message == "No hay productos registrados."


def test_delete_cancelled_does_not_write():
    repo = SpyRepository([{"id": 1, "nombre": "Taza", "visible": True}])
    c, _views = _controller("producto", repo, confirm=lambda title, msg: False)
    assert c.request_delete(1) is False
    assert repo.writes == []


def test_delete_without_confirm_callback_is_refused():
    repo = SpyRepository([{"id": 1, "nombre": "Taza", "visible": True}])
    c, _views = _controller("producto", repo)
    assert c.request_delete(1) is False
    assert repo.writes == []


def test_delete_already_hidden_is_noop():
    asked = []
    repo = SpyRepository([{"id": 1, "nombre": "Taza", "visible": False}])
    c, _views = _controller("producto", repo, confirm=lambda t, m: asked.append(m) or True)
    assert c.request_delete(1) is False
    assert asked == []
    assert repo.writes == []


def test_toggle_entities_use_toggle():
    repo = SpyRepository([{"id": 4, "nombre": "Hogar", "visible": True}])
    c, _views = _controller("categoria", repo, confirm=lambda title, msg: True)
    assert c.request_delete(4) is True
    assert repo.writes == [("toggle", 4)]


def test_cannot_disable_own_account():
    notes = []
    repo = SpyRepository([{"id": 7, "nombre_completo": "Admin", "ci": "1", "rol": "administrador", "visible": True}])
    c, _views = _controller(
        "usuario", repo,
        session=AdminSession(user_id=7, email="admin@tienda.test"),
        notify=lambda level, msg: notes.append((level, msg)),
    )
    assert c.request_delete(7) is False
    assert notes == [("warning", SELF_DISABLE_MESSAGE)]
    assert repo.writes == []


def test_edit_request_is_forwarded():
    edits = []
    c, _views = _controller("producto", SpyRepository(), on_edit=lambda name, rid: edits.append((name, rid)))
    c.request_edit(5)
    assert edits == [("producto", 5)]
