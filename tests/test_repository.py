import pytest

from src.tienda_admin.errors import DuplicateKeyError, RecordNotFoundError, UploadError
from src.tienda_admin.models import Departamento, OrdenDetalle, Producto, Usuario
from src.tienda_admin.repository import DEPARTAMENTOS_BOLIVIA, FormPayload, init_db, verify_password
from src.tienda_admin.storage import UploadedFile


def test_init_db_seeds_departments_once(engine, session_factory):
    init_db(engine, seed=True)
    with session_factory() as session:
        names = sorted(n for (n,) in session.query(Departamento.nombre))
    assert names == sorted(DEPARTAMENTOS_BOLIVIA)
    assert len(names) == 9


def test_fetch_visible_includes_parent_records(repos, make_product):
    make_product(nombre="Taza", categoria="Cocina")
    hidden = make_product(nombre="Oculto")
    repos["producto"].set_visibility(hidden, False)

    rows = repos["producto"].fetch_visible(("categoria",))
    assert [r["nombre"] for r in rows] == ["Taza"]
    assert rows[0]["categoria"]["nombre"] == "Cocina"


def test_set_visibility_is_idempotent(repos, make_product, session_factory):
    pid = make_product()
    assert repos["producto"].set_visibility(pid, False) is False
    assert repos["producto"].set_visibility(pid, False) is False
    with session_factory() as session:
        assert session.get(Producto, pid).visible is False
    assert repos["producto"].set_visibility(pid, True) is True


def test_toggle_visibility_flips(repos):
    cid = repos["categoria"].create({"nombre": "Juguetes"})
    assert repos["categoria"].toggle_visibility(cid) is False
    assert repos["categoria"].toggle_visibility(cid) is True


def test_get_by_id_missing_record(repos):
    with pytest.raises(RecordNotFoundError) as exc:
        repos["producto"].get_by_id(999)
    assert str(exc.value) == "Registro producto ID 999 no encontrado."


def test_duplicate_municipio_message(repos):
    la_paz = repos["departamento"].list_options()[3].value
    repos["municipio"].create({"nombre": "El Alto", "id_departamento": la_paz})
    with pytest.raises(DuplicateKeyError) as exc:
        repos["municipio"].create({"nombre": "El Alto", "id_departamento": la_paz})
    assert str(exc.value) == (
        'Ya existe un municipio con el nombre "El Alto" en el departamento seleccionado.'
    )


def test_duplicate_user_message_names_values(repos, make_user):
    make_user(ci="4445556")
    with pytest.raises(DuplicateKeyError) as exc:
        repos["usuario"].create({
            "ci": "4445556", "primer_nombre": "Otra", "apellido_paterno": "Persona",
            "apellido_materno": "Lima", "celular": "71112222",
            "correo_electronico": "otra@tienda.test", "contrasena": "Segura1!", "rol": "cliente",
        })
    assert str(exc.value) == 'Ya existe un usuario con el C.I. "4445556" o el correo "otra@tienda.test".'


def test_same_municipio_name_in_other_department(repos):
    deps = repos["departamento"].list_options()
    repos["municipio"].create({"nombre": "San Pedro", "id_departamento": deps[0].value})
    repos["municipio"].create({"nombre": "San Pedro", "id_departamento": deps[1].value})
    assert len(repos["municipio"].fetch_visible()) == 2


def test_list_options_filtered_by_parent(repos):
    deps = {o.label: o.value for o in repos["departamento"].list_options()}
    repos["municipio"].create({"nombre": "Sucre", "id_departamento": deps["Chuquisaca"]})
    repos["municipio"].create({"nombre": "Viacha", "id_departamento": deps["La Paz"]})
    options = repos["municipio"].list_options(deps["La Paz"])
    assert [o.label for o in options] == ["Viacha"]


def test_user_password_is_hashed_and_kept_on_blank_edit(repos, session_factory):
    uid = repos["usuario"].create({
        "ci": "7654321", "primer_nombre": "Luis", "apellido_paterno": "Vargas", "apellido_materno": "Flores",
        "celular": "60123456",
        "correo_electronico": "luis@tienda.test", "contrasena": "Segura1!", "rol": "cliente",
    })
    with session_factory() as session:
        stored = session.get(Usuario, uid).contrasena
    assert stored != "Segura1!"
    assert verify_password("Segura1!", stored)

    repos["usuario"].update(uid, {"primer_nombre": "Luis Alberto", "contrasena": None})
    with session_factory() as session:
        user = session.get(Usuario, uid)
        assert user.primer_nombre == "Luis Alberto"
        assert user.contrasena == stored


def test_user_lookups(repos, make_user):
    uid = make_user(ci="1112223", correo="Admin@Tienda.test")
    assert repos["usuario"].get_id_by_ci("1112223") == uid
    assert repos["usuario"].get_ci_by_id(uid) == "1112223"
    assert repos["usuario"].get_id_by_email("admin@tienda.test") == uid
    assert repos["usuario"].get_id_by_email("nadie@tienda.test") is None


def test_product_upload_sets_url(repos, storage):
    payload = FormPayload(
        {"nombre": "Gorra", "precio": 25.0, "stock": 3, "imagen_url": None},
        {"file_upload": UploadedFile("gorra.PNG", b"\x89PNG data")},
    )
    pid = repos["producto"].create(payload)
    url = repos["producto"].get_by_id(pid)["imagen_url"]
    assert url.startswith("https://cdn.tienda.test/productos/")
    assert url.endswith(".png")
    assert len(list(storage.root.iterdir())) == 1


def test_product_edit_without_file_keeps_image(repos, make_product):
    pid = make_product(imagen_url="https://cdn.tienda.test/productos/a.png")
    repos["producto"].update(pid, {"nombre": "Nuevo nombre", "imagen_url": None})
    record = repos["producto"].get_by_id(pid)
    assert record["nombre"] == "Nuevo nombre"
    assert record["imagen_url"] == "https://cdn.tienda.test/productos/a.png"


def test_upload_too_large_is_rejected(repos, make_product):
    pid = make_product()
    big = UploadedFile("foto.jpg", b"x" * (2 * 1024 * 1024 + 1))
    with pytest.raises(UploadError):
        repos["producto"].update(pid, FormPayload({"nombre": "X"}, {"file_upload": big}))
    assert repos["producto"].get_by_id(pid)["nombre"] == "Producto"


def test_order_total_is_not_taken_from_payload(repos, make_order):
    oid = make_order(total=10.0)
    repos["orden"].update(oid, {"estado": "ENTREGADO", "total": 999})
    record = repos["orden"].get_by_id(oid)
    assert record["estado"] == "ENTREGADO"
    assert record["total"] == 10.0
    assert repos["orden"].update_total(oid, 12.346) == 12.35


def test_hide_lines_and_summaries(repos, make_order, make_product, session_factory):
    oid = make_order()
    pid = make_product(precio=5.0)
    lines = repos["orden_detalle"]
    a = lines.create({"id_orden": oid, "id_producto": pid, "cantidad": 2, "precio_unitario": 5.0})
    b = lines.create({"id_orden": oid, "id_producto": pid, "cantidad": 3, "precio_unitario": 5.0})

    summary = {r["id"]: r for r in lines.fetch_order_summaries()}
    assert summary[oid]["unidades"] == 5
    assert summary[oid]["cliente"] == "Ana Rojas"

    assert lines.hide_lines([a, b]) == 2
    assert lines.hide_lines([a, b]) == 0
    assert lines.fetch_by_order(oid) == []
    with session_factory() as session:
        assert session.query(OrdenDetalle).count() == 2
    assert {r["id"]: r for r in lines.fetch_order_summaries()}[oid]["unidades"] == 0
