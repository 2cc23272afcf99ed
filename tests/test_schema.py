import pytest

from src.tienda_admin.errors import ConfigurationError
from src.tienda_admin.models import Usuario
from src.tienda_admin.schema import (
    ENTITY_ORDER, SCHEMAS, Column, EntitySchema, FieldKind, FormField,
    check_schema, get_schema, resolve_path,
)


def test_all_sections_registered():
    assert set(ENTITY_ORDER) == set(SCHEMAS)
    assert len(ENTITY_ORDER) == 10


@pytest.mark.parametrize("name", list(ENTITY_ORDER))
def test_id_field_never_editable(name):
    schema = get_schema(name)
    for f in schema.form_fields:
        if f.name == schema.id_field:
            assert f.kind is FieldKind.HIDDEN or f.disabled


def test_check_schema_rejects_editable_id():
    bad = EntitySchema(
        name="malo",
        title="Malo",
        model=Usuario,
        id_field="id",
        columns=(Column("ID", "id"),),
        form_fields=(FormField("id", "ID", FieldKind.NUMBER),),
    )
    with pytest.raises(ConfigurationError):
        check_schema(bad)


def test_unknown_entity_raises_configuration_error():
    with pytest.raises(ConfigurationError) as exc:
        get_schema("proveedor")
    assert str(exc.value) == "Configuración o Servicio no encontrado para la tabla: proveedor"


def test_resolve_path_handles_missing_levels():
    record = {"municipio": {"nombre": "El Alto", "departamento": None}}
    assert resolve_path(record, "municipio.nombre") == "El Alto"
    assert resolve_path(record, "municipio.departamento.nombre") is None
    assert resolve_path(record, "zona.nombre") is None


def test_zona_form_has_virtual_cascade():
    schema = get_schema("zona")
    dep = schema.field("id_departamento")
    mun = schema.field("id_municipio")
    loc = schema.field("id_localidad")
    assert dep.virtual and mun.virtual and not loc.virtual
    assert mun.depends_on == "id_departamento"
    assert loc.depends_on == "id_municipio"
    assert [f.name for f in schema.dependents_of("id_municipio")] == ["id_localidad"]


def test_usuario_derives_full_name():
    schema = get_schema("usuario")
    record = schema.derive({
        "primer_nombre": "Juan", "segundo_nombre": None,
        "apellido_paterno": "Pérez", "apellido_materno": "Mamani",
    })
    assert record["nombre_completo"] == "Juan Pérez Mamani"


def test_orden_shows_client_and_full_address():
    record = get_schema("orden").derive({
        "usuario": {"primer_nombre": "Ana", "apellido_paterno": "Rojas"},
        "direccion": {
            "calle_avenida": "Av. 6 de Agosto",
            "numero_casa_edificio": "2150",
            "zona": {
                "nombre": "Sopocachi",
                "localidad": {
                    "nombre": "Centro",
                    "municipio": {"nombre": "Nuestra Señora de La Paz", "departamento": {"nombre": "La Paz"}},
                },
            },
        },
    })
    assert record["usuario"]["nombre_completo"] == "Ana Rojas"
    assert record["direccion_completa"] == (
        "Av. 6 de Agosto 2150, Sopocachi, Centro, Nuestra Señora de La Paz, La Paz"
    )


def test_order_lines_section_cannot_create():
    assert get_schema("orden_detalle").allow_create is False
    assert get_schema("orden_detalle").headers == ["N° Orden", "Cliente", "Unidades", "Total"]
