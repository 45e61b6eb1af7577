import json

from portal_autofill.models import FieldDescriptor, FieldKind
from portal_autofill.values import KeywordValueResolver, normalize_text


def _descriptor(label, kind=FieldKind.TEXT, **kwargs):
    return FieldDescriptor(kind=kind, label=label, required=False, identity=label, **kwargs)


def test_normalize_text():
    assert normalize_text("  Teléfono ÑANDÚ ") == "telefono nandu"
    assert normalize_text(None) == ""


def test_first_keyword_in_table_order_wins(resolver):
    # "nombre" comes before "titulo" in the table
    assert resolver.resolve(_descriptor("Título y nombre")) == "Ana Pérez"


def test_context_includes_name_and_metadata(resolver):
    assert resolver.resolve(_descriptor("Campo 1", name="txt_telefono")) == "+56 9 1234 5678"
    assert resolver.resolve(_descriptor("Campo 2", metadata={"data-codigo": "monto_total"})) == "1.500.000"


def test_kind_default_and_no_match(resolver):
    assert resolver.resolve(_descriptor("Describa su proyecto", kind=FieldKind.TEXTAREA)) == "Descripción de prueba"
    assert resolver.resolve(_descriptor("Describa su proyecto")) is None


def test_from_json_sectioned_and_flat(tmp_path):
    sectioned = tmp_path / "values.json"
    sectioned.write_text(json.dumps({"keywords": {"Región": "Metropolitana"}, "defaults": {"text": "N/A"}}),
                         encoding="utf-8")
    resolver = KeywordValueResolver.from_json(sectioned)
    assert resolver.resolve(_descriptor("Región de origen")) == "Metropolitana"
    assert resolver.resolve(_descriptor("Otro")) == "N/A"

    flat = tmp_path / "flat.json"
    flat.write_text(json.dumps({"rut": "11.111.111-1"}), encoding="utf-8")
    assert KeywordValueResolver.from_json(flat).resolve(_descriptor("RUT")) == "11.111.111-1"
