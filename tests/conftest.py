import pytest

from portal_autofill.config import default_config
from portal_autofill.values import KeywordValueResolver


@pytest.fixture
def config(tmp_path):
    cfg = default_config()
    for key in cfg:
        if key.endswith("_ms"):
            cfg[key] = 0
    cfg["sample_files_dir"] = str(tmp_path / "archivos_prueba")
    return cfg


@pytest.fixture
def resolver():
    return KeywordValueResolver(
        {
            "correo": "ana.perez@example.com",
            "rut": "76.123.456-7",
            "nombre": "Ana Pérez",
            "telefono": "+56 9 1234 5678",
            "monto": "1.500.000",
            "titulo": "Proyecto de innovación",
            "acepto": "true",
        },
        kind_defaults={"textarea": "Descripción de prueba"},
    )
