import json

from portal_autofill.cache import JsonStructureCache, cache_key


def test_key_ignores_query_and_case():
    assert cache_key("https://Portal.example/Postulador.aspx?id=7", " Postulación ") == \
        cache_key("https://portal.example/Postulador.aspx?id=9", "postulación")
    assert cache_key("https://portal.example/a", "x") != cache_key("https://portal.example/b", "x")


def test_store_and_reload(tmp_path):
    cache_file = tmp_path / "structure.json"
    cache = JsonStructureCache(cache_file)
    assert cache.lookup("https://portal.example/Postulador.aspx", "Postulación") is None

    cache.store("https://portal.example/Postulador.aspx", "Postulación",
                {"step_count": 3, "step_titles": ["A", "B", "C"]}, {"next_controls": ["siguiente"]})

    reloaded = JsonStructureCache(cache_file).lookup("https://portal.example/Postulador.aspx?x=1", "Postulación")
    assert reloaded.structure["step_count"] == 3
    assert reloaded.strategies == {"next_controls": ["siguiente"]}
    assert "entries" in json.loads(cache_file.read_text(encoding="utf-8"))


def test_corrupted_file_starts_empty(tmp_path):
    cache_file = tmp_path / "structure.json"
    cache_file.write_text("{not json", encoding="utf-8")
    assert JsonStructureCache(cache_file).entries == {}


def test_malformed_entry_is_ignored(tmp_path):
    cache_file = tmp_path / "structure.json"
    key = cache_key("https://portal.example/p", "t")
    cache_file.write_text(json.dumps({"entries": {key: {"unexpected": True}}}), encoding="utf-8")
    assert JsonStructureCache(cache_file).lookup("https://portal.example/p", "t") is None
