import json
import logging

from portal_autofill.config import default_config, load_config, setup_logging


def test_defaults_without_file():
    config = load_config(None)
    assert config == default_config()
    assert config["max_discovery_passes"] == 3
    assert config["hard_step_ceiling"] == 20


def test_overrides_merge_and_unknown_keys_are_ignored(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"field_delay_ms": 50, "bogus": 1}), encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        config = load_config(path)
    assert config["field_delay_ms"] == 50
    assert "bogus" not in config
    assert config["select_settle_ms"] == default_config()["select_settle_ms"]
    assert "bogus" in caplog.text


def test_bad_files_fall_back_to_defaults(tmp_path):
    missing = tmp_path / "missing.json"
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]", encoding="utf-8")
    for path in (missing, broken, listing):
        assert load_config(path) == default_config()


def test_setup_logging_writes_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    log_file = tmp_path / "run.log"
    try:
        setup_logging(logging.DEBUG, str(log_file))
        logging.getLogger("portal_autofill.test").debug("hello from the test")
        for handler in root.handlers:
            handler.flush()
        assert "hello from the test" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
