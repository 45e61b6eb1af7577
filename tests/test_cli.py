import json
import logging

import pytest

from portal_autofill import cli


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


def test_parser_defaults():
    args = cli.build_parser().parse_args(["https://portal.example/Postulador.aspx", "--values", "values.json"])
    assert args.url == "https://portal.example/Postulador.aspx"
    assert args.report == "run_report.json"
    assert not args.headless
    assert args.cache is None


def test_values_are_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["https://portal.example/Postulador.aspx"])


def test_browser_failure_exit_code(tmp_path, monkeypatch, restore_logging):
    values = tmp_path / "values.json"
    values.write_text(json.dumps({"nombre": "Ana"}), encoding="utf-8")
    monkeypatch.setattr(cli, "setup_browser", lambda *args: (None, None, None, None))

    code = cli.main(["https://portal.example/Postulador.aspx", "--values", str(values),
                     "--log-file", str(tmp_path / "run.log")])
    assert code == 2
