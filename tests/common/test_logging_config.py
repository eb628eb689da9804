import json
import logging

from common.logging_config import JSONFormatter, SymbolFormatter, setup_logging


def _record(level=logging.INFO, msg="hello", **extra):
    record = logging.LogRecord(
        "stackstrap.test", level, __file__, 10, msg, (), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_symbol_formatter_adds_level_symbol():
    formatter = SymbolFormatter(
        fmt="%(symbol)s %(message)s", symbols={"warning": "!", "info": "i"}
    )

    assert formatter.format(_record(logging.WARNING)) == "! hello"
    assert formatter.format(_record(logging.INFO)) == "i hello"


def test_json_formatter_structure():
    formatter = JSONFormatter("stackstrap-test")

    entry = json.loads(formatter.format(_record(step="install-runtime")))

    assert entry["level"] == "INFO"
    assert entry["service"] == "stackstrap-test"
    assert entry["logger"] == "stackstrap.test"
    assert entry["message"] == "hello"
    assert entry["extra"] == {"step": "install-runtime"}
    assert entry["timestamp"].endswith("+00:00")


def test_json_formatter_without_extra():
    entry = json.loads(JSONFormatter().format(_record()))

    assert "extra" not in entry


def test_setup_logging_replaces_root_handlers(tmp_path, monkeypatch):
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    log_file = tmp_path / "logs" / "run.log"
    try:
        setup_logging("DEBUG", log_file=str(log_file), log_prefix="[T]")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        file_handlers = [
            h for h in root.handlers if isinstance(h, logging.FileHandler)
        ]
        assert isinstance(file_handlers[0].formatter, JSONFormatter)
        console = [h for h in root.handlers if h not in file_handlers][0]
        assert isinstance(console.formatter, SymbolFormatter)
        assert console.formatter._fmt.startswith("[T] ")
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_setup_logging_unknown_level_defaults_to_info():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging("NOT_A_LEVEL", log_to_console=False)
        assert root.level == logging.INFO
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
