import json
import logging
from pathlib import Path

from config import LoggerSettings
from logging_config import LOGGER_NAME, configure_logging


def test_json_lines_to_file(tmp_path: Path) -> None:
    log_file = tmp_path / "app.log"
    log = configure_logging(
        LoggerSettings(level="info", format="json", output=str(log_file))
    )
    log.debug("hidden")
    logging.getLogger(f"{LOGGER_NAME}.importer").info("import_completed: imported=3")
    for handler in log.handlers:
        handler.flush()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["level"] == "INFO"
    assert record["logger"] == f"{LOGGER_NAME}.importer"
    assert record["msg"] == "import_completed: imported=3"


def test_reconfigure_replaces_handlers() -> None:
    configure_logging(LoggerSettings(output="stderr"))
    log = configure_logging(LoggerSettings(level="error", output="discard"))
    assert len(log.handlers) == 1
    assert isinstance(log.handlers[0], logging.NullHandler)
    assert log.level == logging.ERROR
    assert log.propagate is False
