import json
import logging
import sys
from pathlib import Path

from roady.logs import JsonFormatter, setup_logging


def test_setup_logging_writes_json_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "roady.jsonl"
    logger = setup_logging("WARNING", log_file)
    try:
        logging.getLogger("roady.coordinator").info("Task %s started by %s", "a", "alice")
        for handler in logger.handlers:
            handler.flush()
    finally:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)

    entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["level"] == "INFO"
    assert entry["logger"] == "roady.coordinator"
    assert entry["message"] == "Task a started by alice"


def test_json_formatter_includes_exception() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        exc_info = sys.exc_info()
    record = logging.LogRecord("roady.test", logging.ERROR, __file__, 1, "failed", None, exc_info)

    entry = json.loads(JsonFormatter().format(record))

    assert entry["message"] == "failed"
    assert "ValueError: boom" in entry["exception"]
