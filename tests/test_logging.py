"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from pathlib import Path

from civicwatch.logging import setup_logging


def _records(log_path: Path) -> list[dict]:
    return [json.loads(line) for line in log_path.read_text().splitlines()]


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("op_call", extra={"op": "list_issues", "backend": "local", "args_data": {"solved": None}})
        for handler in logger.handlers:
            handler.flush()
        (record,) = _records(tmp_path / "civicwatch.log")
        assert record["msg"] == "op_call"
        assert record["level"] == "INFO"
        assert record["logger"] == "civicwatch"
        assert record["op"] == "list_issues"
        assert record["backend"] == "local"
        assert record["args"] == {"solved": None}

    def test_optional_fields_omitted(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.warning("plain")
        for handler in logger.handlers:
            handler.flush()
        (record,) = _records(tmp_path / "civicwatch.log")
        assert set(record) == {"ts", "level", "logger", "msg"}

    def test_child_loggers_propagate(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logging.getLogger("civicwatch.provider").info("op_call", extra={"duration_ms": 1.5})
        for handler in logger.handlers:
            handler.flush()
        (record,) = _records(tmp_path / "civicwatch.log")
        assert record["logger"] == "civicwatch.provider"
        assert record["duration_ms"] == 1.5

    def test_exception_text_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise RuntimeError("disk on fire")
        except RuntimeError:
            logger.exception("op_error")
        for handler in logger.handlers:
            handler.flush()
        (record,) = _records(tmp_path / "civicwatch.log")
        assert record["exception"] == "disk on fire"

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "one"
        second = tmp_path / "two"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == str((second / "civicwatch.log").absolute())

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        results: list[logging.Logger] = []
        barrier = threading.Barrier(4)

        def call_setup() -> None:
            barrier.wait()
            results.append(setup_logging(tmp_path))

        threads = [threading.Thread(target=call_setup) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4
        assert all(r is results[0] for r in results)
        file_handlers = [
            h for h in logging.getLogger("civicwatch").handlers if isinstance(h, logging.handlers.RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
