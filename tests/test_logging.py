"""Tests for logging bootstrap behavior."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
import unittest

import structlog

from keybus.logging_utils import configure_logging


class ConfigureLoggingTests(unittest.TestCase):
    """Validate configure_logging() handler setup behavior."""

    def setUp(self) -> None:
        # Preserve root logger state so tests do not pollute each other.
        root = logging.getLogger()
        self._original_level = root.level
        self._original_handlers = list(root.handlers)

    def tearDown(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers:
            if handler not in self._original_handlers:
                handler.close()
        root.setLevel(self._original_level)
        root.handlers.clear()
        root.handlers.extend(self._original_handlers)

    def _stream_handlers(self) -> list[logging.Handler]:
        return [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]

    def test_configure_logging_adds_stderr_handler(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False, "log_to_file": False})
        self.assertEqual(len(self._stream_handlers()), 1)

    def test_structured_logging_uses_structlog_formatter(self) -> None:
        configure_logging({"level": "DEBUG", "structured": True, "log_to_file": False})
        formatters = [h.formatter for h in logging.getLogger().handlers]
        self.assertTrue(
            any(isinstance(f, structlog.stdlib.ProcessorFormatter) for f in formatters)
        )

    def test_stderr_handler_keeps_warning_floor(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False, "log_to_file": False})
        self.assertEqual(self._stream_handlers()[0].level, logging.WARNING)
        self.assertEqual(logging.getLogger().level, logging.DEBUG)

    def test_stderr_handler_follows_stricter_level(self) -> None:
        configure_logging({"level": "ERROR", "structured": False, "log_to_file": False})
        self.assertEqual(self._stream_handlers()[0].level, logging.ERROR)

    def test_plain_formatter_when_not_structured(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False, "log_to_file": False})
        formatters = [h.formatter for h in logging.getLogger().handlers]
        self.assertFalse(
            any(isinstance(f, structlog.stdlib.ProcessorFormatter) for f in formatters)
        )

    def test_configure_logging_sets_root_level(self) -> None:
        configure_logging({"level": "warning", "structured": False})
        self.assertEqual(logging.getLogger().level, logging.WARNING)

    def test_unknown_level_falls_back_to_info(self) -> None:
        configure_logging({"level": "LOUD", "structured": False})
        self.assertEqual(logging.getLogger().level, logging.INFO)

    def test_file_handler_created(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "logs" / "keybus.log"
            configure_logging(
                {
                    "level": "DEBUG",
                    "structured": False,
                    "log_to_file": True,
                    "log_file_path": str(log_path),
                }
            )
            file_handlers = [
                h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
            ]
            self.assertEqual(len(file_handlers), 1)
            self.assertTrue(log_path.exists())
            for handler in file_handlers:
                handler.close()

    def test_stderr_handler_filters_to_keybus(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False, "log_to_file": False})
        handler = self._stream_handlers()[0]

        def record(name: str) -> logging.LogRecord:
            return logging.LogRecord(
                name=name,
                level=logging.INFO,
                pathname="",
                lineno=0,
                msg="ok",
                args=(),
                exc_info=None,
            )

        self.assertTrue(handler.filter(record("keybus.bus")))
        self.assertFalse(handler.filter(record("textual")))


if __name__ == "__main__":
    unittest.main()
