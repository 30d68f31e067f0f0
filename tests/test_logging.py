"""Tests for structured logging behavior."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import stat
import tempfile
import unittest

import structlog

from apex_chat.logging_utils import NOISY_LOGGERS, build_formatter, configure_logging


class FormatterTests(unittest.TestCase):
    """Validate JSON rendering of stdlib records carrying extra fields."""

    def test_structured_formatter_includes_extra_fields(self) -> None:
        formatter = build_formatter(structured=True)
        record = logging.LogRecord(
            name="apex_chat.orchestrator",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="turn.start",
            args=(),
            exc_info=None,
        )
        record.event = "turn.start"
        record.conversation_id = "c1"
        record.mode = "video"

        data = json.loads(formatter.format(record))
        self.assertEqual(data["event"], "turn.start")
        self.assertEqual(data["conversation_id"], "c1")
        self.assertEqual(data["mode"], "video")
        self.assertEqual(data["level"], "info")
        self.assertEqual(data["logger"], "apex_chat.orchestrator")
        self.assertIn("timestamp", data)

    def test_plain_formatter(self) -> None:
        formatter = build_formatter(structured=False)
        self.assertNotIsInstance(formatter, structlog.stdlib.ProcessorFormatter)


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

    def test_stderr_handler_only_passes_app_warnings(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False, "log_to_file": False})
        root = logging.getLogger()
        self.assertEqual(root.level, logging.DEBUG)
        self.assertEqual(len(root.handlers), 1)
        handler = root.handlers[0]
        self.assertEqual(handler.level, logging.WARNING)
        app_record = logging.LogRecord("apex_chat.store", logging.ERROR, "", 1, "x", (), None)
        lib_record = logging.LogRecord("httpx", logging.ERROR, "", 1, "x", (), None)
        self.assertTrue(handler.filter(app_record))
        self.assertFalse(handler.filter(lib_record))

    def test_structured_uses_processor_formatter(self) -> None:
        configure_logging({"level": "INFO", "structured": True, "log_to_file": False})
        formatters = [h.formatter for h in logging.getLogger().handlers]
        self.assertTrue(
            any(isinstance(f, structlog.stdlib.ProcessorFormatter) for f in formatters)
        )

    def test_log_file_is_private(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "logs" / "app.log"
            configure_logging(
                {
                    "level": "INFO",
                    "structured": True,
                    "log_to_file": True,
                    "log_file_path": str(log_path),
                }
            )
            logging.getLogger("apex_chat.test").info(
                "file.event", extra={"event": "file.event"}
            )
            for handler in logging.getLogger().handlers:
                handler.flush()
            self.assertTrue(log_path.exists())
            if os.name == "posix":
                self.assertEqual(stat.S_IMODE(log_path.stat().st_mode), 0o600)
            self.assertIn("file.event", log_path.read_text(encoding="utf-8"))
            for handler in list(logging.getLogger().handlers):
                if isinstance(handler, logging.FileHandler):
                    handler.close()
                    logging.getLogger().removeHandler(handler)

    def test_noisy_loggers_are_quieted(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False, "log_to_file": False})
        for name in NOISY_LOGGERS:
            self.assertEqual(logging.getLogger(name).level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
