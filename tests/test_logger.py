"""
Tests for logging helpers.
"""

import logging

from persona_voice.logger import LevelColorFormatter, get_scoped_logger, setup_logging


class TestScopedLogger:
    def test_prefixes_scope(self, caplog):
        log = get_scoped_logger("persona_voice.test", "voice-rafa-1")
        with caplog.at_level(logging.INFO, logger="persona_voice.test"):
            log.info("Received transcript")
        assert caplog.records[-1].getMessage() == "[voice-rafa-1] Received transcript"


class TestSetupLogging:
    def test_file_handler(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            log_file = tmp_path / "logs" / "agent.log"
            setup_logging(level="debug", log_file=str(log_file), use_colors=False)

            logging.getLogger("persona_voice.test").debug("hello file")
            for handler in root.handlers:
                handler.flush()

            assert root.level == logging.DEBUG
            assert "hello file" in log_file.read_text(encoding="utf-8")
            assert logging.getLogger("azure").level == logging.WARNING
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

    def test_unknown_level_falls_back_to_info(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            setup_logging(level="chatty", use_colors=False)
            assert root.level == logging.INFO
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

    def test_color_formatter_leaves_record_untouched(self):
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)
        LevelColorFormatter("%(levelname)s %(message)s").format(record)
        assert record.levelname == "ERROR"
