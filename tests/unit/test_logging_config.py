"""
Unit tests for logging config.
"""

import logging

from knowledge_rag.utils.logging_config import ROOT_LOGGER_NAME, ColoredFormatter, LogLevel, setup_logging


class TestLogLevel:
    """Test LogLevel enum."""

    def test_log_level_values(self):
        assert LogLevel.MINIMAL == "minimal"
        assert LogLevel.NORMAL == "normal"
        assert LogLevel.DETAILED == "detailed"
        assert LogLevel.FULL == "full"


class TestSetupLogging:
    """Test setup_logging function."""

    def test_setup_logging_normal(self):
        logger = setup_logging(level=LogLevel.NORMAL)
        assert logger.name == ROOT_LOGGER_NAME
        assert logger.level == logging.INFO

    def test_setup_logging_debug_flag_wins(self):
        logger = setup_logging(level=LogLevel.MINIMAL, debug=True)
        assert logger.level == logging.DEBUG

    def test_setup_logging_minimal(self):
        logger = setup_logging(level=LogLevel.MINIMAL)
        assert logger.level == logging.WARNING

    def test_setup_logging_accepts_string_level(self):
        logger = setup_logging(level="detailed")
        assert logger.level == logging.DEBUG

    def test_setup_logging_to_file(self, tmp_path):
        log_file = tmp_path / "logs" / "rag.log"
        logger = setup_logging(level=LogLevel.NORMAL, log_to_file=True, log_file=str(log_file))
        assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)

        logging.getLogger(f"{ROOT_LOGGER_NAME}.rag.indexer").info("indexed %d chunks", 3)
        for handler in logger.handlers:
            handler.flush()
        assert "indexed 3 chunks" in log_file.read_text()

        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logging(level=LogLevel.NORMAL)
        logger = setup_logging(level=LogLevel.NORMAL)
        assert len(logger.handlers) == 1


class TestColoredFormatter:
    def test_levelname_restored_after_format(self):
        formatter = ColoredFormatter("%(levelname)s | %(message)s")
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "careful", None, None)
        output = formatter.format(record)
        assert "careful" in output
        assert "WARNING" in output
        assert record.levelname == "WARNING"
