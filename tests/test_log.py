"""Tests for the logging helpers."""

from __future__ import annotations

import logging

from datasheet import log


class TestLogger:
    """Tests for logger configuration."""

    def test_logger_name(self):
        """Messages go to the "datasheet" logger."""
        assert log.get_logger().name == "datasheet"
        assert log.get_logger() is log.get_logger()

    def test_default_level_hides_info(self, caplog):
        """Only warnings and above are emitted by default."""
        with caplog.at_level(logging.DEBUG):
            log.set_level("WARNING")
            log.info("quiet")
            log.warn("loud")
        assert "quiet" not in caplog.text
        assert "loud" in caplog.text

    def test_set_level_by_name(self):
        """Level names are case-insensitive."""
        log.set_level("debug")
        assert log.get_logger().level == logging.DEBUG

    def test_enable_debug(self, caplog):
        """Debug messages appear after enable_debug()."""
        with caplog.at_level(logging.DEBUG):
            log.enable_debug()
            log.debug("details")
        assert "details" in caplog.text

    def test_apply_log_settings(self):
        """The configured format replaces the handler formatter."""
        log.apply_log_settings("ERROR", "%(levelname)s|%(message)s")
        logger = log.get_logger()
        assert logger.level == logging.ERROR
        for handler in logger.handlers:
            assert handler.formatter._fmt == "%(levelname)s|%(message)s"
        log.apply_log_settings("WARNING", "%(name)s - %(levelname)s - %(message)s")

    def test_exception_logs_traceback(self, caplog):
        """exception() records exc_info."""
        with caplog.at_level(logging.ERROR, logger="datasheet"):
            try:
                raise RuntimeError("bad")
            except RuntimeError:
                log.exception("handled")
        assert caplog.records[-1].exc_info is not None
