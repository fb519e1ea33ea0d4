"""Tests for logging configuration."""

import logging
from logging.handlers import RotatingFileHandler

import pytest
import structlog

from pulsewarden.config import Settings, get_settings
from pulsewarden.logging import get_logger, setup_logging


@pytest.fixture
def restore_logging():
    """Undo setup_logging side effects after the test."""
    handlers = list(logging.root.handlers)
    level = logging.root.level
    yield
    for handler in logging.root.handlers:
        if handler not in handlers:
            handler.close()
    logging.root.handlers = handlers
    logging.root.setLevel(level)
    structlog.reset_defaults()
    get_settings.cache_clear()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_only_by_default(self, restore_logging, monkeypatch) -> None:
        monkeypatch.setenv("LOG_TO_FILE", "false")
        get_settings.cache_clear()

        setup_logging()

        assert any(isinstance(h, logging.StreamHandler) for h in logging.root.handlers)
        assert not any(isinstance(h, RotatingFileHandler) for h in logging.root.handlers)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_file_logging(self, restore_logging, monkeypatch, tmp_path) -> None:
        log_dir = tmp_path / "logs"
        monkeypatch.setenv("LOG_TO_FILE", "true")
        monkeypatch.setenv("LOG_DIRECTORY", str(log_dir))
        monkeypatch.setenv("LOG_LEVEL", "debug")
        get_settings.cache_clear()

        setup_logging()

        file_handlers = [h for h in logging.root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == str(log_dir / "pulsewarden.log")
        assert file_handlers[0].level == logging.DEBUG
        assert log_dir.is_dir()

    def test_unwritable_directory_falls_back_to_console(self, restore_logging, tmp_path) -> None:
        """A log directory that cannot be created leaves console logging in place."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        settings = Settings(_env_file=None, log_to_file=True, log_directory=str(blocker))

        setup_logging(settings)

        assert not any(isinstance(h, RotatingFileHandler) for h in logging.root.handlers)
        assert any(isinstance(h, logging.StreamHandler) for h in logging.root.handlers)

    def test_explicit_settings(self, restore_logging) -> None:
        """Settings passed in take precedence over the cached ones."""
        setup_logging(Settings(_env_file=None, log_level="error"))
        assert logging.root.level == logging.ERROR


class TestGetLogger:
    """Tests for get_logger."""

    def test_returns_bound_logger(self) -> None:
        log = get_logger("pulsewarden.tests")
        assert hasattr(log, "info")
        assert hasattr(log, "warning")
