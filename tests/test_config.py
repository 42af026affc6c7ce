"""Tests for configuration and logging setup."""

import logging
from pathlib import Path

from quotedesk.catalog.config import Config, get_config, reset_config
from quotedesk.catalog.logging_config import LOG_FILE_NAME, setup_logging


class TestConfig:
    """Tests for Config."""

    def test_from_env(self, tmp_path: Path):
        """Values come from QUOTEDESK_* variables."""
        config = Config.from_env()

        assert config.db_path == tmp_path / "catalog.db"
        assert config.log_dir == tmp_path / "logs"
        assert config.tenant_id == "tenant-a"
        assert config.default_currency == "INR"
        assert config.audit_format == "json"

    def test_defaults(self, monkeypatch):
        """Unset variables fall back to defaults."""
        for name in ("QUOTEDESK_TENANT_ID", "QUOTEDESK_DEFAULT_CURRENCY", "QUOTEDESK_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = Config.from_env()

        assert config.tenant_id == "default"
        assert config.default_currency == "INR"
        assert config.log_level == "INFO"

    def test_currency_normalized(self, monkeypatch):
        """The default currency is trimmed and upper-cased."""
        monkeypatch.setenv("QUOTEDESK_DEFAULT_CURRENCY", " usd ")
        assert Config.from_env().default_currency == "USD"

    def test_validate_creates_directories(self, tmp_path: Path):
        """Validation creates the database and log directories."""
        config = Config.from_env()

        assert config.validate() == []
        assert (tmp_path / "logs").is_dir()

    def test_validate_reports_bad_values(self, monkeypatch):
        """Unknown formats and empty values are reported."""
        monkeypatch.setenv("QUOTEDESK_AUDIT_FORMAT", "xml")
        monkeypatch.setenv("QUOTEDESK_TENANT_ID", "")

        errors = Config.from_env().validate()

        assert any("audit log format" in e for e in errors)
        assert "Tenant id must not be empty" in errors

    def test_global_config_cached(self):
        """get_config returns one instance until reset."""
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first


class TestLogging:
    """Tests for setup_logging."""

    def test_file_handler(self, tmp_path: Path):
        """A log directory adds a rotating file handler."""
        logger = setup_logging("DEBUG", tmp_path / "logs")
        logging.getLogger("quotedesk.test").info("hello")

        assert logger.level == logging.DEBUG
        assert (tmp_path / "logs" / LOG_FILE_NAME).exists()
        assert "hello" in (tmp_path / "logs" / LOG_FILE_NAME).read_text()

    def test_no_handlers_is_quiet(self):
        """Without a directory or console a null handler is installed."""
        logger = setup_logging("WARNING")

        assert logger.level == logging.WARNING
        assert all(isinstance(h, logging.NullHandler) for h in logger.handlers)
