"""Configuration management for the catalog importer.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

AUDIT_FORMATS = ("json", "text")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Import audit logs
    log_dir: Path
    audit_format: str

    # Import defaults
    default_currency: str
    tenant_id: str

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "QUOTEDESK_DB_PATH",
            str(Path.home() / ".quotedesk" / "catalog.db"),
        )

        return cls(
            db_path=Path(db_path_str).expanduser(),
            log_dir=Path(os.environ.get("QUOTEDESK_LOG_DIR", "logs")).expanduser(),
            audit_format=os.environ.get("QUOTEDESK_AUDIT_FORMAT", "json").lower(),
            default_currency=os.environ.get("QUOTEDESK_DEFAULT_CURRENCY", "INR").strip().upper(),
            tenant_id=os.environ.get("QUOTEDESK_TENANT_ID", "default"),
            log_level=os.environ.get("QUOTEDESK_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        for directory in (self.db_path.parent, self.log_dir):
            if not directory.exists():
                try:
                    directory.mkdir(parents=True, exist_ok=True)
                except PermissionError:
                    errors.append(f"Cannot create directory: {directory}")

        if self.audit_format not in AUDIT_FORMATS:
            errors.append(
                f"Unknown audit log format '{self.audit_format}' "
                f"(expected one of: {', '.join(AUDIT_FORMATS)})"
            )

        if not self.default_currency:
            errors.append("Default currency must not be empty")

        if not self.tenant_id:
            errors.append("Tenant id must not be empty")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
