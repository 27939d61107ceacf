"""Configuration and constants."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables once
load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def _env_api_key() -> Optional[str]:
    return os.environ.get("SUBTRANS_API_KEY") or os.environ.get("OPENAI_API_KEY")


@dataclass
class AppConfig:
    """Configuration for the translation service and CLI."""

    # API settings
    api_key: Optional[str] = field(default_factory=_env_api_key)
    base_url: Optional[str] = field(default_factory=lambda: os.environ.get("SUBTRANS_BASE_URL") or None)
    model_name: str = field(default_factory=lambda: os.environ.get("SUBTRANS_MODEL", "gpt-4o-mini"))
    request_timeout: float = field(default_factory=lambda: _env_float("SUBTRANS_TIMEOUT", 60.0))

    # Translation settings
    target_language: str = field(default_factory=lambda: os.environ.get("SUBTRANS_TARGET_LANG", "es"))
    batch_size: int = field(default_factory=lambda: _env_int("SUBTRANS_BATCH_SIZE", 10))

    # Storage / web settings
    db_path: Path = field(default_factory=lambda: Path(os.environ.get("SUBTRANS_DB_PATH", "subtrans.db")))
    max_upload_mb: int = field(default_factory=lambda: _env_int("SUBTRANS_MAX_UPLOAD_MB", 50))
    host: str = field(default_factory=lambda: os.environ.get("SUBTRANS_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("SUBTRANS_PORT", 8000))

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_args(cls, args) -> "AppConfig":
        """Create config from argparse namespace, falling back to the environment."""
        config = cls()
        for name in (
            "api_key", "base_url", "model_name", "target_language",
            "batch_size", "host", "port",
        ):
            value = getattr(args, name, None)
            if value is not None:
                setattr(config, name, value)
        db_path = getattr(args, "db_path", None)
        if db_path is not None:
            config.db_path = Path(db_path)
        return config

    def validate(self, require_api_key: bool = True) -> Optional[str]:
        """
        Validate configuration.

        Returns:
            Error message if invalid, None if valid
        """
        if require_api_key and not self.api_key:
            return "API key is required. Set SUBTRANS_API_KEY (or OPENAI_API_KEY) or use --api-key"

        if self.batch_size < 1 or self.batch_size > 50:
            return f"Batch size must be 1-50, got {self.batch_size}"

        if self.max_upload_mb < 1:
            return f"Upload limit must be at least 1MB, got {self.max_upload_mb}"

        return None


# Preview size returned by the upload endpoint
PREVIEW_SIZE = 5

# Default output file name for downloads and the CLI
DEFAULT_OUTPUT_FILENAME = "translated.srt"
