"""Configuration management for Calmirror."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_dir, user_data_dir


@dataclass
class ColorRetry:
    """Bounded polling for calendar colors that are not yet available."""

    max_attempts: int = 10  # Total event queries, including the first one
    delay_seconds: float = 1.0


@dataclass
class Config:
    """Main configuration for Calmirror."""

    account: str = "default"  # Name of the stored Google credentials
    window_days: int = 7  # Lookahead window for upcoming events
    calendars: list[str] = field(
        default_factory=list
    )  # Calendar titles selected by default (empty = all)
    color_retry: ColorRetry = field(default_factory=ColorRetry)
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Load configuration from YAML file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create configuration from dictionary."""
        config = cls()

        if "account" in data:
            config.account = str(data["account"])
        if "window_days" in data:
            config.window_days = int(data["window_days"])
        if "calendars" in data:
            config.calendars = [str(title) for title in data["calendars"] or []]

        retry_data = data.get("color_retry") or {}
        if "max_attempts" in retry_data:
            config.color_retry.max_attempts = int(retry_data["max_attempts"])
        if "delay_seconds" in retry_data:
            config.color_retry.delay_seconds = float(retry_data["delay_seconds"])

        if "log_level" in data:
            config.log_level = data["log_level"]
        if "log_file" in data:
            config.log_file = data["log_file"]

        return config

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.account:
            errors.append("Configuration must name an account")
        if self.window_days < 1:
            errors.append(f"window_days must be at least 1, got {self.window_days}")
        if self.color_retry.max_attempts < 1:
            errors.append(
                f"color_retry.max_attempts must be at least 1, got {self.color_retry.max_attempts}"
            )
        if self.color_retry.delay_seconds < 0:
            errors.append(
                f"color_retry.delay_seconds cannot be negative, got {self.color_retry.delay_seconds}"
            )
        if len(set(self.calendars)) != len(self.calendars):
            errors.append("calendars contains duplicate titles")
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            errors.append(f"Unknown log_level: {self.log_level}")

        return errors


def create_example_config() -> str:
    """Create an example configuration file."""
    return """# Calmirror Configuration Example

# Name of the stored Google credentials (see 'calmirror auth')
account: "default"

# How many days ahead to mirror
window_days: 7

# Calendars mirrored when none are given on the command line
# (leave empty to mirror every calendar with upcoming events)
calendars:
  - "Work"
  - "Home"

# Calendar colors can lag behind authorization; poll this many times
color_retry:
  max_attempts: 10
  delay_seconds: 1.0

# Logging configuration
log_level: "INFO"
log_file: "./logs/calmirror.log"
"""


def get_config_dir() -> Path:
    """Get the standard configuration directory."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "calmirror"
    return Path(user_config_dir("calmirror"))


def get_credentials_dir() -> Path:
    """Get the standard credentials directory."""
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data) / "calmirror" / "credentials"
    return Path(user_data_dir("calmirror")) / "credentials"


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return get_config_dir() / "config.yaml"


def get_credentials_path(account_name: str) -> Path:
    """Get the credentials file path for a specific account."""
    return get_credentials_dir() / f"{account_name}.json"


def get_oauth2_config_path() -> Path:
    """Get the OAuth2 configuration file path in the data directory."""
    return get_credentials_dir() / "oauth2_config.yaml"


def ensure_directories():
    """Ensure that the necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_credentials_dir().mkdir(parents=True, exist_ok=True)
