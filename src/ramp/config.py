"""Configuration loading and validation for Ramp."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """Database configuration.

    ``url`` wins over ``path`` when set, e.g. a postgresql+psycopg URL.
    """

    path: str = "ramp.db"
    url: str | None = None


class TopicIntentConfig(BaseModel):
    """Topic tracking tunables."""

    abandon_hours: float = 72
    cache_ttl_seconds: float = 30
    signal_window: int = 10
    snippet_chars: int = 100
    default_limit: int = 5
    social_enabled: bool = True
    social_window_minutes: int = 120
    social_timeout_seconds: float = 2.0

    @field_validator("signal_window", "snippet_chars", "default_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Sizes must be at least 1."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("abandon_hours", "cache_ttl_seconds", "social_timeout_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Durations cannot be negative."""
        if v < 0:
            raise ValueError("must be >= 0")
        return v


class Config(BaseModel):
    """Root configuration for Ramp."""

    data_dir: Path = Path("./data")
    log_level: str = "INFO"
    log_json: bool = True

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    topic_intent: TopicIntentConfig = Field(default_factory=TopicIntentConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log_level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @property
    def database_path(self) -> Path:
        """Get full path to the SQLite database file."""
        return self.data_dir / self.database.path

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the configured database."""
        if self.database.url:
            return self.database.url
        return f"sqlite:///{self.database_path}"

    @classmethod
    def load(cls, config_path: Path | str = Path("config.yaml")) -> "Config":
        """Load configuration from YAML file with env var overlay.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config is invalid.
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        # Environment variable overrides
        if "RAMP_DATA_DIR" in os.environ:
            yaml_config["data_dir"] = os.environ["RAMP_DATA_DIR"]
        if "RAMP_LOG_LEVEL" in os.environ:
            yaml_config["log_level"] = os.environ["RAMP_LOG_LEVEL"]
        if "RAMP_LOG_JSON" in os.environ:
            yaml_config["log_json"] = os.environ["RAMP_LOG_JSON"].lower() == "true"
        if "RAMP_DATABASE_URL" in os.environ:
            yaml_config.setdefault("database", {})
            yaml_config["database"]["url"] = os.environ["RAMP_DATABASE_URL"]

        return cls.model_validate(yaml_config)

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            for path in [Path("config.yaml"), Path("config.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls()

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls()
