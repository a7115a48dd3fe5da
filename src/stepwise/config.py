"""Configuration loading and validation for stepwise."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from stepwise.checkpoint import DEFAULT_TABLE_NAME

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DatabaseConfig(BaseModel):
    """Database configuration.

    ``url`` takes precedence; otherwise a SQLite file at ``path`` under
    the data directory is used.
    """

    url: str | None = None
    path: str = "stepwise.db"


class MigrationsConfig(BaseModel):
    """Where migrations come from and where progress is recorded."""

    table_name: str = DEFAULT_TABLE_NAME
    sql_dir: Path | None = Path("migrations")
    python_dir: Path | None = None
    timeout_seconds: float | None = None

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Validate table_name is a plain SQL identifier."""
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"table_name is not a valid identifier: {v!r}")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v


class Config(BaseModel):
    """Root configuration for stepwise."""

    data_dir: Path = Path("./data")
    log_level: str = "INFO"
    log_json: bool = True

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    migrations: MigrationsConfig = Field(default_factory=MigrationsConfig)

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
        """Get the SQLAlchemy URL of the target database."""
        if self.database.url:
            return self.database.url
        return f"sqlite:///{self.database_path}"

    @classmethod
    def load(cls, config_path: Path | str = Path("stepwise.yaml")) -> "Config":
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

        return cls.model_validate(_apply_env(yaml_config))

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            for path in [Path("stepwise.yaml"), Path("stepwise.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls.model_validate(_apply_env({}))

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls.model_validate(_apply_env({}))


def _apply_env(yaml_config: dict) -> dict:
    """Overlay environment variable overrides onto raw config values."""
    if "STEPWISE_DATA_DIR" in os.environ:
        yaml_config["data_dir"] = os.environ["STEPWISE_DATA_DIR"]
    if "STEPWISE_LOG_LEVEL" in os.environ:
        yaml_config["log_level"] = os.environ["STEPWISE_LOG_LEVEL"]
    if "STEPWISE_LOG_JSON" in os.environ:
        yaml_config["log_json"] = os.environ["STEPWISE_LOG_JSON"].lower() == "true"
    if "STEPWISE_DATABASE_URL" in os.environ:
        database = dict(yaml_config.get("database") or {})
        database["url"] = os.environ["STEPWISE_DATABASE_URL"]
        yaml_config["database"] = database
    return yaml_config
