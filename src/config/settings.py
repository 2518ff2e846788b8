"""Application settings with Pydantic Settings validation.

Secrets (the bot token) are loaded from .env file.
Non-sensitive configuration is loaded from config/main.yaml and config/*.yaml
files. All configs are merged and validated against JSON schemas.
"""

import json
from pathlib import Path
from typing import Any, Final, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config.logging_config import get_logger
from src.domain.autopost_constants import (
    DEFAULT_AUTOPOST_INTERVAL_MINUTES,
    MIN_AUTOPOST_INTERVAL_MINUTES,
)

DB_PATH_DEFAULT: Final[str] = "data/chat_bot.db"
DB_BUSY_TIMEOUT_SECONDS_DEFAULT: Final[float] = 5.0
METRICS_PORT_DEFAULT: Final[int] = 9108

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str) -> dict[str, Any]:
    """Load JSON Schema from config/schemas/.

    Args:
        schema_name: Schema name without extension (e.g., "main")

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = Path("config/schemas") / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any], schema_name: str, file_path: str = ""
) -> None:
    """Validate config section against JSON Schema.

    Args:
        config: Configuration dictionary to validate
        schema_name: Name of schema to validate against
        file_path: Optional file path for error messages

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def _load_yaml_file(path: Path, schema_name: str) -> dict[str, Any]:
    """Read one YAML file and validate it; unreadable files yield ``{}``."""

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        logger.warning("config_file_load_failed", path=str(path), error=str(e))
        return {}

    try:
        validate_config_section(data, schema_name, str(path))
    except ValueError as e:
        logger.error(
            "config_validation_failed",
            path=str(path),
            schema=schema_name,
            error=str(e),
        )
        raise

    logger.debug("config_file_loaded", path=str(path), schema=schema_name)
    return data


def load_all_configs() -> dict[str, Any]:
    """Load and merge all YAML configs from config/ directory.

    Loading order (later overrides earlier):
    1. config/main.yaml
    2. All other config/*.yaml files (sorted alphabetically)

    Each config is validated against its JSON Schema if available.

    Returns:
        Merged configuration dictionary

    Raises:
        ValueError: If a file violates its schema
    """
    merged_config: dict[str, Any] = {}
    file_count = 0

    main_path = Path("config/main.yaml")
    if main_path.exists():
        merged_config = _load_yaml_file(main_path, "main")
        file_count += 1

    config_dir = Path("config")
    if config_dir.is_dir():
        yaml_files = sorted(
            f for f in config_dir.glob("*.yaml") if f.name != "main.yaml"
        )
        for yaml_file in yaml_files:
            merged_config = deep_merge(
                merged_config, _load_yaml_file(yaml_file, yaml_file.stem)
            )
            file_count += 1

    logger.info("config_load_complete", file_count=file_count)
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Secrets are loaded from .env file.
    Non-sensitive config is loaded from config/*.yaml with fallback to defaults.
    Environment variables and explicit keyword arguments always win over YAML.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    bot_token: SecretStr | None = Field(
        default=None, description="Messaging platform bot token (from .env)"
    )

    # === NON-SENSITIVE CONFIG (from config/main.yaml or defaults) ===

    db_path: str = Field(
        default=DB_PATH_DEFAULT, description="Path to SQLite database file"
    )
    db_busy_timeout_seconds: float = Field(
        default=DB_BUSY_TIMEOUT_SECONDS_DEFAULT,
        gt=0,
        description="Seconds a connection waits on a locked database",
    )

    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(
        default=False, description="Render logs as JSON instead of console output"
    )

    autopost_default_interval_minutes: int = Field(
        default=DEFAULT_AUTOPOST_INTERVAL_MINUTES,
        ge=MIN_AUTOPOST_INTERVAL_MINUTES,
        description="Auto-post interval given to chats seen for the first time",
    )
    autopost_joke_category: str | None = Field(
        default=None,
        description="Only auto-post jokes from this category (all when unset)",
    )

    rank_category: str | None = Field(
        default=None,
        description="Only evaluate ranks from this ladder (all ladders when unset)",
    )
    seed_default_ranks: bool = Field(
        default=True,
        description="Seed the built-in rank ladders when the catalog is empty",
    )

    metrics_enabled: bool = Field(
        default=False, description="Expose Prometheus metrics over HTTP"
    )
    metrics_port: int = Field(
        default=METRICS_PORT_DEFAULT,
        ge=1,
        le=65535,
        description="Port of the Prometheus exporter",
    )

    @field_validator("bot_token", mode="before")
    @classmethod
    def _blank_token_is_none(cls, value: SecretStr | str | None) -> SecretStr | None:
        if value is None:
            return None
        secret_value = (
            value.get_secret_value() if isinstance(value, SecretStr) else str(value)
        )
        if not secret_value.strip():
            return None
        return value if isinstance(value, SecretStr) else SecretStr(secret_value)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return str(value).upper()

    def __init__(self, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs()

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        database_config = config.get("database") or {}
        _assign("db_path", database_config.get("path"))
        _assign("db_busy_timeout_seconds", database_config.get("busy_timeout_seconds"))

        logging_config = config.get("logging") or {}
        level = logging_config.get("level")
        _assign("log_level", level.upper() if isinstance(level, str) else level)
        _assign("json_logs", logging_config.get("json"))

        autopost_config = config.get("autopost") or {}
        _assign(
            "autopost_default_interval_minutes",
            autopost_config.get("default_interval_minutes"),
        )
        _assign("autopost_joke_category", autopost_config.get("joke_category"))

        ranks_config = config.get("ranks") or {}
        _assign("rank_category", ranks_config.get("category"))
        _assign("seed_default_ranks", ranks_config.get("seed_defaults"))

        metrics_config = config.get("metrics") or {}
        _assign("metrics_enabled", metrics_config.get("enabled"))
        _assign("metrics_port", metrics_config.get("port"))


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


__all__ = [
    "Settings",
    "deep_merge",
    "get_settings",
    "load_all_configs",
    "load_schema",
    "validate_config_section",
]
