"""
Configuration management with schema validation.

Settings come from an optional YAML file (``${VAR:default}`` placeholders are
expanded from the environment) and a few direct environment overrides.
Every section has defaults, so a client can run with no file at all.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError
from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("config") / "storefront.yaml"


class ApiSettings(BaseModel):
    base_url: str = "http://localhost:5000/api"
    connection_timeout: float = 5.0
    read_timeout: float = 10.0
    max_retries: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=0.5, ge=0)
    refresh_path: str = "/auth/refresh-token"


class AuthSettings(BaseModel):
    # None means unbounded; the backend may still enforce its own limit
    otp_max_attempts: Optional[int] = Field(default=5, ge=1)
    otp_ttl_minutes: int = Field(default=10, ge=1)
    token_leeway_seconds: int = Field(default=0, ge=0)
    admin_login_path: str = "/admin-login"
    # Push the local cart and wishlist to the server after each customer login
    sync_on_login: bool = True


class StorageSettings(BaseModel):
    backend: str = Field(default="file", pattern="^(file|memory)$")
    data_dir: str = "data"
    namespace: str = "storefront"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = Field(default="json", pattern="^(json|console)$")
    file_path: Optional[str] = None
    max_bytes: int = 10485760
    backup_count: int = 5


class Settings(BaseModel):
    api: ApiSettings = Field(default_factory=ApiSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} / ${VAR:default} in config values"""
    if isinstance(value, str):
        if value.startswith("${") and value.endswith("}"):
            var_expr = value[2:-1]
            if ":" in var_expr:
                var_name, default = var_expr.split(":", 1)
                return os.getenv(var_name.strip(), default.strip())
            return os.getenv(var_expr, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    overrides = {
        ("api", "base_url"): os.getenv("STOREFRONT_API_BASE_URL"),
        ("storage", "data_dir"): os.getenv("STOREFRONT_DATA_DIR"),
        ("logging", "level"): os.getenv("STOREFRONT_LOG_LEVEL"),
    }
    for (section, key), value in overrides.items():
        if value:
            data.setdefault(section, {})
            data[section][key] = value
    return data


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Load and validate settings; a missing file means all defaults."""
    load_dotenv()

    config_path = Path(path) if path is not None else DEFAULT_CONFIG_FILE
    raw: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Failed to read settings file, using defaults", path=str(config_path), error=str(e))
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Settings file {config_path} must contain a mapping")

    data = _apply_env_overrides(_substitute_env_vars(raw))
    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {config_path}: {e}")
