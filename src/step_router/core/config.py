"""Configuration loading and validation."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ConfigError
from ..workflow.patterns import ArrayPolicy

logger = logging.getLogger(__name__)


class MatchingConfig(BaseModel):
    """Condition matcher settings."""
    # Default policy for list-shaped patterns; contains(...) overrides per node
    array_policy: ArrayPolicy = ArrayPolicy.POSITIONAL


class RouterLimitsConfig(BaseModel):
    """Task router settings."""
    match_policy: Literal["all", "first"] = "all"
    max_cycles: int = 1000  # Router cycles per run before the task is failed
    max_redo: int = 500  # Consecutive redo runs of one step

    @field_validator("max_cycles", "max_redo")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"limit must be >= 1, got {v}")
        return v


class SchedulerConfig(BaseModel):
    """Scheduler settings."""
    archive_dir: Optional[Path] = None  # Finished tasks are written here as JSON


class LoggingConfig(BaseModel):
    """Logging settings."""
    level: str = "INFO"
    use_file: bool = False
    log_dir: Path = Field(default=Path("logs"))
    use_json: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return v.upper()


class RouterConfig(BaseSettings):
    """Main step router configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STEP_ROUTER_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="allow",
    )

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    router: RouterLimitsConfig = Field(default_factory=RouterLimitsConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Named values handlers read through task.config(key)
    config_values: Dict[str, Any] = Field(default_factory=dict)

    def lookup(self, key: str) -> Any:
        """Resolve a task.config key; falls back to STEP_ROUTER_VALUE_<KEY> env vars."""
        if key in self.config_values:
            return self.config_values[key]
        return os.environ.get(f"STEP_ROUTER_VALUE_{key.upper()}")


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> RouterConfig:
    """Internal loader for router config (no caching)."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    data = _expand_env_vars(data)
    return RouterConfig(**data)


def load_config(config_path: Path = Path("step-router.yaml")) -> RouterConfig:
    """Load router configuration from YAML file.

    Cached by file mtime; an unchanged file returns the same RouterConfig.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration."
        )
        return RouterConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else RouterConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


# ${NAME} or ${NAME:-default}, anywhere inside a string value
_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${ENV_VAR}`` references in config data.

    Unset variables without a default are left as the literal reference.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "config_values.slack_channel")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    if not isinstance(data, str) or "${" not in data:
        return data

    def substitute(match: re.Match) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name, default)
        if value is None:
            logger.warning(f"Environment variable '{name}' not set (config path: {_path or 'root'})")
            return match.group(0)
        return value

    return _ENV_REF.sub(substitute, data)
