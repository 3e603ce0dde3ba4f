"""
Configuration for reverse_api clients.

Sources, lowest priority first:
1. dataclass defaults
2. a YAML or JSON file
3. REVERSE_API_* environment variables
"""

import json
import logging
import os
from copy import deepcopy
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigLoadError
from .logging import configure_logging
from .retry import RetryConfig

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "reverse_api"
DEFAULT_WASM_PATH = Path("wasm") / "sha3_wasm_bg.7b9ca65ddd.wasm"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class HttpConfig:
    """Transport settings shared by every provider session."""

    impersonate: str = "chrome"
    proxy: str | None = None
    timeout: float = 120.0


@dataclass
class CacheConfig:
    """Where the script-offset and action mappings are persisted."""

    cache_dir: str = str(DEFAULT_CACHE_DIR)

    @property
    def grok_mapping_path(self) -> Path:
        return Path(self.cache_dir) / "grok.json"

    @property
    def offsets_mapping_path(self) -> Path:
        return Path(self.cache_dir) / "mapping.json"


@dataclass
class PowConfig:
    wasm_path: str = str(DEFAULT_WASM_PATH)


@dataclass
class CredentialsConfig:
    deepseek_token: str | None = None
    qwen_email: str | None = None
    qwen_password: str | None = None
    qwen_token: str | None = None


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "console"

    @property
    def level_number(self) -> int:
        level = self.level.upper()
        if level not in VALID_LOG_LEVELS:
            logging.getLogger("reverse_api.config.loader").warning(
                f"Invalid log level: {self.level}, defaulting to INFO"
            )
            return logging.INFO
        return getattr(logging, level)

    @property
    def json_format(self) -> bool:
        return self.format.lower() == "json"


@dataclass
class ReverseApiConfig:
    http: HttpConfig = field(default_factory=HttpConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    pow: PowConfig = field(default_factory=PowConfig)
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReverseApiConfig":
        return _build_dataclass(cls, data)

    def to_dict(self) -> dict[str, Any]:
        return _dataclass_to_dict(self)


def _build_dataclass(cls: Any, data: dict[str, Any], prefix: str = "") -> Any:
    kwargs: dict[str, Any] = {}
    defaults = cls()
    for f in fields(cls):
        if f.name not in data:
            continue
        key = f"{prefix}{f.name}"
        value = data[f.name]
        current = getattr(defaults, f.name)
        if is_dataclass(current) and isinstance(value, dict):
            kwargs[f.name] = _build_dataclass(type(current), value, f"{key}.")
        elif isinstance(current, bool) and isinstance(value, str):
            kwargs[f.name] = value.lower() in ("1", "true", "yes", "on")
        elif (
            isinstance(current, (int, float))
            and not isinstance(current, bool)
            and isinstance(value, str)
        ):
            try:
                kwargs[f.name] = type(current)(value)
            except ValueError as e:
                raise ConfigLoadError(
                    config_path=key,
                    reason=f"Expected {type(current).__name__} for {key}, got {value!r}",
                    cause=e,
                )
        else:
            kwargs[f.name] = value
    return cls(**kwargs)


def _dataclass_to_dict(obj: Any) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        result[f.name] = _dataclass_to_dict(value) if is_dataclass(value) else value
    return result


class ConfigLoader:
    """
    Loads configuration from files (YAML/JSON) and environment variables.

    Responsibilities:
    - File I/O operations
    - Environment variable parsing
    - Deep merging of configuration sources
    """

    def __init__(self, env_prefix: str = "REVERSE_API_"):
        self.env_prefix = env_prefix
        self._logger = logging.getLogger("reverse_api.config.loader")

    def load_from_file(self, path: str) -> dict[str, Any]:
        """Load configuration from a YAML or JSON file"""
        file_path = Path(path)

        if not file_path.exists():
            raise ConfigLoadError(config_path=path, reason="File does not exist")

        suffix = file_path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigLoadError(config_path=path, reason=f"Unsupported file format: {suffix}")

        try:
            content = file_path.read_text(encoding="utf-8")
            if suffix == ".json":
                return dict(json.loads(content))
            return yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(config_path=path, reason=f"YAML error: {e}", cause=e)
        except json.JSONDecodeError as e:
            raise ConfigLoadError(config_path=path, reason=f"JSON error: {e}", cause=e)
        except OSError as e:
            raise ConfigLoadError(config_path=path, reason=str(e), cause=e)

    def load_from_env(self) -> dict[str, Any]:
        """Load configuration from environment variables"""
        config: dict[str, Any] = {}

        env_mappings = {
            f"{self.env_prefix}PROXY": ("http", "proxy"),
            f"{self.env_prefix}IMPERSONATE": ("http", "impersonate"),
            f"{self.env_prefix}TIMEOUT": ("http", "timeout"),
            f"{self.env_prefix}MAX_RETRIES": ("retry", "max_retries"),
            f"{self.env_prefix}CACHE_DIR": ("cache", "cache_dir"),
            f"{self.env_prefix}WASM_PATH": ("pow", "wasm_path"),
            f"{self.env_prefix}DEEPSEEK_TOKEN": ("credentials", "deepseek_token"),
            f"{self.env_prefix}QWEN_EMAIL": ("credentials", "qwen_email"),
            f"{self.env_prefix}QWEN_PASSWORD": ("credentials", "qwen_password"),
            f"{self.env_prefix}QWEN_TOKEN": ("credentials", "qwen_token"),
            f"{self.env_prefix}LOG_LEVEL": ("logging", "level"),
            f"{self.env_prefix}LOG_FORMAT": ("logging", "format"),
        }

        for env_var, config_path in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                self._set_nested(config, config_path, value)

        return config

    def _set_nested(self, config: dict[str, Any], path: tuple, value: Any) -> None:
        current = config
        for key in path[:-1]:
            current = current.setdefault(key, {})
        current[path[-1]] = value

    def deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries"""
        result = deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)

        return result


def load_config(
    path: str | None = None,
    env_prefix: str = "REVERSE_API_",
    apply_logging: bool = False,
) -> ReverseApiConfig:
    """
    Build a ReverseApiConfig from defaults, an optional file, and the environment.

    With ``apply_logging`` the ``logging`` section is installed on the
    reverse_api logger tree before returning.
    """
    loader = ConfigLoader(env_prefix)
    data: dict[str, Any] = {}
    if path:
        data = loader.load_from_file(path)
    data = loader.deep_merge(data, loader.load_from_env())
    config = ReverseApiConfig.from_dict(data)
    if apply_logging:
        configure_from_config(config)
    return config


def configure_from_config(config: ReverseApiConfig) -> None:
    """Apply the ``logging`` section: level and console or JSON output."""
    configure_logging(
        level=config.logging.level_number,
        json_format=config.logging.json_format,
    )
