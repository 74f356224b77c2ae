"""
Configuration management and loading.

Handles application settings and environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml


CONFIG_ENV_VAR = "TIMECRAFT_CONFIG"


@dataclass(frozen=True)
class ModelConfig:
    """Sampling parameters for the hosted model."""
    name: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 300

    def __post_init__(self):
        """Validate model settings."""
        if not self.name or not self.name.strip():
            raise ValueError("model name cannot be empty")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for transient remote failures."""
    max_retries: int = 2
    base_delay: float = 1.0

    def __post_init__(self):
        """Validate retry values are non-negative."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")


@dataclass(frozen=True)
class RateLimitConfig:
    """Request caps for the three sliding windows."""
    max_requests_per_minute: int = 10
    max_requests_per_hour: int = 60
    max_requests_per_day: int = 200

    def __post_init__(self):
        """Validate caps are positive."""
        if self.max_requests_per_minute <= 0:
            raise ValueError("max_requests_per_minute must be > 0")
        if self.max_requests_per_hour <= 0:
            raise ValueError("max_requests_per_hour must be > 0")
        if self.max_requests_per_day <= 0:
            raise ValueError("max_requests_per_day must be > 0")


@dataclass(frozen=True)
class UsageConfig:
    """Token accounting used for usage statistics."""
    tokens_per_request: int = 650
    cost_per_million_tokens: float = 0.30

    def __post_init__(self):
        """Validate usage values."""
        if self.tokens_per_request <= 0:
            raise ValueError("tokens_per_request must be > 0")
        if self.cost_per_million_tokens < 0:
            raise ValueError("cost_per_million_tokens must be >= 0")


@dataclass(frozen=True)
class StorageConfig:
    """Location of the durable usage ledger."""
    path: str = ".timecraft.db"

    def __post_init__(self):
        if not self.path or not self.path.strip():
            raise ValueError("storage path cannot be empty")


@dataclass(frozen=True)
class Settings:
    """Complete application configuration."""
    model: ModelConfig = field(default_factory=ModelConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    usage: UsageConfig = field(default_factory=UsageConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


# Allowed keys per section, mapped to the dataclass field they populate
_SECTION_KEYS: Dict[str, Dict[str, str]] = {
    "model": {"name": "name", "temperature": "temperature", "max_tokens": "max_tokens"},
    "retry": {"max_retries": "max_retries", "base_delay": "base_delay"},
    "rate_limits": {
        "per_minute": "max_requests_per_minute",
        "per_hour": "max_requests_per_hour",
        "per_day": "max_requests_per_day",
    },
    "usage": {
        "tokens_per_request": "tokens_per_request",
        "cost_per_million_tokens": "cost_per_million_tokens",
    },
    "storage": {"path": "path"},
}

_SECTION_TYPES = {
    "model": ModelConfig,
    "retry": RetryConfig,
    "rate_limits": RateLimitConfig,
    "usage": UsageConfig,
    "storage": StorageConfig,
}

_INT_FIELDS = {
    "max_tokens",
    "max_retries",
    "max_requests_per_minute",
    "max_requests_per_hour",
    "max_requests_per_day",
    "tokens_per_request",
}
_FLOAT_FIELDS = {"temperature", "base_delay", "cost_per_million_tokens"}


def load_settings(path: Optional[str] = None) -> Settings:
    """Load and validate application settings from a YAML file.

    When no path is given the ``TIMECRAFT_CONFIG`` environment variable is
    consulted; with neither, built-in defaults are returned. Every section
    is optional and omitted keys keep their defaults, but unknown keys are
    rejected so a typo never silently loosens a rate limit.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return Settings()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return Settings()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTION_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {
        name: _parse_section(name, raw_config[name])
        for name in _SECTION_KEYS
        if name in raw_config
    }
    return Settings(**sections)


def _parse_section(name: str, data):
    """Parse and validate a single configuration section.

    Args:
        name: Section name
        data: Raw section data

    Returns:
        The section's frozen config object

    Raises:
        ValueError: If the section is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    allowed = _SECTION_KEYS[name]
    unknown_keys = set(data.keys()) - set(allowed)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")

    kwargs = {}
    for key, value in data.items():
        field_name = allowed[key]
        kwargs[field_name] = _coerce(f"{name}.{key}", field_name, value)

    return _SECTION_TYPES[name](**kwargs)


def _coerce(path: str, field_name: str, value):
    """Coerce a raw YAML scalar to the field's type."""
    if field_name in _INT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"'{path}' must be an integer")
        return value
    if field_name in _FLOAT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{path}' must be a number")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"'{path}' must be a string")
    return value
