"""Configuration system for callscore services.

Each section is a ``BaseConfig`` subclass declaring its fields with
``FieldDefinition`` (type, default, environment variable, bounds or choices,
optional validator). Values resolve as default, then keyword, then
environment, and are validated on construction.
"""

from .base import (
    BaseConfig,
    ConfigError,
    FieldDefinition,
    HttpConfig,
    LoggingConfig,
    RequiredFieldError,
    ServiceConfig,
    ValidationError,
)
from .validator import validate_language_code, validate_sample_rate, validate_url


__all__ = [
    "BaseConfig",
    "ConfigError",
    "FieldDefinition",
    "HttpConfig",
    "LoggingConfig",
    "RequiredFieldError",
    "ServiceConfig",
    "ValidationError",
    "validate_language_code",
    "validate_sample_rate",
    "validate_url",
]
