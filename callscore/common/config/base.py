"""Declarative configuration sections.

A section subclasses ``BaseConfig`` and lists its ``FieldDefinition``s. Each
value is taken from the declared default, replaced by a constructor keyword,
then by the field's environment variable, and checked before the section is
usable. Environment wins so a deployment can retune a service without code.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


class ConfigError(Exception):
    """Raised for any invalid configuration."""


class ValidationError(ConfigError):
    def __init__(self, field_name: str, value: Any, message: str) -> None:
        super().__init__(f"{field_name}={value!r}: {message}")
        self.field = field_name
        self.value = value
        self.message = message


class RequiredFieldError(ConfigError):
    def __init__(self, field_name: str) -> None:
        super().__init__(f"{field_name} is required")
        self.field = field_name


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


_ENV_PARSERS: dict[type[Any], Callable[[str], Any]] = {
    bool: _parse_bool,
    int: int,
    float: float,
    str: str,
}


@dataclass
class FieldDefinition:
    """One setting: its type, where it comes from and what it may hold."""

    name: str
    field_type: type[Any]
    default: Any = None
    required: bool = False
    description: str = ""
    validator: Callable[[Any], bool] | None = None
    env_var: str | None = None
    choices: list[Any] | None = None
    min_value: int | float | None = None
    max_value: int | float | None = None
    secret: bool = False

    def __post_init__(self) -> None:
        if self.required and self.default is not None:
            raise ValueError(f"{self.name}: a required field cannot declare a default")
        if self.choices and self.default is not None and self.default not in self.choices:
            raise ValueError(f"{self.name}: default {self.default!r} is not a valid choice")

    def from_env(self) -> tuple[bool, Any]:
        """``(found, value)`` for the field's environment variable."""
        raw = os.getenv(self.env_var) if self.env_var else None
        if raw is None:
            return False, None
        try:
            return True, _ENV_PARSERS.get(self.field_type, str)(raw)
        except ValueError as exc:
            raise ValidationError(
                self.name, raw, f"{self.env_var} is not a valid {self.field_type.__name__}"
            ) from exc

    def check(self, value: Any) -> Any:
        """Validate ``value`` and return it in canonical form."""
        if value is None or value == "":
            if self.required:
                raise RequiredFieldError(self.name)
            if value is None:
                return None

        if self.field_type is float and type(value) is int:
            value = float(value)
        if not isinstance(value, self.field_type):
            raise ValidationError(self.name, value, f"expected {self.field_type.__name__}")

        if self.choices:
            value = self._match_choice(value)
        if self.min_value is not None and value < self.min_value:
            raise ValidationError(self.name, value, f"below minimum {self.min_value}")
        if self.max_value is not None and value > self.max_value:
            raise ValidationError(self.name, value, f"above maximum {self.max_value}")
        if self.validator is not None and not self.validator(value):
            raise ValidationError(self.name, value, "rejected by validator")
        return value

    def _match_choice(self, value: Any) -> Any:
        if isinstance(value, str):
            folded = value.casefold()
            value = next(
                (c for c in self.choices if isinstance(c, str) and c.casefold() == folded),
                value,
            )
        if value not in self.choices:
            raise ValidationError(self.name, value, f"not one of {self.choices}")
        return value


class BaseConfig(ABC):
    """A validated, read-only view over one section's settings."""

    def __init__(self, **overrides: Any) -> None:
        values: dict[str, Any] = {}
        for field in self.get_field_definitions():
            value = overrides.get(field.name, field.default)
            found, env_value = field.from_env()
            if found:
                value = env_value
            values[field.name] = field.check(value)
        self._values = values

    @classmethod
    @abstractmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        """Fields of this section, in declaration order."""

    def __getattr__(self, name: str) -> Any:
        values = self.__dict__.get("_values", {})
        try:
            return values[name]
        except KeyError:
            raise AttributeError(f"{type(self).__name__} has no field {name!r}") from None

    def to_dict(self, *, redact_secrets: bool = True) -> dict[str, Any]:
        snapshot = dict(self._values)
        if redact_secrets:
            for field in self.get_field_definitions():
                if field.secret and snapshot.get(field.name):
                    snapshot[field.name] = "***"
        return snapshot


class LoggingConfig(BaseConfig):
    """Log level, output format and the service tag on every line."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="level",
                field_type=str,
                default="INFO",
                description="Log level",
                env_var="LOG_LEVEL",
                choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            ),
            FieldDefinition(
                name="json_logs",
                field_type=bool,
                default=True,
                description="Use JSON logging format",
                env_var="LOG_JSON",
            ),
            FieldDefinition(
                name="service_name",
                field_type=str,
                default="callscore",
                description="Service name for logging",
                env_var="SERVICE_NAME",
            ),
        ]


class HttpConfig(BaseConfig):
    """Retry configuration shared by every outbound network call."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="max_retries",
                field_type=int,
                default=3,
                description="Maximum attempts per network call (including the first)",
                env_var="HTTP_MAX_RETRIES",
                min_value=1,
                max_value=10,
            ),
            FieldDefinition(
                name="retry_delay",
                field_type=float,
                default=1.0,
                description="Base backoff in seconds for generic transient failures",
                env_var="HTTP_RETRY_DELAY",
                min_value=0.0,
                max_value=30.0,
            ),
            FieldDefinition(
                name="max_delay",
                field_type=float,
                default=10.0,
                description="Backoff cap in seconds for generic transient failures",
                env_var="HTTP_MAX_DELAY",
                min_value=0.0,
                max_value=300.0,
            ),
            FieldDefinition(
                name="rate_limit_delay",
                field_type=float,
                default=2.0,
                description="Base backoff in seconds after an HTTP 429",
                env_var="HTTP_RATE_LIMIT_DELAY",
                min_value=0.0,
                max_value=60.0,
            ),
            FieldDefinition(
                name="rate_limit_max_delay",
                field_type=float,
                default=30.0,
                description="Backoff cap in seconds after an HTTP 429",
                env_var="HTTP_RATE_LIMIT_MAX_DELAY",
                min_value=0.0,
                max_value=600.0,
            ),
        ]


class ServiceConfig(BaseConfig):
    """HTTP listener configuration."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="port",
                field_type=int,
                default=8000,
                description="Port the HTTP listener binds",
                env_var="SERVICE_PORT",
                min_value=1024,
                max_value=65535,
            ),
            FieldDefinition(
                name="host",
                field_type=str,
                default="0.0.0.0",
                description="Interface the HTTP listener binds",
                env_var="SERVICE_HOST",
            ),
        ]
