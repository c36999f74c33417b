"""Field validators for the configuration system."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

VALID_SAMPLE_RATES = (8000, 16000, 22050, 24000, 44100, 48000)

_LANGUAGE_CODE = re.compile(r"[a-z]{2}")


def validate_url(url: str) -> bool:
    """Return True for an absolute http(s) URL with a host."""
    if not url:
        return False
    try:
        parts = urlsplit(url)
        parts.port  # raises on a malformed port
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def validate_sample_rate(rate: int) -> bool:
    return rate in VALID_SAMPLE_RATES


def validate_language_code(code: str) -> bool:
    """ISO 639-1 code, or empty for auto-detect."""
    return code == "" or _LANGUAGE_CODE.fullmatch(code) is not None


__all__ = ["VALID_SAMPLE_RATES", "validate_language_code", "validate_sample_rate", "validate_url"]
