"""Sanitizing helpers for structured logging `extra=` payloads."""

from __future__ import annotations

import re
from typing import Any, Optional

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = (
    "authorization",
    "token",
    "api_key",
    "apikey",
    "secret",
    "password",
    "database_url",
    "dsn",
)
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(://[^:/@\s]+:)[^@\s]+(?=@)"),
    re.compile(r"(?i)(password\s*[=:]\s*)[^\s,;&]+"),
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(secret\s*[=:]\s*)[^\s,;]+"),
)


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a recursively sanitized copy of log payloads."""

    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            field = str(raw_key)
            if _contains_keyword(field, _SENSITIVE_KEYS):
                sanitized[field] = _REDACTED_VALUE
                continue
            sanitized[field] = sanitize_for_log(raw_value, key=field)
        return sanitized

    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]

    if isinstance(value, BaseException):
        return _redact_text(f"{type(value).__name__}: {value}")

    if isinstance(value, str):
        return _redact_text(value)

    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


def _contains_keyword(field_name: str, keywords: tuple[str, ...]) -> bool:
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in keywords)


def _redact_text(raw: str) -> str:
    redacted = raw
    for pattern in _TOKEN_PATTERNS:
        redacted = pattern.sub(rf"\1{_REDACTED_VALUE}", redacted)
    return redacted
