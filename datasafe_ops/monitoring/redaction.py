"""
Log redaction helpers.

Designed for structlog processors. Two layers:
- keys that look sensitive have their whole value replaced;
- secret values registered at runtime are masked inside any string.
"""

from __future__ import annotations

from typing import Any

from datasafe_ops.constants import HIDDEN


SENSITIVE_KEY_FRAGMENTS = (
    "secret",
    "password",
    "token",
    "credential_payload",
    "private_key",
    "passphrase",
)

_registered_secrets: set[str] = set()


def register_secret(value: str | None) -> None:
    """Mask every later occurrence of ``value`` in log output."""
    if value:
        _registered_secrets.add(value)


def clear_registered_secrets() -> None:
    _registered_secrets.clear()


def _is_sensitive_key(key: str) -> bool:
    k = str(key).lower()
    return any(frag in k for frag in SENSITIVE_KEY_FRAGMENTS)


def mask_secrets(text: str) -> str:
    """Replace registered secret values inside a string."""
    # Longest first so a secret containing another is masked whole
    for secret in sorted(_registered_secrets, key=len, reverse=True):
        if secret in text:
            text = text.replace(secret, HIDDEN)
    return text


def redact(obj: Any) -> Any:
    """
    Recursively redact dict keys that look sensitive and mask registered
    secret values in strings.
    """
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if _is_sensitive_key(k) and v not in (None, ""):
                out[k] = HIDDEN
            else:
                out[k] = redact(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [redact(v) for v in obj]
    if isinstance(obj, str) and _registered_secrets:
        return mask_secrets(obj)
    return obj


def structlog_redaction_processor(_logger: Any, _method_name: str, event_dict: dict) -> dict:
    """
    Structlog processor: redact sensitive fields from event_dict.
    """
    return redact(event_dict)
