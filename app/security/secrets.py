"""Loading of signing keys and storage credentials from the environment."""
from __future__ import annotations

import os
from typing import Final

__all__ = ["MissingSecretError", "is_placeholder", "optional_secret", "require_secret"]


class MissingSecretError(RuntimeError):
    """Raised when a required secret environment variable is unset or a placeholder."""


_PLACEHOLDER_VALUES: Final[frozenset[str]] = frozenset(
    {
        "changeme",
        "change-me",
        "placeholder",
        "example",
        "sample",
        "secret",
        "your-key-here",
        "xxx",
    }
)


def is_placeholder(value: str | None) -> bool:
    if not value:
        return True
    normalized = value.strip().lower()
    return not normalized or normalized in _PLACEHOLDER_VALUES


def optional_secret(name: str) -> str | None:
    """Return the trimmed secret, or ``None`` when it is unset or a placeholder."""

    value = os.getenv(name)
    if is_placeholder(value):
        return None
    return value.strip()


def require_secret(name: str) -> str:
    value = optional_secret(name)
    if value is None:
        raise MissingSecretError(f"Environment variable {name} is required and must not use placeholder defaults")
    return value
