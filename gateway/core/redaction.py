"""Helpers that shorten identifiers before they reach a log line."""
from __future__ import annotations

from typing import Optional


def redact_id(value: Optional[str], keep: int = 8) -> str:
    """Return the first ``keep`` characters followed by an ellipsis."""
    if not value:
        return "N/A"
    return f"{value[:keep]}..."


def redact_email(value: Optional[str]) -> str:
    """Return the first three characters of an email address."""
    if not value:
        return "N/A"
    return f"{value[:3]}***"
