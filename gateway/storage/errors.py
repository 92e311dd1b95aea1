from __future__ import annotations

from typing import Any, Dict, Optional


class StorageError(Exception):
    """Base exception for the data-store collaborator."""


class ConstraintViolation(StorageError):
    """Raised when a storage-layer uniqueness constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class DatabaseUnavailable(StorageError):
    """Connection pool could not be created or reached."""


__all__ = ["StorageError", "ConstraintViolation", "DatabaseUnavailable"]
