from __future__ import annotations

from typing import Any, Optional


class StoreError(RuntimeError):
    """A record-store call failed; `message` is safe to surface to admins."""

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class GrantError(RuntimeError):
    """An elevated write was attempted without a matching write grant."""
