from __future__ import annotations

from typing import Optional


class ConstraintViolation(Exception):
    """A user-store write that would duplicate a username or orphan a password record."""

    def __init__(self, message: str, *, field: str, value: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.value = value

    @property
    def detail(self) -> dict[str, str]:
        detail = {"field": self.field}
        if self.value is not None:
            detail["value"] = self.value
        return detail
