"""Exception hierarchy for the XML import pipeline."""
from __future__ import annotations

from typing import Any


class CatalogImportError(Exception):
    """Base class for all import pipeline errors."""


class FatalParseError(CatalogImportError):
    """The feed document itself is unusable; the job cannot continue."""

    def __init__(self, message: str, *, position: tuple[int, int] | None = None) -> None:
        self.position = position
        if position is not None:
            message = f"{message} (line {position[0]}, column {position[1]})"
        super().__init__(message)


class ItemError(CatalogImportError):
    """A single catalog item could not be imported.

    Attributes:
        position: 1-based index of the item in the feed
        key: Product code when it could be read, otherwise None
        reason: Human readable explanation
    """

    def __init__(self, reason: str, *, position: int | None = None, key: str | None = None) -> None:
        self.reason = reason
        self.position = position
        self.key = key
        super().__init__(reason)

    @property
    def label(self) -> str:
        if self.key:
            return f"product {self.key!r}"
        return f"item #{self.position}"

    def to_dict(self) -> dict[str, Any]:
        return {"position": self.position, "key": self.key, "reason": self.reason}


class ItemParseError(ItemError):
    """Structural problem with one <product> element."""


class ItemValidationError(ItemError):
    """Field-level validation failure for one item."""


class ItemPersistenceError(ItemError):
    """The database rejected one item's writes (constraint or data error)."""


class JobNotFoundError(CatalogImportError):
    def __init__(self, job_id: Any) -> None:
        self.job_id = job_id
        super().__init__(f"Import job {job_id} not found")
