"""Error taxonomy shared by the reconciliation and analytics engine."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BidLedgerError(Exception):
    """Base class for every failure scoped to a single requested operation.

    ``row`` carries the position of the failing item when the operation
    processed a batch (upload rows, review decisions).
    """

    kind = "error"

    def __init__(self, message: str, *, row: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.row = row

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.row is not None:
            payload["row"] = self.row
        return payload

    def __str__(self) -> str:
        if self.row is None:
            return self.message
        return f"row {self.row}: {self.message}"


class ValidationError(BidLedgerError):
    """Malformed input: missing fields, non-numeric amounts, invalid decisions."""

    kind = "validation"


class ConflictError(BidLedgerError):
    """The request contradicts existing state (duplicate names or codes)."""

    kind = "conflict"


class NotFoundError(ConflictError):
    """A referenced record does not exist (or no longer exists)."""

    kind = "not_found"


__all__ = ["BidLedgerError", "ValidationError", "ConflictError", "NotFoundError"]
