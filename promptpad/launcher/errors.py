"""Error taxonomy and failure reports for prompt storage and indexing.

Ranking and the header codec never raise for malformed query text; they
raise only for malformed documents. Bulk operations (directory scans, index
rebuilds, imports) catch per item and collect failures into a report:

- DocumentParseError: malformed header or unreadable document, skipped
- DocumentNotFoundError: missing document or index, triggers a rebuild
- StorageIOError: write/save failure, surfaced to the editing caller
- ValidationError: rejected before any persistence attempt
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class PromptPadError(Exception):
    """Base class for all PromptPad errors."""

    def __init__(self, message: str, locator: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.locator = locator

    def __str__(self) -> str:
        if self.locator:
            return f"{self.message} ({self.locator})"
        return self.message


class DocumentParseError(PromptPadError):
    """A document or index snapshot could not be decoded."""


class DocumentNotFoundError(PromptPadError):
    """A document body or the index snapshot does not exist."""


class StorageIOError(PromptPadError):
    """Writing to storage failed."""


class ValidationError(PromptPadError):
    """Input was rejected before any persistence attempt."""


class FailureKind(Enum):
    """Failure categories reported by bulk operations."""
    PARSE = "parse"
    NOT_FOUND = "not_found"
    IO = "io"
    VALIDATION = "validation"


_KIND_BY_ERROR = {
    DocumentParseError: FailureKind.PARSE,
    DocumentNotFoundError: FailureKind.NOT_FOUND,
    StorageIOError: FailureKind.IO,
    ValidationError: FailureKind.VALIDATION,
}


def failure_kind(error: Exception) -> FailureKind:
    """Map an exception to the failure category used in reports."""
    for error_type, kind in _KIND_BY_ERROR.items():
        if isinstance(error, error_type):
            return kind
    if isinstance(error, OSError):
        return FailureKind.IO
    return FailureKind.PARSE


@dataclass
class ScanFailure:
    """One item skipped by a bulk operation."""
    item: str
    kind: FailureKind
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_error(cls, item: str, error: Exception) -> "ScanFailure":
        return cls(item=item, kind=failure_kind(error), message=str(error))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item,
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ScanReport:
    """Aggregated outcome of a bulk operation."""
    succeeded: int = 0
    failures: List[ScanFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add_success(self) -> None:
        self.succeeded += 1

    def add_failure(self, item: str, error: Exception) -> ScanFailure:
        failure = ScanFailure.from_error(item, error)
        self.failures.append(failure)
        return failure

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.succeeded,
            "failed": self.failed,
            "errors": [f.to_dict() for f in self.failures],
        }
