"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All value types are frozen dataclasses
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto
import time


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    Every failure the core reports is one of these.
    """
    # Storage errors
    STORE_UNAVAILABLE = auto()
    NOTE_NOT_FOUND = auto()
    MALFORMED_RECORD = auto()
    PARTIAL_WRITE = auto()
    DOCUMENT_NOT_FOUND = auto()
    BATCH_TOO_LARGE = auto()

    # Exchange errors
    FILE_UNREADABLE = auto()
    FILE_UNWRITABLE = auto()
    EMPTY_PAYLOAD = auto()

    # Query errors
    INVALID_MONTH = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and returned.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(code: ErrorCode, message: str) -> Error:
        return Error(code=code, message=message, timestamp=datetime.now(timezone.utc))

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )

    def context_value(self, key: str) -> Optional[str]:
        for k, v in self.context:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


# =============================================================================
# EXCEPTIONS (raised by stores, mapped to Error at the edges)
# =============================================================================

class StoreError(Exception):
    """Base class for typed store failures."""

    code = ErrorCode.STORE_UNAVAILABLE

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    def to_error(self) -> Error:
        return Error.create(self.code, str(self))


class StoreUnavailableError(StoreError):
    """Transient I/O failure (network, disk). Never retried by the store."""

    code = ErrorCode.STORE_UNAVAILABLE


class NoteNotFoundError(StoreError):
    """The addressed note does not exist for this owner."""

    code = ErrorCode.NOTE_NOT_FOUND


class DocumentNotFoundError(StoreError):
    """An update addressed a document that does not exist."""

    code = ErrorCode.DOCUMENT_NOT_FOUND


class BatchTooLargeError(StoreError):
    """An atomic batch exceeded the backend's per-commit write ceiling."""

    code = ErrorCode.BATCH_TOO_LARGE


# =============================================================================
# TIME
# =============================================================================

def now_millis() -> int:
    """Current wall-clock time in milliseconds since epoch."""
    return time.time_ns() // 1_000_000
