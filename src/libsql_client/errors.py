"""Exception hierarchy for engine, decoding, and lifecycle failures."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from libsql_client.transaction import TransactionState
    from libsql_client.value import ValueType


class LibsqlError(Exception):
    """Base class for every error raised by this package."""


class LibraryNotFoundError(LibsqlError):
    """The libsql shared library could not be located or loaded."""


class EngineError(LibsqlError):
    """A failure reported by the engine across the foreign boundary.

    Covers SQL errors, constraint violations, I/O, network and sync
    failures. ``message`` is the engine's text, unmodified.
    """

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        """Initialize with the engine message and the failing call name."""
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class TypeMismatchError(LibsqlError, TypeError):
    """A typed accessor was used on a value holding a different tag."""

    def __init__(self, expected: ValueType, actual: ValueType) -> None:
        """Initialize with the requested and the stored value types."""
        super().__init__(f"expected {expected.name.lower()}, found {actual.name.lower()}")
        self.expected = expected
        self.actual = actual


class ClosedHandleError(LibsqlError):
    """An operation was attempted on a released handle."""


class TransactionClosedError(ClosedHandleError):
    """An operation was attempted on a committed or rolled back transaction."""

    def __init__(self, state: TransactionState) -> None:
        """Initialize with the transaction's terminal state."""
        super().__init__(f"transaction is already {state.value}")
        self.state = state
