"""Tagged values exchanged with the engine.

Every parameter and column crosses the foreign boundary as one of five
tags. ``Value`` holds exactly one of them; typed accessors decode or fail
with ``TypeMismatchError`` and never coerce between numeric types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol, runtime_checkable

from libsql_client.errors import TypeMismatchError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

PythonValue = int | float | str | bytes | None


class ValueType(IntEnum):
    """Engine column/parameter type tags, numbered as in ``libsql_type_t``."""

    INTEGER = 1
    REAL = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


_PAYLOAD_TYPES: dict[ValueType, type | None] = {
    ValueType.INTEGER: int,
    ValueType.REAL: float,
    ValueType.TEXT: str,
    ValueType.BLOB: bytes,
    ValueType.NULL: None,
}


@dataclass(frozen=True, slots=True)
class Value:
    """A single engine value: one tag plus its payload."""

    type: ValueType
    payload: PythonValue = None

    def __post_init__(self) -> None:
        expected = _PAYLOAD_TYPES[self.type]
        if expected is None:
            if self.payload is not None:
                raise ValueError("null value cannot carry a payload")
            return
        # exact type match: bool is not an integer payload, int is not a real
        if type(self.payload) is not expected:
            raise ValueError(
                f"{self.type.name.lower()} value requires a {expected.__name__} payload, "
                f"got {type(self.payload).__name__}"
            )
        if self.type is ValueType.INTEGER and not (
            INT64_MIN <= self.payload <= INT64_MAX  # type: ignore[operator]
        ):
            raise OverflowError(f"integer {self.payload} does not fit in 64 bits")

    @classmethod
    def integer(cls, value: int) -> Value:
        """Build an integer value."""
        return cls(ValueType.INTEGER, int(value))

    @classmethod
    def real(cls, value: float) -> Value:
        """Build a real value."""
        return cls(ValueType.REAL, float(value))

    @classmethod
    def text(cls, value: str) -> Value:
        """Build a text value."""
        return cls(ValueType.TEXT, value)

    @classmethod
    def blob(cls, value: bytes | bytearray | memoryview) -> Value:
        """Build a blob value."""
        return cls(ValueType.BLOB, bytes(value))

    @classmethod
    def null(cls) -> Value:
        """Build the null value."""
        return cls(ValueType.NULL)

    @property
    def is_null(self) -> bool:
        return self.type is ValueType.NULL

    def _expect(self, expected: ValueType) -> PythonValue:
        if self.type is not expected:
            raise TypeMismatchError(expected, self.type)
        return self.payload

    def as_int(self) -> int:
        """Return the integer payload or raise TypeMismatchError."""
        return self._expect(ValueType.INTEGER)  # type: ignore[return-value]

    def as_float(self) -> float:
        """Return the real payload or raise TypeMismatchError."""
        return self._expect(ValueType.REAL)  # type: ignore[return-value]

    def as_str(self) -> str:
        """Return the text payload or raise TypeMismatchError."""
        return self._expect(ValueType.TEXT)  # type: ignore[return-value]

    def as_bytes(self) -> bytes:
        """Return the blob payload or raise TypeMismatchError."""
        return self._expect(ValueType.BLOB)  # type: ignore[return-value]

    def to_python(self) -> PythonValue:
        """Return the payload as a plain Python value (None for null)."""
        return self.payload

    def to_value(self) -> Value:
        return self


@runtime_checkable
class ValueRepresentable(Protocol):
    """Anything that can turn itself into a bindable Value."""

    def to_value(self) -> Value:
        """Convert to a Value."""
        ...


def to_value(obj: object) -> Value:
    """Convert a native Python object into a Value.

    Supported: Value and any ValueRepresentable, None, bool (as 0/1),
    int, float, str, and bytes-like objects. Other types raise TypeError;
    integers outside the signed 64-bit range raise OverflowError.
    """
    if isinstance(obj, Value):
        return obj
    if obj is None:
        return Value.null()
    if isinstance(obj, bool):
        return Value.integer(1 if obj else 0)
    if isinstance(obj, int):
        return Value.integer(obj)
    if isinstance(obj, float):
        return Value.real(obj)
    if isinstance(obj, str):
        return Value.text(obj)
    if isinstance(obj, bytes | bytearray | memoryview):
        return Value.blob(obj)
    if isinstance(obj, ValueRepresentable):
        return obj.to_value()
    raise TypeError(f"cannot bind value of type {type(obj).__name__}")
