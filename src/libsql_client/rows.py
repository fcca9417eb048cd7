"""Lazy, forward-only row iteration over an engine result set."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from libsql_client import native
from libsql_client.handle import NativeHandle
from libsql_client.value import PythonValue, Value

if TYPE_CHECKING:
    from libsql_client.statement import Statement

logger = logging.getLogger(__name__)


class Row(NativeHandle):
    """A view of one result tuple, valid until its Rows advances.

    Columns are zero-based. Index validation is left to the engine, so an
    out-of-range index surfaces as an EngineError.
    """

    kind = "row"

    def __init__(self, lib: Any, raw: native.libsql_row_t, rows: Rows) -> None:
        """Take ownership of a row handle produced by ``rows``."""
        super().__init__(lib, parent=rows)
        self._raw = raw
        self._acquired()

    def _release(self) -> None:
        self._lib.libsql_row_deinit(self._raw)

    def __len__(self) -> int:
        self._ensure_open()
        return int(self._lib.libsql_row_length(self._raw))

    def __getitem__(self, index: int) -> PythonValue:
        return self.get(index).to_python()

    def __iter__(self) -> Iterator[PythonValue]:
        return iter(self.values())

    def __repr__(self) -> str:
        if self._closed:
            return "<Row (released)>"
        return f"<Row {self.values()!r}>"

    def get(self, index: int) -> Value:
        """Decode column ``index`` into a Value."""
        self._ensure_open()
        result = native.check(
            self._lib, self._lib.libsql_row_value(self._raw, index), "libsql_row_value"
        )
        return native.read_value(self._lib, result.ok)

    def get_int(self, index: int) -> int:
        """Return an integer column; TypeMismatchError for any other tag."""
        return self.get(index).as_int()

    def get_float(self, index: int) -> float:
        """Return a real column; TypeMismatchError for any other tag."""
        return self.get(index).as_float()

    def get_str(self, index: int) -> str:
        """Return a text column; TypeMismatchError for any other tag."""
        return self.get(index).as_str()

    def get_bytes(self, index: int) -> bytes:
        """Return a blob column; TypeMismatchError for any other tag."""
        return self.get(index).as_bytes()

    def column_name(self, index: int) -> str:
        """Return the name of column ``index``."""
        self._ensure_open()
        raw = self._lib.libsql_row_name(self._raw, index)
        return native.read_text(self._lib, raw, "libsql_row_name")

    def values(self) -> tuple[PythonValue, ...]:
        """Decode every column into plain Python values."""
        return tuple(self[i] for i in range(len(self)))


class Rows(NativeHandle):
    """Forward-only sequence of Row over an engine result set.

    Single pass and not restartable. The result set is released when the
    sequence is exhausted, when an advance fails, or on ``close``. Each
    advance releases the previously yielded Row.
    """

    kind = "rows"

    def __init__(
        self,
        lib: Any,
        raw: native.libsql_rows_t,
        statement: Statement,
        *,
        owns_statement: bool = False,
    ) -> None:
        """Take ownership of a result set produced by ``statement``.

        With ``owns_statement`` the statement is closed together with the
        rows; ad-hoc queries use this for their throwaway statement.
        """
        super().__init__(lib, parent=statement)
        self._raw = raw
        self._statement = statement
        self._owns_statement = owns_statement
        self._current: Row | None = None
        self._exhausted = False
        self._acquired()

    def _release(self) -> None:
        # the collector clears weak references before finalizers run, so the
        # current row may be missing from _children here
        if self._current is not None:
            self._current.close()
            self._current = None
        self._lib.libsql_rows_deinit(self._raw)

    def close(self) -> None:
        """Release the result set and, if owned, its statement."""
        if self._closed:
            return
        super().close()
        if self._owns_statement:
            self._statement.close()

    def __iter__(self) -> Iterator[Row]:
        return self

    def _finish(self) -> None:
        self._exhausted = True
        self.close()

    def __next__(self) -> Row:
        if self._exhausted:
            raise StopIteration
        self._ensure_open()
        if self._current is not None:
            self._current.close()
            self._current = None
        raw = self._lib.libsql_rows_next(self._raw)
        try:
            native.check(self._lib, raw, "libsql_rows_next")
        except Exception:
            # not resumable after a reported failure
            self._finish()
            raise
        if self._lib.libsql_row_empty(raw):
            self._lib.libsql_row_deinit(raw)
            self._finish()
            raise StopIteration
        self._current = Row(self._lib, raw, self)
        return self._current

    @property
    def column_count(self) -> int:
        """Number of columns in the result set."""
        self._ensure_open()
        return int(self._lib.libsql_rows_column_count(self._raw))

    def column_names(self) -> list[str]:
        """Names of the result columns, in order."""
        self._ensure_open()
        return [
            native.read_text(
                self._lib,
                self._lib.libsql_rows_column_name(self._raw, i),
                "libsql_rows_column_name",
            )
            for i in range(self.column_count)
        ]

    def fetchone(self) -> tuple[PythonValue, ...] | None:
        """Advance once and return the row's values, or None at the end."""
        row = next(self, None)
        return row.values() if row is not None else None

    def fetchall(self) -> list[tuple[PythonValue, ...]]:
        """Consume the remaining rows as tuples of plain values."""
        return [row.values() for row in self]
