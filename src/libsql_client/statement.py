"""Prepared statements with positional and named parameter binding."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from libsql_client import native
from libsql_client.handle import NativeHandle
from libsql_client.rows import Rows
from libsql_client.value import Value, to_value

logger = logging.getLogger(__name__)

Params = Sequence[Any] | Mapping[str, Any]

_NAME_PREFIXES = (":", "@", "$")

# (name or None for positional, value)
Binding = tuple[str | None, Value]


def _parameter_name(name: str) -> str:
    return name if name.startswith(_NAME_PREFIXES) else f":{name}"


def _bindings(params: Params) -> list[Binding]:
    """Convert caller parameters to bindings before touching the engine."""
    if isinstance(params, Mapping):
        return [(_parameter_name(str(name)), to_value(value)) for name, value in params.items()]
    if isinstance(params, str | bytes | bytearray):
        raise TypeError("parameters must be a sequence or mapping, not a single value")
    return [(None, to_value(value)) for value in params]


class Statement(NativeHandle):
    """A compiled command owned by the Connection or Transaction that prepared it.

    Reusable across runs. Each ``bind`` call replaces the whole binding
    set: the statement is reset and the new parameters are applied in
    order, positional ones at indices 1..N. Bindings persist across runs;
    re-running a statement resets it and re-applies the last bindings.
    """

    kind = "statement"

    def __init__(
        self, lib: Any, raw: native.libsql_statement_t, owner: NativeHandle, sql: str
    ) -> None:
        """Take ownership of a statement handle prepared by ``owner``."""
        super().__init__(lib, parent=owner)
        self._raw = raw
        self.sql = sql
        self._bound: list[Binding] = []
        self._has_run = False
        self._acquired()

    def _release(self) -> None:
        self._lib.libsql_statement_deinit(self._raw)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Statement {state} sql={self.sql!r}>"

    def _reset(self) -> None:
        # open result sets read from the statement; release them first
        self._close_children()
        self._lib.libsql_statement_reset(self._raw)
        self._has_run = False

    def _apply(self, bindings: list[Binding]) -> None:
        for index, (name, value) in enumerate(bindings, start=1):
            with native.native_value(self._lib, value) as raw:
                if name is None:
                    result = self._lib.libsql_statement_bind_value(self._raw, raw)
                else:
                    result = self._lib.libsql_statement_bind_named(
                        self._raw, native.encode(name), raw
                    )
            try:
                native.check(self._lib, result, "libsql_statement_bind")
            except Exception:
                # abort the whole bind; leave no partial binding set behind
                self._lib.libsql_statement_reset(self._raw)
                self._bound = []
                logger.debug("Bind aborted at parameter %s (%s)", index, name or "positional")
                raise

    def bind(self, params: Params) -> Statement:
        """Replace the statement's bindings with ``params``.

        A sequence binds positionally; a mapping binds by name, with a
        ``:`` prefix added to names that carry no prefix. Returns the
        statement for chaining.
        """
        self._ensure_open()
        bindings = _bindings(params)
        self._reset()
        self._bound = []
        self._apply(bindings)
        self._bound = bindings
        return self

    def _prepare_run(self, params: Params | None) -> None:
        self._ensure_open()
        if params is not None:
            self.bind(params)
        elif self._has_run:
            bound = self._bound
            self._reset()
            self._apply(bound)
        self._has_run = True

    def execute(self, params: Params | None = None) -> int:
        """Run a command that returns no rows; return the affected row count."""
        self._prepare_run(params)
        result = native.check(
            self._lib, self._lib.libsql_statement_execute(self._raw), "libsql_statement_execute"
        )
        return int(result.rows_changed)

    def query(self, params: Params | None = None) -> Rows:
        """Run a row-producing command and return its rows."""
        return self._query(params, owns_statement=False)

    def _query(self, params: Params | None, *, owns_statement: bool) -> Rows:
        self._prepare_run(params)
        raw = native.check(
            self._lib, self._lib.libsql_statement_query(self._raw), "libsql_statement_query"
        )
        return Rows(self._lib, raw, self, owns_statement=owns_statement)
