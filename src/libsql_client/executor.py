"""Operations shared by Connection and Transaction."""

from __future__ import annotations

import logging
from typing import Any

from libsql_client import native
from libsql_client.handle import NativeHandle
from libsql_client.rows import Rows
from libsql_client.statement import Params, Statement

logger = logging.getLogger(__name__)


class Executor(NativeHandle):
    """A handle SQL can be prepared and batched against.

    Subclasses supply the two engine calls that differ between a
    connection and a transaction; everything else is shared.
    """

    def _prepare_raw(self, sql: bytes) -> Any:
        raise NotImplementedError

    def _batch_raw(self, sql: bytes) -> Any:
        raise NotImplementedError

    def prepare(self, sql: str) -> Statement:
        """Compile ``sql`` into a reusable Statement."""
        self._ensure_open()
        raw = native.check(self._lib, self._prepare_raw(native.encode(sql)), "prepare")
        logger.debug("Prepared %r", sql)
        return Statement(self._lib, raw, self, sql)

    def execute(self, sql: str, params: Params | None = None) -> int:
        """Prepare, bind and execute ``sql`` once; return the affected row count."""
        with self.prepare(sql) as statement:
            return statement.execute(params)

    def query(self, sql: str, params: Params | None = None) -> Rows:
        """Prepare, bind and run ``sql`` once; return its rows.

        The throwaway statement is released together with the rows.
        """
        statement = self.prepare(sql)
        try:
            return statement._query(params, owns_statement=True)
        except BaseException:
            statement.close()
            raise

    def execute_batch(self, sql: str) -> None:
        """Run semicolon-separated statements in one engine call.

        Statements run in order with no implicit transaction; the first
        failure stops the batch and is raised.
        """
        self._ensure_open()
        native.check(self._lib, self._batch_raw(native.encode(sql)), "batch")
