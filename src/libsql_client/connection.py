"""Connections: the session handle for ad-hoc SQL, statements and transactions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from libsql_client import native
from libsql_client.executor import Executor
from libsql_client.models.results import ConnectionInfo
from libsql_client.transaction import Transaction

if TYPE_CHECKING:
    from libsql_client.database import Database


class Connection(Executor):
    """An open session on a Database.

    Closing the connection releases its transactions (rolling back any
    still open), statements and result sets first.
    """

    kind = "connection"

    def __init__(self, lib: Any, raw: native.libsql_connection_t, database: Database) -> None:
        """Take ownership of a connection handle opened on ``database``."""
        super().__init__(lib, parent=database)
        self._raw = raw
        self.database = database
        self._acquired()

    def _release(self) -> None:
        self._lib.libsql_connection_deinit(self._raw)

    def _prepare_raw(self, sql: bytes) -> Any:
        return self._lib.libsql_connection_prepare(self._raw, sql)

    def _batch_raw(self, sql: bytes) -> Any:
        return self._lib.libsql_connection_batch(self._raw, sql)

    def transaction(self) -> Transaction:
        """Begin a transaction on this connection."""
        self._ensure_open()
        raw = native.check(
            self._lib,
            self._lib.libsql_connection_transaction(self._raw),
            "libsql_connection_transaction",
        )
        return Transaction(self._lib, raw, self)

    def info(self) -> ConnectionInfo:
        """Return the connection's last inserted rowid and total change count."""
        self._ensure_open()
        result = native.check(
            self._lib, self._lib.libsql_connection_info(self._raw), "libsql_connection_info"
        )
        return ConnectionInfo(
            last_insert_rowid=result.last_inserted_rowid,
            total_changes=result.total_changes,
        )
