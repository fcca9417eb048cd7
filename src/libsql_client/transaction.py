"""Transactions: a scoped unit of work over a Connection."""

from __future__ import annotations

import logging
from enum import StrEnum
from types import TracebackType
from typing import TYPE_CHECKING, Any

from libsql_client import native
from libsql_client.errors import TransactionClosedError
from libsql_client.executor import Executor

if TYPE_CHECKING:
    from libsql_client.connection import Connection

logger = logging.getLogger(__name__)


class TransactionState(StrEnum):
    """Lifecycle of a transaction. Committed and rolled back are terminal."""

    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled back"


class Transaction(Executor):
    """An engine transaction with exactly one terminal action.

    While open it supports ``prepare``, ``execute``, ``query`` and
    ``execute_batch`` like a Connection. ``commit`` and ``rollback``
    consume the engine handle and release every statement and result set
    derived from the transaction. A transaction that is closed, leaves a
    ``with`` block, or is collected while still open is rolled back.
    """

    kind = "transaction"

    def __init__(self, lib: Any, raw: native.libsql_transaction_t, connection: Connection) -> None:
        """Take ownership of a transaction handle begun on ``connection``."""
        super().__init__(lib, parent=connection)
        self._raw = raw
        self.state = TransactionState.OPEN
        self._acquired()

    def _ensure_open(self) -> None:
        if self.state is not TransactionState.OPEN:
            raise TransactionClosedError(self.state)
        super()._ensure_open()

    def _prepare_raw(self, sql: bytes) -> Any:
        return self._lib.libsql_transaction_prepare(self._raw, sql)

    def _batch_raw(self, sql: bytes) -> Any:
        return self._lib.libsql_transaction_batch(self._raw, sql)

    def _finish(self, state: TransactionState) -> None:
        self._ensure_open()
        self.state = state
        # statements must not outlive the engine transaction
        self._close_children()
        self._closed = True
        if state is TransactionState.COMMITTED:
            self._lib.libsql_transaction_commit(self._raw)
        else:
            self._lib.libsql_transaction_rollback(self._raw)
        logger.debug("Transaction %s", state.value)

    def commit(self) -> None:
        """Commit the transaction's writes."""
        self._finish(TransactionState.COMMITTED)

    def rollback(self) -> None:
        """Discard the transaction's writes."""
        self._finish(TransactionState.ROLLED_BACK)

    def close(self) -> None:
        """Roll back if neither commit nor rollback has happened yet."""
        if self.state is TransactionState.OPEN and not self._closed:
            logger.warning("Transaction released without commit or rollback; rolling back")
            self.rollback()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None and self.state is TransactionState.OPEN and not self._closed:
            logger.debug("Rolling back transaction after %s", exc_type.__name__)
            self.rollback()
            return
        self.close()
