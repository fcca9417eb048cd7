"""Typed client for the libsql C engine."""

from libsql_client.connection import Connection
from libsql_client.database import Database
from libsql_client.errors import (
    ClosedHandleError,
    EngineError,
    LibraryNotFoundError,
    LibsqlError,
    TransactionClosedError,
    TypeMismatchError,
)
from libsql_client.models.config import Cipher, DatabaseConfig, DatabaseMode, TlsBackend
from libsql_client.models.results import ConnectionInfo, SyncResult
from libsql_client.native import load_library
from libsql_client.rows import Row, Rows
from libsql_client.statement import Statement
from libsql_client.transaction import Transaction, TransactionState
from libsql_client.value import Value, ValueRepresentable, ValueType, to_value

__all__ = [
    "Cipher",
    "ClosedHandleError",
    "Connection",
    "ConnectionInfo",
    "Database",
    "DatabaseConfig",
    "DatabaseMode",
    "EngineError",
    "LibraryNotFoundError",
    "LibsqlError",
    "Row",
    "Rows",
    "Statement",
    "SyncResult",
    "TlsBackend",
    "Transaction",
    "TransactionClosedError",
    "TransactionState",
    "TypeMismatchError",
    "Value",
    "ValueRepresentable",
    "ValueType",
    "load_library",
    "to_value",
]
