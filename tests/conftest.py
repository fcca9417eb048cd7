"""Shared test fixtures."""

import ctypes
import gc
import itertools
import sqlite3
import uuid
from dataclasses import dataclass, field

import pytest

from libsql_client import Database, native
from libsql_client.native import (
    libsql_batch_t,
    libsql_bind_t,
    libsql_connection_info_t,
    libsql_connection_t,
    libsql_database_t,
    libsql_execute_t,
    libsql_log_t,
    libsql_result_value_t,
    libsql_row_t,
    libsql_rows_t,
    libsql_slice_t,
    libsql_statement_t,
    libsql_sync_t,
    libsql_transaction_t,
    libsql_value_t,
)

_SQL_ERRORS = (sqlite3.Error, sqlite3.Warning)


@dataclass
class FakeDatabase:
    target: str
    uri: bool = False
    keeper: sqlite3.Connection | None = None
    synced: bool = False
    remote_url: str | None = None
    frame_no: int = 0
    desc: dict[str, object] = field(default_factory=dict)


@dataclass
class FakeConnection:
    conn: sqlite3.Connection


@dataclass
class FakeTransaction:
    connection: FakeConnection


@dataclass
class FakeStatement:
    conn: sqlite3.Connection
    sql: str
    positional: list[object] = field(default_factory=list)
    named: dict[str, object] = field(default_factory=dict)

    def params(self) -> dict[str, object] | tuple[object, ...]:
        if self.named:
            return dict(self.named)
        return tuple(self.positional)


@dataclass
class FakeRows:
    rows: list[tuple[object, ...]]
    names: list[str]
    pos: int = 0


@dataclass
class FakeRow:
    values: tuple[object, ...]
    names: list[str]


class FakeLibsql:
    """In-process stand-in for the libsql C library, backed by sqlite3.

    Implements the same function names and struct shapes as the ctypes
    declarations. Every handle, error and slice it hands out is tracked;
    using or releasing one that is no longer live raises AssertionError.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._memory_prefix = f"fake-memory-{uuid.uuid4().hex}"
        self.handles: dict[int, tuple[str, object]] = {}
        self.errors: dict[int, bytes] = {}
        self.slices: dict[int, ctypes.Array] = {}
        self.released: list[str] = []
        self.remotes: dict[str, tuple[str, str]] = {}
        self.logger = None
        self.resets = 0
        self.calls: list[str] = []
        self._failures: dict[str, list] = {}

    # -- test controls --

    def fail(self, function: str, message: str, *, after: int = 0) -> None:
        """Make the (after+1)-th next call to ``function`` report ``message``."""
        self._failures[function] = [after, message]

    def register_remote(self, url: str, auth_token: str, path: str) -> None:
        self.remotes[url] = (auth_token, path)

    def live(self, kind: str | None = None) -> int:
        return sum(1 for k, _ in self.handles.values() if kind is None or k == kind)

    # -- bookkeeping --

    def _failure(self, function: str) -> int | None:
        self.calls.append(function)
        pending = self._failures.get(function)
        if pending is None:
            return None
        if pending[0] > 0:
            pending[0] -= 1
            return None
        del self._failures[function]
        return self._error(pending[1])

    def _error(self, message: str) -> int:
        eid = next(self._ids)
        self.errors[eid] = message.encode()
        return eid

    def _new(self, kind: str, obj: object) -> int:
        hid = next(self._ids)
        self.handles[hid] = (kind, obj)
        return hid

    def _get(self, kind: str, handle) -> object:
        entry = self.handles.get(handle.inner)
        if entry is None or entry[0] != kind:
            raise AssertionError(f"use of released or invalid {kind} handle")
        return entry[1]

    def _drop(self, kind: str, handle) -> object:
        obj = self._get(kind, handle)
        del self.handles[handle.inner]
        self.released.append(kind)
        return obj

    def _slice(self, data: bytes) -> libsql_slice_t:
        buf = ctypes.create_string_buffer(data)
        addr = ctypes.addressof(buf)
        self.slices[addr] = buf
        return libsql_slice_t(ptr=addr, len=len(data))

    def _log(self, level: int, message: str) -> None:
        if self.logger:
            self.logger(libsql_log_t(message=message.encode(), target=b"fake", level=level))

    # -- setup and errors --

    def libsql_setup(self, config):
        self.logger = config.logger
        return None

    def libsql_error_message(self, err):
        if err not in self.errors:
            raise AssertionError("message read from a released error")
        return self.errors[err]

    def libsql_error_deinit(self, err):
        if err not in self.errors:
            raise AssertionError("double free of error")
        del self.errors[err]

    # -- database --

    def libsql_database_init(self, desc):
        err = self._failure("libsql_database_init")
        if err:
            return libsql_database_t(err=err)
        path = desc.path.decode() if desc.path is not None else None
        url = desc.url.decode() if desc.url is not None else None
        db = FakeDatabase(
            target=path or "",
            synced=bool(desc.synced),
            remote_url=url,
            desc={
                "auth_token": desc.auth_token,
                "encryption_key": desc.encryption_key,
                "sync_interval": desc.sync_interval,
                "cypher": desc.cypher,
                "disable_read_your_writes": desc.disable_read_your_writes,
                "webpki": desc.webpki,
            },
        )
        if url is not None:
            remote = self.remotes.get(url)
            if remote is None:
                return libsql_database_t(err=self._error(f"failed to connect to {url}"))
            if desc.auth_token.decode() != remote[0]:
                return libsql_database_t(err=self._error("unauthorized: invalid auth token"))
            if path is None:
                db.target = remote[1]
        hid = next(self._ids)
        if db.target == ":memory:":
            db.target = f"file:{self._memory_prefix}-{hid}?mode=memory&cache=shared"
            db.uri = True
        try:
            db.keeper = sqlite3.connect(db.target, uri=db.uri)
        except _SQL_ERRORS as exc:
            return libsql_database_t(err=self._error(str(exc)))
        self.handles[hid] = ("database", db)
        self._log(3, f"opened {path or url}")
        return libsql_database_t(inner=hid)

    def libsql_database_sync(self, handle):
        db = self._get("database", handle)
        err = self._failure("libsql_database_sync")
        if err:
            return libsql_sync_t(err=err)
        if not db.synced:
            return libsql_sync_t(err=self._error("sync is only supported for synced databases"))
        if db.remote_url not in self.remotes:
            return libsql_sync_t(err=self._error("sync failed: remote unreachable"))
        db.frame_no += 1
        return libsql_sync_t(frame_no=db.frame_no, frames_synced=1)

    def libsql_database_connect(self, handle):
        db = self._get("database", handle)
        err = self._failure("libsql_database_connect")
        if err:
            return libsql_connection_t(err=err)
        conn = sqlite3.connect(db.target, uri=db.uri, isolation_level=None)
        return libsql_connection_t(inner=self._new("connection", FakeConnection(conn)))

    def libsql_database_deinit(self, handle):
        db = self._drop("database", handle)
        if db.keeper is not None:
            db.keeper.close()

    # -- connection --

    def libsql_connection_transaction(self, handle):
        conn = self._get("connection", handle)
        try:
            conn.conn.execute("BEGIN")
        except _SQL_ERRORS as exc:
            return libsql_transaction_t(err=self._error(str(exc)))
        return libsql_transaction_t(inner=self._new("transaction", FakeTransaction(conn)))

    def libsql_connection_batch(self, handle, sql):
        conn = self._get("connection", handle)
        return self._batch(conn.conn, sql)

    def libsql_connection_info(self, handle):
        conn = self._get("connection", handle)
        rowid = conn.conn.execute("select last_insert_rowid()").fetchone()[0]
        return libsql_connection_info_t(
            last_inserted_rowid=rowid, total_changes=conn.conn.total_changes
        )

    def libsql_connection_prepare(self, handle, sql):
        conn = self._get("connection", handle)
        return self._prepare(conn.conn, sql)

    def libsql_connection_deinit(self, handle):
        conn = self._drop("connection", handle)
        conn.conn.close()

    # -- transaction --

    def libsql_transaction_batch(self, handle, sql):
        tx = self._get("transaction", handle)
        return self._batch(tx.connection.conn, sql)

    def libsql_transaction_prepare(self, handle, sql):
        tx = self._get("transaction", handle)
        return self._prepare(tx.connection.conn, sql)

    def libsql_transaction_commit(self, handle):
        tx = self._drop("transaction", handle)
        tx.connection.conn.execute("COMMIT")

    def libsql_transaction_rollback(self, handle):
        tx = self._drop("transaction", handle)
        tx.connection.conn.execute("ROLLBACK")

    def _prepare(self, conn, sql):
        err = self._failure("prepare")
        if err:
            return libsql_statement_t(err=err)
        stmt = FakeStatement(conn, sql.decode())
        return libsql_statement_t(inner=self._new("statement", stmt))

    def _batch(self, conn, sql):
        buffer = ""
        try:
            for piece in sql.decode().split(";"):
                buffer += piece + ";"
                if sqlite3.complete_statement(buffer):
                    if buffer.strip(" \n\t;"):
                        conn.execute(buffer)
                    buffer = ""
            if buffer.strip(" \n\t;"):
                conn.execute(buffer)
        except _SQL_ERRORS as exc:
            return libsql_batch_t(err=self._error(str(exc)))
        return libsql_batch_t()

    # -- statement --

    def libsql_statement_execute(self, handle):
        stmt = self._get("statement", handle)
        try:
            cursor = stmt.conn.execute(stmt.sql, stmt.params())
        except _SQL_ERRORS as exc:
            return libsql_execute_t(err=self._error(str(exc)))
        changed = max(cursor.rowcount, 0)
        cursor.close()
        return libsql_execute_t(rows_changed=changed)

    def libsql_statement_query(self, handle):
        stmt = self._get("statement", handle)
        err = self._failure("libsql_statement_query")
        if err:
            return libsql_rows_t(err=err)
        try:
            cursor = stmt.conn.execute(stmt.sql, stmt.params())
            rows = cursor.fetchall()
        except _SQL_ERRORS as exc:
            return libsql_rows_t(err=self._error(str(exc)))
        names = [column[0] for column in cursor.description or []]
        return libsql_rows_t(inner=self._new("rows", FakeRows(rows, names)))

    def libsql_statement_reset(self, handle):
        stmt = self._get("statement", handle)
        stmt.positional.clear()
        stmt.named.clear()
        self.resets += 1

    def libsql_statement_bind_value(self, handle, value):
        stmt = self._get("statement", handle)
        err = self._failure("libsql_statement_bind_value")
        if err:
            return libsql_bind_t(err=err)
        stmt.positional.append(self._decode(value))
        return libsql_bind_t()

    def libsql_statement_bind_named(self, handle, name, value):
        stmt = self._get("statement", handle)
        err = self._failure("libsql_statement_bind_named")
        if err:
            return libsql_bind_t(err=err)
        stmt.named[name.decode()[1:]] = self._decode(value)
        return libsql_bind_t()

    def libsql_statement_deinit(self, handle):
        self._drop("statement", handle)

    # -- rows --

    def libsql_rows_next(self, handle):
        rows = self._get("rows", handle)
        err = self._failure("libsql_rows_next")
        if err:
            return libsql_row_t(err=err)
        if rows.pos >= len(rows.rows):
            return libsql_row_t()
        row = FakeRow(rows.rows[rows.pos], rows.names)
        rows.pos += 1
        return libsql_row_t(inner=self._new("row", row))

    def libsql_rows_column_name(self, handle, index):
        rows = self._get("rows", handle)
        return self._slice(rows.names[index].encode())

    def libsql_rows_column_count(self, handle):
        return len(self._get("rows", handle).names)

    def libsql_rows_deinit(self, handle):
        self._drop("rows", handle)

    def libsql_row_value(self, handle, index):
        row = self._get("row", handle)
        if not 0 <= index < len(row.values):
            return libsql_result_value_t(err=self._error("column index out of bounds"))
        result = libsql_result_value_t()
        value = row.values[index]
        if value is None:
            result.ok.type = 5
        elif isinstance(value, int):
            result.ok.type = 1
            result.ok.value.integer = value
        elif isinstance(value, float):
            result.ok.type = 2
            result.ok.value.real = value
        elif isinstance(value, str):
            result.ok.type = 3
            result.ok.value.text = self._slice(value.encode())
        else:
            result.ok.type = 4
            result.ok.value.blob = self._slice(bytes(value))
        return result

    def libsql_row_name(self, handle, index):
        row = self._get("row", handle)
        return self._slice(row.names[index].encode())

    def libsql_row_length(self, handle):
        return len(self._get("row", handle).values)

    def libsql_row_empty(self, handle):
        return not handle.inner

    def libsql_row_deinit(self, handle):
        if handle.inner:
            self._drop("row", handle)

    # -- values --

    def libsql_integer(self, integer):
        value = libsql_value_t(type=1)
        value.value.integer = integer
        return value

    def libsql_real(self, real):
        value = libsql_value_t(type=2)
        value.value.real = real
        return value

    def libsql_text(self, ptr, length):
        value = libsql_value_t(type=3)
        value.value.text.ptr = ctypes.cast(ptr, ctypes.c_void_p).value
        value.value.text.len = length
        return value

    def libsql_blob(self, ptr, length):
        value = libsql_value_t(type=4)
        value.value.blob.ptr = ctypes.cast(ptr, ctypes.c_void_p).value
        value.value.blob.len = length
        return value

    def libsql_null(self):
        return libsql_value_t(type=5)

    def libsql_slice_deinit(self, raw):
        if raw.ptr not in self.slices:
            raise AssertionError("double free of slice")
        del self.slices[raw.ptr]

    def _decode(self, value):
        if value.type == 1:
            return value.value.integer
        if value.type == 2:
            return value.value.real
        if value.type == 5:
            return None
        raw = value.value.text if value.type == 3 else value.value.blob
        if not raw.ptr:
            raise AssertionError("null pointer passed for a text or blob value")
        if value.type == 3:
            if ctypes.string_at(raw.ptr + raw.len, 1) != b"\x00":
                raise AssertionError("text value is not null-terminated")
            return ctypes.string_at(raw.ptr, raw.len).decode()
        return ctypes.string_at(raw.ptr, raw.len)


def _checked_library():
    fake = FakeLibsql()
    native.setup_library(fake)
    yield fake
    gc.collect()
    assert fake.handles == {}, f"leaked handles: {sorted(k for k, _ in fake.handles.values())}"
    assert fake.errors == {}, "leaked engine errors"
    assert fake.slices == {}, "leaked slices"


@pytest.fixture
def lib():
    """Fake engine library; fails the test if anything is left unreleased."""
    yield from _checked_library()


@pytest.fixture
def other_lib():
    """A second, independent fake engine library."""
    yield from _checked_library()


@pytest.fixture
def db(lib):
    """In-memory database on the fake engine."""
    database = Database(":memory:", library=lib)
    yield database
    database.close()


@pytest.fixture
def conn(db):
    """Connection on the in-memory database."""
    with db.connect() as connection:
        yield connection
