"""ctypes surface of the libsql C engine.

Declares the struct shapes and function signatures of ``libsql.h``, loads
the shared library, and provides the helpers every wrapper funnels its
foreign calls through:

- ``check`` turns a populated error slot into an ``EngineError`` and frees
  the engine error object exactly once.
- ``native_value`` / ``read_value`` marshal ``Value`` to and from
  ``libsql_value_t``, copying engine-owned slices before freeing them.

Handles returned by the engine are small structs ``{err, inner}`` passed
back by value. The error slot must be inspected before ``inner`` is used.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from ctypes import (
    CFUNCTYPE,
    POINTER,
    Structure,
    Union,
    c_bool,
    c_char,
    c_char_p,
    c_double,
    c_int,
    c_int32,
    c_int64,
    c_size_t,
    c_uint8,
    c_uint64,
    c_void_p,
)
from typing import Any, NoReturn

from libsql_client.config import get_library_path
from libsql_client.errors import EngineError, LibraryNotFoundError
from libsql_client.value import Value, ValueType

logger = logging.getLogger(__name__)
engine_logger = logging.getLogger("libsql_client.engine")

LIBRARY_NAME = "libsql"


# -- Struct shapes --


class libsql_slice_t(Structure):
    _fields_ = [("ptr", c_void_p), ("len", c_size_t)]


class libsql_value_union_t(Union):
    _fields_ = [
        ("integer", c_int64),
        ("real", c_double),
        ("text", libsql_slice_t),
        ("blob", libsql_slice_t),
    ]


class libsql_value_t(Structure):
    _fields_ = [("value", libsql_value_union_t), ("type", c_int)]


class libsql_result_value_t(Structure):
    _fields_ = [("err", c_void_p), ("ok", libsql_value_t)]


class _HandleStruct(Structure):
    _fields_ = [("err", c_void_p), ("inner", c_void_p)]


class libsql_database_t(_HandleStruct):
    pass


class libsql_connection_t(_HandleStruct):
    pass


class libsql_transaction_t(_HandleStruct):
    pass


class libsql_statement_t(_HandleStruct):
    pass


class libsql_rows_t(_HandleStruct):
    pass


class libsql_row_t(_HandleStruct):
    pass


class libsql_batch_t(Structure):
    _fields_ = [("err", c_void_p)]


class libsql_bind_t(Structure):
    _fields_ = [("err", c_void_p)]


class libsql_execute_t(Structure):
    _fields_ = [("err", c_void_p), ("rows_changed", c_uint64)]


class libsql_sync_t(Structure):
    _fields_ = [("err", c_void_p), ("frame_no", c_uint64), ("frames_synced", c_uint64)]


class libsql_connection_info_t(Structure):
    _fields_ = [
        ("err", c_void_p),
        ("last_inserted_rowid", c_int64),
        ("total_changes", c_uint64),
    ]


class libsql_database_desc_t(Structure):
    _fields_ = [
        ("url", c_char_p),
        ("path", c_char_p),
        ("auth_token", c_char_p),
        ("encryption_key", c_char_p),
        ("sync_interval", c_uint64),
        ("cypher", c_int),
        ("disable_read_your_writes", c_bool),
        ("webpki", c_bool),
        ("synced", c_bool),
    ]


class libsql_log_t(Structure):
    _fields_ = [
        ("message", c_char_p),
        ("target", c_char_p),
        ("file", c_char_p),
        ("timestamp", c_uint64),
        ("line", c_size_t),
        ("level", c_int),
    ]


LOGGER_CALLBACK = CFUNCTYPE(None, libsql_log_t)


class libsql_config_t(Structure):
    _fields_ = [("logger", LOGGER_CALLBACK), ("version", c_char_p)]


CIPHER_DEFAULT = 0
CIPHER_AES256 = 1

# libsql_tracing_level_t
_ENGINE_LOG_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
    5: logging.DEBUG,
}

_SIGNATURES: dict[str, tuple[list[Any], Any]] = {
    "libsql_setup": ([libsql_config_t], c_void_p),
    "libsql_error_message": ([c_void_p], c_char_p),
    "libsql_error_deinit": ([c_void_p], None),
    "libsql_database_init": ([libsql_database_desc_t], libsql_database_t),
    "libsql_database_sync": ([libsql_database_t], libsql_sync_t),
    "libsql_database_connect": ([libsql_database_t], libsql_connection_t),
    "libsql_database_deinit": ([libsql_database_t], None),
    "libsql_connection_transaction": ([libsql_connection_t], libsql_transaction_t),
    "libsql_connection_batch": ([libsql_connection_t, c_char_p], libsql_batch_t),
    "libsql_connection_info": ([libsql_connection_t], libsql_connection_info_t),
    "libsql_connection_prepare": ([libsql_connection_t, c_char_p], libsql_statement_t),
    "libsql_connection_deinit": ([libsql_connection_t], None),
    "libsql_transaction_batch": ([libsql_transaction_t, c_char_p], libsql_batch_t),
    "libsql_transaction_prepare": ([libsql_transaction_t, c_char_p], libsql_statement_t),
    "libsql_transaction_commit": ([libsql_transaction_t], None),
    "libsql_transaction_rollback": ([libsql_transaction_t], None),
    "libsql_statement_execute": ([libsql_statement_t], libsql_execute_t),
    "libsql_statement_query": ([libsql_statement_t], libsql_rows_t),
    "libsql_statement_reset": ([libsql_statement_t], None),
    "libsql_statement_bind_value": ([libsql_statement_t, libsql_value_t], libsql_bind_t),
    "libsql_statement_bind_named": (
        [libsql_statement_t, c_char_p, libsql_value_t],
        libsql_bind_t,
    ),
    "libsql_statement_deinit": ([libsql_statement_t], None),
    "libsql_rows_next": ([libsql_rows_t], libsql_row_t),
    "libsql_rows_column_name": ([libsql_rows_t, c_int32], libsql_slice_t),
    "libsql_rows_column_count": ([libsql_rows_t], c_int32),
    "libsql_rows_deinit": ([libsql_rows_t], None),
    "libsql_row_value": ([libsql_row_t, c_int32], libsql_result_value_t),
    "libsql_row_name": ([libsql_row_t, c_int32], libsql_slice_t),
    "libsql_row_length": ([libsql_row_t], c_int32),
    "libsql_row_empty": ([libsql_row_t], c_bool),
    "libsql_row_deinit": ([libsql_row_t], None),
    "libsql_integer": ([c_int64], libsql_value_t),
    "libsql_real": ([c_double], libsql_value_t),
    "libsql_text": ([POINTER(c_char), c_size_t], libsql_value_t),
    "libsql_blob": ([POINTER(c_uint8), c_size_t], libsql_value_t),
    "libsql_null": ([], libsql_value_t),
    "libsql_slice_deinit": ([libsql_slice_t], None),
}


# -- Library loading --

_libraries: dict[str, ctypes.CDLL] = {}
_load_lock = threading.Lock()


@LOGGER_CALLBACK
def _forward_engine_log(record: libsql_log_t) -> None:
    level = _ENGINE_LOG_LEVELS.get(record.level, logging.DEBUG)
    if not engine_logger.isEnabledFor(level):
        return
    message = (record.message or b"").decode("utf-8", errors="replace")
    target = (record.target or b"").decode("utf-8", errors="replace")
    engine_logger.log(level, "[%s] %s", target, message)


def setup_library(lib: Any) -> None:
    """Register the engine log bridge on a freshly loaded library."""
    config = libsql_config_t(logger=_forward_engine_log, version=None)
    err = lib.libsql_setup(config)
    if err:
        _raise_engine_error(lib, err, "libsql_setup")


def _declare(lib: ctypes.CDLL) -> None:
    for name, (argtypes, restype) in _SIGNATURES.items():
        func = getattr(lib, name)
        func.argtypes = argtypes
        func.restype = restype


def _resolve(path: str | None) -> str:
    candidate = path or get_library_path() or ctypes.util.find_library(LIBRARY_NAME)
    if not candidate:
        raise LibraryNotFoundError(
            f"{LIBRARY_NAME} shared library not found; set LIBSQL_LIBRARY_PATH"
        )
    return candidate


def load_library(path: str | None = None) -> ctypes.CDLL:
    """Load, declare and set up the libsql shared library.

    Resolution order: ``path``, LIBSQL_LIBRARY_PATH, then the system
    library search path. Each resolved library is set up once and cached.
    """
    resolved = _resolve(path)
    with _load_lock:
        lib = _libraries.get(resolved)
        if lib is not None:
            return lib
        try:
            lib = ctypes.CDLL(resolved)
            _declare(lib)
        except (OSError, AttributeError) as exc:
            raise LibraryNotFoundError(f"cannot load {resolved}: {exc}") from exc
        setup_library(lib)
        _libraries[resolved] = lib
        logger.debug("Loaded libsql from %s", resolved)
        return lib


# -- Error signal --


def check(lib: Any, result: Any, operation: str) -> Any:
    """Raise EngineError if ``result.err`` is set, else return ``result``.

    The engine message is copied before the error object is released, and
    the release happens exactly once whether or not decoding succeeds.
    """
    err = result.err
    if not err:
        return result
    _raise_engine_error(lib, err, operation)


def _raise_engine_error(lib: Any, err: int, operation: str) -> NoReturn:
    try:
        raw = lib.libsql_error_message(err)
        message = raw.decode("utf-8", errors="replace") if raw else "unknown engine error"
    finally:
        lib.libsql_error_deinit(err)
    logger.debug("%s failed: %s", operation, message)
    raise EngineError(message, operation=operation)


def encode(text: str) -> bytes:
    """Encode a string for a null-terminated ``const char *`` parameter."""
    data = text.encode("utf-8")
    if b"\x00" in data:
        raise ValueError("strings passed to the engine cannot contain NUL characters")
    return data


def read_slice(lib: Any, raw: libsql_slice_t) -> bytes:
    """Copy an engine-owned slice into Python memory and free it."""
    try:
        if not raw.ptr or not raw.len:
            return b""
        return ctypes.string_at(raw.ptr, raw.len)
    finally:
        lib.libsql_slice_deinit(raw)


def read_text(lib: Any, raw: libsql_slice_t, operation: str) -> str:
    """Copy an engine-owned UTF-8 slice into a str and free it."""
    data = read_slice(lib, raw)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EngineError(f"invalid UTF-8 in engine text: {exc}", operation=operation) from None


# -- Value marshalling --


@contextmanager
def native_value(lib: Any, value: Value) -> Iterator[libsql_value_t]:
    """Yield a ``libsql_value_t`` for ``value``.

    Text and blob values point into a buffer owned by this context; the
    bind call that consumes the value must return before the context exits.
    """
    buffer = None
    match value.type:
        case ValueType.INTEGER:
            raw = lib.libsql_integer(value.as_int())
        case ValueType.REAL:
            raw = lib.libsql_real(value.as_float())
        case ValueType.TEXT:
            data = value.as_str().encode("utf-8")
            buffer = ctypes.create_string_buffer(data)
            raw = lib.libsql_text(buffer, len(data))
        case ValueType.BLOB:
            data = value.as_bytes()
            # a zero-length blob still gets a valid, non-null pointer
            buffer = ctypes.create_string_buffer(data)
            raw = lib.libsql_blob(ctypes.cast(buffer, POINTER(c_uint8)), len(data))
        case ValueType.NULL:
            raw = lib.libsql_null()
    yield raw


def read_value(lib: Any, raw: libsql_value_t) -> Value:
    """Decode an engine value, releasing any slice it owns."""
    try:
        kind = ValueType(raw.type)
    except ValueError:
        raise EngineError(f"unknown value type {raw.type}", operation="libsql_row_value") from None
    match kind:
        case ValueType.INTEGER:
            return Value.integer(raw.value.integer)
        case ValueType.REAL:
            return Value.real(raw.value.real)
        case ValueType.TEXT:
            return Value.text(read_text(lib, raw.value.text, "libsql_row_value"))
        case ValueType.BLOB:
            return Value.blob(read_slice(lib, raw.value.blob))
        case ValueType.NULL:
            return Value.null()
