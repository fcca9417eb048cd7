"""Environment-variable-based configuration."""

import os
from pathlib import Path


def get_library_path() -> str | None:
    """Return the libsql shared library path from LIBSQL_LIBRARY_PATH."""
    return os.environ.get("LIBSQL_LIBRARY_PATH") or None


def get_db_path() -> Path | None:
    """Return the local database path from LIBSQL_DB_PATH."""
    raw = os.environ.get("LIBSQL_DB_PATH")
    if not raw:
        return None
    if raw == ":memory:":
        return Path(raw)
    return Path(raw).expanduser()


def get_database_url() -> str | None:
    """Return the remote database URL from LIBSQL_URL."""
    return os.environ.get("LIBSQL_URL") or None


def get_auth_token() -> str | None:
    """Return the remote auth token from LIBSQL_AUTH_TOKEN."""
    return os.environ.get("LIBSQL_AUTH_TOKEN")


def get_sync_interval_ms() -> int | None:
    """Return the replica sync interval in milliseconds from LIBSQL_SYNC_INTERVAL_MS."""
    raw = os.environ.get("LIBSQL_SYNC_INTERVAL_MS")
    return int(raw) if raw else None


def get_encryption_key() -> str | None:
    """Return the replica encryption key from LIBSQL_ENCRYPTION_KEY."""
    return os.environ.get("LIBSQL_ENCRYPTION_KEY") or None
