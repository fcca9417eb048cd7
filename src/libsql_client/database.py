"""Database: the top-level engine instance."""

from __future__ import annotations

import logging
import os
from typing import Any

from libsql_client import native
from libsql_client.connection import Connection
from libsql_client.handle import NativeHandle
from libsql_client.models.config import Cipher, DatabaseConfig, DatabaseMode, TlsBackend
from libsql_client.models.results import SyncResult

logger = logging.getLogger(__name__)

_CIPHERS = {
    Cipher.DEFAULT: native.CIPHER_DEFAULT,
    Cipher.AES256: native.CIPHER_AES256,
}


def _optional(text: str | None) -> bytes | None:
    return native.encode(text) if text is not None else None


def _describe(config: DatabaseConfig) -> native.libsql_database_desc_t:
    """Map a validated configuration onto the engine's database descriptor."""
    return native.libsql_database_desc_t(
        url=_optional(config.url),
        path=_optional(config.path),
        auth_token=_optional(config.auth_token),
        encryption_key=_optional(config.encryption_key),
        sync_interval=config.sync_interval_ms or 0,
        cypher=_CIPHERS[config.cipher],
        disable_read_your_writes=not config.read_your_writes,
        webpki=config.tls is TlsBackend.WEBPKI,
        synced=config.mode is DatabaseMode.SYNCED,
    )


class Database(NativeHandle):
    """An engine instance: local file or memory, remote, or synced replica.

    Construction either fully succeeds or raises; no half-open instance is
    observable. Closing the database closes every connection opened from it.

    Usage::

        with Database(":memory:") as db, db.connect() as conn:
            conn.execute("create table t (i integer)")
    """

    kind = "database"

    def __init__(
        self,
        config: DatabaseConfig | str | os.PathLike[str] = ":memory:",
        *,
        library: Any | None = None,
    ) -> None:
        """Open a database from a configuration or a local path.

        ``library`` overrides the loaded libsql shared library.
        """
        if not isinstance(config, DatabaseConfig):
            config = DatabaseConfig(path=os.fspath(config))
        lib = library if library is not None else native.load_library()
        super().__init__(lib)
        self.config = config
        raw = native.check(
            lib, lib.libsql_database_init(_describe(config)), "libsql_database_init"
        )
        self._raw = raw
        self._acquired()
        logger.info("Opened %s database %s", config.mode.value, self._target)

    @classmethod
    def remote(
        cls,
        url: str,
        auth_token: str,
        *,
        tls: TlsBackend = TlsBackend.DEFAULT,
        library: Any | None = None,
    ) -> Database:
        """Open a remote-only database; every operation is a network round trip."""
        config = DatabaseConfig(url=url, auth_token=auth_token, tls=tls)
        return cls(config, library=library)

    @classmethod
    def synced(
        cls,
        path: str | os.PathLike[str],
        url: str,
        auth_token: str,
        *,
        read_your_writes: bool = True,
        encryption_key: str | None = None,
        cipher: Cipher = Cipher.DEFAULT,
        sync_interval_ms: int | None = None,
        tls: TlsBackend = TlsBackend.DEFAULT,
        library: Any | None = None,
    ) -> Database:
        """Open a local embedded replica that synchronizes with ``url``."""
        config = DatabaseConfig(
            path=os.fspath(path),
            url=url,
            auth_token=auth_token,
            read_your_writes=read_your_writes,
            encryption_key=encryption_key,
            cipher=cipher,
            sync_interval_ms=sync_interval_ms,
            tls=tls,
        )
        return cls(config, library=library)

    @classmethod
    def from_config(cls, config: DatabaseConfig, *, library: Any | None = None) -> Database:
        """Open a database from an explicit configuration."""
        return cls(config, library=library)

    @classmethod
    def from_env(cls, *, library: Any | None = None) -> Database:
        """Open a database configured by LIBSQL_* environment variables."""
        return cls(DatabaseConfig.from_env(), library=library)

    @property
    def _target(self) -> str:
        if self.config.mode is DatabaseMode.REMOTE:
            return str(self.config.url)
        return str(self.config.path)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Database {self.config.mode.value} {self._target!r} {state}>"

    def _release(self) -> None:
        self._lib.libsql_database_deinit(self._raw)

    def connect(self) -> Connection:
        """Open a new connection. May be called any number of times."""
        self._ensure_open()
        raw = native.check(
            self._lib, self._lib.libsql_database_connect(self._raw), "libsql_database_connect"
        )
        return Connection(self._lib, raw, self)

    def sync(self) -> SyncResult:
        """Run one synchronization cycle against the remote primary.

        Only meaningful for synced databases. Failures are raised as
        EngineError; nothing is retried.
        """
        self._ensure_open()
        if self.config.mode is not DatabaseMode.SYNCED:
            logger.warning("sync() called on a %s database", self.config.mode.value)
        result = native.check(
            self._lib, self._lib.libsql_database_sync(self._raw), "libsql_database_sync"
        )
        synced = SyncResult(frame_no=result.frame_no, frames_synced=result.frames_synced)
        logger.info(
            "Synced %s: frame %d, %d frames", self._target, synced.frame_no, synced.frames_synced
        )
        return synced
