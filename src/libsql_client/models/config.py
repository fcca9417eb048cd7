"""Database configuration models."""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from libsql_client.config import (
    get_auth_token,
    get_database_url,
    get_db_path,
    get_encryption_key,
    get_sync_interval_ms,
)

MEMORY = ":memory:"


class DatabaseMode(StrEnum):
    """Which engine instance shape a configuration describes."""

    LOCAL = "local"
    REMOTE = "remote"
    SYNCED = "synced"


class TlsBackend(StrEnum):
    """TLS implementation used for remote traffic."""

    DEFAULT = "default"
    WEBPKI = "webpki"


class Cipher(StrEnum):
    """Encryption cipher for an embedded replica."""

    DEFAULT = "default"
    AES256 = "aes256"


class DatabaseConfig(BaseModel):
    """Validated construction parameters for a Database.

    Exactly one of three shapes is accepted: a local path (``":memory:"``
    included), a remote URL with an auth token, or a local path plus a
    remote URL and auth token for an embedded replica.
    """

    model_config = ConfigDict(frozen=True)

    path: str | None = None
    url: str | None = None
    auth_token: str | None = Field(default=None, repr=False)
    read_your_writes: bool = True
    encryption_key: str | None = Field(default=None, repr=False)
    cipher: Cipher = Cipher.DEFAULT
    sync_interval_ms: int | None = Field(default=None, ge=0)
    tls: TlsBackend = TlsBackend.DEFAULT

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: object) -> object:
        if isinstance(value, os.PathLike):
            return os.fspath(value)
        return value

    @model_validator(mode="after")
    def _check_shape(self) -> DatabaseConfig:
        if self.path is None and self.url is None:
            raise ValueError("either a path or a url is required")
        if self.url is not None and self.auth_token is None:
            raise ValueError("auth_token is required when a url is given")
        if self.mode is not DatabaseMode.SYNCED:
            sync_only = {
                "encryption_key": self.encryption_key is not None,
                "cipher": self.cipher is not Cipher.DEFAULT,
                "sync_interval_ms": self.sync_interval_ms is not None,
                "read_your_writes": not self.read_your_writes,
            }
            given = [name for name, present in sync_only.items() if present]
            if given:
                raise ValueError(f"{', '.join(given)} only apply to synced databases")
        if self.mode is DatabaseMode.LOCAL and self.tls is not TlsBackend.DEFAULT:
            raise ValueError("tls only applies to remote and synced databases")
        return self

    @property
    def mode(self) -> DatabaseMode:
        """The engine instance shape this configuration selects."""
        if self.url is None:
            return DatabaseMode.LOCAL
        if self.path is None:
            return DatabaseMode.REMOTE
        return DatabaseMode.SYNCED

    @property
    def is_memory(self) -> bool:
        """True for a local in-memory database."""
        return self.path == MEMORY

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        """Build a configuration from LIBSQL_* environment variables.

        LIBSQL_DB_PATH alone selects a local database, LIBSQL_URL alone a
        remote one, and both together an embedded replica.
        """
        db_path: Path | None = get_db_path()
        url = get_database_url()
        if url is None:
            return cls(path=str(db_path) if db_path else MEMORY)
        if db_path is None:
            return cls(url=url, auth_token=get_auth_token() or "")
        return cls(
            path=str(db_path),
            url=url,
            auth_token=get_auth_token() or "",
            encryption_key=get_encryption_key(),
            sync_interval_ms=get_sync_interval_ms(),
        )
