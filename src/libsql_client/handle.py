"""Ownership base for wrappers around engine handles.

Handles form a tree: a parent keeps weak references to the children it
created and a child keeps a strong reference to its parent, so a parent is
never collected while a child is alive. ``close`` releases live children
first and then the handle itself, exactly once.
"""

from __future__ import annotations

import logging
import weakref
from types import TracebackType
from typing import Any, Self

from libsql_client.errors import ClosedHandleError

logger = logging.getLogger(__name__)


class NativeHandle:
    """An engine handle with a single release point."""

    kind = "handle"

    def __init__(self, lib: Any, parent: NativeHandle | None = None) -> None:
        """Initialize unowned; ``_acquired`` marks the handle live."""
        self._lib = lib
        self._parent = parent
        self._children: weakref.WeakSet[NativeHandle] = weakref.WeakSet()
        self._closed = True

    def _acquired(self) -> None:
        """Mark the handle live and register it with its parent."""
        self._closed = False
        if self._parent is not None:
            self._parent._children.add(self)
        logger.debug("Opened %s", self.kind)

    def _release(self) -> None:
        """Free the engine handle. Called at most once."""
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClosedHandleError(f"{self.kind} is closed")

    def _close_children(self) -> None:
        for child in list(self._children):
            child.close()
        self._children.clear()

    def close(self) -> None:
        """Release children, then this handle. Safe to call repeatedly."""
        if self._closed:
            return
        # marked first so a child reaching back to this handle is a no-op
        self._closed = True
        self._close_children()
        self._release()
        logger.debug("Released %s", self.kind)

    def __enter__(self) -> Self:
        self._ensure_open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __del__(self) -> None:
        # construction failures leave _closed True, so nothing is released
        if not getattr(self, "_closed", True):
            self.close()
