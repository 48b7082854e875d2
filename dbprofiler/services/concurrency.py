"""Synchronisation helpers shared by profiling tasks."""

from __future__ import annotations

import contextvars
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Hashable, Iterator, Optional

from dbprofiler.exceptions import ProfileRunCancelledError


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class KeyedLock:
    """One mutex per key, created on demand and discarded when no thread holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _LockEntry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class CancelToken:
    """Cancellation flag shared by every task of a profile run."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "profile run cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ProfileRunCancelledError(self._reason or "profile run cancelled")


_current_token: contextvars.ContextVar[Optional[CancelToken]] = contextvars.ContextVar(
    "dbprofiler_cancel_token", default=None
)


@contextmanager
def use_cancel_token(token: CancelToken) -> Iterator[CancelToken]:
    """Make *token* visible to every store call made by the current thread."""

    reset = _current_token.set(token)
    try:
        yield token
    finally:
        _current_token.reset(reset)


def checkpoint() -> None:
    """Suspension point: abort the current task if its run was cancelled."""

    token = _current_token.get()
    if token is not None:
        token.raise_if_cancelled()


__all__ = ["CancelToken", "KeyedLock", "checkpoint", "use_cancel_token"]
