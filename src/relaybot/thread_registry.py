"""Idle-timeout cache from requester identity to assistant thread id.

Each requester (a Slack user or channel, chosen once per deployment) maps
to at most one live OpenAI thread. Every lookup renews the entry's idle
timer; an entry nobody touches for ``idle_timeout_s`` is dropped so the
next question starts a fresh conversation.

Invariant: a requester has a handle if and only if it has a pending
timer. Both maps are only ever mutated together under ``_lock``.

slack_bolt runs listeners on a worker pool, so a per-requester lock
serializes the check-then-create sequence in ``resolve`` without holding
the registry lock across the remote call.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

from relaybot.errors import RemoteCreateFailure

logger = logging.getLogger(__name__)

# Default idle timeout before a requester's thread mapping is dropped
DEFAULT_IDLE_TIMEOUT_S = 30 * 60


class ThreadRegistry:
    """Maps requester ids to assistant thread ids with sliding expiry.

    Args:
        create_thread: Zero-argument callable returning a new thread id.
        idle_timeout_s: Seconds of inactivity before an entry is evicted.
        timer_factory: ``threading.Timer``-compatible factory, called as
            ``timer_factory(interval, function)``. The returned object
            must support ``start()`` and ``cancel()``.
    """

    def __init__(
        self,
        create_thread: Callable[[], str],
        idle_timeout_s: float = DEFAULT_IDLE_TIMEOUT_S,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        if idle_timeout_s <= 0:
            raise ValueError(f"idle_timeout_s must be positive, got {idle_timeout_s}")
        self.create_thread = create_thread
        self.idle_timeout_s = idle_timeout_s
        self._timer_factory = timer_factory
        self._handles: dict[str, str] = {}
        self._timers: dict[str, Any] = {}
        self._lock = threading.Lock()
        # requester_id -> [lock, number of callers holding or waiting on it]
        self._key_locks: dict[str, list[Any]] = {}

    # -- Public API ---------------------------------------------------------

    def resolve(self, requester_id: str) -> str:
        """Return the live thread id for a requester, creating one if needed.

        An existing entry has its idle timer restarted and no remote call
        is made. Otherwise ``create_thread`` is invoked and the new id is
        stored only if that call succeeds.

        Raises:
            RemoteCreateFailure: If a new thread could not be created.
        """
        with self._requester_lock(requester_id):
            with self._lock:
                handle = self._handles.get(requester_id)
                if handle is not None:
                    self._schedule(requester_id)
                    return handle

            try:
                handle = self.create_thread()
            except RemoteCreateFailure:
                raise
            except Exception as exc:
                raise RemoteCreateFailure(
                    f"Thread creation failed for {requester_id}: {exc}"
                ) from exc
            if not handle:
                raise RemoteCreateFailure(
                    f"Thread creation returned no id for {requester_id}"
                )

            with self._lock:
                self._handles[requester_id] = handle
                self._schedule(requester_id)
            logger.info("New thread %s for requester=%s", handle, requester_id)
            return handle

    def reset(self, requester_id: str) -> bool:
        """Drop a requester's thread mapping.

        Returns True if an entry was removed, False if none existed.
        """
        with self._requester_lock(requester_id):
            removed = self._remove(requester_id)
        if removed:
            logger.info("Thread reset for requester=%s", requester_id)
        return removed

    def get(self, requester_id: str) -> str | None:
        """Peek at a requester's thread id without renewing its timer."""
        with self._lock:
            return self._handles.get(requester_id)

    def close(self) -> None:
        """Cancel every pending timer and forget all entries."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._handles.clear()

    def __contains__(self, requester_id: object) -> bool:
        with self._lock:
            return requester_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    # -- Internals ----------------------------------------------------------

    def _schedule(self, requester_id: str) -> None:
        """Cancel any pending timer and start a fresh one. Caller holds _lock."""
        old = self._timers.pop(requester_id, None)
        if old is not None:
            old.cancel()

        def _fire() -> None:
            self._evict(requester_id, timer)

        timer = self._timer_factory(self.idle_timeout_s, _fire)
        with contextlib.suppress(AttributeError):
            timer.daemon = True
        self._timers[requester_id] = timer
        timer.start()

    def _evict(self, requester_id: str, timer: Any = None) -> None:
        """Timer callback: drop the entry if ``timer`` is still its timer."""
        with self._lock:
            if timer is not None and self._timers.get(requester_id) is not timer:
                return
            handle = self._handles.pop(requester_id, None)
            self._timers.pop(requester_id, None)
        if handle is not None:
            logger.info(
                "Evicted idle thread %s for requester=%s", handle, requester_id
            )

    def _remove(self, requester_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(requester_id, None)
            handle = self._handles.pop(requester_id, None)
        if timer is not None:
            timer.cancel()
        return handle is not None

    @contextlib.contextmanager
    def _requester_lock(self, requester_id: str) -> Iterator[None]:
        """Serialize operations for one requester; prune the lock when idle."""
        with self._lock:
            entry = self._key_locks.get(requester_id)
            if entry is None:
                entry = self._key_locks[requester_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[requester_id]
