"""Per-stack mutation serialization."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from stackboard.board.types import StackKey


def _lock_order(key: StackKey) -> tuple[int, str]:
    # None (uncategorized) sorts first; fixed order prevents lock-order deadlocks
    if key is None:
        return (0, "")
    return (1, key)


class StackLocks:
    """One asyncio.Lock per stack key.

    Operations touching the same stack are strictly ordered; operations on
    different stacks run independently. Multi-stack operations acquire their
    locks in a fixed order.

    A lock exists only while some operation holds or waits for it, so keys of
    renamed or deleted stacks are not retained.
    """

    def __init__(self) -> None:
        self._locks: dict[StackKey, asyncio.Lock] = {}
        self._users: dict[StackKey, int] = {}

    def _check_out(self, key: StackKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _check_in(self, key: StackKey) -> None:
        remaining = self._users[key] - 1
        if remaining == 0:
            del self._users[key]
            del self._locks[key]
        else:
            self._users[key] = remaining

    def is_locked(self, key: StackKey) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def tracked_keys(self) -> tuple[StackKey, ...]:
        """Keys with a live lock, i.e. held or awaited right now."""
        return tuple(self._locks)

    @asynccontextmanager
    async def hold(self, *keys: StackKey) -> AsyncIterator[None]:
        """Hold the locks of all given stacks for the duration of the block."""
        ordered = sorted(set(keys), key=_lock_order)
        checked_out: list[StackKey] = []
        acquired: list[asyncio.Lock] = []
        try:
            for key in ordered:
                lock = self._check_out(key)
                checked_out.append(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._check_in(key)
