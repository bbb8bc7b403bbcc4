"""Per-thread mutual exclusion."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ThreadLocks:
    """One asyncio.Lock per thread id.

    Every mutation of a thread (membership, chat, fields, deletion) runs
    inside ``hold(thread_id)``. Threads are independent, so no lock ever
    spans two threads.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, thread_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._waiters[thread_id] = self._waiters.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[thread_id] -= 1
            if not self._waiters[thread_id]:
                # Nobody else is queued on this lock; drop it.
                del self._waiters[thread_id]
                del self._locks[thread_id]

    def __len__(self) -> int:
        return len(self._locks)
