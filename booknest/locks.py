import asyncio
import contextlib
from collections import defaultdict
from typing import AsyncIterator, Dict


class KeyedLock:
    """A set of asyncio locks addressed by key.

    Callers holding different keys never wait on each other. A key's lock is
    dropped as soon as nobody holds or waits for it, so the map only contains
    keys that are currently contended.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = defaultdict(int)

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
