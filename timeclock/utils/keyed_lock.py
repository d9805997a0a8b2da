"""키 단위 비동기 락 레지스트리.

Per-key asyncio lock registry. Serializes work that shares a key (for
example one user's session) inside a single event loop while unrelated
keys proceed concurrently. Locks are dropped once nobody holds or waits
on them, so the registry does not grow with the number of keys seen.
"""

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLockRegistry:
    """키별 asyncio.Lock 관리자.

    Registry handing out one asyncio.Lock per key.

    Usage:
        locks = KeyedLockRegistry()
        async with locks.hold((user_id, session_id)):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._refs: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """키에 해당하는 락을 획득한 채로 블록을 실행합니다.

        Acquire the lock for key for the duration of the block.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
