"""
app/core/locks.py

Purpose: Per-member serialization

- One asyncio.Lock per LINE user ID, created on demand
- Locks are dropped once nobody holds or waits on them
- Different members never block each other
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict

from app.core.logging import get_logger

logger = get_logger(__name__)


class MemberLockRegistry:
    """
    Application-level mutex per member.

    Every read-decide-write cycle for a member (webhook events and the
    stale sweep) runs inside `hold(line_user_id)`, so two events for the
    same user can never both act on the same pre-transition state.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1

        if lock.locked():
            logger.debug(f"Waiting for member lock {key}")

        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
