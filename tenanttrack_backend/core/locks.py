"""
Keyed in-process locks.

Serializes transitions on the same record within one worker. Across workers
the row lock taken in the service layer and the version column on the model
provide the same guarantee.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Hashable

_locks: "weakref.WeakValueDictionary[tuple, asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def _lock_for(key: tuple[Hashable, ...]) -> asyncio.Lock:
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


@asynccontextmanager
async def hold(*key_parts: Hashable) -> AsyncIterator[None]:
    """Hold the lock for ``key_parts``, e.g. ``hold("lease", 42)``."""
    lock = _lock_for(tuple(key_parts))
    async with lock:
        yield
