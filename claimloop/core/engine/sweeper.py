# claimloop/core/engine/sweeper.py
from __future__ import annotations

from datetime import datetime, timedelta

from claimloop.core.logging import get_logger
from claimloop.core.store.base import TaskStore
from claimloop.core.utils.clock import Clock, utc_now

logger = get_logger('sweeper')


class LockSweeper:
    """
    Returns abandoned claims to the pool.

    A pending row whose claim is older than the lease is unlocked. Racing a
    worker that is finishing the same row is harmless: the finishing write sets
    the result and clears the lock in one statement, so the sweep either sees
    the row still pending or no longer matches it.
    """

    def __init__(self, store: TaskStore, lease_ms: int, clock: Clock = utc_now):
        self.store = store
        self.lease = timedelta(milliseconds=lease_ms)
        self.clock = clock

    def cutoff(self) -> datetime:
        return self.clock() - self.lease

    async def sweep(self) -> int:
        swept = await self.store.sweep_expired(self.cutoff())
        if swept:
            logger.warning(
                f'Swept {swept} expired claim(s) on {self.store.table.table!r} '
                f'(lease {self.lease})'
            )
        return swept
