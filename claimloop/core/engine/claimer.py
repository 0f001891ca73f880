# claimloop/core/engine/claimer.py
from __future__ import annotations

from datetime import timedelta
from typing import Any

from claimloop.core.logging import get_logger
from claimloop.core.models.rows import ClaimedRow
from claimloop.core.store.base import TaskStore
from claimloop.core.utils.clock import Clock, utc_now

logger = get_logger('claimer')


def claim_order(row: ClaimedRow) -> tuple[bool, Any, Any]:
    """Ascending by key with NULL keys last, as PostgreSQL orders them."""
    return (row.key is None, row.key, row.id)


class Claimer:
    """
    Claims up to `batch_size` rows for `owner`.

    Reads oversample_factor * batch_size candidate ids, then takes them in one
    conditional UPDATE that only matches rows still unowned. The rows that
    update returns are the claimed set; the candidate list is only a hint.
    Rows won beyond `batch_size` are released straight away.
    """

    def __init__(
        self,
        store: TaskStore,
        owner: str,
        batch_size: int,
        oversample_factor: int,
        lease_ms: int,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.owner = owner
        self.batch_size = batch_size
        self.oversample_factor = oversample_factor
        self.lease = timedelta(milliseconds=lease_ms)
        self.clock = clock

    async def claim(self) -> list[ClaimedRow]:
        now = self.clock()
        candidates = await self.store.select_candidates(
            now - self.lease, self.batch_size * self.oversample_factor
        )
        if not candidates:
            return []

        won = sorted(
            await self.store.claim(candidates, self.owner, now),
            key=claim_order,
        )
        if len(won) > self.batch_size:
            surplus = won[self.batch_size :]
            won = won[: self.batch_size]
            released = await self.store.release([r.id for r in surplus], self.owner)
            logger.debug(f'Released {released} surplus row(s) beyond batch size')

        logger.debug(
            f'{self.owner} claimed {len(won)} row(s) from {len(candidates)} candidate(s)'
        )
        return won
