"""Unit tests for Claimer: oversampled, race-safe claiming."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from claimloop.core.engine.claimer import Claimer, claim_order
from claimloop.core.models.rows import ClaimedRow
from tests.fakes import ITEMS_TABLE, T0, FakeClock, MemoryTaskStore, make_rows

LEASE_MS = 15 * 60_000


def _claimer(
    store: MemoryTaskStore,
    owner: str = 'w1',
    batch_size: int = 50,
    oversample_factor: int = 3,
    clock: FakeClock | None = None,
) -> Claimer:
    return Claimer(
        store,
        owner=owner,
        batch_size=batch_size,
        oversample_factor=oversample_factor,
        lease_ms=LEASE_MS,
        clock=clock or FakeClock(),
    )


@pytest.mark.unit
class TestClaimer:
    @pytest.mark.asyncio
    async def test_fewer_eligible_rows_than_batch(self) -> None:
        store = MemoryTaskStore(rows=make_rows(3))
        claimed = await _claimer(store, batch_size=50).claim()
        assert [row.id for row in claimed] == [1, 2, 3]
        assert all(store.owner_of(i) == 'w1' for i in (1, 2, 3))

    @pytest.mark.asyncio
    async def test_nothing_eligible(self) -> None:
        store = MemoryTaskStore(rows=make_rows(2, result='done'))
        assert await _claimer(store).claim() == []
        assert 'claim' not in store.calls

    @pytest.mark.asyncio
    async def test_reads_oversampled_candidates(self) -> None:
        store = MemoryTaskStore(rows=make_rows(20))
        calls: list[int] = []
        original = store.select_candidates

        async def spy(cutoff, limit):  # type: ignore[no-untyped-def]
            calls.append(limit)
            return await original(cutoff, limit)

        store.select_candidates = spy  # type: ignore[method-assign]
        await _claimer(store, batch_size=4, oversample_factor=3).claim()
        assert calls == [12]

    @pytest.mark.asyncio
    async def test_surplus_rows_are_released(self) -> None:
        store = MemoryTaskStore(rows=make_rows(10))
        claimed = await _claimer(store, batch_size=2, oversample_factor=3).claim()
        assert [row.id for row in claimed] == [1, 2]
        assert [store.owner_of(i) for i in range(1, 11)] == ['w1', 'w1'] + [None] * 8
        assert store.calls == ['select_candidates', 'claim', 'release']

    @pytest.mark.asyncio
    async def test_rows_come_back_in_key_order_with_payload(self) -> None:
        store = MemoryTaskStore(rows=[{'id': i, 'prompt': f'p{i}'} for i in (5, 3, 9)])
        claimed = await _claimer(store).claim()
        assert [row.key for row in claimed] == [3, 5, 9]
        assert claimed[0].payload == {'prompt': 'p3'}

    @pytest.mark.asyncio
    async def test_rows_owned_by_others_are_skipped(self) -> None:
        clock = FakeClock()
        store = MemoryTaskStore(
            rows=[
                {'id': 1, 'prompt': 'a', 'owner': 'w2', 'claimed_at': clock()},
                {'id': 2, 'prompt': 'b'},
            ]
        )
        claimed = await _claimer(store, clock=clock).claim()
        assert [row.id for row in claimed] == [2]
        assert store.owner_of(1) == 'w2'

    @pytest.mark.asyncio
    async def test_concurrent_claimers_one_row_exactly_one_wins(self) -> None:
        store = MemoryTaskStore(rows=make_rows(1))
        a = _claimer(store, owner='w1')
        b = _claimer(store, owner='w2')
        won_a, won_b = await asyncio.gather(a.claim(), b.claim())
        assert sorted([len(won_a), len(won_b)]) == [0, 1]
        winner = 'w1' if won_a else 'w2'
        assert store.owner_of(1) == winner

    @pytest.mark.asyncio
    async def test_concurrent_claimers_partition_rows(self) -> None:
        store = MemoryTaskStore(rows=make_rows(30))
        claimers = [_claimer(store, owner=f'w{i}', batch_size=10) for i in range(5)]
        results = await asyncio.gather(*(c.claim() for c in claimers))
        ids = [row.id for rows in results for row in rows]
        assert len(ids) == len(set(ids))
        for claimer, rows in zip(claimers, results):
            assert all(store.owner_of(row.id) == claimer.owner for row in rows)


@pytest.mark.unit
class TestNullableOrderColumn:
    def test_claim_order_puts_null_keys_last(self) -> None:
        rows = [
            ClaimedRow(id=3, key=None),
            ClaimedRow(id=1, key=None),
            ClaimedRow(id=2, key=T0),
        ]
        assert [row.id for row in sorted(rows, key=claim_order)] == [2, 1, 3]

    @pytest.mark.asyncio
    async def test_rows_with_null_keys_are_claimed_and_surplus_released(self) -> None:
        table = ITEMS_TABLE.model_copy(update={'order_column': 'created_at'})
        store = MemoryTaskStore(
            table=table,
            rows=[
                {'id': 1, 'prompt': 'a', 'created_at': None},
                {'id': 2, 'prompt': 'b', 'created_at': T0 + timedelta(minutes=1)},
                {'id': 3, 'prompt': 'c', 'created_at': None},
                {'id': 4, 'prompt': 'd', 'created_at': T0},
            ],
        )

        claimed = await _claimer(store, batch_size=3).claim()

        assert [row.id for row in claimed] == [4, 2, 1]
        assert [store.owner_of(i) for i in (1, 2, 3, 4)] == ['w1', 'w1', None, 'w1']
