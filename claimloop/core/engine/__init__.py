from __future__ import annotations

import asyncio

from claimloop.core.engine.claimer import Claimer
from claimloop.core.engine.executor import BatchExecutor, BatchReport, split_chunks
from claimloop.core.engine.poll_loop import PollLoop
from claimloop.core.engine.processor import ChunkOutcome, TaskProcessor
from claimloop.core.engine.sweeper import LockSweeper
from claimloop.core.generation.client import GenerativeClient
from claimloop.core.generation.retry import Sleep
from claimloop.core.generation.usage import UsageTracker
from claimloop.core.models.config import EngineConfig
from claimloop.core.store.base import TaskStore
from claimloop.core.tasks.base import TaskType
from claimloop.core.utils.clock import Clock, utc_now


def build_poll_loop(
    task: TaskType,
    store: TaskStore,
    client: GenerativeClient,
    config: EngineConfig,
    *,
    clock: Clock = utc_now,
    usage: UsageTracker | None = None,
    sleep: Sleep = asyncio.sleep,
) -> PollLoop:
    """Wire sweeper, claimer, executor and processor for one task type."""
    sweeper = LockSweeper(store, config.lock_lease_ms, clock)
    claimer = Claimer(
        store,
        owner=config.worker_id,
        batch_size=config.claim_batch_size,
        oversample_factor=config.oversample_factor,
        lease_ms=config.lock_lease_ms,
        clock=clock,
    )
    processor = TaskProcessor(task, store, client, config, usage=usage, sleep=sleep)
    executor = BatchExecutor(processor, config.chunk_size, config.concurrency)
    return PollLoop(task.name, sweeper, claimer, executor, config, usage=usage)


__all__ = [
    'BatchExecutor',
    'BatchReport',
    'ChunkOutcome',
    'Claimer',
    'LockSweeper',
    'PollLoop',
    'TaskProcessor',
    'build_poll_loop',
    'split_chunks',
]
