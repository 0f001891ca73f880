# claimloop/core/engine/processor.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from result import Err, Ok

from claimloop.core.generation.client import GenerativeClient
from claimloop.core.generation.retry import Sleep, call_with_retry
from claimloop.core.generation.usage import UsageTracker
from claimloop.core.logging import get_logger
from claimloop.core.models.config import EngineConfig
from claimloop.core.models.rows import ClaimedRow
from claimloop.core.store.base import TaskStore
from claimloop.core.tasks.base import TaskType

logger = get_logger('processor')


@dataclass(slots=True, frozen=True)
class ChunkOutcome:
    completed: int = 0
    released: int = 0
    lost: int = 0
    failed: bool = False


class TaskProcessor:
    """
    Runs one chunk of claimed rows through a task type.

    Outcomes per row:
    - valid item: result written and lock cleared in one owner-scoped update
    - invalid item: lock cleared, result left NULL
    - call failed after all attempts, or response unusable as a whole:
      every row of the chunk released

    Store faults are not caught here; they surface to the poll loop.
    """

    def __init__(
        self,
        task: TaskType,
        store: TaskStore,
        client: GenerativeClient,
        config: EngineConfig,
        usage: UsageTracker | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.task = task
        self.store = store
        self.client = client
        self.config = config
        self.usage = usage
        self._sleep = sleep

    @property
    def owner(self) -> str:
        return self.config.worker_id

    async def _release(self, rows: Sequence[ClaimedRow]) -> int:
        if not rows:
            return 0
        return await self.store.release([r.id for r in rows], self.owner)

    async def process(self, rows: Sequence[ClaimedRow]) -> ChunkOutcome:
        ids = [r.id for r in rows]
        request = self.task.build_request(rows, self.config)

        match await call_with_retry(
            self.client,
            request,
            max_attempts=self.config.max_call_attempts,
            backoff_base_ms=self.config.call_backoff_base_ms,
            sleep=self._sleep,
        ):
            case Err(error):
                logger.warning(
                    f'{self.task.name}: call failed after {error.attempts} attempt(s) '
                    f'({error.fault.value}: {error.message}); releasing {ids}'
                )
                return ChunkOutcome(released=await self._release(rows), failed=True)
            case Ok(completion):
                pass

        if self.usage is not None:
            self.usage.record(completion.model, completion.usage)

        match self.task.interpret(completion.text, rows, self.store.table):
            case Err(rejected):
                received = '?' if rejected.received is None else rejected.received
                logger.warning(
                    f'{self.task.name}: rejected response for {ids}: {rejected.reason} '
                    f'(expected {rejected.expected}, got {received}); releasing'
                )
                return ChunkOutcome(released=await self._release(rows), failed=True)
            case Ok(verdicts):
                pass

        completed = 0
        lost = 0
        invalid: list[ClaimedRow] = []
        for verdict in verdicts:
            if verdict.values is None:
                logger.info(
                    f'{self.task.name}: row {verdict.row.id} invalid ({verdict.reason}); releasing'
                )
                invalid.append(verdict.row)
                continue
            if await self.store.complete(verdict.row.id, self.owner, verdict.values):
                completed += 1
            else:
                lost += 1
                logger.warning(
                    f'{self.task.name}: row {verdict.row.id} no longer owned by '
                    f'{self.owner}; result discarded'
                )

        return ChunkOutcome(
            completed=completed,
            released=await self._release(invalid),
            lost=lost,
        )
