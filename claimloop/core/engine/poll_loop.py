# claimloop/core/engine/poll_loop.py
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass

from claimloop.core.engine.claimer import Claimer
from claimloop.core.engine.executor import BatchExecutor, BatchReport
from claimloop.core.engine.sweeper import LockSweeper
from claimloop.core.generation.usage import UsageTracker
from claimloop.core.logging import get_logger
from claimloop.core.models.config import EngineConfig
from claimloop.core.types.status import PollState
from claimloop.core.utils.db import is_retryable_connection_error

logger = get_logger('poll_loop')


@dataclass
class _StoreBackoff:
    initial_ms: int
    max_ms: int
    attempts: int = 0

    def reset(self) -> None:
        self.attempts = 0

    def next_delay_seconds(self) -> float:
        self.attempts += 1
        exponent = max(0, self.attempts - 1)
        base_ms = min(self.max_ms, int(self.initial_ms * (2**exponent)))
        jitter_range = base_ms * 0.25
        delay_ms = base_ms + random.uniform(-jitter_range, jitter_range)
        return max(0.1, delay_ms / 1000.0)


class PollLoop:
    """
    Per-process driver: sweep, claim, execute; sleep when nothing was claimed.

    IDLE -> CLAIMING -> EXECUTING -> IDLE, with no terminal state. A failed
    cycle is logged and followed by a sleep; transient store connection faults
    back off exponentially, anything else waits error_sleep_ms. request_stop()
    ends the loop at the next cycle boundary and cuts sleeps short.
    """

    def __init__(
        self,
        name: str,
        sweeper: LockSweeper,
        claimer: Claimer,
        executor: BatchExecutor,
        config: EngineConfig,
        usage: UsageTracker | None = None,
    ):
        self.name = name
        self.sweeper = sweeper
        self.claimer = claimer
        self.executor = executor
        self.config = config
        self.usage = usage
        self.state = PollState.IDLE
        self.cycles = 0
        self._stop = asyncio.Event()
        self._backoff = _StoreBackoff(
            initial_ms=config.resilience.store_retry_initial_ms,
            max_ms=config.resilience.store_retry_max_ms,
        )

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        if not self._stop.is_set():
            logger.info(f'{self.name}: stop requested')
        self._stop.set()

    async def _sleep_with_stop(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> BatchReport | None:
        """One claim cycle. Returns None when nothing was claimed."""
        self.cycles += 1
        self.state = PollState.CLAIMING
        try:
            await self.sweeper.sweep()
            rows = await self.claimer.claim()
            if not rows:
                return None
            self.state = PollState.EXECUTING
            report = await self.executor.execute(rows)
            logger.info(f'{self.name}: {report.summary()}')
            return report
        finally:
            self.state = PollState.IDLE

    async def run_forever(self) -> None:
        logger.info(
            f'{self.name}: polling as {self.config.worker_id} '
            f'(batch={self.config.claim_batch_size}, chunk={self.config.chunk_size}, '
            f'concurrency={self.config.concurrency}, model={self.config.model})'
        )
        while not self.stopping:
            try:
                report = await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if is_retryable_connection_error(exc):
                    delay = self._backoff.next_delay_seconds()
                    logger.warning(
                        f'{self.name}: store connection error '
                        f'(attempt {self._backoff.attempts}), retrying in {delay:.1f}s: {exc}'
                    )
                else:
                    delay = self.config.error_sleep_ms / 1000.0
                    logger.error(f'{self.name}: cycle failed: {exc}', exc_info=True)
                await self._sleep_with_stop(delay)
                continue

            self._backoff.reset()
            if report is None:
                await self._sleep_with_stop(self.config.idle_sleep_ms / 1000.0)

        logger.info(f'{self.name}: stopped after {self.cycles} cycle(s)')
        if self.usage is not None:
            self.usage.log_summary()
