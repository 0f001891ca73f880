# claimloop/core/engine/executor.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from claimloop.core.engine.processor import ChunkOutcome, TaskProcessor
from claimloop.core.logging import get_logger
from claimloop.core.models.rows import ClaimedRow

logger = get_logger('executor')


@dataclass
class BatchReport:
    claimed: int = 0
    completed: int = 0
    released: int = 0
    lost: int = 0
    failed_chunks: int = 0

    def add(self, outcome: ChunkOutcome) -> None:
        self.completed += outcome.completed
        self.released += outcome.released
        self.lost += outcome.lost
        if outcome.failed:
            self.failed_chunks += 1

    def summary(self) -> str:
        return (
            f'claimed={self.claimed} completed={self.completed} '
            f'released={self.released} lost={self.lost} failed_chunks={self.failed_chunks}'
        )


def split_chunks(rows: Sequence[ClaimedRow], size: int) -> list[list[ClaimedRow]]:
    return [list(rows[i : i + size]) for i in range(0, len(rows), size)]


class BatchExecutor:
    """
    Fans a claimed batch out into chunks of `chunk_size`, at most
    `concurrency` in flight, and waits for all of them.

    Chunks are isolated: a chunk that raises does not stop the others. The
    first exception is re-raised once every chunk has finished, so results
    of healthy chunks are already persisted by then.
    """

    def __init__(self, processor: TaskProcessor, chunk_size: int, concurrency: int):
        self.processor = processor
        self.chunk_size = chunk_size
        self.concurrency = concurrency

    async def execute(self, rows: Sequence[ClaimedRow]) -> BatchReport:
        report = BatchReport(claimed=len(rows))
        chunks = split_chunks(rows, self.chunk_size)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(chunk: list[ClaimedRow]) -> ChunkOutcome:
            async with semaphore:
                return await self.processor.process(chunk)

        # tasks are created in key order, so chunks start in key order
        results = await asyncio.gather(
            *(run(chunk) for chunk in chunks), return_exceptions=True
        )

        first_error: BaseException | None = None
        for chunk, result in zip(chunks, results):
            if isinstance(result, BaseException):
                report.failed_chunks += 1
                logger.error(
                    f'chunk {[r.id for r in chunk]} raised '
                    f'{type(result).__name__}: {result}; rows stay locked until lease expiry'
                )
                if first_error is None:
                    first_error = result
                continue
            report.add(result)

        if first_error is not None:
            logger.warning(f'batch finished with failed chunks: {report.summary()}')
            raise first_error
        return report
