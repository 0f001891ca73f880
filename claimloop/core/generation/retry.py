# claimloop/core/generation/retry.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from result import Err, Ok

from claimloop.core.generation.client import (
    GenerationError,
    GenerationRequest,
    GenerationResult,
    GenerativeClient,
)
from claimloop.core.logging import get_logger

logger = get_logger('generation')

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class CallBackoff:
    """Linear backoff for generative calls: attempt n waits base_ms * n."""

    base_ms: int
    max_attempts: int
    attempts: int = 0

    def can_retry(self) -> bool:
        return self.attempts < self.max_attempts

    def next_delay_seconds(self) -> float:
        return (self.base_ms * self.attempts) / 1000.0


async def call_with_retry(
    client: GenerativeClient,
    request: GenerationRequest,
    *,
    max_attempts: int,
    backoff_base_ms: int,
    sleep: Sleep = asyncio.sleep,
) -> GenerationResult:
    """
    Call the service at most `max_attempts` times.

    Only retryable faults lead to another attempt. The returned error carries
    the number of attempts actually made.
    """
    backoff = CallBackoff(base_ms=backoff_base_ms, max_attempts=max(1, max_attempts))
    last: GenerationError | None = None

    while backoff.can_retry():
        backoff.attempts += 1
        match await client.generate(request):
            case Ok(completion):
                return Ok(completion)
            case Err(error):
                last = error

        if not last.retryable:
            break
        if not backoff.can_retry():
            break

        delay = backoff.next_delay_seconds()
        logger.warning(
            f'{request.model} call attempt {backoff.attempts}/{backoff.max_attempts} '
            f'failed ({last.fault.value}), retrying in {delay:.2f}s'
        )
        await sleep(delay)

    assert last is not None
    return Err(
        GenerationError(
            fault=last.fault,
            message=last.message,
            attempts=backoff.attempts,
            exception=last.exception,
        )
    )
