# claimloop/core/models/resilience.py
from __future__ import annotations

from typing import Annotated, Self

from pydantic import BaseModel, Field, model_validator

from claimloop.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)


class StoreResilienceConfig(BaseModel):
    """
    Backoff for transient task-store connection faults in the poll loop.

    The loop never gives up: after a connection fault it sleeps an
    exponentially growing, jittered delay and starts a new claim cycle.
    """

    store_retry_initial_ms: Annotated[int, Field(ge=100, le=60_000)] = Field(
        default=500,
        description='First backoff after a transient store fault (100ms-60s)',
    )
    store_retry_max_ms: Annotated[int, Field(ge=500, le=300_000)] = Field(
        default=30_000,
        description='Backoff ceiling for transient store faults (500ms-5min)',
    )

    @model_validator(mode='after')
    def validate_backoff(self) -> Self:
        report = ValidationReport('resilience')
        if self.store_retry_max_ms < self.store_retry_initial_ms:
            report.add(
                ConfigurationError(
                    message='store_retry_max_ms must be >= store_retry_initial_ms',
                    code=ErrorCode.CONFIG_INVALID_RESILIENCE,
                    notes=[
                        f'store_retry_initial_ms={self.store_retry_initial_ms}ms',
                        f'store_retry_max_ms={self.store_retry_max_ms}ms',
                    ],
                    help_text='increase store_retry_max_ms or reduce store_retry_initial_ms',
                )
            )
        raise_collected(report)
        return self
