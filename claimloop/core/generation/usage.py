# claimloop/core/generation/usage.py
from __future__ import annotations

from dataclasses import dataclass

from claimloop.core.generation.client import Usage
from claimloop.core.logging import get_logger

logger = get_logger('usage')

# USD per 1K tokens. Models missing here are tracked with zero cost.
PRICING: dict[str, tuple[float, float]] = {
    'gpt-4o-mini': (0.00015, 0.0006),
    'gpt-4o': (0.0025, 0.01),
    'gpt-4-turbo': (0.01, 0.03),
    'gpt-3.5-turbo': (0.0005, 0.0015),
}


def _price_for(model: str) -> tuple[float, float] | None:
    if model in PRICING:
        return PRICING[model]
    # dated snapshots, e.g. 'gpt-4o-mini-2024-07-18'; longest prefix wins
    for name in sorted(PRICING, key=len, reverse=True):
        if model.startswith(f'{name}-'):
            return PRICING[name]
    return None


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    price = _price_for(model)
    if price is None:
        return 0.0
    prompt_rate, completion_rate = price
    return (prompt_tokens / 1000) * prompt_rate + (completion_tokens / 1000) * completion_rate


@dataclass
class ModelUsage:
    calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class UsageTracker:
    """Per-process token and cost totals, keyed by model."""

    def __init__(self) -> None:
        self._by_model: dict[str, ModelUsage] = {}

    def record(self, model: str, usage: Usage) -> None:
        entry = self._by_model.setdefault(model, ModelUsage())
        entry.calls += 1
        entry.prompt_tokens += usage.prompt_tokens
        entry.completion_tokens += usage.completion_tokens
        entry.cost += estimate_cost(model, usage.prompt_tokens, usage.completion_tokens)

    def snapshot(self) -> dict[str, ModelUsage]:
        return {
            model: ModelUsage(
                calls=u.calls,
                prompt_tokens=u.prompt_tokens,
                completion_tokens=u.completion_tokens,
                cost=u.cost,
            )
            for model, u in self._by_model.items()
        }

    @property
    def total_cost(self) -> float:
        return sum(u.cost for u in self._by_model.values())

    def log_summary(self) -> None:
        for model, u in sorted(self._by_model.items()):
            logger.info(
                f'{model}: {u.calls} calls, {u.prompt_tokens} prompt + '
                f'{u.completion_tokens} completion tokens, ~${u.cost:.4f}'
            )
