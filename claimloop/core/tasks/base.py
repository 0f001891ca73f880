# claimloop/core/tasks/base.py
"""
Task types: the pluggable part of the engine.

A task type supplies three things: how claimed payloads become a prompt, how
one response item is validated and mapped to result columns, and which table
it works on by default. Claiming, retrying, chunking and releasing are the
engine's job and are identical for every task type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Mapping, Sequence, TypeAlias

from result import Err, Ok, Result

from claimloop.core.defaults import DEFAULT_CLAIM_BATCH_SIZE
from claimloop.core.errors import ConfigurationError, ErrorCode
from claimloop.core.generation.client import GenerationRequest
from claimloop.core.generation.parsing import json_items, line_items, parse_json
from claimloop.core.models.config import EngineConfig
from claimloop.core.models.rows import ClaimedRow, TableSpec


class ResponseFormat(str, Enum):
    JSON = 'JSON'
    LINES = 'LINES'


class ItemRejected(ValueError):
    """Raised by TaskType.validate_item when one item does not fit the schema."""


@dataclass(slots=True, frozen=True)
class RowVerdict:
    """Validation outcome for one row of a chunk.

    `values` holds the column assignments to persist; None means the row is
    released without a result.
    """

    row: ClaimedRow
    values: dict[str, Any] | None = None
    reason: str | None = None

    @property
    def valid(self) -> bool:
        return self.values is not None


@dataclass(slots=True, frozen=True)
class ChunkRejected:
    """The response as a whole could not be mapped onto the chunk's rows."""

    reason: str
    expected: int
    received: int | None = None


InterpretResult: TypeAlias = Result[list[RowVerdict], ChunkRejected]


class TaskType(ABC):
    """Base class for task types.

    Class attributes:
        name: registry name, also used on the command line
        env_prefix: prefix of the task's environment variables (e.g. FLASHCARDS)
        response_format: JSON items or one line per row
        json_mode: request the service's structured JSON-object output mode
        system_prompt: optional system message sent with every request
        default_chunk_size: rows per call when the environment does not say
        default_batch_size: rows claimed per cycle when the environment does not say
        default_temperature: sampling temperature unless {PREFIX}_TEMPERATURE is set
        max_chunk_size: largest chunk the prompt can address; 1 for task types
            that build their prompt from a single row, None for no limit

    Override `images()` to attach image URLs to the request; the generative
    client sends them as image parts next to the prompt.
    """

    name: ClassVar[str]
    env_prefix: ClassVar[str]
    response_format: ClassVar[ResponseFormat] = ResponseFormat.JSON
    json_mode: ClassVar[bool] = False
    system_prompt: ClassVar[str | None] = None
    default_chunk_size: ClassVar[int] = 1
    default_batch_size: ClassVar[int] = DEFAULT_CLAIM_BATCH_SIZE
    default_temperature: ClassVar[float | None] = None
    max_chunk_size: ClassVar[int | None] = None

    @abstractmethod
    def default_table(self) -> TableSpec: ...

    @abstractmethod
    def build_prompt(self, rows: Sequence[ClaimedRow]) -> str: ...

    @abstractmethod
    def validate_item(self, row: ClaimedRow, item: Any) -> dict[str, Any]:
        """Map one response item to column values, or raise ItemRejected/ValueError."""
        ...

    def images(self, rows: Sequence[ClaimedRow]) -> tuple[str, ...]:
        return ()

    def config_from_env(
        self, env: Mapping[str, str] | None = None, **overrides: Any
    ) -> EngineConfig:
        defaults: dict[str, Any] = {
            'chunk_size': self.default_chunk_size,
            'claim_batch_size': max(self.default_batch_size, self.default_chunk_size),
        }
        if self.default_temperature is not None:
            defaults['temperature'] = self.default_temperature
        config = EngineConfig.from_env(
            self.env_prefix, env=env, defaults=defaults, **overrides
        )
        if self.max_chunk_size is not None and config.chunk_size > self.max_chunk_size:
            raise ConfigurationError(
                message=f"task type '{self.name}' cannot process {config.chunk_size} rows per call",
                code=ErrorCode.CONFIG_INVALID_ENGINE,
                notes=[
                    f'{self.env_prefix}_BATCH_SIZE={config.chunk_size}',
                    f'max_chunk_size={self.max_chunk_size}',
                ],
                help_text=(
                    f'its prompt addresses at most {self.max_chunk_size} row(s); '
                    f'unset {self.env_prefix}_BATCH_SIZE or lower it'
                ),
            )
        return config

    def build_request(
        self, rows: Sequence[ClaimedRow], config: EngineConfig
    ) -> GenerationRequest:
        return GenerationRequest(
            model=config.model,
            prompt=self.build_prompt(rows),
            system=self.system_prompt,
            temperature=config.temperature,
            json_mode=self.json_mode,
            images=self.images(rows),
        )

    def _split(self, text: str, expected: int) -> Result[list[Any], ChunkRejected]:
        if self.response_format is ResponseFormat.LINES:
            lines = line_items(text)
            if len(lines) != expected:
                return Err(
                    ChunkRejected(
                        reason='line count does not match row count',
                        expected=expected,
                        received=len(lines),
                    )
                )
            return Ok(lines)

        if expected == 1:
            # single-row calls: the whole response is the item
            match parse_json(text):
                case Ok(value):
                    return Ok([value])
                case Err(message):
                    return Err(ChunkRejected(reason=message, expected=1))

        match json_items(text):
            case Err(message):
                return Err(ChunkRejected(reason=message, expected=expected))
            case Ok(items):
                if len(items) != expected:
                    return Err(
                        ChunkRejected(
                            reason='item count does not match row count',
                            expected=expected,
                            received=len(items),
                        )
                    )
                return Ok(items)

    def interpret(
        self, text: str, rows: Sequence[ClaimedRow], table: TableSpec
    ) -> InterpretResult:
        """
        Turn one response into a verdict per row.

        A response that cannot be split into exactly len(rows) items is an
        Err for the whole chunk. Otherwise every row gets its own verdict, so
        one invalid item does not cost the chunk's other rows their results.
        """
        match self._split(text, len(rows)):
            case Err(rejected):
                return Err(rejected)
            case Ok(items):
                pass

        allowed = set(table.result_columns)
        verdicts: list[RowVerdict] = []
        for row, item in zip(rows, items):
            try:
                values = self.validate_item(row, item)
            except (ValueError, TypeError, KeyError) as exc:
                verdicts.append(RowVerdict(row=row, reason=str(exc) or type(exc).__name__))
                continue

            unknown = sorted(set(values) - allowed)
            if unknown:
                verdicts.append(RowVerdict(row=row, reason=f'not result columns: {unknown}'))
            elif values.get(table.result_column) is None:
                verdicts.append(
                    RowVerdict(row=row, reason=f'{table.result_column} would be NULL')
                )
            else:
                verdicts.append(RowVerdict(row=row, values=values))
        return Ok(verdicts)
