"""In-memory stand-ins for the task store, the generative service and the clock.

Every MemoryTaskStore method yields to the event loop once, then applies its
effect without further awaits. That mirrors the per-statement atomicity of the
real store, so claimers gathered on one event loop race like separate workers.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Sequence, TypeAlias

from result import Err, Ok

from claimloop.core.generation.client import (
    Completion,
    GenerationError,
    GenerationRequest,
    GenerationResult,
    ServiceFault,
    Usage,
)
from claimloop.core.models.rows import ClaimedRow, RowCounts, TableSpec
from claimloop.core.tasks.base import ItemRejected, TaskType
from claimloop.core.types.status import RowState

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


ITEMS_TABLE = TableSpec(
    table='items',
    payload_columns=['prompt'],
    result_column='result',
    owner_column='owner',
    claimed_at_column='claimed_at',
)


def make_rows(count: int, start: int = 1, **extra: Any) -> list[dict[str, Any]]:
    return [{'id': i, 'prompt': f'prompt-{i}', **extra} for i in range(start, start + count)]


class MemoryTaskStore:
    def __init__(
        self,
        table: TableSpec = ITEMS_TABLE,
        rows: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        self._table = table
        self.rows: dict[Any, dict[str, Any]] = {}
        for row in rows:
            data = {
                table.result_column: None,
                table.owner_column: None,
                table.claimed_at_column: None,
                **row,
            }
            self.rows[data[table.id_column]] = data
        self.calls: list[str] = []
        self.completions: list[tuple[Any, str]] = []
        self._faults: dict[str, list[BaseException]] = {}

    @property
    def table(self) -> TableSpec:
        return self._table

    # ----- test helpers -----

    def fail_next(self, method: str, exc: BaseException) -> None:
        self._faults.setdefault(method, []).append(exc)

    async def _enter(self, method: str) -> None:
        await asyncio.sleep(0)
        self.calls.append(method)
        pending = self._faults.get(method)
        if pending:
            raise pending.pop(0)

    def owner_of(self, row_id: Any) -> str | None:
        return self.rows[row_id][self._table.owner_column]

    def result_of(self, row_id: Any) -> Any:
        return self.rows[row_id][self._table.result_column]

    def state_of(self, row_id: Any, cutoff: datetime) -> RowState:
        row = self.rows[row_id]
        if row[self._table.result_column] is not None:
            return RowState.DONE
        claimed_at = row[self._table.claimed_at_column]
        if row[self._table.owner_column] is None or (
            claimed_at is not None and claimed_at < cutoff
        ):
            return RowState.ELIGIBLE
        return RowState.CLAIMED

    # ----- predicates -----

    def _in_scope(self, row: Mapping[str, Any]) -> bool:
        t = self._table
        if any(row.get(col) != value for col, value in t.filters.items()):
            return False
        if any(row.get(col) is None for col in t.required_columns):
            return False
        return row[t.result_column] is None

    def _unlock(self, row: dict[str, Any]) -> None:
        row[self._table.owner_column] = None
        row[self._table.claimed_at_column] = None

    # ----- TaskStore -----

    async def sweep_expired(self, cutoff: datetime) -> int:
        await self._enter('sweep_expired')
        swept = 0
        for row in self.rows.values():
            claimed_at = row[self._table.claimed_at_column]
            if self._in_scope(row) and claimed_at is not None and claimed_at < cutoff:
                self._unlock(row)
                swept += 1
        return swept

    async def select_candidates(self, cutoff: datetime, limit: int) -> list[Any]:
        await self._enter('select_candidates')
        t = self._table
        eligible = []
        for row in self.rows.values():
            if not self._in_scope(row):
                continue
            claimed_at = row[t.claimed_at_column]
            if row[t.owner_column] is None or (claimed_at is not None and claimed_at < cutoff):
                eligible.append(row)
        # ascending, NULL keys last
        eligible.sort(
            key=lambda r: (r[t.key_column] is None, r[t.key_column], r[t.id_column])
        )
        return [r[t.id_column] for r in eligible[:limit]]

    async def claim(
        self, ids: Sequence[Any], owner: str, now: datetime
    ) -> list[ClaimedRow]:
        await self._enter('claim')
        t = self._table
        won: list[ClaimedRow] = []
        for row_id in ids:
            row = self.rows.get(row_id)
            if row is None or not self._in_scope(row) or row[t.owner_column] is not None:
                continue
            row[t.owner_column] = owner
            row[t.claimed_at_column] = now
            won.append(
                ClaimedRow(
                    id=row_id,
                    key=row[t.key_column],
                    payload={c: row.get(c) for c in t.payload_columns},
                )
            )
        return won

    async def complete(
        self, row_id: Any, owner: str, values: Mapping[str, Any]
    ) -> bool:
        await self._enter('complete')
        row = self.rows.get(row_id)
        if row is None or row[self._table.owner_column] != owner or not self._in_scope(row):
            return False
        row.update(values)
        self._unlock(row)
        self.completions.append((row_id, owner))
        return True

    async def release(self, ids: Sequence[Any], owner: str) -> int:
        await self._enter('release')
        released = 0
        for row_id in ids:
            row = self.rows.get(row_id)
            if row is not None and row[self._table.owner_column] == owner and self._in_scope(row):
                self._unlock(row)
                released += 1
        return released

    async def counts(self, cutoff: datetime) -> RowCounts:
        await self._enter('counts')
        tally = {'pending': 0, 'claimed': 0, 'expired': 0, 'done': 0}
        t = self._table
        for row in self.rows.values():
            if any(row.get(col) != value for col, value in t.filters.items()):
                continue
            if row[t.result_column] is not None:
                tally['done'] += 1
            elif row[t.owner_column] is None:
                tally['pending'] += 1
            elif row[t.claimed_at_column] is not None and row[t.claimed_at_column] >= cutoff:
                tally['claimed'] += 1
            else:
                tally['expired'] += 1
        return RowCounts(**tally)


Script: TypeAlias = str | ServiceFault | GenerationError | Callable[[GenerationRequest], str]


@dataclass
class ScriptedClient:
    """Answers requests from a script; falls back to `default` once it runs out."""

    script: list[Script] = field(default_factory=list)
    default: Script | None = None
    requests: list[GenerationRequest] = field(default_factory=list)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        step = self.script.pop(0) if self.script else self.default
        if step is None:
            raise AssertionError('ScriptedClient ran out of responses')
        match step:
            case ServiceFault() as fault:
                return Err(GenerationError(fault=fault, message=f'scripted {fault.value}'))
            case GenerationError() as error:
                return Err(error)
            case str() as text:
                return Ok(Completion(text=text, model=request.model, usage=Usage(10, 5)))
            case _:
                return Ok(Completion(text=step(request), model=request.model, usage=Usage(10, 5)))


def echo_response(request: GenerationRequest) -> str:
    """Valid EchoTask response for whatever prompts the request carries."""
    prompts = json.loads(request.prompt)
    items = [{'text': f'done:{p}'} for p in prompts]
    # single-row chunks are answered with a bare object
    return json.dumps(items[0] if len(items) == 1 else items)


class EchoTask(TaskType):
    """JSON task used by the engine tests: item {"text": ...} -> result column."""

    name = 'echo'
    env_prefix = 'ECHO'

    def __init__(self, table: TableSpec = ITEMS_TABLE) -> None:
        self.table = table

    def default_table(self) -> TableSpec:
        return self.table

    def build_prompt(self, rows: Sequence[ClaimedRow]) -> str:
        return json.dumps([row.payload['prompt'] for row in rows])

    def validate_item(self, row: ClaimedRow, item: Any) -> dict[str, Any]:
        if not isinstance(item, dict) or not isinstance(item.get('text'), str):
            raise ItemRejected('item must be an object with a text field')
        if not item['text'].strip():
            raise ItemRejected('text is empty')
        return {'result': item['text']}
