# claimloop/core/models/rows.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from claimloop.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)

_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')


class TableSpec(BaseModel):
    """
    Physical mapping of one task type onto a relational table.

    - table: table holding the task rows
    - id_column: stable row identity
    - order_column: stable key for candidate ordering (defaults to id_column)
    - payload_columns: returned to the processor when a row is claimed
    - result_column: gating column; NULL means the row is still pending
    - extra_result_columns: written together with result_column on success
    - owner_column / claimed_at_column: lock columns
    - filters: equality row filter (column -> value)
    - required_columns: must be NOT NULL for a row to be in scope
    - json_columns: result columns bound as JSONB
    """

    table: str = Field(..., min_length=1)
    schema_name: str | None = None
    id_column: str = 'id'
    order_column: str | None = None
    payload_columns: list[str] = Field(default_factory=list)
    result_column: str = Field(..., min_length=1)
    extra_result_columns: list[str] = Field(default_factory=list)
    owner_column: str = Field(..., min_length=1)
    claimed_at_column: str = Field(..., min_length=1)
    filters: dict[str, Any] = Field(default_factory=dict)
    required_columns: list[str] = Field(default_factory=list)
    json_columns: list[str] = Field(default_factory=list)

    @property
    def key_column(self) -> str:
        return self.order_column or self.id_column

    @property
    def result_columns(self) -> list[str]:
        return [self.result_column, *self.extra_result_columns]

    def all_columns(self) -> list[str]:
        """Every column the engine touches, de-duplicated, in a stable order."""
        ordered = [
            self.id_column,
            self.key_column,
            *self.payload_columns,
            *self.result_columns,
            self.owner_column,
            self.claimed_at_column,
            *self.filters,
            *self.required_columns,
        ]
        return list(dict.fromkeys(ordered))

    @model_validator(mode='after')
    def validate_columns(self) -> Self:
        report = ValidationReport('table')
        names = [self.table, *self.all_columns(), *self.json_columns]
        if self.schema_name is not None:
            names.append(self.schema_name)
        bad_names = sorted({n for n in names if not _IDENTIFIER.fullmatch(n)})
        if bad_names:
            report.add(
                ConfigurationError(
                    message='invalid table or column name',
                    code=ErrorCode.CONFIG_INVALID_TABLE,
                    notes=[f'table={self.table!r}', f'rejected: {bad_names}'],
                    help_text='names must match [A-Za-z_][A-Za-z0-9_]*',
                )
            )
        lock_columns = {self.owner_column, self.claimed_at_column}
        if self.owner_column == self.claimed_at_column:
            report.add(
                ConfigurationError(
                    message='owner and claimed_at must be different columns',
                    code=ErrorCode.CONFIG_INVALID_TABLE,
                    notes=[f'table={self.table!r}', f'column={self.owner_column!r}'],
                    help_text='use one text column for the owner and one timestamp column',
                )
            )
        clashing = sorted(lock_columns & set(self.result_columns))
        if clashing:
            report.add(
                ConfigurationError(
                    message='result columns overlap with lock columns',
                    code=ErrorCode.CONFIG_INVALID_TABLE,
                    notes=[f'table={self.table!r}', f'overlapping={clashing}'],
                    help_text='a success write clears the lock columns, so they cannot hold results',
                )
            )
        unknown_json = sorted(set(self.json_columns) - set(self.result_columns))
        if unknown_json:
            report.add(
                ConfigurationError(
                    message='json_columns must be result columns',
                    code=ErrorCode.CONFIG_INVALID_TABLE,
                    notes=[f'table={self.table!r}', f'not result columns: {unknown_json}'],
                    help_text='list only columns the task writes on success',
                )
            )
        raise_collected(report)
        return self


@dataclass(frozen=True)
class ClaimedRow:
    """A row owned by this worker: identity, ordering key and payload values."""

    id: Any
    key: Any
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RowCounts:
    """Snapshot of a task table, as reported by `claimloop status`."""

    pending: int = 0  # result NULL, unowned
    claimed: int = 0  # result NULL, owned, lease live
    expired: int = 0  # result NULL, owned, lease expired
    done: int = 0  # result set

    @property
    def total(self) -> int:
        return self.pending + self.claimed + self.expired + self.done
