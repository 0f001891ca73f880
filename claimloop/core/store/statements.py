"""SQL statements for one task table.

Built with SQLAlchemy Core against a lightweight `table()` so that any table
described by a TableSpec can be claimed without an ORM model. Every write is a
single conditional UPDATE; there are no explicit row locks and no multi-row
transactions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import (
    DateTime,
    Select,
    String,
    Update,
    column,
    func,
    or_,
    select,
    table,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql.elements import ColumnClause, ColumnElement
from sqlalchemy.sql.expression import TableClause

from claimloop.core.models.rows import TableSpec


class TableStatements:
    """Statement factory bound to one TableSpec."""

    def __init__(self, spec: TableSpec) -> None:
        self.spec = spec
        self.table: TableClause = table(
            spec.table,
            *[self._declare(name) for name in spec.all_columns()],
            schema=spec.schema_name,
        )

    def _declare(self, name: str) -> ColumnClause[Any]:
        if name in self.spec.json_columns:
            return column(name, JSONB)
        if name == self.spec.claimed_at_column:
            return column(name, DateTime(timezone=True))
        if name == self.spec.owner_column:
            return column(name, String)
        return column(name)

    def col(self, name: str) -> ColumnClause[Any]:
        return self.table.c[name]

    # ----- predicates -----

    def _scope(self) -> list[ColumnElement[bool]]:
        """Row filter shared by every statement: equality filters + NOT NULLs."""
        conditions: list[ColumnElement[bool]] = [
            self.col(name) == value for name, value in self.spec.filters.items()
        ]
        conditions.extend(self.col(name).is_not(None) for name in self.spec.required_columns)
        return conditions

    def _pending(self) -> ColumnElement[bool]:
        return self.col(self.spec.result_column).is_(None)

    def _unlock_values(self) -> dict[ColumnClause[Any], Any]:
        return {
            self.col(self.spec.owner_column): None,
            self.col(self.spec.claimed_at_column): None,
        }

    def _returning_columns(self) -> list[ColumnClause[Any]]:
        names = [self.spec.id_column, self.spec.key_column, *self.spec.payload_columns]
        return [self.col(name) for name in dict.fromkeys(names)]

    def _order_by(self) -> list[ColumnClause[Any]]:
        names = [self.spec.key_column, self.spec.id_column]
        return [self.col(name) for name in dict.fromkeys(names)]

    # ----- statements -----

    def sweep(self, cutoff: datetime) -> Update:
        """Clear expired locks on pending rows."""
        return (
            update(self.table)
            .where(
                *self._scope(),
                self._pending(),
                self.col(self.spec.claimed_at_column) < cutoff,
            )
            .values(self._unlock_values())
        )

    def candidates(self, cutoff: datetime, limit: int) -> Select[Any]:
        """Eligible ids: pending and unowned, or pending with an expired lease."""
        owner = self.col(self.spec.owner_column)
        claimed_at = self.col(self.spec.claimed_at_column)
        return (
            select(self.col(self.spec.id_column))
            .where(
                *self._scope(),
                self._pending(),
                or_(owner.is_(None), claimed_at < cutoff),
            )
            .order_by(*self._order_by())
            .limit(limit)
        )

    def claim(self, ids: Sequence[Any], owner: str, now: datetime) -> Update:
        """Compare-and-set: only rows still unowned at write time are taken."""
        return (
            update(self.table)
            .where(
                self.col(self.spec.id_column).in_(list(ids)),
                *self._scope(),
                self._pending(),
                self.col(self.spec.owner_column).is_(None),
            )
            .values(
                {
                    self.col(self.spec.owner_column): owner,
                    self.col(self.spec.claimed_at_column): now,
                }
            )
            .returning(*self._returning_columns())
        )

    def complete(self, row_id: Any, owner: str, values: Mapping[str, Any]) -> Update:
        """Write the result and clear the lock, only while `owner` holds the row."""
        assignments: dict[ColumnClause[Any], Any] = {
            self.col(name): value for name, value in values.items()
        }
        assignments.update(self._unlock_values())
        return (
            update(self.table)
            .where(
                self.col(self.spec.id_column) == row_id,
                self.col(self.spec.owner_column) == owner,
                self._pending(),
            )
            .values(assignments)
        )

    def release(self, ids: Sequence[Any], owner: str) -> Update:
        """Give rows back without a result, only while `owner` holds them."""
        return (
            update(self.table)
            .where(
                self.col(self.spec.id_column).in_(list(ids)),
                self.col(self.spec.owner_column) == owner,
                self._pending(),
            )
            .values(self._unlock_values())
        )

    def counts(self, cutoff: datetime) -> Select[Any]:
        owner = self.col(self.spec.owner_column)
        claimed_at = self.col(self.spec.claimed_at_column)
        pending = self._pending()
        return select(
            func.count().filter(pending, owner.is_(None)).label('pending'),
            func.count()
            .filter(pending, owner.is_not(None), claimed_at >= cutoff)
            .label('claimed'),
            func.count()
            .filter(
                pending,
                owner.is_not(None),
                or_(claimed_at.is_(None), claimed_at < cutoff),
            )
            .label('expired'),
            func.count()
            .filter(self.col(self.spec.result_column).is_not(None))
            .label('done'),
        ).where(*self._scope())
