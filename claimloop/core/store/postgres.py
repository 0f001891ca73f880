# claimloop/core/store/postgres.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from claimloop.core.logging import get_logger
from claimloop.core.models.config import StoreConfig
from claimloop.core.models.rows import ClaimedRow, RowCounts, TableSpec
from claimloop.core.store.statements import TableStatements


class PostgresTaskStore:
    """
    PostgreSQL task store for one task table.

    Each operation runs in its own short session and commits immediately, so a
    worker never holds a transaction open across a generative call. Many
    PostgresTaskStore instances, in any number of processes, may share a table.
    """

    def __init__(
        self,
        config: StoreConfig,
        table: TableSpec,
        engine: AsyncEngine | None = None,
    ):
        self.config = config
        self.logger = get_logger('store')
        self._table = table
        self.statements = TableStatements(table)

        if engine is None:
            engine_cfg = self.config.model_dump(exclude={'database_url'}, exclude_none=True)
            engine = create_async_engine(self.config.database_url, **engine_cfg)
            self._owns_engine = True
        else:
            self._owns_engine = False
        self.async_engine = engine
        self.session_factory = async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )

        self.logger.debug(f'PostgresTaskStore initialized for table {table.table!r}')

    @property
    def table(self) -> TableSpec:
        return self._table

    def _to_claimed(self, row: Any) -> ClaimedRow:
        mapping = row._mapping
        spec = self._table
        return ClaimedRow(
            id=mapping[spec.id_column],
            key=mapping[spec.key_column],
            payload={name: mapping[name] for name in spec.payload_columns},
        )

    async def sweep_expired(self, cutoff: datetime) -> int:
        async with self.session_factory() as session:
            result = await session.execute(self.statements.sweep(cutoff))
            await session.commit()
            return getattr(result, 'rowcount', 0) or 0

    async def select_candidates(self, cutoff: datetime, limit: int) -> list[Any]:
        if limit <= 0:
            return []
        async with self.session_factory() as session:
            result = await session.execute(self.statements.candidates(cutoff, limit))
            return [row[0] for row in result.fetchall()]

    async def claim(
        self, ids: Sequence[Any], owner: str, now: datetime
    ) -> list[ClaimedRow]:
        if not ids:
            return []
        async with self.session_factory() as session:
            result = await session.execute(self.statements.claim(ids, owner, now))
            rows = result.fetchall()
            await session.commit()
        return [self._to_claimed(row) for row in rows]

    async def complete(
        self, row_id: Any, owner: str, values: Mapping[str, Any]
    ) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                self.statements.complete(row_id, owner, values)
            )
            await session.commit()
            return (getattr(result, 'rowcount', 0) or 0) == 1

    async def release(self, ids: Sequence[Any], owner: str) -> int:
        if not ids:
            return 0
        async with self.session_factory() as session:
            result = await session.execute(self.statements.release(ids, owner))
            await session.commit()
            return getattr(result, 'rowcount', 0) or 0

    async def counts(self, cutoff: datetime) -> RowCounts:
        async with self.session_factory() as session:
            result = await session.execute(self.statements.counts(cutoff))
            row = result.one()
        m = row._mapping
        return RowCounts(
            pending=int(m['pending']),
            claimed=int(m['claimed']),
            expired=int(m['expired']),
            done=int(m['done']),
        )

    async def ping(self) -> None:
        """Round-trip one trivial query; raises on connection problems."""
        async with self.async_engine.connect() as conn:
            await conn.execute(text('SELECT 1'))

    async def close(self) -> None:
        if self._owns_engine:
            await self.async_engine.dispose()
