"""Task store protocol: the only shared resource between workers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

from claimloop.core.models.rows import ClaimedRow, RowCounts, TableSpec


class TaskStore(Protocol):
    """
    Row-level operations the engine relies on.

    Every method is a single statement against the store. The two conditional
    updates, `claim` (owner IS NULL) and `complete`/`release` (owner = me),
    are the only synchronisation primitives between workers.
    """

    @property
    def table(self) -> TableSpec: ...

    async def sweep_expired(self, cutoff: datetime) -> int:
        """Clear the lock on pending rows claimed before `cutoff`; return the count."""
        ...

    async def select_candidates(self, cutoff: datetime, limit: int) -> list[Any]:
        """Ids of eligible rows, ordered by the table's stable key."""
        ...

    async def claim(
        self, ids: Sequence[Any], owner: str, now: datetime
    ) -> list[ClaimedRow]:
        """Take ownership of the still-unowned pending rows among `ids`."""
        ...

    async def complete(
        self, row_id: Any, owner: str, values: Mapping[str, Any]
    ) -> bool:
        """Write result values and clear the lock if `owner` still holds the row."""
        ...

    async def release(self, ids: Sequence[Any], owner: str) -> int:
        """Clear the lock on rows `owner` still holds, leaving results NULL."""
        ...

    async def counts(self, cutoff: datetime) -> RowCounts: ...
