"""
In-memory record store for testing and development.

Data is lost on restart.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskloop.errors import PersistenceFailure

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .base import Record

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """
    In-memory record storage.

    Records are kept in per-scope lists (insertion order) with an
    id index for removal.

    Example:
        store = InMemoryRecordStore(table="tasks")
        await store.create(Record(scope_id="room-1", author_id="agent", content={}))
        records = await store.list_by_scope("room-1")
    """

    def __init__(self, table: str = "records") -> None:
        self._table = table
        self._scopes: dict[str, list[Record]] = {}
        self._index: dict[str, str] = {}

    @property
    def table(self) -> str:
        return self._table

    async def create(self, record: Record) -> Record:
        """Append a record to its scope."""
        if record.id in self._index:
            raise PersistenceFailure(
                "create",
                KeyError(f"record id {record.id} already exists in {self._table}"),
            )

        self._scopes.setdefault(record.scope_id, []).append(record)
        self._index[record.id] = record.scope_id

        logger.debug(f"[store:inmemory] Created {self._table} record {record.id}")
        return record

    async def list_by_scope(self, scope_id: str) -> Sequence[Record]:
        """List records of a scope."""
        return tuple(self._scopes.get(scope_id, ()))

    async def remove(self, record_id: str) -> bool:
        """Remove a record by id."""
        scope_id = self._index.pop(record_id, None)
        if scope_id is None:
            return False

        records = self._scopes.get(scope_id, [])
        for i, record in enumerate(records):
            if record.id == record_id:
                records.pop(i)
                break

        logger.debug(f"[store:inmemory] Removed {self._table} record {record_id}")
        return True

    def record_count(self, scope_id: str | None = None) -> int:
        """Number of stored records (for testing)."""
        if scope_id is not None:
            return len(self._scopes.get(scope_id, ()))
        return len(self._index)
