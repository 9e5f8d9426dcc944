"""
Materialized collections over the append-only record store.

The store has no update primitive, so every entity kind (tasks, triggers,
notes) goes through the same rule implemented here:

    Write: create the new full record, then remove every older record with
           the same logical key ("create-then-compact").
    Read:  fold all records by logical key, keeping the record with the
           greatest created_at (ties: later in scan order wins).

A reader therefore never sees zero records for a key that existed before a
write started, and the fold collapses any transient duplicate into one
value. After each write the store holds exactly one record per key.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskloop.store.base import Record, now_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from taskloop.store.base import RecordStore

logger = logging.getLogger(__name__)


def fold_latest(records: Any, key_field: str) -> dict[str, Record]:
    """
    Materialize the latest record per logical key.

    Records lacking the key field are ignored. The returned dict keeps the
    order in which keys were first seen.
    """
    latest: dict[str, Record] = {}
    for record in records:
        key = record.content.get(key_field)
        if key is None:
            continue
        current = latest.get(key)
        if current is None or record.created_at >= current.created_at:
            latest[key] = record
    return latest


class RecordCollection:
    """
    Keyed upsert/remove view of one record store table within one scope.

    Example:
        tasks = RecordCollection(store, scope_id=room_id, author_id=agent_id,
                                 key_field="task_id")
        await tasks.put("t1", {"task_id": "t1", "status": "pending"})
        current = await tasks.materialize()
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        scope_id: str,
        author_id: str,
        key_field: str,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._scope_id = scope_id
        self._author_id = author_id
        self._key_field = key_field
        self._clock = clock or now_ms

    @property
    def scope_id(self) -> str:
        return self._scope_id

    def now(self) -> int:
        return self._clock()

    async def materialize(self) -> dict[str, Record]:
        """Current record per logical key."""
        records = await self._store.list_by_scope(self._scope_id)
        return fold_latest(records, self._key_field)

    async def get(self, key: str) -> Record | None:
        """Current record for one key, or None."""
        return (await self.materialize()).get(key)

    async def put(self, key: str, content: dict[str, Any]) -> Record:
        """
        Write a new current value for key and compact older records.

        Raises:
            PersistenceFailure: If the store write fails
        """
        records = await self._store.list_by_scope(self._scope_id)
        stale = [r for r in records if r.content.get(self._key_field) == key]

        # The new record must win the fold even if the clock moved backwards.
        created_at = max([self._clock()] + [r.created_at for r in stale])

        record = Record(
            scope_id=self._scope_id,
            author_id=self._author_id,
            content={**content, self._key_field: key},
            created_at=created_at,
        )
        await self._store.create(record)

        for old in stale:
            await self._store.remove(old.id)

        if stale:
            logger.debug(
                f"[collection:{self._store.table}] Replaced {key} "
                f"({len(stale)} superseded record(s) removed)"
            )
        return record

    async def delete(self, key: str) -> int:
        """
        Remove every record for key.

        Returns:
            Number of records removed
        """
        records = await self._store.list_by_scope(self._scope_id)
        removed = 0
        for record in records:
            if record.content.get(self._key_field) == key:
                if await self._store.remove(record.id):
                    removed += 1
        return removed
