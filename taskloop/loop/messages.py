"""
Conversation log kept in the record store.

The orchestrator appends trigger activations, generated responses and
action results here; the recent tail is rendered into every prompt.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskloop.store.base import Record, now_ms

if TYPE_CHECKING:
    from collections.abc import Callable

    from taskloop.store.base import RecordStore

logger = logging.getLogger(__name__)


class MessageLog:
    """
    Append-only message history of one session scope.

    Messages are never updated, so no materialization is needed: the log
    is the store's scope listing ordered by creation time.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        scope_id: str,
        agent_id: str,
        agent_name: str = "Agent",
        limit: int = 20,
        clock: Callable[[], int] | None = None,
    ):
        self._store = store
        self._scope_id = scope_id
        self._agent_id = agent_id
        self._agent_name = agent_name
        self._limit = limit
        self._clock = clock or now_ms

    async def append(
        self,
        text: str,
        *,
        kind: str = "message",
        action: str | None = None,
        author_id: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> Record:
        """
        Persist one message.

        Raises:
            PersistenceFailure: If the store write fails
        """
        content: dict[str, Any] = {**(extra or {}), "text": text, "kind": kind}
        if action:
            content["action"] = action

        record = Record(
            scope_id=self._scope_id,
            author_id=author_id or self._agent_id,
            content=content,
            created_at=self._clock(),
        )
        await self._store.create(record)
        logger.debug(f"[messages] Appended {kind} message {record.id}")
        return record

    async def recent(self, limit: int | None = None) -> list[Record]:
        """Most recent messages, oldest first."""
        limit = self._limit if limit is None else limit
        if limit <= 0:
            return []
        records = await self._store.list_by_scope(self._scope_id)
        ordered = sorted(records, key=lambda r: r.created_at)
        return ordered[-limit:]

    def _speaker(self, record: Record) -> str:
        if record.author_id == self._agent_id:
            return self._agent_name
        return str(record.content.get("name") or "System")

    async def render_recent(self, limit: int | None = None) -> str:
        lines = []
        for record in await self.recent(limit):
            kind = record.content.get("kind", "message")
            text = record.content.get("text", "")
            prefix = f"[{kind}] " if kind != "message" else ""
            line = f"{self._speaker(record)}: {prefix}{text}"
            if record.content.get("action"):
                line += f" (action: {record.content['action']})"
            lines.append(line)
        return "\n".join(lines) or "No recent messages."
