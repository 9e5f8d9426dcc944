"""
Record Store contract.

The record store is append-only and keyed by record id, scoped to a
conversation/session identifier. It offers create, list-by-scope and
remove-by-id. There is no update primitive; callers that need upsert
semantics build them on top (see taskloop.core.collection).

Design:
    - RecordStore Protocol defines the interface
    - Multiple backends: InMemory (test), Redis (production)
    - Records are JSON serializable
    - Backends wrap their own failures in PersistenceFailure
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol
from uuid import uuid4

if TYPE_CHECKING:
    from collections.abc import Sequence


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Record:
    """
    A single persisted record.

    Attributes:
        id: Unique record identifier (store key)
        scope_id: Conversation/room the record belongs to
        author_id: Identity that wrote the record
        content: Opaque JSON-serializable payload
        created_at: Creation time in epoch milliseconds

    Note:
        Records are immutable (frozen). A changed value is a new record.
    """

    scope_id: str
    author_id: str
    content: dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "scope_id": self.scope_id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        """Create Record from dict."""
        return cls(
            id=data["id"],
            scope_id=data["scope_id"],
            author_id=data.get("author_id", ""),
            content=data.get("content", {}),
            created_at=int(data.get("created_at", 0)),
        )


class RecordStore(Protocol):
    """
    Protocol for record store backends.

    Each backend instance holds one logical table (tasks, triggers,
    notes, messages). Records are listed in insertion order.
    """

    @property
    def table(self) -> str:
        """Logical table name."""
        ...

    async def create(self, record: Record) -> Record:
        """
        Persist a new record.

        Raises:
            PersistenceFailure: If the write fails or the id already exists
        """
        ...

    async def list_by_scope(self, scope_id: str) -> Sequence[Record]:
        """
        List all records of a scope in insertion order.

        Raises:
            PersistenceFailure: If the read fails
        """
        ...

    async def remove(self, record_id: str) -> bool:
        """
        Remove a record by id.

        Returns:
            True if removed, False if no such record

        Raises:
            PersistenceFailure: If the removal fails
        """
        ...
