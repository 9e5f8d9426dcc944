"""
Record stores for taskloop.

Provides the append-only store contract and its backends:
- InMemoryRecordStore: tests and development
- RedisRecordStore: durable storage
"""

from __future__ import annotations

from typing import Any, Literal

from .base import Record, RecordStore, now_ms
from .memory import InMemoryRecordStore
from .redis import RedisRecordStore


def create_store(
    backend: Literal["inmemory", "redis"] = "inmemory",
    table: str = "records",
    **kwargs: Any,
) -> InMemoryRecordStore | RedisRecordStore:
    """
    Create a record store backend.

    Args:
        backend: "inmemory" or "redis"
        table: Logical table name
        **kwargs: Backend-specific configuration

    Example:
        # Development
        tasks = create_store("inmemory", table="tasks")

        # Production
        tasks = create_store("redis", table="tasks", redis_url="redis://localhost:6379")
    """
    if backend == "inmemory":
        return InMemoryRecordStore(table=table)
    elif backend == "redis":
        return RedisRecordStore(table=table, **kwargs)
    else:
        raise ValueError(f"Unknown backend: {backend}")


__all__ = [
    "Record",
    "RecordStore",
    "InMemoryRecordStore",
    "RedisRecordStore",
    "create_store",
    "now_ms",
]
