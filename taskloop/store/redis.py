"""
Redis-backed record store.

Storage Format:
    - Key: f"{key_prefix}:{table}:scope:{scope_id}"
      Value: JSON list of serialized records (insertion order)
    - Key: f"{key_prefix}:{table}:record:{record_id}"
      Value: scope_id (index used by remove)

Any Redis or decoding error is wrapped in PersistenceFailure so callers see
a single failure type regardless of backend.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from taskloop.errors import PersistenceFailure

from .base import Record

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


class RedisRecordStore:
    """
    Redis record store.

    Example:
        store = RedisRecordStore(table="notes", redis_url="redis://localhost:6379")
        await store.create(record)

        # Later (even after restart)
        records = await store.list_by_scope(record.scope_id)
    """

    def __init__(
        self,
        table: str = "records",
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "taskloop",
    ) -> None:
        """
        Initialize Redis store.

        Args:
            table: Logical table name (tasks, triggers, notes, messages)
            redis_url: Redis connection URL
            key_prefix: Prefix for all keys
        """
        self._table = table
        self._redis_url = redis_url
        self._key_prefix = key_prefix
        self._client: Any = None  # redis.asyncio.Redis

    @property
    def table(self) -> str:
        return self._table

    async def _get_client(self) -> Any:
        """Get or create Redis client."""
        if self._client is None:
            try:
                import redis.asyncio as aioredis

                self._client = aioredis.from_url(
                    self._redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
            except ImportError:
                raise ImportError(
                    "redis package required for RedisRecordStore. Install with: pip install redis"
                )
        return self._client

    def _scope_key(self, scope_id: str) -> str:
        return f"{self._key_prefix}:{self._table}:scope:{scope_id}"

    def _index_key(self, record_id: str) -> str:
        return f"{self._key_prefix}:{self._table}:record:{record_id}"

    async def _load(self, client: Any, scope_id: str) -> list[dict[str, Any]]:
        data = await client.get(self._scope_key(scope_id))
        if data is None:
            return []
        return json.loads(data)

    async def create(self, record: Record) -> Record:
        """Append a record to its scope list."""
        try:
            client = await self._get_client()
            if await client.get(self._index_key(record.id)) is not None:
                raise KeyError(f"record id {record.id} already exists in {self._table}")

            records = await self._load(client, record.scope_id)
            records.append(record.to_dict())

            await client.set(self._scope_key(record.scope_id), json.dumps(records))
            await client.set(self._index_key(record.id), record.scope_id)
        except ImportError:
            raise
        except Exception as e:
            logger.error(f"[store:redis] Create failed for {self._table}: {e}")
            raise PersistenceFailure("create", e) from e

        logger.debug(f"[store:redis] Created {self._table} record {record.id}")
        return record

    async def list_by_scope(self, scope_id: str) -> Sequence[Record]:
        """List records of a scope in insertion order."""
        try:
            client = await self._get_client()
            records = await self._load(client, scope_id)
            return tuple(Record.from_dict(r) for r in records)
        except ImportError:
            raise
        except Exception as e:
            logger.error(f"[store:redis] List failed for {self._table}: {e}")
            raise PersistenceFailure("list", e) from e

    async def remove(self, record_id: str) -> bool:
        """Remove a record by id."""
        try:
            client = await self._get_client()
            scope_id = await client.get(self._index_key(record_id))
            if scope_id is None:
                return False

            records = await self._load(client, scope_id)
            remaining = [r for r in records if r.get("id") != record_id]

            await client.set(self._scope_key(scope_id), json.dumps(remaining))
            await client.delete(self._index_key(record_id))
        except ImportError:
            raise
        except Exception as e:
            logger.error(f"[store:redis] Remove failed for {self._table}: {e}")
            raise PersistenceFailure("remove", e) from e

        logger.debug(f"[store:redis] Removed {self._table} record {record_id}")
        return True

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
