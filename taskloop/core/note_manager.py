"""
Note Store.

Durable key/value facts with optional metadata. Every write replaces the
single current record of its key, so get_note's match is always the latest
write.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as SchemaValidationError

from taskloop.completion.templates import NOTE_EVALUATION_TEMPLATE
from taskloop.errors import NotFoundError, ServiceFailure, ValidationError

from .collection import RecordCollection
from .schemas import NoteOperation, NoteOperations
from .types import Note, NoteMetadata

if TYPE_CHECKING:
    from collections.abc import Callable

    from taskloop.completion.service import CompletionService
    from taskloop.loop.state import CycleState
    from taskloop.store.base import Record, RecordStore

logger = logging.getLogger(__name__)


def _to_note(record: Record) -> Note:
    return Note.from_content(record.id, record.content)


class NoteStore:
    """
    Notes of one session scope.

    Example:
        notes = NoteStore(store, completion, scope_id=room_id, author_id=agent_id)
        await notes.add_note("best_strike", 3200, NoteMetadata(task_id="t1"))
        value = (await notes.get_note("best_strike")).value
    """

    def __init__(
        self,
        store: RecordStore,
        completion: CompletionService,
        *,
        scope_id: str,
        author_id: str,
        clock: Callable[[], int] | None = None,
    ):
        self._notes = RecordCollection(
            store,
            scope_id=scope_id,
            author_id=author_id,
            key_field="key",
            clock=clock,
        )
        self._completion = completion

    async def get_note(self, key: str) -> Note | None:
        record = await self._notes.get(key)
        return _to_note(record) if record else None

    async def get_all_notes(self) -> list[Note]:
        records = await self._notes.materialize()
        return [_to_note(r) for r in records.values()]

    async def get_notes_by_task(self, task_id: str) -> list[Note]:
        return [
            n for n in await self.get_all_notes() if n.metadata and n.metadata.task_id == task_id
        ]

    async def _write(self, key: str, value: Any, metadata: NoteMetadata | None) -> Note:
        note = Note(id="", key=key, value=value, metadata=metadata, timestamp=self._notes.now())
        record = await self._notes.put(key, note.to_content())
        return _to_note(record)

    async def add_note(self, key: str, value: Any, metadata: NoteMetadata | None = None) -> Note:
        """
        Add a note. An existing note with the same key is replaced.

        Raises:
            ValidationError: Empty key
        """
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Note key must be a non-empty string")

        note = await self._write(key, value, metadata)
        logger.info(f"[note_store] Added note '{key}'")
        return note

    async def update_note(
        self,
        key: str,
        value: Any,
        metadata: NoteMetadata | None = None,
    ) -> Note:
        """
        Replace a note's value. Existing metadata is kept when none is given.

        Raises:
            NotFoundError: No note with this key
        """
        current = await self.get_note(key)
        if current is None:
            raise NotFoundError("Note", key)

        note = await self._write(key, value, metadata if metadata is not None else current.metadata)
        logger.info(f"[note_store] Updated note '{key}'")
        return note

    async def remove_note(self, key: str) -> None:
        """
        Raises:
            NotFoundError: No note with this key
        """
        if not await self._notes.delete(key):
            raise NotFoundError("Note", key)
        logger.info(f"[note_store] Removed note '{key}'")

    async def _apply(self, op: NoteOperation) -> None:
        metadata = op.metadata.to_metadata() if op.metadata else None
        if op.action == "add":
            await self.add_note(op.key, op.value, metadata)
        elif op.action == "update":
            await self.update_note(op.key, op.value, metadata)
        else:
            await self.remove_note(op.key)

    async def evaluate_notes(self, state: CycleState) -> int:
        """
        Reconcile notes with the completion service's proposals.

        Operations are applied in order; a failing one is logged and skipped.

        Returns:
            Number of operations applied
        """
        prompt = NOTE_EVALUATION_TEMPLATE.format(
            current_task=state.render_current_task(),
            next_tasks=state.render_next_tasks(),
            notes=state.render_notes(),
            recent_messages=state.recent_messages,
        )
        try:
            batch = await self._completion.generate_structured(prompt, NoteOperations)
        except ServiceFailure as e:
            logger.error(f"[note_store] Note reconciliation failed: {e}", exc_info=True)
            return 0

        applied = 0
        for index, raw in enumerate(batch.notes):
            try:
                op = NoteOperation.model_validate(raw)
            except SchemaValidationError as e:
                logger.warning(f"[note_store] Skipping malformed operation #{index}: {e}")
                continue

            try:
                await self._apply(op)
            except (ValidationError, NotFoundError) as e:
                logger.warning(f"[note_store] Skipping {op.action} '{op.key}': {e}")
                continue

            applied += 1
            if op.reason:
                logger.debug(f"[note_store] {op.action} '{op.key}': {op.reason}")

        logger.info(f"[note_store] Reconciliation applied {applied}/{len(batch.notes)} operations")
        return applied
