"""
Session scope and per-cycle state snapshot.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskloop.core.task_manager import select_current_task

from .formatters import (
    format_current_task,
    format_notes,
    format_tasks,
    format_triggers,
)

if TYPE_CHECKING:
    from taskloop.core.note_manager import NoteStore
    from taskloop.core.task_manager import TaskManager
    from taskloop.core.trigger_manager import TriggerEngine
    from taskloop.core.types import Note, Task, Trigger

    from .messages import MessageLog

_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "taskloop")


@dataclass(frozen=True)
class SessionScope:
    """
    Identity of one agent session.

    Ids are deterministic UUIDv5 values so a restarted process resumes the
    same persisted tasks, triggers and notes.
    """

    agent_id: str
    room_id: str
    agent_name: str

    @classmethod
    def for_agent(cls, agent_name: str, room_name: str) -> SessionScope:
        return cls(
            agent_id=str(uuid.uuid5(_NAMESPACE, f"agent:{agent_name}")),
            room_id=str(uuid.uuid5(_NAMESPACE, f"room:{agent_name}:{room_name}")),
            agent_name=agent_name,
        )


@dataclass(frozen=True)
class CycleState:
    """
    Snapshot of everything a prompt may refer to.

    Composed from persisted state; never mutated. Managers take it as the
    evaluation context for judgments and reconciliation.
    """

    agent_name: str
    current_task: Task | None
    tasks: tuple[Task, ...]
    notes: tuple[Note, ...]
    triggers: tuple[Trigger, ...]
    recent_messages: str = "No recent messages."

    def notes_for_task(self, task_id: str) -> tuple[Note, ...]:
        return tuple(n for n in self.notes if n.metadata and n.metadata.task_id == task_id)

    def next_tasks(self) -> tuple[Task, ...]:
        """Non-completed tasks after the current one."""
        return tuple(
            t for t in self.tasks if not t.is_completed and t is not self.current_task
        )

    def render_current_task(self) -> str:
        return format_current_task(self.current_task)

    def render_tasks(self) -> str:
        return format_tasks(self.tasks)

    def render_next_tasks(self) -> str:
        return format_tasks(self.next_tasks())

    def render_notes(self, task_id: str | None = None) -> str:
        notes = self.notes if task_id is None else self.notes_for_task(task_id)
        return format_notes(notes)

    def render_triggers(self) -> str:
        return format_triggers(self.triggers)


async def compose_state(
    tasks: TaskManager,
    triggers: TriggerEngine,
    notes: NoteStore,
    messages: MessageLog,
    *,
    agent_name: str,
) -> CycleState:
    """Read tasks, triggers, notes and recent conversation into one snapshot."""
    all_tasks = tuple(await tasks.get_all_tasks())
    return CycleState(
        agent_name=agent_name,
        current_task=select_current_task(all_tasks),
        tasks=all_tasks,
        notes=tuple(await notes.get_all_notes()),
        triggers=tuple(await triggers.get_all_triggers()),
        recent_messages=await messages.render_recent(),
    )
