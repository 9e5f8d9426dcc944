"""
Text rendering of tasks, notes and triggers for prompt templates.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from taskloop.core.types import Note, Task, Trigger


def _render_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, default=str)
    return str(value)


def format_task(task: Task) -> str:
    usage = task.data.get("trigger_usage") if isinstance(task.data, dict) else None
    trigger_lines = []
    for kind in sorted(str(getattr(t, "value", t)) for t in task.trigger_types):
        hint = usage.get(kind) if isinstance(usage, dict) else None
        trigger_lines.append(f"    {kind}: {hint}" if hint else f"    {kind}")

    return "\n".join(
        [
            f"- Description: {task.description}",
            f"  Id: {task.id}",
            f"  Order: {task.order}",
            f"  Status: {task.status.value}",
            "  Required Triggers:",
            *trigger_lines,
            f"  Definition of Done: {task.definition_of_done}",
        ]
    )


def format_current_task(task: Task | None) -> str:
    if task is None:
        return "No current task (all tasks completed)."
    return "\n".join(
        [
            f"Description: {task.description}",
            f"Definition of Done: {task.definition_of_done}",
            f"Status: {task.status.value}",
        ]
    )


def format_note(note: Note) -> str:
    metadata = note.metadata
    lines = [
        f"- Key: {note.key}",
        f"  Value: {_render_value(note.value)}",
        f"  Category: {metadata.category if metadata and metadata.category else 'N/A'}",
        f"  Priority: {metadata.priority if metadata and metadata.priority is not None else 'N/A'}",
    ]
    if metadata and metadata.task_id:
        lines.append(f"  Task: {metadata.task_id}")
    if metadata and metadata.tags:
        lines.append(f"  Tags: {', '.join(sorted(metadata.tags))}")
    return "\n".join(lines)


def format_trigger(trigger: Trigger) -> str:
    lines = [
        f"- Type: {trigger.type_name}",
        f"  Id: {trigger.id}",
        f"  Parameters: {json.dumps(trigger.params, indent=2, default=str)}",
    ]
    if trigger.last_evaluation:
        status = "triggered" if trigger.last_evaluation.is_triggered else "not triggered"
        lines.append(f"  Last Evaluation: {status} ({trigger.last_evaluation.reason})")
    return "\n".join(lines)


def format_tasks(tasks: Iterable[Task]) -> str:
    return "\n".join(format_task(t) for t in tasks) or "No tasks."


def format_notes(notes: Iterable[Note]) -> str:
    return "\n".join(format_note(n) for n in notes) or "No notes."


def format_triggers(triggers: Iterable[Trigger]) -> str:
    return "\n".join(format_trigger(t) for t in triggers) or "No active triggers."
