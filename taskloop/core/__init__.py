"""
taskloop core: tasks, triggers and notes over an append-only record store.
"""

from .collection import RecordCollection, fold_latest
from .note_manager import NoteStore
from .task_manager import TaskManager, select_current_task
from .trigger_manager import TriggerEngine
from .types import (
    Note,
    NoteMetadata,
    Task,
    TaskStatus,
    Trigger,
    TriggerEvaluation,
    TriggerType,
)

__all__ = [
    "Note",
    "NoteMetadata",
    "NoteStore",
    "RecordCollection",
    "Task",
    "TaskManager",
    "TaskStatus",
    "Trigger",
    "TriggerEngine",
    "TriggerEvaluation",
    "TriggerType",
    "fold_latest",
    "select_current_task",
]
