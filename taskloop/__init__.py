"""
taskloop - orchestration core of an autonomous agent.

taskloop runs a fixed, ordered queue of goal-directed tasks:

- **Task Queue**: ordered tasks whose current task is derived from stored state
- **Triggers**: polling heartbeat, LLM-judged dynamic conditions, pluggable kinds
- **Notes**: durable key/value facts reconciled by the language model
- **Iteration Loop**: one cycle per activation, paced by sleep or manual approval

Quick Start:
    >>> from taskloop.app.dependencies import build_runtime
    >>> from taskloop.config import get_settings
    >>>
    >>> runtime = build_runtime(get_settings())
    >>> await runtime.bootstrap()
    >>> outcome = await runtime.orchestrator.run_cycle()
"""

__version__ = "0.1.0"

from taskloop.core import (
    Note,
    NoteMetadata,
    NoteStore,
    Task,
    TaskManager,
    TaskStatus,
    Trigger,
    TriggerEngine,
    TriggerEvaluation,
    TriggerType,
)
from taskloop.errors import (
    NotFoundError,
    PersistenceFailure,
    ServiceFailure,
    TaskLoopError,
    ValidationError,
)
from taskloop.loop import CycleOutcome, IterationOrchestrator

__all__ = [
    "__version__",
    "CycleOutcome",
    "IterationOrchestrator",
    "Note",
    "NoteMetadata",
    "NoteStore",
    "NotFoundError",
    "PersistenceFailure",
    "ServiceFailure",
    "Task",
    "TaskLoopError",
    "TaskManager",
    "TaskStatus",
    "Trigger",
    "TriggerEngine",
    "TriggerEvaluation",
    "TriggerType",
    "ValidationError",
]
