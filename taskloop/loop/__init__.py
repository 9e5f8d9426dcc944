"""
Control loop: state composition, cycles, pacing and bootstrap.
"""

from .actions import ActionHandler, ActionRegistry, ActionRegistryError, Evaluator, create_callback
from .bootstrap import BootstrapReport, bootstrap_session, default_tasks
from .iteration import CycleOutcome, IterationOrchestrator
from .messages import MessageLog
from .pacing import ManualApprovalPacing, Pacing, SleepPacing, create_pacing, run_loop
from .state import CycleState, SessionScope, compose_state

__all__ = [
    "ActionHandler",
    "ActionRegistry",
    "ActionRegistryError",
    "BootstrapReport",
    "CycleOutcome",
    "CycleState",
    "Evaluator",
    "IterationOrchestrator",
    "ManualApprovalPacing",
    "MessageLog",
    "Pacing",
    "SessionScope",
    "SleepPacing",
    "bootstrap_session",
    "compose_state",
    "create_callback",
    "create_pacing",
    "default_tasks",
    "run_loop",
]
