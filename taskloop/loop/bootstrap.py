"""
Session bootstrap.

Seeds the task queue when it is empty and makes sure exactly one polling
trigger exists. Safe to run on every start: a resumed session keeps its
persisted tasks and heartbeat.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskloop.core.types import Task, Trigger, TriggerType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskloop.core.task_manager import TaskManager
    from taskloop.core.trigger_manager import TriggerEngine

logger = logging.getLogger(__name__)

_SEED_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "taskloop.seed")


def _seed_id(name: str) -> str:
    return str(uuid.uuid5(_SEED_NAMESPACE, name))


def default_tasks() -> list[Task]:
    """Seed queue: analyze, open, close. Task data is opaque to the core."""
    return [
        Task(
            id=_seed_id("analyze-market"),
            description="Analyze market and find the most profitable option call to sell",
            definition_of_done=(
                "Identified the most profitable option call based on market analysis, "
                "including strike price, expiration, and expected profit potential"
            ),
            trigger_types=frozenset({TriggerType.POLLING}),
            data={
                "type": "market_analysis",
                "parameters": {"option_type": "call", "position": "sell"},
            },
        ),
        Task(
            id=_seed_id("open-position"),
            description="Open position",
            definition_of_done=(
                "Successfully opened the identified option position with confirmation of execution"
            ),
            trigger_types=frozenset({TriggerType.PRICE}),
            data={"type": "trade_execution", "action": "open"},
        ),
        Task(
            id=_seed_id("close-position"),
            description="Close position and take profit",
            definition_of_done="Successfully closed the position with profit target achieved",
            trigger_types=frozenset({TriggerType.PRICE}),
            data={"type": "trade_execution", "action": "close"},
        ),
    ]


@dataclass(frozen=True)
class BootstrapReport:
    seeded_tasks: int
    polling_created: bool


async def bootstrap_session(
    tasks: TaskManager,
    triggers: TriggerEngine,
    *,
    polling_interval_ms: int = 5000,
    seed_tasks: Sequence[Task] | None = None,
) -> BootstrapReport:
    """
    Prepare a session for its first cycle.

    Args:
        tasks: Task manager of the session
        triggers: Trigger engine of the session
        polling_interval_ms: Interval for a newly created polling trigger
        seed_tasks: Tasks to seed an empty queue with (default_tasks() if None)

    Raises:
        PersistenceFailure: If the store fails
    """
    seeded = 0
    if not await tasks.get_all_tasks():
        for task in default_tasks() if seed_tasks is None else seed_tasks:
            await tasks.add_task(task)
            seeded += 1
        logger.info(f"[bootstrap] Seeded {seeded} tasks")
    else:
        logger.info("[bootstrap] Task queue already populated")

    polling_created = False
    if not await triggers.get_triggers_by_type(TriggerType.POLLING):
        created = await triggers.add_trigger(
            Trigger(
                id=str(uuid.uuid4()),
                type=TriggerType.POLLING,
                params={"interval": polling_interval_ms},
            )
        )
        polling_created = created is not None
        logger.info(f"[bootstrap] Created polling trigger ({polling_interval_ms}ms)")

    return BootstrapReport(seeded_tasks=seeded, polling_created=polling_created)
