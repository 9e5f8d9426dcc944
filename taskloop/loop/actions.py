"""
Pluggable side effects of a cycle.

The orchestrator hands each generated message to an ActionHandler together
with a callback that persists whatever the handler produces, then runs the
post-hoc Evaluators. ActionRegistry is the stock handler: it dispatches on
the message's action name to registered async functions.

Usage:
    registry = ActionRegistry()

    async def open_position(content, callback):
        await callback([Content(text="Position opened", action="OPEN_POSITION")])

    registry.register("OPEN_POSITION", open_position, "Open the identified position")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from taskloop.completion.service import Content
from taskloop.errors import PersistenceFailure, TaskLoopError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from taskloop.store.base import Record

    from .messages import MessageLog
    from .state import CycleState

    Callback = Callable[[list[Content]], Awaitable[list[Record]]]
    ActionFn = Callable[[Content, Callback], Awaitable[None]]

logger = logging.getLogger(__name__)


class ActionHandler(Protocol):
    """Receives a generated message and may produce derived records."""

    async def handle(self, content: Content, callback: Callback) -> None: ...


class Evaluator(Protocol):
    """Post-hoc hook run after every generated message."""

    name: str

    async def evaluate(self, content: Content, state: CycleState) -> None: ...


def create_callback(messages: MessageLog, message_id: str | None = None) -> Callback:
    """
    Callback persisting each produced content as an action-result message.

    Results are linked to the message that caused them through
    original_message_id.
    """

    async def callback(produced: list[Content]) -> list[Record]:
        records = []
        for content in produced:
            extra = dict(content.extra)
            if message_id:
                extra["original_message_id"] = message_id
            records.append(
                await messages.append(
                    content.text,
                    kind="action_result",
                    action=content.action,
                    extra=extra,
                )
            )
        logger.debug(f"[actions] Persisted {len(records)} action result(s)")
        return records

    return callback


class ActionRegistryError(TaskLoopError):
    """Error in action registry operations."""

    pass


@dataclass(frozen=True)
class Action:
    name: str
    description: str
    handler: ActionFn


def _normalize(name: str) -> str:
    return name.strip().upper()


class ActionRegistry:
    """
    ActionHandler dispatching on Content.action.

    Messages without an action are ignored; unknown actions are logged.
    A failing handler is logged and recorded as an error result; store
    failures still propagate.
    """

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}

    def register(self, name: str, handler: ActionFn, description: str = "") -> None:
        """
        Raises:
            ActionRegistryError: Empty or already registered name
        """
        if not name or not name.strip():
            raise ActionRegistryError("Action must have a non-empty name")
        key = _normalize(name)
        if key in self._actions:
            raise ActionRegistryError(f"Action '{key}' already registered")

        self._actions[key] = Action(name=key, description=description, handler=handler)
        logger.info(f"[actions] Registered action: {key}")

    def unregister(self, name: str) -> bool:
        key = _normalize(name)
        if key in self._actions:
            del self._actions[key]
            logger.info(f"[actions] Unregistered action: {key}")
            return True
        return False

    def get(self, name: str) -> Action | None:
        return self._actions.get(_normalize(name))

    def list_names(self) -> list[str]:
        return list(self._actions.keys())

    def describe(self) -> str:
        """Action list for the next-action prompt."""
        if not self._actions:
            return "- NONE: no actions are available"
        return "\n".join(
            f"- {a.name}: {a.description}" if a.description else f"- {a.name}"
            for a in self._actions.values()
        )

    async def handle(self, content: Content, callback: Callback) -> None:
        if not content.action:
            logger.debug("[actions] Message has no action")
            return

        action = self.get(content.action)
        if action is None:
            logger.warning(
                f"[actions] Unknown action '{content.action}'. Available: {self.list_names()}"
            )
            return

        logger.info(f"[actions] Executing {action.name}")
        try:
            await action.handler(content, callback)
        except PersistenceFailure:
            raise
        except Exception as e:
            logger.error(f"[actions] Action {action.name} failed: {e}", exc_info=True)
            await callback(
                [Content(text=f"Action {action.name} failed: {e}", action=action.name, extra={"error": True})]
            )

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, name: str) -> bool:
        return _normalize(name) in self._actions
