"""
Dependency wiring for taskloop.

Builds the record stores, completion service, managers and orchestrator
of one agent session from settings, and keeps a process-wide instance for
the HTTP app and the command line.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from taskloop.completion import LLMCompletionService
from taskloop.config import AppSettings, get_settings
from taskloop.core import NoteStore, TaskManager, TriggerEngine
from taskloop.loop import (
    ActionRegistry,
    IterationOrchestrator,
    MessageLog,
    SessionScope,
    bootstrap_session,
    create_pacing,
    run_loop,
)
from taskloop.providers.llm import AnthropicLLMProvider, OpenAILLMProvider
from taskloop.store import create_store

if TYPE_CHECKING:
    from collections.abc import Callable

    from taskloop.completion import CompletionService
    from taskloop.loop import BootstrapReport, Pacing
    from taskloop.providers.llm import LLMProvider
    from taskloop.store import RecordStore

logger = logging.getLogger(__name__)

TABLES = ("tasks", "triggers", "notes", "messages")


@dataclass
class Runtime:
    """Everything one agent session needs to run."""

    settings: AppSettings
    scope: SessionScope
    stores: dict[str, RecordStore]
    tasks: TaskManager
    triggers: TriggerEngine
    notes: NoteStore
    messages: MessageLog
    actions: ActionRegistry
    orchestrator: IterationOrchestrator
    loop_task: asyncio.Task | None = field(default=None, repr=False)

    async def bootstrap(self) -> BootstrapReport:
        return await bootstrap_session(
            self.tasks,
            self.triggers,
            polling_interval_ms=self.settings.polling_interval_ms,
        )

    def start_loop(self, pacing: Pacing | None = None) -> asyncio.Task:
        """Run the control loop as a background task."""
        if self.loop_task is None or self.loop_task.done():
            pacing = pacing or create_pacing(
                self.settings.iteration_mode, self.settings.iteration_interval_ms
            )
            self.loop_task = asyncio.create_task(run_loop(self.orchestrator, pacing))
            logger.info("[runtime] Control loop started")
        return self.loop_task

    async def stop_loop(self) -> None:
        if self.loop_task is None:
            return
        self.loop_task.cancel()
        try:
            await self.loop_task
        except asyncio.CancelledError:
            pass
        self.loop_task = None
        logger.info("[runtime] Control loop stopped")

    async def close(self) -> None:
        await self.stop_loop()
        for store in self.stores.values():
            close = getattr(store, "close", None)
            if close is not None:
                await close()


def create_llm_provider(settings: AppSettings) -> LLMProvider:
    """
    Create the configured LLM provider.

    Raises:
        ValueError: If the provider's API key is missing
    """
    if settings.llm_provider == "anthropic":
        if settings.anthropic_api_key is None:
            raise ValueError("TASKLOOP_ANTHROPIC_API_KEY is required for the anthropic provider")
        return AnthropicLLMProvider(api_key=settings.anthropic_api_key.get_secret_value())

    if settings.openai_api_key is None:
        raise ValueError("TASKLOOP_OPENAI_API_KEY is required for the openai provider")
    return OpenAILLMProvider(api_key=settings.openai_api_key.get_secret_value())


def create_stores(settings: AppSettings) -> dict[str, RecordStore]:
    kwargs: dict[str, Any] = {}
    if settings.store_backend == "redis":
        kwargs["redis_url"] = settings.redis_url
    return {table: create_store(settings.store_backend, table, **kwargs) for table in TABLES}


def build_runtime(
    settings: AppSettings,
    *,
    completion: CompletionService | None = None,
    stores: dict[str, RecordStore] | None = None,
    actions: ActionRegistry | None = None,
    clock: Callable[[], int] | None = None,
) -> Runtime:
    """
    Wire a session from settings.

    completion, stores and clock can be supplied to replace the configured
    LLM and backends (tests, embedding).
    """
    scope = SessionScope.for_agent(settings.agent_name, settings.room_name)
    stores = stores or create_stores(settings)
    if completion is None:
        completion = LLMCompletionService(
            create_llm_provider(settings),
            small_model=settings.small_model,
            large_model=settings.large_model,
            temperature=settings.temperature,
        )
    actions = actions or ActionRegistry()

    ids = {"scope_id": scope.room_id, "author_id": scope.agent_id, "clock": clock}
    tasks = TaskManager(stores["tasks"], completion, **ids)
    triggers = TriggerEngine(stores["triggers"], completion, **ids)
    notes = NoteStore(stores["notes"], completion, **ids)
    messages = MessageLog(
        stores["messages"],
        scope_id=scope.room_id,
        agent_id=scope.agent_id,
        agent_name=settings.agent_name,
        limit=settings.recent_message_limit,
        clock=clock,
    )

    orchestrator = IterationOrchestrator(
        tasks=tasks,
        triggers=triggers,
        notes=notes,
        messages=messages,
        completion=completion,
        agent_name=settings.agent_name,
        mission=settings.agent_mission,
        action_handler=actions,
    )

    logger.info(
        f"[runtime] Session {settings.agent_name}/{settings.room_name} "
        f"(store={settings.store_backend}, llm={settings.llm_provider})"
    )
    return Runtime(
        settings=settings,
        scope=scope,
        stores=stores,
        tasks=tasks,
        triggers=triggers,
        notes=notes,
        messages=messages,
        actions=actions,
        orchestrator=orchestrator,
    )


# Global instance (initialized on first access)
_runtime: Runtime | None = None


def get_runtime() -> Runtime:
    """
    Get the process-wide runtime.

    Builds it from get_settings() on first call.
    """
    global _runtime
    if _runtime is None:
        _runtime = build_runtime(get_settings())
    return _runtime


def set_runtime(runtime: Runtime | None) -> None:
    """Install a prebuilt runtime (or clear it with None)."""
    global _runtime
    _runtime = runtime


async def initialize_services(start_loop: bool = True) -> Runtime:
    """
    Bootstrap the session and start the loop.

    Called from FastAPI lifespan.
    """
    runtime = get_runtime()
    await runtime.bootstrap()
    if start_loop:
        runtime.start_loop()
    return runtime


async def shutdown_services() -> None:
    """
    Stop the loop and close stores.

    Called from FastAPI lifespan.
    """
    global _runtime
    if _runtime:
        await _runtime.close()
        _runtime = None
