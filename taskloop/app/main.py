"""
taskloop - autonomous task loop service

FastAPI application entry point. The lifespan bootstraps the session and
runs the control loop in the background; the routes expose read-only
views of tasks, triggers and notes.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException

from taskloop import __version__
from taskloop.app.dependencies import get_runtime, initialize_services, shutdown_services
from taskloop.config import get_settings
from taskloop.loop import SleepPacing

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting taskloop services...")
    try:
        runtime = await initialize_services(start_loop=False)
        # The server has no terminal to approve cycles from
        runtime.start_loop(SleepPacing(settings.iteration_interval_ms))
        logger.info("taskloop services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    yield

    # Shutdown
    logger.info("Shutting down taskloop services...")
    try:
        await shutdown_services()
        logger.info("taskloop services shut down successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


app = FastAPI(
    title="taskloop",
    description="Autonomous agent task loop: ordered tasks, triggers and notes",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)


def _view(content: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in content.items() if k != "text"}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": __version__,
        "status": "running",
    }


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint.

    Reports the store backend, whether the loop is running, and the
    current task.
    """
    try:
        runtime = get_runtime()
        current = await runtime.tasks.get_current_task()
        loop_task = runtime.loop_task
        return {
            "status": "healthy",
            "store": runtime.settings.store_backend,
            "loop": "running" if loop_task is not None and not loop_task.done() else "stopped",
            "current_task": current.id if current else None,
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        return {
            "status": "unhealthy",
            "error": str(e),
        }


@app.get("/api/v1/tasks", tags=["state"])
async def list_tasks() -> dict[str, Any]:
    """All tasks in order, with the derived current task."""
    runtime = get_runtime()
    tasks = await runtime.tasks.get_all_tasks()
    current = await runtime.tasks.get_current_task()
    return {
        "tasks": [_view(t.to_content()) for t in tasks],
        "current_task": current.id if current else None,
    }


@app.get("/api/v1/tasks/{task_id}", tags=["state"])
async def get_task(task_id: str) -> dict[str, Any]:
    task = await get_runtime().tasks.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task '{task_id}' not found")
    return _view(task.to_content())


@app.get("/api/v1/triggers", tags=["state"])
async def list_triggers() -> dict[str, Any]:
    """All triggers in evaluation order."""
    triggers = await get_runtime().triggers.get_all_triggers()
    return {"triggers": [_view(t.to_content()) for t in triggers]}


@app.get("/api/v1/notes", tags=["state"])
async def list_notes(task_id: str | None = None) -> dict[str, Any]:
    """All notes, or the notes tagged with task_id."""
    notes_store = get_runtime().notes
    notes = (
        await notes_store.get_notes_by_task(task_id)
        if task_id
        else await notes_store.get_all_notes()
    )
    return {"notes": [{"id": n.id, **_view(n.to_content())} for n in notes]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "taskloop.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
