"""
Loop driver and inter-cycle pacing.

Cycles run strictly one after another. Between cycles the loop either
sleeps a fixed interval or waits for a line of operator input.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from .iteration import CycleOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from .iteration import IterationOrchestrator

logger = logging.getLogger(__name__)

MANUAL_PROMPT = "\nPress Enter to execute next iteration, or type 'exit' to stop: "


class Pacing(Protocol):
    async def wait(self) -> bool:
        """Wait for the next cycle. False stops the loop."""
        ...


class SleepPacing:
    """Sleep a fixed interval between cycles."""

    def __init__(self, interval_ms: int = 5000):
        self.interval_ms = interval_ms

    async def wait(self) -> bool:
        await asyncio.sleep(self.interval_ms / 1000)
        return True


class ManualApprovalPacing:
    """
    Wait for operator approval between cycles.

    The prompt function is called in a worker thread so the event loop
    keeps running. Typing 'exit' (or closing stdin) stops the loop.
    """

    def __init__(
        self,
        prompt_fn: Callable[[str], str] = input,
        prompt: str = MANUAL_PROMPT,
    ):
        self._prompt_fn = prompt_fn
        self._prompt = prompt

    async def wait(self) -> bool:
        logger.info("[loop] Manual mode: waiting for approval")
        try:
            answer = await asyncio.to_thread(self._prompt_fn, self._prompt)
        except EOFError:
            logger.info("[loop] Input closed, stopping")
            return False

        if answer.strip().lower() == "exit":
            logger.info("[loop] Exit requested")
            return False
        return True


def create_pacing(mode: str, interval_ms: int = 5000) -> Pacing:
    """
    Build the pacing policy for an iteration mode.

    Raises:
        ValueError: Unknown mode
    """
    if mode == "sleep":
        return SleepPacing(interval_ms)
    if mode == "manual":
        return ManualApprovalPacing()
    raise ValueError(f"Unknown iteration mode: {mode}. Supported: sleep, manual")


async def run_loop(
    orchestrator: IterationOrchestrator,
    pacing: Pacing,
    *,
    max_cycles: int | None = None,
    stop_when_exhausted: bool = False,
) -> int:
    """
    Run cycles until pacing says stop, max_cycles is reached, or (optionally)
    the queue is exhausted.

    An exception escaping a cycle is logged and the loop continues with the
    next one. Cancellation propagates.

    Returns:
        Number of cycles run
    """
    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        cycles += 1
        try:
            outcome = await orchestrator.run_cycle()
            logger.info(f"[loop] Cycle {cycles}: {outcome.value}")
            if stop_when_exhausted and outcome == CycleOutcome.QUEUE_EXHAUSTED:
                logger.info("[loop] All tasks completed, stopping")
                break
        except asyncio.CancelledError:
            logger.info("[loop] Cancelled")
            raise
        except Exception as e:
            logger.error(f"[loop] Cycle {cycles} failed: {e}", exc_info=True)

        if max_cycles is not None and cycles >= max_cycles:
            break
        if not await pacing.wait():
            break

    return cycles
