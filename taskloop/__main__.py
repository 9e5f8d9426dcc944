"""
Command line entry point.

    python -m taskloop                 # loop with the configured pacing
    python -m taskloop --mode manual   # approve each cycle from the terminal
    python -m taskloop --once          # bootstrap and run a single cycle
"""

from __future__ import annotations

import asyncio
import logging

from taskloop.app.dependencies import build_runtime
from taskloop.config import get_settings
from taskloop.loop import create_pacing, run_loop

logger = logging.getLogger(__name__)


async def _run(args) -> None:
    settings = get_settings()
    runtime = build_runtime(settings)
    try:
        report = await runtime.bootstrap()
        logger.info(
            f"Session ready: {report.seeded_tasks} tasks seeded, "
            f"polling created={report.polling_created}"
        )

        if args.once:
            outcome = await runtime.orchestrator.run_cycle()
            logger.info(f"Cycle outcome: {outcome.value}")
            return

        pacing = create_pacing(
            args.mode or settings.iteration_mode,
            args.interval if args.interval is not None else settings.iteration_interval_ms,
        )
        await run_loop(
            runtime.orchestrator,
            pacing,
            max_cycles=args.max_cycles,
            stop_when_exhausted=args.stop_when_done,
        )
    finally:
        await runtime.close()


def main() -> None:
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="taskloop autonomous task loop")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--mode", choices=["sleep", "manual"], help="Pacing between cycles")
    parser.add_argument("--interval", type=int, help="Milliseconds between cycles in sleep mode")
    parser.add_argument("--max-cycles", type=int, help="Stop after this many cycles")
    parser.add_argument(
        "--stop-when-done", action="store_true", help="Stop once every task is completed"
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
