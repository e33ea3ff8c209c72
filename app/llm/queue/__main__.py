"""Operator CLI for the analysis scheduler."""

import argparse
import asyncio
import json
import sys

from app.core.config import settings
from app.core.db import create_tables, dispose_engine, get_session_factory
from app.core.logging import configure_logging, get_logger
from app.database.repositories import NoteRepository
from app.llm.queue.dispatcher import Dispatcher
from app.llm.queue.recovery import reset_job, reset_jobs
from app.llm.queue.types import RESETTABLE_STATUSES

logger = get_logger(module="scheduler_cli")


async def _dispatch(args: argparse.Namespace) -> int:
    dispatcher = Dispatcher(
        get_session_factory(),
        batch_size=args.batch_size,
        launch_interval=args.interval,
    )
    result = await dispatcher.dispatch()
    print(result.model_dump_json(exclude_none=True))
    # Keep the process alive until the detached batch and its workers finish
    await dispatcher.wait_idle()
    return 1 if result.status.value == "error" else 0


async def _reset(args: argparse.Namespace) -> int:
    factory = get_session_factory()
    if args.note_id:
        reset = await reset_job(factory, args.note_id)
        print(json.dumps({"note_id": args.note_id, "reset": reset}))
        return 0 if reset else 1

    count = await reset_jobs(factory, args.status)
    print(json.dumps({"status": args.status, "count": count}))
    return 0


async def _stats(args: argparse.Namespace) -> int:
    async with get_session_factory()() as session:
        stats = await NoteRepository(session).stats()
    print(stats.model_dump_json())
    return 0


COMMANDS = {"dispatch": _dispatch, "reset": _reset, "stats": _stats}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the scheduler CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m app.llm.queue",
        description="Dispatch, reset and inspect AI note analysis jobs",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    dispatch = subparsers.add_parser(
        "dispatch", help="Run one dispatch cycle and wait for its workers"
    )
    dispatch.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help=f"Notes to launch in this cycle (default: {settings.AI_BATCH_SIZE})",
    )
    dispatch.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between launches "
        f"(default: {settings.AI_LAUNCH_INTERVAL_SECONDS})",
    )

    reset = subparsers.add_parser("reset", help="Requeue stuck or failed notes")
    target = reset.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--status",
        choices=sorted(s.value for s in RESETTABLE_STATUSES),
        help="Requeue every note in this status",
    )
    target.add_argument("--note-id", help="Requeue a single note")

    subparsers.add_parser("stats", help="Print note counts per analysis status")
    return parser


async def run(args: argparse.Namespace) -> int:
    """Run the selected command against the configured database."""
    try:
        await create_tables()
        return await COMMANDS[args.command](args)
    finally:
        await dispose_engine()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the scheduler CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(
        level="DEBUG" if args.verbose else settings.LOG_LEVEL,
        json_logs=settings.JSON_LOGS,
    )

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("cli_interrupted")
        return 130
    except Exception:
        logger.exception("cli_command_failed", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
