from __future__ import annotations

import argparse
import asyncio
import signal
from pathlib import Path
from typing import Optional

from app.config import Settings, get_settings
from app.core.logging import configure_logging, get_logger
from app.runtime import IngestRuntime


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NewsIngestBot: fetch configured feeds and store new entries.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single ingest cycle and exit (0 when every feed succeeded, 1 otherwise).",
    )
    parser.add_argument(
        "--sources",
        type=Path,
        default=None,
        help="Path to a news sources YAML file (defaults to NEWS_SOURCES_PATH).",
    )
    return parser.parse_args(argv)


async def run_once(runtime: IngestRuntime) -> int:
    summary = await runtime.scheduler.run_cycle()
    runtime.logger.info(
        "news_ingest_bot_finished",
        succeeded=summary.succeeded,
        failed=summary.failed,
        total=summary.total,
    )
    return 0 if summary.failed == 0 and summary.succeeded == summary.total else 1


async def run_forever(runtime: IngestRuntime, stop_event: asyncio.Event) -> int:
    runtime.scheduler.start()
    await stop_event.wait()
    runtime.logger.info("shutdown_requested")
    return 0


def _install_signal_handlers(stop_event: asyncio.Event, logger) -> None:
    loop = asyncio.get_running_loop()

    def _on_signal(signum: int) -> None:
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _on_signal, signum)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(signum, lambda s, _f: loop.call_soon_threadsafe(_on_signal, s))


async def main_async(argv: Optional[list[str]] = None, settings: Optional[Settings] = None) -> int:
    args = parse_args(argv)
    settings = settings or get_settings()
    configure_logging(service_name="worker", level=settings.LOG_LEVEL, fmt=settings.LOG_FORMAT)
    logger = get_logger("worker", worker="news_ingest_bot")

    try:
        runtime = await IngestRuntime.build(settings, logger=logger, sources_path=args.sources)
    except Exception as exc:
        logger.error("news_ingest_bot_startup_failed", error=str(exc))
        return 1

    try:
        if args.once:
            return await run_once(runtime)
        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event, logger)
        return await run_forever(runtime, stop_event)
    finally:
        await runtime.aclose()


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
