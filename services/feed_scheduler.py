from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Iterable, List, Optional, Tuple

from app.core.request_id import with_run_id
from services.feed_processor import FeedProcessor
from services.ingest_errors import ProcessError

DEFAULT_FEED_TIMEOUT_S = 30.0


class SchedulerState(str, enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class _Outcome(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CycleSummary:
    succeeded: int
    failed: int
    total: int
    duration_s: float

    @property
    def skipped(self) -> int:
        return self.total - self.succeeded - self.failed


class FeedScheduler:
    """
    Processes every configured feed once per interval.

    The first cycle starts right away. Each feed runs as its own task under
    `feed_timeout_s`; a failing or slow feed is logged and counted without
    affecting the others. A cycle that outlasts the interval is followed
    immediately by the next one.

    Lifecycle: CREATED -> RUNNING (start) -> STOPPING -> STOPPED (stop).
    """

    def __init__(
        self,
        processor: FeedProcessor,
        addresses: Iterable[str],
        interval_s: float,
        *,
        logger: Any,
        feed_timeout_s: float = DEFAULT_FEED_TIMEOUT_S,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        if feed_timeout_s <= 0:
            raise ValueError("feed_timeout_s must be positive")
        self._processor = processor
        self._addresses: Tuple[str, ...] = tuple(addresses)
        self._interval_s = float(interval_s)
        self.feed_timeout_s = float(feed_timeout_s)
        self._logger = logger.bind(component="feed-scheduler")
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._state = SchedulerState.CREATED
        self._last_summary: Optional[CycleSummary] = None

    # -------- read-only view -------------------------------------------------

    @property
    def addresses(self) -> Tuple[str, ...]:
        return self._addresses

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def last_summary(self) -> Optional[CycleSummary]:
        return self._last_summary

    # -------- lifecycle ------------------------------------------------------

    def start(self) -> None:
        if self._state is not SchedulerState.CREATED:
            raise RuntimeError(f"scheduler cannot start from state {self._state.value}")
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name="feed-scheduler")
        self._state = SchedulerState.RUNNING
        self._logger.info(
            "feed_scheduler_started",
            interval_s=self._interval_s,
            feed_count=len(self._addresses),
        )

    async def stop(self) -> None:
        if self._state is SchedulerState.STOPPED:
            return
        self._stop_event.set()
        if self._task is None:
            self._state = SchedulerState.STOPPED
            self._logger.info("feed_scheduler_stopped")
            return
        if self._state is SchedulerState.STOPPING:
            await asyncio.wait({self._task})
            return

        self._state = SchedulerState.STOPPING
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            self._state = SchedulerState.STOPPED
            self._logger.info("feed_scheduler_stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._stop_event.is_set():
            cycle_started = loop.time()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                self._logger.exception("feed_cycle_crashed")

            delay = self._interval_s - (loop.time() - cycle_started)
            if delay <= 0:
                self._logger.warning("feed_cycle_overran_interval", overrun_s=round(-delay, 3))
                continue
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                continue

    # -------- one cycle ------------------------------------------------------

    async def run_cycle(self) -> CycleSummary:
        """Process every address once, concurrently, and summarize."""
        with with_run_id():
            self._logger.info("feed_cycle_started", feed_count=len(self._addresses))
            started = perf_counter()
            loop = asyncio.get_running_loop()
            tasks = [
                loop.create_task(self._run_unit(address), name=f"feed:{address}")
                for address in self._addresses
            ]
            outcomes: List[_Outcome] = list(await asyncio.gather(*tasks)) if tasks else []

            summary = CycleSummary(
                succeeded=outcomes.count(_Outcome.SUCCEEDED),
                failed=outcomes.count(_Outcome.FAILED),
                total=len(self._addresses),
                duration_s=perf_counter() - started,
            )
            self._last_summary = summary
            self._logger.info(
                "feed_cycle_completed",
                successful=summary.succeeded,
                errors=summary.failed,
                total=summary.total,
                duration_ms=round(summary.duration_s * 1000, 2),
            )
            return summary

    async def _run_unit(self, address: str) -> _Outcome:
        if self._stop_event.is_set():
            return _Outcome.SKIPPED

        feed_name = self._processor.resolve_feed_name(address)
        log = self._logger.bind(feed=feed_name, url=address)
        try:
            await asyncio.wait_for(self._processor.process_feed(address), timeout=self.feed_timeout_s)
        except asyncio.TimeoutError:
            log.error("feed_processing_failed", stage="timeout", timeout_s=self.feed_timeout_s)
            return _Outcome.FAILED
        except ProcessError as exc:
            log.error("feed_processing_failed", stage=exc.stage, error=str(exc))
            return _Outcome.FAILED
        except Exception as exc:
            log.exception("feed_processing_failed", stage="unexpected", error=str(exc))
            return _Outcome.FAILED
        return _Outcome.SUCCEEDED
