"""Periodic background jobs with success/error back-off."""

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable

import structlog
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from observability import metrics

logger = structlog.get_logger().bind(source="scheduler")

_SHUTDOWN_TICKS = 10


class PeriodicTask:
    """An async job plus its back-off state.

    After a success the next run is ``interval`` away; after a failure it is
    ``error_backoff`` away.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable],
        interval: timedelta,
        error_backoff: timedelta | None = None,
    ):
        self.name = name
        self.func = func
        self.interval = interval
        self.error_backoff = error_backoff or interval
        self.last_run: datetime | None = None
        self.last_error: str | None = None
        self.consecutive_failures = 0
        self.runs = 0

    @property
    def next_delay(self) -> timedelta:
        return self.error_backoff if self.consecutive_failures else self.interval

    async def run_once(self) -> bool:
        """Run the job, recording the outcome. Never raises."""
        self.last_run = datetime.now()
        self.runs += 1
        try:
            with metrics.timer(f"job.{self.name}"):
                await self.func()
        except Exception as e:
            self.consecutive_failures += 1
            self.last_error = str(e)
            metrics.counter(f"job.{self.name}.failure")
            logger.error(
                "job_failed",
                job_id=self.name,
                error=str(e),
                failures=self.consecutive_failures,
                retry_in_seconds=self.error_backoff.total_seconds(),
            )
            return False
        self.consecutive_failures = 0
        self.last_error = None
        return True


class DecisionScheduler:
    """Runs PeriodicTasks as APScheduler interval jobs on the running event loop."""

    def __init__(self, on_error: Callable | None = None):
        self.scheduler = AsyncIOScheduler()
        self.tasks: dict[str, PeriodicTask] = {}
        self.on_error = on_error
        self._listening = False
        self._in_flight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def add_task(self, task: PeriodicTask, run_immediately: bool = False) -> None:
        self.tasks[task.name] = task
        kwargs = {"next_run_time": datetime.now()} if run_immediately else {}
        self.scheduler.add_job(
            self._run,
            trigger=IntervalTrigger(seconds=task.interval.total_seconds()),
            args=[task.name],
            id=task.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **kwargs,
        )

    async def _run(self, name: str) -> bool:
        task = self.tasks[name]
        before = task.next_delay
        current = asyncio.current_task()
        self._in_flight.add(current)
        try:
            ok = await task.run_once()
        finally:
            self._in_flight.discard(current)
        after = task.next_delay
        if after != before and self.scheduler.get_job(name) is not None:
            self.scheduler.reschedule_job(
                name, trigger=IntervalTrigger(seconds=after.total_seconds())
            )
            logger.info("job_rescheduled", job_id=name, interval_seconds=after.total_seconds())
        return ok

    async def run_now(self, name: str) -> bool:
        """Run one task immediately, outside its schedule."""
        return await self._run(name)

    def _error_handler(self, event):
        """Errors that escaped a task's own handling."""
        logger.error(
            "job_error",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )
        if self.on_error:
            try:
                self.on_error(event)
            except Exception as e:
                logger.error("job_error_callback_failed", error=str(e))

    def start(self) -> None:
        """Start all jobs. Must be called with an event loop running."""
        if not self._listening:
            self.scheduler.add_listener(self._error_handler, EVENT_JOB_ERROR)
            self._listening = True
        self.scheduler.start()
        logger.info("scheduler_started", jobs=sorted(self.tasks))

    async def stop(self) -> None:
        """Cancel every job as a unit, including runs already in progress."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        me = asyncio.current_task()
        pending = [t for t in self._in_flight if t is not me and not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        # AsyncIOScheduler.shutdown may be deferred to the next loop iteration
        for _ in range(_SHUTDOWN_TICKS):
            if not self.scheduler.running:
                break
            await asyncio.sleep(0)
        logger.info("scheduler_stopped", cancelled=len(pending))
