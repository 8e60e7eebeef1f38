"""Periodic background jobs with an explicit start/stop lifecycle.

The scheduler is created by the application lifespan and handed to whoever
needs it; there is no module-level instance. Each job runs as its own asyncio
task and executes its (blocking) function in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger("toothchart.scheduler")


@dataclass
class PeriodicJob:
    name: str
    interval: float
    func: Callable[[], object]
    run_on_start: bool = False
    runs: int = 0
    failures: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "interval_seconds": self.interval,
            "runs": self.runs,
            "failures": self.failures,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "active": self.task is not None and not self.task.done(),
        }


class JobScheduler:
    def __init__(self) -> None:
        self._jobs: dict[str, PeriodicJob] = {}
        self._running = False
        self._in_flight: set[asyncio.Future] = set()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> list[PeriodicJob]:
        return list(self._jobs.values())

    def get(self, name: str) -> PeriodicJob:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(f"Unknown job: {name}") from None

    def add_job(
        self,
        name: str,
        interval: float,
        func: Callable[[], object],
        *,
        run_on_start: bool = False,
    ) -> PeriodicJob:
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        if interval <= 0:
            raise ValueError("Job interval must be positive")
        job = PeriodicJob(name=name, interval=interval, func=func, run_on_start=run_on_start)
        self._jobs[name] = job
        if self._running:
            job.task = asyncio.create_task(self._loop(job), name=f"job:{name}")
        return job

    def start(self) -> None:
        """Start every registered job. Must be called from a running event loop."""
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            job.task = asyncio.create_task(self._loop(job), name=f"job:{job.name}")
            logger.info("Started job %s (every %ss)", job.name, job.interval)

    async def stop(self) -> None:
        """Cancel every job loop and wait for runs already in a worker thread.

        A thread cannot be interrupted, so a run that started before ``stop()``
        finishes (and closes its session) before this returns.
        """
        if not self._running:
            return
        self._running = False
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        for job in self._jobs.values():
            job.task = None
        logger.info("Stopped %s job(s)", len(tasks))

    async def run_once(self, name: str) -> bool:
        return await self._execute(self.get(name))

    async def _execute(self, job: PeriodicJob) -> bool:
        run = asyncio.ensure_future(asyncio.to_thread(job.func))
        self._in_flight.add(run)
        run.add_done_callback(self._in_flight.discard)
        try:
            # cancelling the loop must not orphan the thread; stop() awaits it
            await asyncio.shield(run)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            job.failures += 1
            job.last_error = str(exc)
            logger.exception("Job %s failed", job.name)
            return False
        job.runs += 1
        job.last_run_at = datetime.now(timezone.utc)
        job.last_error = None
        return True

    async def _loop(self, job: PeriodicJob) -> None:
        if not job.run_on_start:
            await asyncio.sleep(job.interval)
        while True:
            await self._execute(job)
            await asyncio.sleep(job.interval)
