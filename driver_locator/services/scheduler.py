"""Fixed-interval, single-flight job scheduler.

Each job carries its own ``JobState``. A run that finds the job busy is
skipped rather than queued, so at most one invocation of a job is ever in
progress. Jobs run in one process, so a plain flag is enough: nothing awaits
between checking and setting it.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel

from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class JobState:
    """Run bookkeeping for one periodic job."""

    name: str
    busy: bool = False
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_result: Optional[dict] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("last_started_at", "last_finished_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class PeriodicJob:
    """A coroutine function run every ``interval_seconds``."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        run_on_startup: bool = True,
    ):
        self.func = func
        self.interval_seconds = interval_seconds
        self.run_on_startup = run_on_startup
        self.state = JobState(name=name)

    @property
    def name(self) -> str:
        return self.state.name

    async def run_once(self) -> bool:
        """Run the job unless it is already running.

        Returns:
            False if the run was skipped because the job was busy
        """
        state = self.state
        if state.busy:
            state.skipped += 1
            LOGGER.info("Job already running, skipping", extra={"job": state.name})
            return False

        state.busy = True
        state.last_started_at = datetime.now(timezone.utc)
        LOGGER.info("Job started", extra={"job": state.name})
        try:
            result = await self.func()
            state.last_result = result.model_dump() if isinstance(result, BaseModel) else result
            state.last_error = None
        except Exception as e:
            state.failures += 1
            state.last_error = str(e)
            LOGGER.error("Job failed", exc_info=True, extra={"job": state.name, "error": str(e)})
        finally:
            state.runs += 1
            state.busy = False
            state.last_finished_at = datetime.now(timezone.utc)

        LOGGER.info("Job finished", extra={"job": state.name, "result": state.last_result})
        return True

    async def run_forever(self) -> None:
        if not self.run_on_startup:
            await asyncio.sleep(self.interval_seconds)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)


class Scheduler:
    """Owns the periodic jobs and their background tasks."""

    def __init__(self, jobs: Iterable[PeriodicJob] = ()):
        self.jobs: dict[str, PeriodicJob] = {}
        self._tasks: list[asyncio.Task] = []
        for job in jobs:
            self.add(job)

    def add(self, job: PeriodicJob) -> None:
        if job.name in self.jobs:
            raise ValueError(f"Job already registered: {job.name}")
        self.jobs[job.name] = job

    def start(self) -> None:
        if self._tasks:
            return
        for job in self.jobs.values():
            self._tasks.append(asyncio.create_task(job.run_forever(), name=f"job-{job.name}"))
            LOGGER.info(
                "Scheduled job",
                extra={"job": job.name, "interval_seconds": job.interval_seconds},
            )

    async def trigger(self, name: str) -> bool:
        """Run a job immediately, subject to its busy guard."""
        return await self.jobs[name].run_once()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        LOGGER.info("Scheduler stopped")

    def states(self) -> dict[str, dict]:
        return {name: job.state.to_dict() for name, job in self.jobs.items()}
