"""
Job Scheduler

Runs the named sync tasks on cron-like UTC schedules.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..data.records import utc_now
from .tasks import SyncTasks

logger = logging.getLogger(__name__)


class CronTrigger(BaseModel):
    """Fires at hour:minute UTC, daily or on one weekday (Monday is 0)."""

    hour: int = Field(ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    weekday: Optional[int] = Field(default=None, ge=0, le=6)

    def next_fire(self, after: datetime) -> datetime:
        """First fire time strictly after ``after``."""
        after = after.astimezone(timezone.utc)
        candidate = after.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= after:
            candidate += timedelta(days=1)
        if self.weekday is not None:
            candidate += timedelta(days=(self.weekday - candidate.weekday()) % 7)
        return candidate


class JobStatus(Enum):
    """Job execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobResult(BaseModel):
    """Result of a job execution."""

    job_name: str
    status: JobStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    items_processed: int = 0
    errors: List[str] = Field(default_factory=list)


class JobConfig(BaseModel):
    """Configuration for a scheduled job."""

    name: str
    trigger: CronTrigger
    enabled: bool = True
    max_runtime_minutes: int = 60


class JobScheduler:
    """
    Orchestrates the background sync jobs.

    Jobs (UTC):
    - player_sync: daily 07:00
    - projection_sync: daily 08:00 (current week, next week, rest of season)
    - stats_sync: Tuesday 08:00, after Monday night games
    - transaction_sync: Wednesday 08:00, after waivers clear
    """

    DEFAULT_JOBS = {
        "player_sync": JobConfig(name="player_sync", trigger=CronTrigger(hour=7)),
        "projection_sync": JobConfig(name="projection_sync", trigger=CronTrigger(hour=8)),
        "stats_sync": JobConfig(name="stats_sync", trigger=CronTrigger(hour=8, weekday=1),
                                max_runtime_minutes=120),
        "transaction_sync": JobConfig(name="transaction_sync", trigger=CronTrigger(hour=8, weekday=2)),
    }

    def __init__(self, tasks: SyncTasks, jobs: Optional[Dict[str, JobConfig]] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize job scheduler.

        Args:
            tasks: Task bodies the jobs run
            jobs: Optional job configuration overrides
            clock: Returns the current aware datetime
        """
        self.tasks = tasks
        self.jobs = {name: config.model_copy() for name, config in self.DEFAULT_JOBS.items()}
        self.jobs.update(jobs or {})
        self.clock = clock or utc_now
        self.history: List[JobResult] = []
        self._running = False
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start one timer loop per enabled job."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        logger.info("Starting job scheduler")

        for job_name, job_config in self.jobs.items():
            if job_config.enabled:
                self._tasks[job_name] = asyncio.create_task(self._job_loop(job_config))
                logger.info(f"  - {job_name}: next run {self.next_run(job_name).isoformat()}")

        logger.info(f"Started {len(self._tasks)} job loops")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        logger.info("Stopping job scheduler")

        for task in self._tasks.values():
            task.cancel()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()

        logger.info("Job scheduler stopped")

    def next_run(self, job_name: str) -> datetime:
        return self.jobs[job_name].trigger.next_fire(self.clock())

    async def run_job(self, job_name: str) -> JobResult:
        """
        Run a single job immediately.

        Args:
            job_name: Name of the job to run

        Returns:
            Job result
        """
        if job_name not in self.jobs:
            return JobResult(
                job_name=job_name,
                status=JobStatus.FAILED,
                started_at=self.clock(),
                errors=[f"Unknown job: {job_name}"],
            )
        return await self._execute_job(self.jobs[job_name])

    async def _job_loop(self, job_config: JobConfig) -> None:
        while self._running:
            delay = (job_config.trigger.next_fire(self.clock()) - self.clock()).total_seconds()
            await asyncio.sleep(max(0.0, delay))
            await self._execute_job(job_config)

    def _get_job_executor(self, job_name: str) -> Callable[[], Awaitable[Any]]:
        executors = {
            "player_sync": self.tasks.sync_players,
            "projection_sync": self.tasks.sync_projections,
            "stats_sync": self.tasks.sync_weekly_stats,
            "transaction_sync": self.tasks.sync_transactions,
        }
        if job_name not in executors:
            raise ValueError(f"No executor for job: {job_name}")
        return executors[job_name]

    async def _execute_job(self, job_config: JobConfig) -> JobResult:
        """Execute a job and record the result."""
        started_at = self.clock()
        result = JobResult(job_name=job_config.name, status=JobStatus.RUNNING, started_at=started_at)
        logger.info(f"Starting job: {job_config.name}")

        try:
            executor = self._get_job_executor(job_config.name)
            sync_result = await asyncio.wait_for(executor(), timeout=job_config.max_runtime_minutes * 60)

            result.status = JobStatus.COMPLETED if sync_result.success else JobStatus.FAILED
            result.items_processed = sync_result.created + sync_result.updated
            result.errors.extend(sync_result.errors)

        except asyncio.TimeoutError:
            result.status = JobStatus.FAILED
            result.errors.append(f"Job timed out after {job_config.max_runtime_minutes} minutes")
            logger.error(f"Job {job_config.name} timed out")

        except Exception as e:
            result.status = JobStatus.FAILED
            result.errors.append(str(e))
            logger.error(f"Job {job_config.name} failed: {e}")

        result.completed_at = self.clock()
        result.duration_seconds = (result.completed_at - started_at).total_seconds()
        self.history.append(result)

        logger.info(
            f"Job {job_config.name} {result.status.value}: "
            f"{result.items_processed} items in {result.duration_seconds:.1f}s"
        )
        return result

    def get_job_history(self, job_name: Optional[str] = None, limit: int = 50) -> List[JobResult]:
        history = [r for r in self.history if job_name is None or r.job_name == job_name]
        return list(reversed(history))[:limit]
