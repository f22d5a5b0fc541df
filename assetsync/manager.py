from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .bus import JobEventBus
from .cancellation import CancellationRegistry
from .clients import LibraryCache, LibraryClient
from .config import SyncSettings
from .events import ProgressEvent
from .exceptions import JobConflictError
from .fileops import LocalFileOps
from .models import Family, Job, Phase
from .task import WorkflowRegistry
from .worker import Worker
from .workflows import default_registry

logger = logging.getLogger("assetsync.manager")


class JobManager:
    """High-level job API: start, cancel, inspect, shut down.

    Every job runs as its own asyncio task. Only one run may be active per
    job id at a time.
    """

    def __init__(
        self,
        client: LibraryClient,
        *,
        settings: SyncSettings | None = None,
        workflows: WorkflowRegistry | None = None,
        bus: JobEventBus | None = None,
        cancellations: CancellationRegistry | None = None,
        file_ops: LocalFileOps | None = None,
        cache: LibraryCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or SyncSettings()
        # Bus and registry define __len__, so an empty one is falsy
        if bus is None:
            bus = JobEventBus(
                buffer_size=self.settings.replay_buffer_size,
                subscriber_queue_size=self.settings.subscriber_queue_size,
                grace_seconds=self.settings.terminal_grace_seconds,
            )
        self.bus = bus
        self.cancellations = (
            cancellations if cancellations is not None else CancellationRegistry()
        )
        self.workflows = workflows if workflows is not None else default_registry()
        self._worker = Worker(
            self.bus,
            self.cancellations,
            self.workflows,
            settings=self.settings,
            client=client,
            file_ops=file_ops,
            cache=cache,
            sleep=sleep,
        )
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task[Phase | None]] = {}

    def start(
        self,
        family: Family,
        params: dict[str, Any],
        *,
        job_id: str | None = None,
    ) -> Job:
        """Schedule a workflow run in the background and return immediately."""
        job_id = job_id or self.settings.default_job_id
        if self.is_running(job_id):
            raise JobConflictError(f"Job {job_id} is already running")

        # Fresh run under a reused id: forget the previous run's state
        self.bus.reset(job_id)
        self.cancellations.release(job_id)

        job = Job(id=job_id, family=family, params=dict(params))
        self._jobs[job_id] = job
        task = asyncio.create_task(self._worker.run(job), name=f"job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._on_done(jid, t))

        logger.info(f"Started {family.value} job {job_id}")
        return job

    def _on_done(self, job_id: str, task: asyncio.Task[Phase | None]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    def cancel(self, job_id: str) -> None:
        """Request cancellation and publish the cancelled event right away.

        The running workflow stops at its next checkpoint. Unknown or
        finished job ids are accepted.
        """
        self.cancellations.request_cancel(job_id)
        accepted = self.bus.publish(
            ProgressEvent(job_id=job_id, phase=Phase.cancelled, message="Job cancelled")
        )
        job = self._jobs.get(job_id)
        if accepted and job is not None and job.running:
            job.last_phase = Phase.cancelled
            job.last_message = "Job cancelled"

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def wait(self, job_id: str) -> Phase | None:
        """Wait for a job's run to finish; returns its terminal phase."""
        task = self._tasks.get(job_id)
        if task is not None:
            return await task
        job = self._jobs.get(job_id)
        return job.last_phase if job else None

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Cancel running jobs cooperatively, then force-cancel stragglers."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for job_id in list(self._tasks):
            self.cancellations.request_cancel(job_id)

        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=grace_seconds)
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self.bus.close()
        logger.info(f"Job manager shut down ({len(tasks)} running jobs stopped)")
