from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from .bus import JobEventBus
from .cancellation import CancellationRegistry
from .clients import LibraryCache, LibraryClient
from .config import SyncSettings
from .exceptions import CancelledError, JobFatalError
from .fileops import LocalFileOps
from .models import Job, Phase
from .task import JobContext, WorkflowRegistry

logger = logging.getLogger("assetsync.worker")


class Worker:
    """Runs workflows and turns every outcome into exactly one terminal event."""

    def __init__(
        self,
        bus: JobEventBus,
        cancellations: CancellationRegistry,
        workflows: WorkflowRegistry,
        *,
        settings: SyncSettings,
        client: LibraryClient,
        file_ops: LocalFileOps | None = None,
        cache: LibraryCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._bus = bus
        self._cancellations = cancellations
        self._workflows = workflows
        self._settings = settings
        self._client = client
        self._file_ops = file_ops or LocalFileOps()
        self._cache = cache
        self._sleep = sleep

    async def run(self, job: Job) -> Phase | None:
        """Execute job; returns the terminal phase the job ended with."""
        ctx = self._create_context(job)
        job.started_at = datetime.now(UTC)
        family = job.family

        try:
            runner = self._workflows.get(family)
            if runner is None:
                self._finish(ctx, family.error, f"No workflow registered for {family.value}")
                return self._terminal_phase(job)

            # Cancelled before the first step
            await ctx.check_canceled()

            outcome = await runner.execute(job, ctx)
            self._finish(ctx, family.complete, outcome.message, 1.0, outcome.details)
            logger.info(f"Job {job.id} completed: {outcome.message}")

        except CancelledError:
            self._finish(ctx, Phase.cancelled, "Job cancelled")
            logger.info(f"Job {job.id} was cancelled")

        except JobFatalError as e:
            self._finish(ctx, family.error, str(e))
            logger.error(f"Job {job.id} failed: {e}")

        except asyncio.CancelledError:
            # Task cancelled by shutdown
            self._finish(ctx, Phase.cancelled, "Job cancelled: server shutting down")
            raise

        except Exception as e:
            logger.exception(f"Job {job.id} crashed: {e}")
            self._finish(ctx, family.error, str(e) or type(e).__name__)

        finally:
            job.finished_at = datetime.now(UTC)
            self._cancellations.release(job.id)

        return self._terminal_phase(job)

    def _create_context(self, job: Job) -> JobContext:
        """Create execution context for job."""
        return JobContext(
            job=job,
            bus=self._bus,
            registry=self._cancellations,
            settings=self._settings,
            client=self._client,
            file_ops=self._file_ops,
            cache=self._cache,
            sleep=self._sleep,
        )

    def _finish(
        self,
        ctx: JobContext,
        phase: Phase,
        message: str,
        progress: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if not ctx.publish(phase, message, progress, details):
            # Terminal already published, e.g. by the cancel endpoint
            logger.debug(f"Job {ctx.job_id} already terminal, {phase.value} not published")

    def _terminal_phase(self, job: Job) -> Phase | None:
        event = self._bus.last_event(job.id)
        if event is not None and event.is_terminal():
            job.last_phase = event.phase
            job.last_message = event.message
            return event.phase
        return None
