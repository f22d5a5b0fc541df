from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_fixed,
)

from .bus import JobEventBus
from .cancellation import CancellationRegistry
from .clients import LibraryCache, LibraryClient
from .config import SyncSettings
from .events import ProgressEvent
from .exceptions import CancelledError, RetriesExhaustedError, TransientRemoteError
from .fileops import LocalFileOps
from .models import Family, Job, Phase

logger = logging.getLogger("assetsync.task")

T = TypeVar("T")


@dataclass
class JobOutcome:
    """What a workflow reports on success; becomes the complete event."""

    message: str
    details: dict[str, Any] | None = None


class WorkflowRunner(Protocol):
    """Protocol for workflow execution."""

    family: Family

    async def execute(self, job: Job, ctx: JobContext) -> JobOutcome:
        """Run the workflow, publishing non-terminal phases through ctx."""
        ...


@dataclass
class JobContext:
    """Context handed to workflows: publishing, checkpoints and retries."""

    job: Job
    bus: JobEventBus
    registry: CancellationRegistry
    settings: SyncSettings
    client: LibraryClient
    file_ops: LocalFileOps
    cache: LibraryCache | None = None
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    @property
    def job_id(self) -> str:
        return self.job.id

    def publish(
        self,
        phase: Phase,
        message: str,
        progress: float | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> bool:
        """Publish an event for this job."""
        accepted = self.bus.publish(
            ProgressEvent(
                job_id=self.job.id,
                phase=phase,
                message=message,
                progress=progress,
                details=details,
            )
        )
        if accepted:
            self.job.last_phase = phase
            self.job.last_message = message
        return accepted

    def is_cancelled(self) -> bool:
        return self.registry.is_cancelled(self.job.id)

    async def check_canceled(self) -> None:
        """Checkpoint: raise if cancellation was requested."""
        if self.registry.is_cancelled(self.job.id):
            raise CancelledError("Job cancellation requested")

    async def enter(
        self,
        phase: Phase,
        message: str,
        progress: float | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        """Checkpoint, then announce the next sub-phase."""
        await self.check_canceled()
        self.publish(phase, message, progress, details)

    async def pause(self) -> None:
        """Inter-item delay toward the upstream service."""
        if self.settings.item_delay_seconds > 0:
            await self.sleep(self.settings.item_delay_seconds)

    async def retry_transient(self, fn: Callable[[], Awaitable[T]], what: str) -> T:
        """Call ``fn``, retrying transient remote timeouts with a fixed backoff.

        Cancellation is checked before every retry. Other errors propagate on
        the first failure. Raises RetriesExhaustedError once the cap is hit.
        """
        cap = self.settings.max_transient_retries
        attempts = 0

        def _log_retry(state: RetryCallState) -> None:
            logger.warning(
                f"Job {self.job.id}: {what} timed out (attempt {state.attempt_number}), "
                f"retrying in {self.settings.retry_backoff_seconds}s"
            )

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TransientRemoteError),
                wait=wait_fixed(self.settings.retry_backoff_seconds),
                stop=stop_never if cap is None else stop_after_attempt(cap + 1),
                sleep=self.sleep,
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    if attempts > 1:
                        await self.check_canceled()
                    return await fn()
        except TransientRemoteError as e:
            raise RetriesExhaustedError(what, attempts, e) from e
        raise AssertionError("unreachable")  # pragma: no cover


class WorkflowRegistry:
    """Registry of workflow runners by family."""

    def __init__(self) -> None:
        self._map: dict[Family, WorkflowRunner] = {}

    def add(self, runner: WorkflowRunner) -> None:
        """Register a workflow runner."""
        self._map[runner.family] = runner
        logger.info(f"Registered workflow: {runner.family.value}")

    def get(self, family: Family) -> WorkflowRunner | None:
        return self._map.get(family)

    def families(self) -> list[Family]:
        return list(self._map.keys())
