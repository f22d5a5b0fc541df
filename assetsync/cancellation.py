from __future__ import annotations

import logging
import threading

logger = logging.getLogger("assetsync.cancellation")


class CancellationRegistry:
    """Process-wide cancellation flags keyed by job id.

    Flags are monotonic while a job runs: there is no un-cancel. The worker
    calls :meth:`release` once a run has published its terminal event, so
    entries do not outlive the jobs they belong to.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flags: dict[str, bool] = {}

    def request_cancel(self, job_id: str) -> None:
        """Mark job as cancellation-requested. Idempotent."""
        with self._lock:
            already = self._flags.get(job_id, False)
            self._flags[job_id] = True
        if not already:
            logger.info(f"Cancellation requested for job {job_id}")

    def is_cancelled(self, job_id: str) -> bool:
        with self._lock:
            return self._flags.get(job_id, False)

    def release(self, job_id: str) -> None:
        """Forget the flag of a finished run."""
        with self._lock:
            self._flags.pop(job_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._flags)
