from __future__ import annotations


class AssetSyncError(Exception):
    """Base exception for assetsync."""

    pass


class CancelledError(AssetSyncError):
    """Raised at a checkpoint when job cancellation was requested."""

    pass


class RemoteError(AssetSyncError):
    """Raised by a library client when a remote call fails."""

    pass


class TransientRemoteError(RemoteError):
    """Remote call timed out; the same request may be retried."""

    pass


class RetriesExhaustedError(RemoteError):
    """Raised when a transient failure outlived the retry cap."""

    def __init__(self, what: str, attempts: int, last_error: BaseException):
        super().__init__(f"{what} still failing after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class JobFatalError(AssetSyncError):
    """Raised by a workflow to abort the whole job with an error phase."""

    pass


class JobConflictError(AssetSyncError):
    """Raised when a job id is already used by a running job."""

    pass
