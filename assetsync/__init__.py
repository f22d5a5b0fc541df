"""
assetsync - Asset-synchronization jobs with streamed, cancellable progress.

Usage:
    from assetsync import setup_assetsync, SyncSettings

    setup_assetsync(
        app,
        client=MyLibraryClient(),
        settings=SyncSettings(downloads_dir="./downloads"),
    )

    # POST /import-asset {"asset_name": "...", "project": "...", "job_id": "job-1"}
    # GET  /ws?jobId=job-1          -> replayed + live progress events
    # POST /cancel-job?jobId=job-1  -> cancelled
"""

from .bus import JobEventBus, Subscription
from .cancellation import CancellationRegistry
from .clients import Account, AssetVersion, LibraryAsset, LibraryCache, LibraryClient, Manifest
from .config import SyncSettings
from .events import ProgressEvent
from .exceptions import (
    AssetSyncError,
    CancelledError,
    JobConflictError,
    JobFatalError,
    RemoteError,
    RetriesExhaustedError,
    TransientRemoteError,
)
from .fastapi.lifecycle import setup_assetsync
from .fileops import CopyStats, LocalFileOps
from .manager import JobManager
from .models import DEFAULT_JOB_ID, Family, Job, Phase
from .task import JobContext, JobOutcome, WorkflowRegistry, WorkflowRunner
from .version import __version__
from .worker import Worker
from .workflows import default_registry

__all__ = [
    # Version
    "__version__",
    # Core
    "Family",
    "Phase",
    "Job",
    "ProgressEvent",
    "DEFAULT_JOB_ID",
    # Bus / cancellation
    "JobEventBus",
    "Subscription",
    "CancellationRegistry",
    # Manager
    "JobManager",
    "SyncSettings",
    # Workflows
    "WorkflowRunner",
    "WorkflowRegistry",
    "JobContext",
    "JobOutcome",
    "Worker",
    "default_registry",
    # Collaborators
    "LibraryClient",
    "LibraryCache",
    "Account",
    "AssetVersion",
    "LibraryAsset",
    "Manifest",
    "LocalFileOps",
    "CopyStats",
    # FastAPI
    "setup_assetsync",
    # Exceptions
    "AssetSyncError",
    "CancelledError",
    "RemoteError",
    "TransientRemoteError",
    "RetriesExhaustedError",
    "JobFatalError",
    "JobConflictError",
]
