from starlette.requests import HTTPConnection

from ..manager import JobManager
from .lifecycle import MANAGER_STATE_KEY


def get_job_manager(conn: HTTPConnection) -> JobManager:
    """Dependency to get JobManager from app state (HTTP and WebSocket)."""
    mgr = getattr(conn.app.state, MANAGER_STATE_KEY, None)
    if mgr is None:
        raise RuntimeError("JobManager not initialized. Did you call setup_assetsync()?")
    return mgr
