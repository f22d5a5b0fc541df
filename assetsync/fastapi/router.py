from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, status

from ..exceptions import JobConflictError
from ..manager import JobManager
from ..models import Family
from .deps import get_job_manager
from .gateway import stream_job_events
from .schemas import (
    CancelJobResponse,
    CreateProjectRequest,
    DownloadAssetRequest,
    ImportAssetRequest,
    JobRequest,
    JobStatusResponse,
    RefreshLibraryRequest,
    StartJobResponse,
)


def get_router(prefix: str = "") -> APIRouter:
    """Get FastAPI router for job control and event streaming.

    ``prefix`` is only used to build the links returned to clients.
    """
    router = APIRouter(tags=["Jobs"])

    def _start(manager: JobManager, family: Family, body: JobRequest) -> StartJobResponse:
        try:
            job = manager.start(family, body.params(), job_id=body.job_id)
        except JobConflictError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
        quoted = quote(job.id, safe="")
        return StartJobResponse(
            job_id=job.id,
            family=family.value,
            links={
                "self": f"{prefix}/jobs/{quoted}",
                "events": f"{prefix}/ws?jobId={quoted}",
                "cancel": f"{prefix}/cancel-job?jobId={quoted}",
            },
        )

    @router.post(
        "/refresh-library",
        response_model=StartJobResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def refresh_library(
        body: RefreshLibraryRequest,
        manager: JobManager = Depends(get_job_manager),
    ) -> StartJobResponse:
        """Refresh the library; progress is streamed on /ws."""
        return _start(manager, Family.refresh, body)

    @router.post(
        "/download-asset",
        response_model=StartJobResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def download_asset(
        body: DownloadAssetRequest,
        manager: JobManager = Depends(get_job_manager),
    ) -> StartJobResponse:
        """Download an asset version into the downloads folder."""
        return _start(manager, Family.download, body)

    @router.post(
        "/import-asset",
        response_model=StartJobResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def import_asset(
        body: ImportAssetRequest,
        manager: JobManager = Depends(get_job_manager),
    ) -> StartJobResponse:
        """Import a downloaded asset into a project."""
        return _start(manager, Family.import_, body)

    @router.post(
        "/create-project",
        response_model=StartJobResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def create_project(
        body: CreateProjectRequest,
        manager: JobManager = Depends(get_job_manager),
    ) -> StartJobResponse:
        """Create a project from a template."""
        return _start(manager, Family.create, body)

    @router.post("/cancel-job", response_model=CancelJobResponse)
    async def cancel_job(
        job_id_camel: str | None = Query(default=None, alias="jobId"),
        job_id: str | None = Query(default=None),
        manager: JobManager = Depends(get_job_manager),
    ) -> CancelJobResponse:
        """Request job cancellation; emits the cancelled event immediately."""
        jid = job_id_camel or job_id
        if not jid:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing jobId")
        manager.cancel(jid)
        return CancelJobResponse(ok=True, message="cancelled")

    @router.get("/jobs/{job_id:path}", response_model=JobStatusResponse)
    async def get_job(
        job_id: str,
        manager: JobManager = Depends(get_job_manager),
    ) -> JobStatusResponse:
        """Last known state of a job run."""
        job = manager.get(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        return JobStatusResponse(
            job_id=job.id,
            family=job.family.value,
            running=manager.is_running(job.id),
            phase=job.last_phase.value if job.last_phase else None,
            message=job.last_message,
            created_at=job.created_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
        )

    @router.get("/_health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "assetsync"}

    @router.websocket("/ws")
    async def job_events(
        websocket: WebSocket,
        job_id_camel: str | None = Query(default=None, alias="jobId"),
        job_id: str | None = Query(default=None),
        manager: JobManager = Depends(get_job_manager),
    ) -> None:
        """Stream a job's buffered and live progress events."""
        jid = job_id_camel or job_id or manager.settings.default_job_id
        await stream_job_events(websocket, manager.bus, jid)

    return router
