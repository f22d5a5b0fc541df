from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, StringConstraints, model_validator

PROJECT_NAME_PATTERN = r"^[A-Za-z][A-Za-z0-9_]{0,19}$"

# Job ids are opaque: any non-empty string, taken as-is
JobIdStr = Annotated[str, StringConstraints(min_length=1, max_length=256)]

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class JobRequest(BaseModel):
    """Fields shared by every job-starting request."""

    job_id: JobIdStr | None = None

    def params(self) -> dict[str, Any]:
        return self.model_dump(exclude={"job_id"})


class RefreshLibraryRequest(JobRequest):
    """Refresh the remote library and its manifests."""

    pass


class DownloadAssetRequest(JobRequest):
    """Download one artifact version of a library asset."""

    namespace: NonEmptyStr
    asset_id: NonEmptyStr
    artifact_id: NonEmptyStr
    title: str | None = None
    ue_version: str | None = None


class ImportAssetRequest(JobRequest):
    """Import a downloaded asset into a project."""

    asset_name: NonEmptyStr
    project: NonEmptyStr
    target_subdir: str | None = None
    overwrite: bool = False


class CreateProjectRequest(JobRequest):
    """Create a project from a template project or a template asset."""

    project_name: Annotated[str, StringConstraints(pattern=PROJECT_NAME_PATTERN)]
    output_dir: NonEmptyStr
    template_project: str | None = None
    asset_name: str | None = None
    namespace: str | None = None
    asset_id: str | None = None
    artifact_id: str | None = None
    ue_version: str | None = None
    dry_run: bool = False

    @model_validator(mode="after")
    def _needs_template(self) -> CreateProjectRequest:
        if not (self.template_project or self.asset_name):
            raise ValueError("Provide template_project or asset_name")
        return self


class StartJobResponse(BaseModel):
    """Response after scheduling a job."""

    job_id: str
    family: str
    status: str = "accepted"
    links: dict[str, str] = Field(default_factory=dict)


class JobStatusResponse(BaseModel):
    """Last known state of a job."""

    job_id: str
    family: str
    running: bool
    phase: str | None = None
    message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None


class CancelJobResponse(BaseModel):
    ok: bool
    message: str
