from __future__ import annotations

import time
from pathlib import Path

from ..exceptions import JobFatalError
from ..models import Family, Job, Phase
from ..task import JobContext, JobOutcome


def resolve_project_dir(project: str) -> Path:
    """Accept a project directory or a path to its .uproject file."""
    path = Path(project).expanduser()
    if path.suffix.lower() == ".uproject":
        return path.parent
    return path


class ImportWorkflow:
    """Copy a downloaded asset into a project's Content folder."""

    family = Family.import_

    async def execute(self, job: Job, ctx: JobContext) -> JobOutcome:
        params = job.params
        asset_name = params["asset_name"]
        await ctx.enter(Phase.import_start, f"Importing {asset_name}", 0.0)
        started = time.monotonic()

        source = ctx.settings.downloads_dir / asset_name
        if not source.is_dir():
            raise JobFatalError(f"Asset not found in downloads: {asset_name}")
        # Assets are stored with their files under data/ when present
        if (source / "data").is_dir():
            source = source / "data"

        project_dir = resolve_project_dir(params["project"])
        if not project_dir.is_dir():
            raise JobFatalError(f"Project not found: {params['project']}")

        destination = project_dir / "Content"
        if params.get("target_subdir"):
            destination = destination / params["target_subdir"]

        await ctx.enter(Phase.import_copying, "Copying files", 0.0)
        stats = await ctx.file_ops.copy_tree(
            source,
            destination,
            overwrite=bool(params.get("overwrite", False)),
            on_progress=lambda fraction, message: ctx.publish(
                Phase.import_copying, message, fraction
            ),
            is_cancelled=ctx.is_cancelled,
        )

        return JobOutcome(
            f"Imported {asset_name}: {stats.copied} files copied, {stats.skipped} skipped",
            {
                "files_copied": stats.copied,
                "files_skipped": stats.skipped,
                "source": str(source),
                "destination": str(destination),
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )
