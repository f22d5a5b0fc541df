from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from ..exceptions import JobFatalError
from ..models import Family, Job, Phase
from ..task import JobContext, JobOutcome
from .download import download_folder, fetch_asset

logger = logging.getLogger("assetsync.workflows.create")

EXCLUDED_DIRS = ("Binaries", "Intermediate", "Saved", "DerivedDataCache")
UPROJECT_SEARCH_DEPTH = 4


def set_engine_association(uproject: Path, ue_version: str) -> None:
    """Point a .uproject at an engine version, leaving it untouched on error."""
    try:
        data = json.loads(uproject.read_text(encoding="utf-8"))
        data["EngineAssociation"] = ue_version
        uproject.write_text(json.dumps(data, indent="\t"), encoding="utf-8")
    except (OSError, ValueError) as e:
        logger.warning(f"Could not set EngineAssociation in {uproject}: {e}")


def _is_non_empty_dir(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())


def finalize_project(copied: Path, project_file: Path, ue_version: str | None) -> None:
    """Rename the copied .uproject after the project and set its engine."""
    if copied != project_file and copied.exists():
        copied.rename(project_file)
    if ue_version:
        set_engine_association(project_file, ue_version)


class CreateProjectWorkflow:
    """Create a new project by copying a template project.

    The template is a local path, or an asset under the downloads folder
    that is downloaded first when it is not there yet.
    """

    family = Family.create

    async def execute(self, job: Job, ctx: JobContext) -> JobOutcome:
        params = job.params
        project_name = params["project_name"]
        await ctx.enter(Phase.create_start, f"Creating project {project_name}", 0.0)

        template_dir = await self._resolve_template(job, ctx)
        uproject = await ctx.file_ops.find_file(template_dir, ".uproject", UPROJECT_SEARCH_DEPTH)
        if uproject is None:
            raise JobFatalError(f"No .uproject found under {template_dir}")
        template_root = uproject.parent

        destination = Path(params["output_dir"]).expanduser() / project_name
        if await asyncio.to_thread(_is_non_empty_dir, destination):
            raise JobFatalError(f"Destination already exists and is not empty: {destination}")

        if params.get("dry_run"):
            return JobOutcome(
                "Dry run: nothing copied",
                {
                    "dry_run": True,
                    "template": str(template_root),
                    "project_path": str(destination / f"{project_name}.uproject"),
                },
            )

        await ctx.enter(Phase.create_copying, "Copying template files", 0.0)
        stats = await ctx.file_ops.copy_tree(
            template_root,
            destination,
            exclude=EXCLUDED_DIRS,
            on_progress=lambda fraction, message: ctx.publish(
                Phase.create_copying, message, fraction
            ),
            is_cancelled=ctx.is_cancelled,
        )

        project_file = destination / f"{project_name}.uproject"
        await asyncio.to_thread(
            finalize_project,
            destination / uproject.name,
            project_file,
            params.get("ue_version"),
        )

        return JobOutcome(
            f"Project {project_name} created",
            {
                "project_path": str(project_file),
                "files_copied": stats.copied,
            },
        )

    async def _resolve_template(self, job: Job, ctx: JobContext) -> Path:
        params = job.params
        if params.get("template_project"):
            path = Path(params["template_project"]).expanduser()
            if path.suffix.lower() == ".uproject":
                path = path.parent
            if not path.is_dir():
                raise JobFatalError(f"Template project not found: {params['template_project']}")
            return path

        asset_name = params.get("asset_name")
        if not asset_name:
            raise JobFatalError("Provide template_project or asset_name")

        local = ctx.settings.downloads_dir / asset_name
        if params.get("ue_version") and (local / params["ue_version"]).is_dir():
            local = local / params["ue_version"]
        if local.is_dir():
            return local

        ids = [params.get(k) for k in ("namespace", "asset_id", "artifact_id")]
        if not all(ids):
            raise JobFatalError(f"Template asset not downloaded: {asset_name}")

        await ctx.enter(
            Phase.create_downloading, f"Downloading template asset {asset_name}", 0.0
        )
        namespace, asset_id, artifact_id = ids
        destination = download_folder(
            ctx.settings.downloads_dir,
            namespace,
            asset_id,
            artifact_id,
            asset_name,
            params.get("ue_version"),
        )
        return await fetch_asset(
            ctx,
            namespace=namespace,
            asset_id=asset_id,
            artifact_id=artifact_id,
            destination=destination,
            progress_phase=Phase.create_downloading,
        )
