from __future__ import annotations

import logging
import math
from pathlib import Path

from ..exceptions import CancelledError, JobFatalError, RemoteError
from ..fileops import sanitize_folder_name
from ..models import Family, Job, Phase
from ..task import JobContext, JobOutcome

logger = logging.getLogger("assetsync.workflows.download")


def download_folder(
    downloads_dir: Path,
    namespace: str,
    asset_id: str,
    artifact_id: str,
    title: str | None = None,
    ue_version: str | None = None,
) -> Path:
    """Destination folder: ``<downloads>/<title>[/<ue_version>]``."""
    name = sanitize_folder_name(title) if title else ""
    folder = downloads_dir / (name or f"{namespace}-{asset_id}-{artifact_id}")
    if ue_version and ue_version.strip():
        folder = folder / ue_version.strip()
    return folder


async def fetch_asset(
    ctx: JobContext,
    *,
    namespace: str,
    asset_id: str,
    artifact_id: str,
    destination: Path,
    progress_phase: Phase,
) -> Path:
    """Fetch manifests and download from the first distribution point that works.

    Download progress is published as ``progress_phase``. A cancelled
    download removes the incomplete destination folder.
    """
    try:
        manifests = await ctx.retry_transient(
            lambda: ctx.client.get_manifests(namespace, asset_id, artifact_id),
            f"manifest {artifact_id}",
        )
    except RemoteError as e:
        raise JobFatalError(f"Failed to fetch manifest: {e}") from e

    def on_progress(fraction: float, message: str) -> None:
        # Clients may report NaN or inf; keep the message, drop the fraction
        progress = min(max(fraction, 0.0), 1.0) if math.isfinite(fraction) else None
        ctx.publish(progress_phase, message, progress)

    for manifest in manifests:
        for url in manifest.distribution_urls:
            await ctx.check_canceled()
            try:
                await ctx.client.download(manifest, url, destination, on_progress)
            except (RemoteError, OSError) as e:
                if ctx.is_cancelled():
                    await ctx.file_ops.remove_tree(destination)
                    raise CancelledError("Job cancellation requested") from e
                logger.warning(f"Job {ctx.job_id}: download failed from {url}: {e}")
                continue

            if ctx.is_cancelled():
                await ctx.file_ops.remove_tree(destination)
                raise CancelledError("Job cancellation requested")
            return destination

    raise JobFatalError("Unable to download asset from any distribution point")


class DownloadWorkflow:
    """Download one artifact version into the downloads folder."""

    family = Family.download

    async def execute(self, job: Job, ctx: JobContext) -> JobOutcome:
        params = job.params
        title = params.get("title") or params["asset_id"]
        await ctx.enter(Phase.download_start, f"Starting to download asset: {title}", 0.0)

        destination = download_folder(
            ctx.settings.downloads_dir,
            params["namespace"],
            params["asset_id"],
            params["artifact_id"],
            params.get("title"),
            params.get("ue_version"),
        )
        path = await fetch_asset(
            ctx,
            namespace=params["namespace"],
            asset_id=params["asset_id"],
            artifact_id=params["artifact_id"],
            destination=destination,
            progress_phase=Phase.download_progress,
        )
        return JobOutcome("Download complete", {"path": str(path)})
