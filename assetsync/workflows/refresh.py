from __future__ import annotations

import logging

from ..exceptions import JobFatalError, RemoteError
from ..models import Family, Job, Phase
from ..task import JobContext, JobOutcome

logger = logging.getLogger("assetsync.workflows.refresh")


class RefreshWorkflow:
    """Refresh the remote library and fetch a manifest for every version.

    A missing account or library aborts the job. A manifest failure only
    skips that artifact: it is reported as ``refresh:item_error`` and the
    loop moves on.
    """

    family = Family.refresh

    async def execute(self, job: Job, ctx: JobContext) -> JobOutcome:
        await ctx.enter(Phase.refresh_start, "Refreshing library", 0.0)

        try:
            account = await ctx.retry_transient(ctx.client.get_account, "account lookup")
        except RemoteError as e:
            raise JobFatalError(f"Unable to get account details: {e}") from e
        if account is None:
            raise JobFatalError("Unable to get account details")

        await ctx.check_canceled()
        try:
            library = await ctx.retry_transient(
                lambda: ctx.client.get_library(account), "library listing"
            )
        except RemoteError as e:
            raise JobFatalError(f"Unable to fetch library items: {e}") from e
        if library is None:
            raise JobFatalError("Unable to fetch library items")

        items = [(asset, version) for asset in library for version in asset.versions]
        await ctx.enter(
            Phase.refresh_library,
            f"Found {len(library)} assets ({len(items)} versions)",
            0.0,
            {"assets": len(library), "versions": len(items)},
        )

        manifests: dict[str, dict] = {}
        failed: list[dict[str, str]] = []
        for index, (asset, version) in enumerate(items):
            if index > 0:
                await ctx.pause()
            await ctx.check_canceled()

            identity = {
                "namespace": asset.namespace,
                "asset_id": asset.asset_id,
                "artifact_id": version.artifact_id,
            }
            try:
                found = await ctx.retry_transient(
                    lambda a=asset, v=version: ctx.client.get_manifests(
                        a.namespace, a.asset_id, v.artifact_id
                    ),
                    f"manifest {version.artifact_id}",
                )
            except RemoteError as e:
                logger.warning(f"Job {job.id}: manifest for {version.artifact_id} failed: {e}")
                failed.append(identity)
                ctx.publish(
                    Phase.refresh_item_error,
                    f"Failed to fetch manifest for {asset.title}: {e}",
                    (index + 1) / len(items),
                    {**identity, "error": str(e)},
                )
                continue

            manifests[version.artifact_id] = {
                **identity,
                "build_versions": [m.build_version for m in found if m.build_version],
                "distribution_points": sum(len(m.distribution_urls) for m in found),
            }
            ctx.publish(
                Phase.refresh_manifest,
                f"Fetched manifest for {asset.title}",
                (index + 1) / len(items),
                identity,
            )

        if ctx.cache is not None:
            await ctx.check_canceled()
            try:
                await ctx.cache.save(
                    {
                        "results": [asset.to_dict() for asset in library],
                        "manifests": manifests,
                    }
                )
            except OSError as e:
                logger.warning(f"Job {job.id}: failed to write library cache: {e}")

        return JobOutcome(
            f"Library refreshed: {len(manifests)} manifests, {len(failed)} failed",
            {
                "assets": len(library),
                "manifests": len(manifests),
                "failed": failed,
            },
        )
