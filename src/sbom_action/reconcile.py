from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .artifacts import ArtifactStore
from .compare import find_latest_successful_run
from .config import SbomActionConfig
from .constants import RELEASE_ASSET_CONTENT_TYPE
from .context import RunContext
from .github import GitHubClient
from .logging import ActionLogger, dash_wrap
from .matching import artifact_pattern, filter_artifacts
from .models import ArtifactRef, ReconcileOutcome, Release
from .releases import locate_release


async def reconcile_asset(
    client: GitHubClient,
    store: ArtifactStore,
    release: Release,
    artifact: ArtifactRef,
    logger: ActionLogger,
) -> ReconcileOutcome:
    """
    Publish one artifact as a release asset, replacing a same-named asset.

    Re-running converges on exactly one asset with this name. Not safe against
    concurrent reconcilers on the same release.
    """
    file = await store.download(artifact)
    logger.info(str(file))
    asset_name = Path(file).name
    contents = Path(file).read_bytes()

    replaced = False
    assets = client.list_release_assets(release)
    logger.debug("listReleaseAssets", release_id=release.id, assets=[a.name for a in assets])
    existing = next((a for a in assets if a.name == asset_name), None)
    if existing is not None:
        try:
            client.delete_release_asset(existing)
            replaced = True
        except Exception as exc:
            # the upload below will most likely fail with a duplicate name
            logger.warning(
                f"Unable to delete existing release asset {asset_name}",
                asset_id=existing.id,
                error=str(exc),
            )

    client.upload_release_asset(release, asset_name, contents, RELEASE_ASSET_CONTENT_TYPE)
    return ReconcileOutcome(
        artifact_name=artifact.name,
        asset_name=asset_name,
        status="uploaded",
        replaced=replaced,
    )


async def _prior_run_artifacts(
    release: Release,
    client: GitHubClient,
    store: ArtifactStore,
    logger: ActionLogger,
) -> List[ArtifactRef]:
    branch = release.target_commitish
    if not branch:
        return []
    run = find_latest_successful_run(client, branch, logger)
    if run is None:
        logger.debug("No prior successful workflow run", branch=branch)
        return []
    logger.info("Using artifacts from prior workflow run", run_id=run.id, branch=branch)
    return await store.list_run_artifacts(run.id)


async def attach_release_assets(
    ctx: RunContext,
    config: SbomActionConfig,
    client: GitHubClient,
    store: ArtifactStore,
    artifact_name: str,
    logger: ActionLogger,
    *,
    release: Optional[Release] = None,
) -> List[ReconcileOutcome]:
    """
    Attach matching SBOM artifacts to the release for the current event.

    Discovery failures raise; a failure publishing one artifact is logged and
    does not stop the others.
    """
    if not config.upload_release_assets:
        return []

    if release is None:
        release = locate_release(ctx, client, ref_prefix=config.release_ref_prefix, logger=logger)
    if release is None:
        return []

    pattern = artifact_pattern(config.sbom_artifact_match, artifact_name)
    matched = filter_artifacts(await store.list_current_run_artifacts(), pattern, logger)
    if not matched:
        matched = filter_artifacts(
            await _prior_run_artifacts(release, client, store, logger), pattern, logger
        )

    outcomes: List[ReconcileOutcome] = []
    logger.info(dash_wrap(f"Attaching SBOMs to release: '{release.tag_name}'"))
    for artifact in matched:
        try:
            outcome = await reconcile_asset(client, store, release, artifact, logger)
        except Exception as exc:
            logger.warning(
                f"Unable to attach {artifact.name} to release {release.tag_name}",
                error=str(exc),
            )
            outcome = ReconcileOutcome(
                artifact_name=artifact.name,
                asset_name=None,
                status="failed",
                error=str(exc),
            )
        outcomes.append(outcome)
    return outcomes
