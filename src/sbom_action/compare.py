from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .artifacts import ArtifactStore
from .config import SbomActionConfig
from .context import RunContext
from .errors import SbomActionError
from .github import GitHubClient
from .logging import ActionLogger
from .models import WorkflowRun
from .utils import parse_iso8601

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def latest_run(runs: List[WorkflowRun]) -> Optional[WorkflowRun]:
    """Most recently created run; the API's default ordering is not relied upon."""
    if not runs:
        return None
    return max(runs, key=lambda run: parse_iso8601(run.created_at) or _EPOCH)


def find_latest_successful_run(
    client: GitHubClient,
    branch: str,
    logger: Optional[ActionLogger] = None,
) -> Optional[WorkflowRun]:
    runs = [
        run
        for run in client.list_workflow_runs(branch=branch, status="success")
        if run.conclusion in (None, "success")
        and (run.head_branch is None or run.head_branch == branch)
    ]
    run = latest_run(runs)
    if logger:
        logger.debug("findLatestWorkflowRunForBranch", branch=branch, run_id=run.id if run else None)
    return run


async def compare_against_base(
    ctx: RunContext,
    config: SbomActionConfig,
    client: GitHubClient,
    store: ArtifactStore,
    artifact_name: str,
    logger: ActionLogger,
) -> Optional[Path]:
    """
    Fetch the SBOM the base branch produced for this job, for pull requests.

    Informational only: any failure is logged and the scan carries on.
    """
    if not config.compare_pulls or not ctx.is_pull_request:
        return None

    branch = ctx.pr_base_ref
    if not branch:
        logger.warning("Pull request payload has no base ref, skipping comparison")
        return None

    try:
        run = find_latest_successful_run(client, branch, logger)
        if run is None:
            logger.info("No successful workflow run found for base branch", branch=branch)
            return None

        artifacts = await store.list_run_artifacts(run.id)
        for artifact in artifacts:
            if artifact.name == artifact_name:
                path = await store.download(artifact)
                logger.info(f"Downloaded SBOM from ref '{branch}' to {path}")
                return path
    except (SbomActionError, OSError) as exc:
        logger.warning("Unable to fetch base branch SBOM", branch=branch, error=str(exc))
        return None

    logger.info("Base branch run has no matching artifact", branch=branch, artifact=artifact_name)
    return None
