from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .config import SbomActionConfig
from .context import RunContext
from .errors import ScanError
from .github import GitHubClient
from .logging import ActionLogger


def build_correlator(ctx: RunContext, config: SbomActionConfig) -> str:
    """
    Correlator that keeps snapshots from different jobs apart.

    Matrix jobs share a workflow and job name, so an explicit artifact name is
    folded in when configured.
    """
    if config.dependency_snapshot_correlator:
        return config.dependency_snapshot_correlator
    correlator = f"{ctx.workflow}_{ctx.job}"
    if config.artifact_name:
        correlator += f"_{config.artifact_name}"
    return correlator


def prepare_snapshot(
    snapshot_file: Path,
    ctx: RunContext,
    config: SbomActionConfig,
) -> Dict[str, Any]:
    try:
        snapshot = json.loads(snapshot_file.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError) as exc:
        raise ScanError(f"Unable to read dependency snapshot {snapshot_file}: {exc}") from exc

    snapshot["job"] = {
        "correlator": build_correlator(ctx, config),
        "id": str(ctx.run_id or ""),
    }
    if ctx.run_id and ctx.workflow_run_url:
        snapshot["job"]["html_url"] = ctx.workflow_run_url
    snapshot["sha"] = ctx.sha
    snapshot["ref"] = ctx.ref
    return snapshot


def upload_dependency_snapshot(
    snapshot_file: Optional[Path],
    ctx: RunContext,
    config: SbomActionConfig,
    client: GitHubClient,
    logger: ActionLogger,
) -> Optional[Dict[str, Any]]:
    if not config.dependency_snapshot or snapshot_file is None:
        return None

    snapshot = prepare_snapshot(snapshot_file, ctx, config)
    logger.info(
        "Uploading GitHub dependency snapshot",
        correlator=snapshot["job"]["correlator"],
        manifests=len(snapshot.get("manifests") or {}),
    )
    response = client.post_dependency_snapshot(snapshot)
    logger.info("Dependency snapshot submitted", snapshot_id=response.get("id"))
    return response
