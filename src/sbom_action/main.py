from __future__ import annotations

import asyncio
import os
import shutil
import sys
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from pydantic import ValidationError

from .artifacts import ArtifactStore, GitHubArtifactStore, make_temp_dir
from .compare import compare_against_base
from .config import SbomActionConfig
from .constants import ACTION_VERSION, PRIOR_ARTIFACT_ENV_VAR, SNAPSHOT_FORMAT, ExitCode
from .context import RunContext
from .errors import ConfigError, ScanError, SbomActionError
from .github import GitHubClient
from .logging import ActionLogger, dash_wrap
from .models import ReconcileOutcome, Release
from .naming import resolve_artifact_name
from .publish import export_variable, write_github_outputs, write_step_summary
from .reconcile import attach_release_assets
from .releases import locate_release
from .scanner import execute_scan, get_scanner_command
from .snapshot import upload_dependency_snapshot
from .utils import to_workspace_relative

T = TypeVar("T")


@dataclass
class RunSummary:
    artifact_name: str
    sbom_file: Optional[Path] = None
    uploaded: bool = False
    duration_ms: Optional[int] = None
    base_sbom: Optional[Path] = None
    release: Optional[Release] = None
    outcomes: List[ReconcileOutcome] = field(default_factory=list)


def describe_failure(exc: BaseException) -> str:
    """A failure message that always renders, whatever was raised."""
    if isinstance(exc, ScanError):
        detail = (exc.stderr or "").strip()
        return f"{exc}: {detail[-2000:]}" if detail else str(exc)
    if isinstance(exc, SbomActionError):
        return str(exc) or type(exc).__name__
    message = str(exc)
    if message:
        return message
    return f"An unknown error occurred: {exc!r}"


async def run_and_fail_build(fn: Callable[[], Awaitable[T]], logger: ActionLogger) -> T:
    """
    Run ``fn`` and mark the build failed if it raises.

    This is the single catch boundary of the action. The error is re-raised
    after recording the failure so the process exit code reflects it.
    """
    try:
        return await fn()
    except Exception as exc:
        logger.set_failed(describe_failure(exc))
        raise


def load_config() -> SbomActionConfig:
    try:
        return SbomActionConfig()
    except ValidationError as exc:
        raise ConfigError(f"Configuration error: {exc}") from exc


def load_context() -> RunContext:
    try:
        return RunContext.from_environment()
    except RuntimeError as exc:
        raise ConfigError(f"Failed to load GitHub context: {exc}") from exc


async def _publish_release_assets(
    ctx: RunContext,
    config: SbomActionConfig,
    client: GitHubClient,
    store: ArtifactStore,
    artifact_name: str,
    logger: ActionLogger,
) -> Tuple[Optional[Release], List[ReconcileOutcome]]:
    if not config.upload_release_assets:
        return None, []
    release = locate_release(ctx, client, ref_prefix=config.release_ref_prefix, logger=logger)
    if release is None:
        return None, []
    outcomes = await attach_release_assets(
        ctx, config, client, store, artifact_name, logger, release=release
    )
    return release, outcomes


async def run_scan(
    ctx: RunContext,
    config: SbomActionConfig,
    client: GitHubClient,
    store: ArtifactStore,
    logger: ActionLogger,
    work_dir: Optional[Path] = None,
) -> RunSummary:
    logger.info(dash_wrap("Running SBOM Action"))

    target = config.scan_target()
    artifact_name = resolve_artifact_name(ctx, config.artifact_name, config.image, config.format)
    summary = RunSummary(artifact_name=artifact_name)

    cmd = await get_scanner_command(config.syft_version, logger)

    work_dir = work_dir or make_temp_dir()
    snapshot_file: Optional[Path] = None
    extra_outputs: List[Tuple[str, str]] = []
    if config.dependency_snapshot:
        snapshot_file = work_dir / "github-dependency-snapshot.json"
        extra_outputs.append((SNAPSHOT_FORMAT, str(snapshot_file)))

    with logger.group("Running Syft"):
        result = await execute_scan(
            cmd,
            target,
            config.format,
            logger,
            config_file=config.config,
            extra_outputs=extra_outputs,
        )
    summary.duration_ms = result.duration_ms
    logger.info(f"SBOM scan completed in: {result.duration_ms / 1000}s")

    summary.base_sbom = await compare_against_base(ctx, config, client, store, artifact_name, logger)

    # Set by an earlier run of this action in the same job
    prior_artifact = os.environ.get(PRIOR_ARTIFACT_ENV_VAR)
    if prior_artifact:
        logger.debug(f"Prior artifact: {prior_artifact}")

    sbom_file = work_dir / artifact_name
    sbom_file.parent.mkdir(parents=True, exist_ok=True)
    sbom_file.write_text(result.report, encoding="utf-8")
    summary.sbom_file = sbom_file
    if config.output_file:
        output_file = Path(config.output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(sbom_file, output_file)
        summary.sbom_file = output_file

    write_github_outputs(
        artifact_name=artifact_name,
        sbom_file=to_workspace_relative(summary.sbom_file),
    )

    if config.upload_artifact:
        logger.info(dash_wrap("Uploading workflow artifacts"))
        logger.info(str(sbom_file))
        with logger.stage("upload_artifact"):
            await store.upload(artifact_name, sbom_file, config.retention_days())
        summary.uploaded = True
        export_variable(PRIOR_ARTIFACT_ENV_VAR, artifact_name)

    upload_dependency_snapshot(snapshot_file, ctx, config, client, logger)

    with logger.stage("release_assets"):
        summary.release, summary.outcomes = await _publish_release_assets(
            ctx, config, client, store, artifact_name, logger
        )
    return summary


async def run_publish(
    ctx: RunContext,
    config: SbomActionConfig,
    client: GitHubClient,
    store: ArtifactStore,
    logger: ActionLogger,
) -> RunSummary:
    artifact_name = resolve_artifact_name(ctx, config.artifact_name, config.image, config.format)
    summary = RunSummary(artifact_name=artifact_name)
    summary.release, summary.outcomes = await _publish_release_assets(
        ctx, config, client, store, artifact_name, logger
    )
    return summary


async def run_download_scanner(config: SbomActionConfig, logger: ActionLogger) -> str:
    cmd = await get_scanner_command(config.syft_version, logger)
    write_github_outputs(cmd=cmd)
    return cmd


async def run_action(logger: ActionLogger) -> Optional[RunSummary]:
    config = load_config()

    if config.run == "download-syft":
        await run_download_scanner(config, logger)
        return None

    ctx = load_context()
    logger.debug("Got github context", event=ctx.event_name, ref=ctx.ref, job=ctx.job, action=ctx.action)

    token = config.github_token.get_secret_value() or os.environ.get("GITHUB_TOKEN", "")
    client = GitHubClient(token=token, repo=ctx.repo_full_name, api_url=ctx.api_url, logger=logger)
    work_dir = make_temp_dir()
    store = GitHubArtifactStore.from_environment(client, logger, work_dir=work_dir)

    if config.run == "scan":
        summary = await run_scan(ctx, config, client, store, logger, work_dir=work_dir)
    elif config.run == "publish-sbom":
        summary = await run_publish(ctx, config, client, store, logger)
    else:
        raise ConfigError(f"Unknown run mode: '{config.run}'")

    write_step_summary(
        summary.artifact_name,
        config.format,
        ACTION_VERSION,
        duration_ms=summary.duration_ms,
        uploaded=summary.uploaded,
        base_sbom=summary.base_sbom,
        release=summary.release,
        outcomes=summary.outcomes,
    )
    return summary


def main() -> int:
    """Main entry point."""
    return asyncio.run(async_main())


async def async_main() -> int:
    """Async main entry point."""
    logger = ActionLogger(os.environ.get("GITHUB_RUN_ID") or str(uuid.uuid4()))
    try:
        await run_and_fail_build(lambda: run_action(logger), logger)
    except SbomActionError as exc:
        return int(exc.exit_code)
    except Exception:
        return int(ExitCode.ERROR)
    return int(ExitCode.SUCCESS)


if __name__ == "__main__":
    sys.exit(main())
