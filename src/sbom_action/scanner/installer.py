from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Optional

import requests

from ..constants import SYFT_BINARY_NAME, SYFT_INSTALL_SCRIPT_URL
from ..errors import ScanError
from ..logging import ActionLogger
from .runner import run_command

DOWNLOAD_TIMEOUT_SECONDS = 60


def _tool_cache_dir(version: str) -> Path:
    root = os.environ.get("RUNNER_TOOL_CACHE") or os.path.join(
        os.environ.get("RUNNER_TEMP") or os.path.expanduser("~"), ".sbom-action-tools"
    )
    return Path(root) / SYFT_BINARY_NAME / version.lstrip("v")


def _cached_binary(version: str) -> Optional[Path]:
    candidate = _tool_cache_dir(version) / SYFT_BINARY_NAME
    if candidate.is_file() and os.access(candidate, os.X_OK):
        return candidate
    return None


async def _install(version: str, logger: ActionLogger) -> Path:
    """Install Syft with the upstream install script into the tool cache."""
    dest = _tool_cache_dir(version)
    dest.mkdir(parents=True, exist_ok=True)
    script = dest.parent / f"install-{version}.sh"

    logger.info(f"Installing {SYFT_BINARY_NAME} {version}")
    response = requests.get(SYFT_INSTALL_SCRIPT_URL, timeout=DOWNLOAD_TIMEOUT_SECONDS)
    response.raise_for_status()
    script.write_bytes(response.content)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)

    result = await run_command(["sh", str(script), "-b", str(dest), version])
    if result.returncode != 0:
        raise ScanError(
            f"Unable to install {SYFT_BINARY_NAME} {version}",
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
        )
    binary = dest / SYFT_BINARY_NAME
    if not binary.is_file():
        raise ScanError(f"{SYFT_BINARY_NAME} installer did not produce {binary}")
    return binary


def _add_path(directory: Path) -> None:
    """Make ``directory`` available on PATH for this and later steps."""
    os.environ["PATH"] = f"{directory}{os.pathsep}{os.environ.get('PATH', '')}"
    github_path = os.environ.get("GITHUB_PATH")
    if github_path:
        with open(github_path, "a", encoding="utf-8") as f:
            f.write(f"{directory}\n")


async def get_scanner_command(version: str, logger: ActionLogger) -> str:
    """Path of a Syft binary, installing the requested version when needed."""
    override = os.environ.get("SYFT_PATH")
    if override:
        logger.debug(f"Using Syft from SYFT_PATH: {override}")
        return override

    binary = _cached_binary(version)
    if binary is None:
        binary = await _install(version, logger)

    logger.debug(f"Got Syft path: {binary.parent} binary at: {binary}")
    _add_path(binary.parent)
    return str(binary)
