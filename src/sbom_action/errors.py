from __future__ import annotations

from typing import Optional

from .constants import ExitCode


class SbomActionError(Exception):
    """Base exception for all SBOM action errors."""

    exit_code: ExitCode = ExitCode.ERROR


class ConfigError(SbomActionError):
    """Action inputs are missing or invalid."""


class ScanError(SbomActionError):
    """The scanner exited unsuccessfully or produced no report."""

    def __init__(
        self,
        message: str,
        *,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


class GitHubApiError(SbomActionError):
    """A GitHub API call returned an error status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ArtifactError(SbomActionError):
    """Workflow artifact upload or download failed."""


class ReleaseAssetError(SbomActionError):
    """Release asset upload failed."""
