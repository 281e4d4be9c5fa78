from __future__ import annotations

import re
from typing import Optional

from pydantic import Field, SecretStr, conint, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_FORMAT, DEFAULT_RELEASE_REF_PREFIX, SYFT_VERSION
from .errors import ConfigError
from .models import (
    DirectoryTarget,
    FileTarget,
    ImageTarget,
    RegistryTarget,
    RunMode,
    ScanTarget,
)


class SbomActionConfig(BaseSettings):
    """Configuration loaded from GitHub Actions inputs."""

    model_config = SettingsConfigDict(
        env_prefix="INPUT_",
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    run: RunMode = Field(default="scan", description="scan, publish-sbom or download-syft")

    # Scan target; exactly one of path/file/image is expected
    path: str = Field(default="", description="Directory to scan")
    file: str = Field(default="", description="File to scan, e.g. a jar or lockfile")
    image: str = Field(default="", description="Container image to scan")
    registry_username: str = Field(default="", description="Registry username for image pulls")
    registry_password: SecretStr = Field(
        default=SecretStr(""), description="Registry password for image pulls"
    )

    format: str = Field(default=DEFAULT_FORMAT, description="Scanner output format")
    config: str = Field(default="", description="Scanner configuration file")
    syft_version: str = Field(default=SYFT_VERSION)

    # Naming
    artifact_name: str = Field(
        default="",
        description="Explicit artifact file name. Multiple jobs using the same name overwrite each other.",
    )
    output_file: str = Field(default="", description="Also write the SBOM to this path")

    # Publishing
    upload_artifact: bool = Field(default=True)
    upload_artifact_retention: conint(ge=0) = Field(
        default=0, description="Retention days for the workflow artifact, 0 for the repository default"
    )
    upload_release_assets: bool = Field(default=True)
    dependency_snapshot: bool = Field(default=False)
    dependency_snapshot_correlator: str = Field(default="")

    # Reconciliation
    compare_pulls: bool = Field(default=False)
    sbom_artifact_match: str = Field(
        default="", description="Regex selecting artifacts to attach to a release"
    )
    release_ref_prefix: str = Field(default=DEFAULT_RELEASE_REF_PREFIX)

    github_token: SecretStr = Field(
        default=SecretStr(""), description="GitHub token used for API calls"
    )

    @field_validator("run", "format", mode="before")
    @classmethod
    def _normalize_lowercase(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("format")
    @classmethod
    def _default_format(cls, value: str) -> str:
        # Passed through to Syft unchecked
        return value or DEFAULT_FORMAT

    @field_validator("release_ref_prefix", mode="before")
    @classmethod
    def _default_prefix(cls, value: str) -> str:
        if isinstance(value, str) and not value.strip():
            return DEFAULT_RELEASE_REF_PREFIX
        return value

    @field_validator("sbom_artifact_match")
    @classmethod
    def _validate_pattern(cls, value: str) -> str:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"Invalid sbom_artifact_match pattern: {exc}") from exc
        return value

    def scan_target(self) -> ScanTarget:
        """Resolve the configured scan target; image takes precedence over paths."""
        if self.image:
            password = self.registry_password.get_secret_value()
            if self.registry_username and password:
                return RegistryTarget(
                    ref=self.image, username=self.registry_username, password=password
                )
            return ImageTarget(ref=self.image)
        if self.path:
            return DirectoryTarget(path=self.path)
        if self.file:
            return FileTarget(path=self.file)
        raise ConfigError("Invalid input, no image or path specified")

    def retention_days(self) -> Optional[int]:
        return self.upload_artifact_retention or None
