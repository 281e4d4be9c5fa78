from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Literal, Optional, TypeVar, Union

RunMode = Literal["scan", "publish-sbom", "download-syft"]
LookupFailure = Literal["not_found", "api_error"]
ReconcileStatus = Literal["uploaded", "failed"]

T = TypeVar("T")


@dataclass(frozen=True)
class DirectoryTarget:
    path: str

    def source(self) -> str:
        return f"dir:{self.path}"


@dataclass(frozen=True)
class FileTarget:
    path: str

    def source(self) -> str:
        return f"file:{self.path}"


@dataclass(frozen=True)
class ImageTarget:
    ref: str

    def source(self) -> str:
        # Syft picks the best available source (docker daemon, podman, registry).
        return self.ref


@dataclass(frozen=True)
class RegistryTarget:
    ref: str
    username: str
    password: str

    def source(self) -> str:
        return f"registry:{self.ref}"

    def env(self) -> Dict[str, str]:
        return {
            "SYFT_REGISTRY_AUTH_USERNAME": self.username,
            "SYFT_REGISTRY_AUTH_PASSWORD": self.password,
        }


ScanTarget = Union[DirectoryTarget, FileTarget, ImageTarget, RegistryTarget]


@dataclass(frozen=True)
class ArtifactRef:
    """A workflow artifact. run_id is None for artifacts of the running workflow."""

    name: str
    id: Optional[int] = None
    run_id: Optional[int] = None
    size: Optional[int] = None


@dataclass(frozen=True)
class Release:
    id: int
    tag_name: str
    upload_url: str = ""
    draft: bool = False
    target_commitish: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Release":
        return cls(
            id=int(data.get("id") or 0),
            tag_name=str(data.get("tag_name") or ""),
            upload_url=str(data.get("upload_url") or ""),
            draft=bool(data.get("draft", False)),
            target_commitish=data.get("target_commitish") or None,
            name=data.get("name"),
        )


@dataclass(frozen=True)
class ReleaseAsset:
    id: int
    name: str


@dataclass(frozen=True)
class WorkflowRun:
    id: int
    head_branch: Optional[str] = None
    conclusion: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "WorkflowRun":
        return cls(
            id=int(data.get("id") or 0),
            head_branch=data.get("head_branch"),
            conclusion=data.get("conclusion"),
            status=data.get("status"),
            created_at=data.get("created_at"),
        )


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    """Outcome of a lookup that may legitimately find nothing."""

    value: Optional[T] = None
    error: Optional[LookupFailure] = None
    detail: str = ""

    @property
    def found(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class ScanResult:
    report: str
    stderr: str
    returncode: int
    duration_ms: int


@dataclass(frozen=True)
class ReconcileOutcome:
    artifact_name: str
    asset_name: Optional[str]
    status: ReconcileStatus
    replaced: bool = False
    error: Optional[str] = None
