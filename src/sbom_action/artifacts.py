from __future__ import annotations

import asyncio
import base64
import hashlib
import io
import json
import os
import tempfile
import zipfile
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .errors import ArtifactError
from .github import GitHubClient
from .logging import ActionLogger
from .models import ArtifactRef

ARTIFACT_SERVICE = "twirp/github.actions.results.api.v1.ArtifactService"
REQUEST_TIMEOUT_SECONDS = 30
TRANSFER_TIMEOUT_SECONDS = 300
MAX_RETRIES = 3
BACKOFF_SECONDS = 2


class ArtifactStore(ABC):
    """Workflow artifact storage, for the running workflow and completed runs."""

    @abstractmethod
    async def list_current_run_artifacts(self) -> List[ArtifactRef]:
        raise NotImplementedError

    @abstractmethod
    async def list_run_artifacts(self, run_id: int) -> List[ArtifactRef]:
        raise NotImplementedError

    @abstractmethod
    async def upload(self, name: str, file: Path, retention_days: Optional[int] = None) -> ArtifactRef:
        raise NotImplementedError

    @abstractmethod
    async def download(self, ref: ArtifactRef) -> Path:
        """Download and unpack ``ref``, returning the path of the contained file."""
        raise NotImplementedError


def make_temp_dir(prefix: str = "sbom-action-", parent: Optional[Path] = None) -> Path:
    """A fresh directory under ``parent``, else under RUNNER_TEMP or the system temp dir."""
    root = str(parent) if parent is not None else os.environ.get("RUNNER_TEMP") or None
    return Path(tempfile.mkdtemp(prefix=prefix, dir=root))


def zip_single_file(file: Path) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.write(file, arcname=file.name)
    return buffer.getvalue()


def extract_artifact(data: bytes, name: str, dest: Path) -> Path:
    """Unpack an artifact archive into ``dest`` and return the file named ``name``, else the first file."""
    dest = dest.resolve()
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ArtifactError(f"Artifact {name} is not a valid archive") from exc

    extracted: List[Path] = []
    with archive:
        for member in archive.infolist():
            if member.is_dir():
                continue
            target = (dest / member.filename).resolve()
            if dest not in target.parents:
                raise ArtifactError(f"Artifact {name} contains an unsafe path: {member.filename}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(archive.read(member))
            extracted.append(target)

    if not extracted:
        raise ArtifactError(f"Artifact {name} is empty")
    for path in extracted:
        if path.name == name:
            return path
    return sorted(extracted)[0]


def parse_backend_ids(runtime_token: str) -> Tuple[str, str]:
    """Extract (workflow run, job run) backend ids from the runtime token's scopes."""
    try:
        payload_b64 = runtime_token.split(".")[1]
        payload_b64 += "=" * (-len(payload_b64) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (IndexError, ValueError) as exc:
        raise ArtifactError("ACTIONS_RUNTIME_TOKEN is not a valid token") from exc

    for scope in str(claims.get("scp") or "").split(" "):
        parts = scope.split(":")
        if parts[0] == "Actions.Results" and len(parts) == 3:
            return parts[1], parts[2]
    raise ArtifactError("ACTIONS_RUNTIME_TOKEN does not grant access to workflow artifacts")


class GitHubArtifactStore(ArtifactStore):
    """
    Artifact storage backed by GitHub.

    Artifacts of the running workflow are only visible through the Actions
    results service; completed runs are served by the REST API.
    """

    def __init__(
        self,
        client: GitHubClient,
        runtime_token: str,
        results_url: str,
        logger: Optional[ActionLogger] = None,
        work_dir: Optional[Path] = None,
    ) -> None:
        self.client = client
        self.runtime_token = runtime_token
        self.results_url = results_url.rstrip("/")
        self.logger = logger
        # Downloads of one invocation share this parent directory
        self.work_dir = work_dir
        self._backend_ids: Optional[Tuple[str, str]] = None

    @classmethod
    def from_environment(
        cls,
        client: GitHubClient,
        logger: Optional[ActionLogger] = None,
        work_dir: Optional[Path] = None,
    ) -> "GitHubArtifactStore":
        return cls(
            client=client,
            runtime_token=os.environ.get("ACTIONS_RUNTIME_TOKEN", ""),
            results_url=os.environ.get("ACTIONS_RESULTS_URL", ""),
            logger=logger,
            work_dir=work_dir,
        )

    def _ids(self) -> Dict[str, str]:
        if not self.runtime_token or not self.results_url:
            raise ArtifactError(
                "ACTIONS_RUNTIME_TOKEN and ACTIONS_RESULTS_URL are required for workflow artifacts"
            )
        if self._backend_ids is None:
            self._backend_ids = parse_backend_ids(self.runtime_token)
        run_backend_id, job_backend_id = self._backend_ids
        return {
            "workflow_run_backend_id": run_backend_id,
            "workflow_job_run_backend_id": job_backend_id,
        }

    async def _twirp(self, method: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.results_url}/{ARTIFACT_SERVICE}/{method}"
        headers = {
            "Authorization": f"Bearer {self.runtime_token}",
            "Content-Type": "application/json",
            "User-Agent": "sbom-action",
        }
        last_error = ""
        for attempt in range(MAX_RETRIES):
            try:
                async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as http:
                    response = await http.post(url, json=body, headers=headers)
                if response.status_code == 200:
                    return response.json()
                last_error = f"HTTP {response.status_code}"
                if response.status_code < 500 and response.status_code != 429:
                    break
            except httpx.TransportError as exc:
                last_error = str(exc) or type(exc).__name__

            if self.logger:
                self.logger.debug(f"{method} failed, retrying", attempt=attempt + 1, error=last_error)
            if attempt < MAX_RETRIES - 1:
                await asyncio.sleep(BACKOFF_SECONDS * (attempt + 1))

        raise ArtifactError(f"Artifact service call {method} failed: {last_error}")

    async def list_current_run_artifacts(self) -> List[ArtifactRef]:
        response = await self._twirp("ListArtifacts", self._ids())
        artifacts = [
            ArtifactRef(
                name=str(item.get("name") or ""),
                id=int(item["database_id"]) if item.get("database_id") else None,
                size=int(item["size"]) if item.get("size") else None,
            )
            for item in response.get("artifacts", [])
        ]
        if self.logger:
            self.logger.debug("listCurrentRunArtifacts", artifacts=[a.name for a in artifacts])
        return artifacts

    async def list_run_artifacts(self, run_id: int) -> List[ArtifactRef]:
        artifacts = self.client.list_workflow_run_artifacts(run_id)
        if self.logger:
            self.logger.debug("listRunArtifacts", run_id=run_id, artifacts=[a.name for a in artifacts])
        return artifacts

    async def upload(self, name: str, file: Path, retention_days: Optional[int] = None) -> ArtifactRef:
        create: Dict[str, Any] = {**self._ids(), "name": name, "version": 4}
        if retention_days:
            expires_at = datetime.now(timezone.utc) + timedelta(days=retention_days)
            create["expires_at"] = expires_at.isoformat().replace("+00:00", "Z")

        created = await self._twirp("CreateArtifact", create)
        upload_url = created.get("signed_upload_url")
        if not created.get("ok") or not upload_url:
            raise ArtifactError(f"Unable to create artifact {name}")

        archive = zip_single_file(file)
        async with httpx.AsyncClient(timeout=TRANSFER_TIMEOUT_SECONDS) as http:
            put = await http.put(
                upload_url,
                content=archive,
                headers={"x-ms-blob-type": "BlockBlob", "Content-Type": "application/zip"},
            )
        if put.status_code not in (200, 201):
            raise ArtifactError(f"Unable to upload artifact {name} (HTTP {put.status_code})")

        finalized = await self._twirp(
            "FinalizeArtifact",
            {
                **self._ids(),
                "name": name,
                "size": str(len(archive)),
                "hash": f"sha256:{hashlib.sha256(archive).hexdigest()}",
            },
        )
        if not finalized.get("ok"):
            raise ArtifactError(f"Unable to finalize artifact {name}")

        artifact_id = finalized.get("artifact_id")
        return ArtifactRef(
            name=name,
            id=int(artifact_id) if artifact_id else None,
            size=len(archive),
        )

    def _download_dir(self) -> Path:
        if self.work_dir is None:
            self.work_dir = make_temp_dir()
        return make_temp_dir(prefix="download-", parent=self.work_dir)

    async def download(self, ref: ArtifactRef) -> Path:
        dest = self._download_dir()
        if ref.run_id is None:
            signed = await self._twirp("GetSignedArtifactURL", {**self._ids(), "name": ref.name})
            url = signed.get("signed_url")
            if not url:
                raise ArtifactError(f"Unable to resolve download URL for artifact {ref.name}")
            async with httpx.AsyncClient(timeout=TRANSFER_TIMEOUT_SECONDS, follow_redirects=True) as http:
                response = await http.get(url)
            if response.status_code != 200:
                raise ArtifactError(
                    f"Unable to download artifact {ref.name} (HTTP {response.status_code})"
                )
            data = response.content
        else:
            if ref.id is None:
                raise ArtifactError(f"Artifact {ref.name} of run {ref.run_id} has no id")
            data = self.client.download_artifact_zip(ref.id)

        path = extract_artifact(data, ref.name, dest)
        if self.logger:
            self.logger.debug("downloadArtifact", name=ref.name, path=str(path))
        return path
