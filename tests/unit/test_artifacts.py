from __future__ import annotations

import base64
import io
import json
import zipfile
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from sbom_action.artifacts import (
    GitHubArtifactStore,
    extract_artifact,
    parse_backend_ids,
    zip_single_file,
)
from sbom_action.errors import ArtifactError
from sbom_action.models import ArtifactRef


def _token(scp: str) -> str:
    claims = base64.urlsafe_b64encode(json.dumps({"scp": scp}).encode()).decode().rstrip("=")
    return f"header.{claims}.signature"


TOKEN = _token("Actions.ExampleScope Actions.Results:run-backend:job-backend")


def _zip(files: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


class DummyResponse:
    def __init__(self, status_code: int = 200, json_data: dict | None = None, content: bytes = b"") -> None:
        self.status_code = status_code
        self._json_data = json_data or {}
        self.content = content

    def json(self) -> dict:
        return self._json_data


class DummyAsyncClient:
    def __init__(self, responses=None, exceptions=None) -> None:
        self._responses = list(responses or [])
        self._exceptions = list(exceptions or [])
        self.requests = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def _next(self):
        if self._exceptions:
            raise self._exceptions.pop(0)
        if self._responses:
            return self._responses.pop(0)
        return DummyResponse(status_code=500)

    async def post(self, url, json=None, headers=None):
        self.requests.append({"method": "post", "url": url, "json": json, "headers": headers})
        return self._next()

    async def put(self, url, content=None, headers=None):
        self.requests.append({"method": "put", "url": url, "content": content, "headers": headers})
        return self._next()

    async def get(self, url):
        self.requests.append({"method": "get", "url": url})
        return self._next()


class DummyClient:
    def __init__(self, archives: dict | None = None) -> None:
        self.archives = archives or {}

    def list_workflow_run_artifacts(self, run_id: int):
        return [ArtifactRef(name="a.spdx.json", id=5, run_id=run_id)]

    def download_artifact_zip(self, artifact_id: int) -> bytes:
        return self.archives[artifact_id]


def _store(client=None) -> GitHubArtifactStore:
    return GitHubArtifactStore(client or DummyClient(), TOKEN, "https://results.example.test/")


def _patch_http(monkeypatch: pytest.MonkeyPatch, client: DummyAsyncClient) -> None:
    monkeypatch.setattr("sbom_action.artifacts.httpx.AsyncClient", lambda *args, **kwargs: client)
    monkeypatch.setattr("sbom_action.artifacts.asyncio.sleep", AsyncMock())


def test_parse_backend_ids() -> None:
    assert parse_backend_ids(TOKEN) == ("run-backend", "job-backend")


def test_parse_backend_ids_rejects_bad_tokens() -> None:
    with pytest.raises(ArtifactError):
        parse_backend_ids("not-a-token")
    with pytest.raises(ArtifactError, match="does not grant access"):
        parse_backend_ids(_token("Actions.Other"))


def test_zip_and_extract(tmp_path: Path) -> None:
    source = tmp_path / "repo-build.spdx.json"
    source.write_text("{}", encoding="utf-8")

    path = extract_artifact(zip_single_file(source), "repo-build.spdx.json", tmp_path / "out")

    assert path.name == "repo-build.spdx.json"
    assert path.read_text(encoding="utf-8") == "{}"


def test_extract_prefers_file_named_like_artifact(tmp_path: Path) -> None:
    data = _zip({"a.txt": "a", "sbom.json": "s"})
    assert extract_artifact(data, "sbom.json", tmp_path).name == "sbom.json"
    assert extract_artifact(data, "other", tmp_path / "2").name == "a.txt"


def test_extract_rejects_path_traversal(tmp_path: Path) -> None:
    with pytest.raises(ArtifactError, match="unsafe path"):
        extract_artifact(_zip({"../evil.txt": "x"}), "evil.txt", tmp_path / "out")


def test_extract_rejects_invalid_archive(tmp_path: Path) -> None:
    with pytest.raises(ArtifactError, match="not a valid archive"):
        extract_artifact(b"plain text", "x", tmp_path)


@pytest.mark.anyio
async def test_missing_runtime_token_raises() -> None:
    store = GitHubArtifactStore(DummyClient(), "", "")
    with pytest.raises(ArtifactError, match="ACTIONS_RUNTIME_TOKEN"):
        await store.list_current_run_artifacts()


@pytest.mark.anyio
async def test_list_current_run_artifacts(monkeypatch: pytest.MonkeyPatch) -> None:
    http = DummyAsyncClient(
        responses=[
            DummyResponse(
                200,
                {"artifacts": [{"name": "a.spdx.json", "database_id": "12", "size": "40"}]},
            )
        ]
    )
    _patch_http(monkeypatch, http)

    artifacts = await _store().list_current_run_artifacts()

    assert artifacts == [ArtifactRef(name="a.spdx.json", id=12, size=40)]
    request = http.requests[0]
    assert request["url"].endswith("/twirp/github.actions.results.api.v1.ArtifactService/ListArtifacts")
    assert request["json"] == {
        "workflow_run_backend_id": "run-backend",
        "workflow_job_run_backend_id": "job-backend",
    }
    assert request["headers"]["Authorization"] == f"Bearer {TOKEN}"


@pytest.mark.anyio
async def test_upload_creates_uploads_and_finalizes(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    file = tmp_path / "a.spdx.json"
    file.write_text("{}", encoding="utf-8")
    http = DummyAsyncClient(
        responses=[
            DummyResponse(200, {"ok": True, "signed_upload_url": "https://blob.example.test/a"}),
            DummyResponse(201),
            DummyResponse(200, {"ok": True, "artifact_id": "77"}),
        ]
    )
    _patch_http(monkeypatch, http)

    ref = await _store().upload("a.spdx.json", file, retention_days=5)

    assert ref.id == 77
    create, put, finalize = http.requests
    assert create["json"]["name"] == "a.spdx.json"
    assert create["json"]["version"] == 4
    assert create["json"]["expires_at"].endswith("Z")
    assert put["headers"]["x-ms-blob-type"] == "BlockBlob"
    assert finalize["json"]["hash"].startswith("sha256:")
    assert finalize["json"]["size"] == str(len(put["content"]))


@pytest.mark.anyio
async def test_upload_retries_server_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    file = tmp_path / "a.spdx.json"
    file.write_text("{}", encoding="utf-8")
    http = DummyAsyncClient(
        responses=[DummyResponse(503), DummyResponse(503), DummyResponse(503)]
    )
    _patch_http(monkeypatch, http)

    with pytest.raises(ArtifactError, match="CreateArtifact failed: HTTP 503"):
        await _store().upload("a.spdx.json", file)
    assert len(http.requests) == 3


@pytest.mark.anyio
async def test_client_errors_are_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    http = DummyAsyncClient(responses=[DummyResponse(401)])
    _patch_http(monkeypatch, http)

    with pytest.raises(ArtifactError, match="HTTP 401"):
        await _store().list_current_run_artifacts()
    assert len(http.requests) == 1


@pytest.mark.anyio
async def test_transport_errors_are_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    http = DummyAsyncClient(
        responses=[DummyResponse(200, {"artifacts": []})],
        exceptions=[httpx.ConnectError("refused")],
    )
    _patch_http(monkeypatch, http)

    assert await _store().list_current_run_artifacts() == []
    assert len(http.requests) == 2


@pytest.mark.anyio
async def test_download_current_run_artifact(monkeypatch: pytest.MonkeyPatch) -> None:
    http = DummyAsyncClient(
        responses=[
            DummyResponse(200, {"signed_url": "https://blob.example.test/a"}),
            DummyResponse(200, content=_zip({"a.spdx.json": "current"})),
        ]
    )
    _patch_http(monkeypatch, http)

    path = await _store().download(ArtifactRef(name="a.spdx.json"))

    assert path.read_text(encoding="utf-8") == "current"
    assert http.requests[1] == {"method": "get", "url": "https://blob.example.test/a"}


@pytest.mark.anyio
async def test_download_prior_run_artifact_uses_rest() -> None:
    client = DummyClient(archives={5: _zip({"a.spdx.json": "prior"})})
    store = _store(client)

    refs = await store.list_run_artifacts(31)
    path = await store.download(refs[0])

    assert refs[0].run_id == 31
    assert path.read_text(encoding="utf-8") == "prior"


@pytest.mark.anyio
async def test_downloads_share_one_work_dir(tmp_path: Path) -> None:
    client = DummyClient(archives={5: _zip({"a.spdx.json": "prior"})})
    store = GitHubArtifactStore(client, TOKEN, "https://results.example.test", work_dir=tmp_path)
    ref = ArtifactRef(name="a.spdx.json", id=5, run_id=31)

    first = await store.download(ref)
    second = await store.download(ref)

    assert first.parent != second.parent
    assert first.parent.parent == tmp_path.resolve()
    assert second.parent.parent == tmp_path.resolve()


@pytest.mark.anyio
async def test_work_dir_is_created_once(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RUNNER_TEMP", str(tmp_path))
    client = DummyClient(archives={5: _zip({"a.spdx.json": "prior"})})
    store = _store(client)
    ref = ArtifactRef(name="a.spdx.json", id=5, run_id=31)

    first = await store.download(ref)
    second = await store.download(ref)

    assert store.work_dir is not None
    assert first.parent.parent == second.parent.parent == store.work_dir.resolve()
    assert [p.name for p in tmp_path.iterdir()] == [store.work_dir.name]
