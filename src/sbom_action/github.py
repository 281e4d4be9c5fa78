from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .errors import GitHubApiError, ReleaseAssetError
from .logging import ActionLogger
from .models import ArtifactRef, Release, ReleaseAsset, WorkflowRun

GITHUB_API = os.environ.get("GITHUB_API_URL", "https://api.github.com")
GITHUB_UPLOADS = "https://uploads.github.com"
DEFAULT_HTTP_TIMEOUT_SECONDS = float(os.environ.get("SBOM_ACTION_HTTP_TIMEOUT_SECONDS", "30"))
PER_PAGE = 100


@dataclass(frozen=True)
class RetryPolicy:
    """How the client reacts to GitHub rate limiting."""

    max_attempts: int = 2
    backoff_seconds: float = 1.0
    max_wait_seconds: float = 60.0

    def wait_for(self, response: requests.Response, attempt: int) -> Optional[float]:
        """Seconds to wait before retrying ``response``, or None to give up."""
        if attempt >= self.max_attempts:
            return None
        if response.status_code not in (403, 429):
            return None
        headers = response.headers
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return min(float(retry_after), self.max_wait_seconds)
            except ValueError:
                return self.backoff_seconds
        if headers.get("x-ratelimit-remaining") == "0":
            reset = headers.get("x-ratelimit-reset")
            try:
                wait = float(reset) - time.time() if reset else self.backoff_seconds
            except ValueError:
                wait = self.backoff_seconds
            return min(max(wait, self.backoff_seconds), self.max_wait_seconds)
        if response.status_code == 429:
            return self.backoff_seconds * attempt
        return None


class GitHubClient:
    def __init__(
        self,
        token: str,
        repo: str,
        *,
        api_url: str = GITHUB_API,
        retry_policy: Optional[RetryPolicy] = None,
        logger: Optional[ActionLogger] = None,
    ):
        self.token = token
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "sbom-action",
        })

    def _url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.repo}{path}"

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", DEFAULT_HTTP_TIMEOUT_SECONDS)
        attempt = 1
        while True:
            response = self.session.request(method, url, **kwargs)
            wait = self.retry_policy.wait_for(response, attempt)
            if wait is None:
                return response
            if self.logger:
                self.logger.warning(
                    f"Request quota exhausted for request {method} {url}",
                    retry_after_seconds=wait,
                    attempt=attempt,
                )
            time.sleep(wait)
            attempt += 1

    @staticmethod
    def _check(response: requests.Response, what: str) -> None:
        if response.status_code >= 400:
            raise GitHubApiError(
                f"Unable to {what} (HTTP {response.status_code})",
                status_code=response.status_code,
            )

    def _paginate(self, path: str, what: str, key: Optional[str] = None) -> List[Dict[str, Any]]:
        """All items of a paged list endpoint. ``key`` names the list in wrapped responses."""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            r = self._request("GET", self._url(path), params={"per_page": PER_PAGE, "page": page})
            self._check(r, what)
            body = r.json()
            batch = (body.get(key) or []) if key else body
            items.extend(batch)
            if len(batch) < PER_PAGE:
                return items
            page += 1

    # --------------- RELEASES ------------------

    def get_release_by_tag(self, tag: str) -> Optional[Release]:
        """Published release for ``tag``. Drafts are never returned by this endpoint."""
        r = self._request("GET", self._url(f"/releases/tags/{tag}"))
        if r.status_code == 404:
            return None
        self._check(r, f"get release for tag {tag}")
        return Release.from_api(r.json())

    def list_releases(self) -> List[Release]:
        return [Release.from_api(item) for item in self._paginate("/releases", "list releases")]

    def list_release_assets(self, release: Release) -> List[ReleaseAsset]:
        items = self._paginate(f"/releases/{release.id}/assets", "list release assets")
        assets = [ReleaseAsset(id=int(a["id"]), name=str(a["name"])) for a in items]
        return sorted(assets, key=lambda a: a.name)

    def delete_release_asset(self, asset: ReleaseAsset) -> None:
        r = self._request("DELETE", self._url(f"/releases/assets/{asset.id}"))
        self._check(r, f"delete release asset {asset.name}")

    def upload_release_asset(
        self,
        release: Release,
        name: str,
        data: bytes,
        content_type: str,
    ) -> ReleaseAsset:
        # upload_url is a URI template: .../assets{?name,label}
        url = release.upload_url.split("{", 1)[0]
        if not url:
            url = f"{GITHUB_UPLOADS}/repos/{self.repo}/releases/{release.id}/assets"
        r = self._request(
            "POST",
            url,
            params={"name": name},
            data=data,
            headers={"Content-Type": content_type},
        )
        if r.status_code >= 400:
            raise ReleaseAssetError(
                f"Unable to upload release asset {name} (HTTP {r.status_code}): {r.text[:200]}"
            )
        body = r.json()
        return ReleaseAsset(id=int(body.get("id") or 0), name=str(body.get("name") or name))

    # --------------- WORKFLOW RUNS ------------------

    def list_workflow_runs(self, branch: str, status: str = "success") -> List[WorkflowRun]:
        r = self._request(
            "GET",
            self._url("/actions/runs"),
            params={"branch": branch, "status": status, "per_page": 20, "page": 1},
        )
        self._check(r, f"list workflow runs for branch {branch}")
        return [WorkflowRun.from_api(run) for run in r.json().get("workflow_runs", [])]

    def list_workflow_run_artifacts(self, run_id: int) -> List[ArtifactRef]:
        items = self._paginate(
            f"/actions/runs/{run_id}/artifacts",
            f"list artifacts for workflow run {run_id}",
            key="artifacts",
        )
        return [
            ArtifactRef(
                name=str(a.get("name") or ""),
                id=int(a["id"]),
                run_id=run_id,
                size=a.get("size_in_bytes"),
            )
            for a in items
            if not a.get("expired")
        ]

    def download_artifact_zip(self, artifact_id: int) -> bytes:
        # Redirects to blob storage; requests drops the auth header across hosts.
        r = self._request("GET", self._url(f"/actions/artifacts/{artifact_id}/zip"))
        self._check(r, f"download artifact {artifact_id}")
        return r.content

    # --------------- DEPENDENCY GRAPH ------------------

    def post_dependency_snapshot(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        r = self._request("POST", self._url("/dependency-graph/snapshots"), json=payload)
        self._check(r, "submit dependency snapshot")
        try:
            return r.json() or {}
        except ValueError:
            return {}
