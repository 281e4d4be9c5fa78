from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


def _load_event() -> Dict[str, Any]:
    event_path = os.environ.get("GITHUB_EVENT_PATH")
    if not event_path:
        return {}
    try:
        return json.loads(Path(event_path).read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _coerce_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class RunContext:
    """Immutable GitHub Actions run context, read once per invocation."""

    # Repository
    repo_owner: str
    repo_name: str
    repo_full_name: str  # "owner/name"

    # Event
    event_name: str  # push, pull_request, release, workflow_dispatch
    ref: str
    sha: str

    # Run
    job: str
    action: str  # step id, or an auto-generated "__owner_repo" style name
    run_id: Optional[int]
    run_attempt: Optional[int] = None
    workflow: str = ""

    server_url: str = "https://github.com"
    api_url: str = "https://api.github.com"

    payload: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_environment(cls) -> "RunContext":
        """Load context from GitHub Actions environment."""
        event = _load_event()

        repo_full_name = (
            os.environ.get("GITHUB_REPOSITORY")
            or (event.get("repository") or {}).get("full_name")
            or ""
        )
        if not repo_full_name or "/" not in repo_full_name:
            raise RuntimeError("Missing or invalid GITHUB_REPOSITORY")

        repo_owner, repo_name = repo_full_name.split("/", 1)

        event_name = os.environ.get("GITHUB_EVENT_NAME") or ""
        if not event_name:
            raise RuntimeError("Missing GITHUB_EVENT_NAME")

        return cls(
            repo_owner=repo_owner,
            repo_name=repo_name,
            repo_full_name=repo_full_name,
            event_name=event_name,
            ref=os.environ.get("GITHUB_REF", ""),
            sha=os.environ.get("GITHUB_SHA", ""),
            job=os.environ.get("GITHUB_JOB", ""),
            action=os.environ.get("GITHUB_ACTION", ""),
            run_id=_coerce_int(os.environ.get("GITHUB_RUN_ID")),
            run_attempt=_coerce_int(os.environ.get("GITHUB_RUN_ATTEMPT")),
            workflow=os.environ.get("GITHUB_WORKFLOW", ""),
            server_url=os.environ.get("GITHUB_SERVER_URL", "https://github.com"),
            api_url=os.environ.get("GITHUB_API_URL", "https://api.github.com"),
            payload=event,
        )

    @property
    def is_pull_request(self) -> bool:
        return self.event_name == "pull_request"

    @property
    def pr_base_ref(self) -> Optional[str]:
        pr = self.payload.get("pull_request") or {}
        return (pr.get("base") or {}).get("ref")

    @property
    def release_payload(self) -> Optional[Dict[str, Any]]:
        if self.event_name != "release":
            return None
        return self.payload.get("release") or None

    @property
    def workflow_run_url(self) -> Optional[str]:
        if self.run_id is None:
            return None
        return f"{self.server_url}/{self.repo_full_name}/actions/runs/{self.run_id}"
