from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def parse_iso8601(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_workspace_relative(path: Path) -> str:
    """Prefer workspace-relative paths so later workflow steps can use them."""
    workspace = os.environ.get("GITHUB_WORKSPACE")
    if workspace:
        try:
            rel = path.relative_to(Path(workspace))
            return str(rel).replace("\\", "/")
        except ValueError:
            pass
    return str(path).replace("\\", "/")
