from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Sequence

from ..models import ReconcileOutcome, Release


def write_step_summary(
    artifact_name: str,
    fmt: str,
    version: str,
    *,
    duration_ms: Optional[int] = None,
    uploaded: bool = False,
    base_sbom: Optional[Path] = None,
    release: Optional[Release] = None,
    outcomes: Sequence[ReconcileOutcome] = (),
) -> None:
    """
    Write GitHub Actions Step Summary.

    This appears in the job summary, providing quick visibility
    without clicking into logs.
    """
    summary_path = os.environ.get("GITHUB_STEP_SUMMARY")
    if not summary_path:
        return

    md = [
        f"## 📦 SBOM: `{artifact_name}`",
        "",
        "| | |",
        "|---|---|",
        f"| Format | `{fmt}` |",
    ]
    if duration_ms is not None:
        md.append(f"| Scan time | {duration_ms / 1000:.1f}s |")
    md.append(f"| Workflow artifact | {'uploaded' if uploaded else 'not uploaded'} |")
    if base_sbom is not None:
        md.append(f"| Base branch SBOM | `{base_sbom.name}` |")
    md.append("")

    if release is not None:
        md.append(f"### Release `{release.tag_name}`")
        md.append("")
        if not outcomes:
            md.append("No matching SBOM artifacts were found.")
        for outcome in outcomes:
            if outcome.status == "uploaded":
                action = "replaced" if outcome.replaced else "added"
                md.append(f"- ✅ `{outcome.asset_name}` {action}")
            else:
                md.append(f"- ❌ `{outcome.artifact_name}`: {outcome.error}")
        md.append("")

    md.append(f"<sub>sbom-action v{version}</sub>")
    md.append("")

    with open(summary_path, "a", encoding="utf-8") as summary_file:
        summary_file.write("\n".join(md))
