"""Deterministic artifact naming.

The producing job and a later publishing job compute the artifact name
independently, so everything here is a pure function of the run context and
action inputs.
"""

from __future__ import annotations

import re
from typing import Optional

from .constants import DEFAULT_FORMAT, FORMAT_EXTENSIONS
from .context import RunContext

# Steps without an id get names like __self, __self_2, __anchore_sbom-action
# and __anchore_sbom-action_2. Only the first marker is removed so a trailing
# counter survives.
_AUTO_STEP_MARKER = re.compile(r"__[-_a-z]+")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9-]")


def format_extension(fmt: Optional[str]) -> str:
    fmt = fmt or DEFAULT_FORMAT
    return FORMAT_EXTENSIONS.get(fmt, fmt)


def image_artifact_stem(image: str) -> str:
    """
    Turn an image reference into a file-name-safe stem.

    ghcr.io/org/app:1.2.3-dev -> org-app_1_2_3-dev
    """
    parts = image.split("/")
    # more than two segments means the first one is a registry host
    if len(parts) > 2:
        parts = parts[1:]
    return _UNSAFE_CHARS.sub("_", "-".join(parts))


def normalize_step_name(action: str) -> str:
    step = _AUTO_STEP_MARKER.sub("", action or "", count=1)
    if step:
        return f"-{step}"
    return ""


def resolve_artifact_name(
    ctx: RunContext,
    artifact_name: Optional[str] = None,
    image: Optional[str] = None,
    fmt: Optional[str] = None,
) -> str:
    """Return the explicit artifact name, or derive one from the image or job."""
    if artifact_name:
        return artifact_name

    extension = format_extension(fmt)

    if image:
        return f"{image_artifact_stem(image)}.{extension}"

    step = normalize_step_name(ctx.action)
    return f"{ctx.repo_name}-{ctx.job}{step}.{extension}"
