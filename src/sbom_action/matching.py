from __future__ import annotations

import re
from typing import Iterable, List, Optional

from .logging import ActionLogger
from .models import ArtifactRef


def artifact_pattern(override: Optional[str], artifact_name: str) -> re.Pattern[str]:
    """The configured match pattern, else one matching exactly this job's artifact."""
    if override:
        return re.compile(override)
    return re.compile(f"^{re.escape(artifact_name)}$")


def filter_artifacts(
    artifacts: Iterable[ArtifactRef],
    pattern: re.Pattern[str],
    logger: Optional[ActionLogger] = None,
) -> List[ArtifactRef]:
    matched: List[ArtifactRef] = []
    for artifact in artifacts:
        if pattern.search(artifact.name):
            if logger:
                logger.debug(f"Found artifact: {artifact.name}")
            matched.append(artifact)
        elif logger:
            logger.debug(f"Artifact: {artifact.name} not matching {pattern.pattern}")
    return matched
