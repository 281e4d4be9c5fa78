from __future__ import annotations

from typing import Optional

from .constants import DEFAULT_RELEASE_REF_PREFIX
from .context import RunContext
from .errors import SbomActionError
from .github import GitHubClient
from .logging import ActionLogger
from .models import LookupResult, Release


def extract_tag(ref: str, prefix: str = DEFAULT_RELEASE_REF_PREFIX) -> Optional[str]:
    """Tag name for a ref under ``prefix``, e.g. refs/tags/v1.2 -> v1.2."""
    if not ref or not ref.startswith(prefix):
        return None
    return ref[len(prefix):] or None


def find_release_by_tag(client: GitHubClient, tag: str) -> LookupResult[Release]:
    """
    Find the release for ``tag``, published or draft.

    The by-tag endpoint never returns drafts, so a miss falls through to a
    scan of all releases for a draft with the same tag.
    """
    published_error: Optional[str] = None
    try:
        release = client.get_release_by_tag(tag)
        if release is not None:
            return LookupResult(value=release)
    except (SbomActionError, OSError, ValueError) as exc:
        published_error = str(exc)

    try:
        releases = client.list_releases()
    except (SbomActionError, OSError, ValueError) as exc:
        return LookupResult(error="api_error", detail=str(exc))

    for release in releases:
        if release.draft and release.tag_name == tag:
            return LookupResult(value=release)

    if published_error:
        return LookupResult(error="api_error", detail=published_error)
    return LookupResult(error="not_found", detail=f"No release for tag {tag}")


def locate_release(
    ctx: RunContext,
    client: GitHubClient,
    *,
    ref_prefix: str = DEFAULT_RELEASE_REF_PREFIX,
    logger: Optional[ActionLogger] = None,
) -> Optional[Release]:
    """Release for the triggering event, or None when there is nothing to publish to."""
    if ctx.event_name == "release":
        payload = ctx.release_payload
        if not payload:
            return None
        release = Release.from_api(payload)
        if logger:
            logger.debug("Got release event", release_id=release.id, tag=release.tag_name)
        return release

    if ctx.event_name != "push":
        return None

    tag = extract_tag(ctx.ref, ref_prefix)
    if not tag:
        return None

    if logger:
        logger.debug(f"Getting release by tag: {tag}")
    result = find_release_by_tag(client, tag)
    if result.error == "api_error" and logger:
        logger.warning("Release lookup failed", tag=tag, error=result.detail)
    elif result.error == "not_found" and logger:
        logger.debug(result.detail)
    return result.value
