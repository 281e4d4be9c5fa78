from __future__ import annotations

import pytest

from fakes import make_context
from sbom_action.naming import (
    format_extension,
    image_artifact_stem,
    normalize_step_name,
    resolve_artifact_name,
)


def test_explicit_name_is_returned_verbatim() -> None:
    ctx = make_context()
    assert resolve_artifact_name(ctx, "my sbom.json", "org/img", "cyclonedx") == "my sbom.json"


@pytest.mark.parametrize(
    ("fmt", "extension"),
    [
        ("spdx", "spdx"),
        ("spdx-json", "spdx.json"),
        ("cyclonedx", "cyclonedx.xml"),
        ("cyclonedx-json", "cyclonedx.json"),
        ("json", "syft.json"),
        ("table", "table"),
    ],
)
def test_format_informs_extension(fmt: str, extension: str) -> None:
    assert format_extension(fmt) == extension
    assert resolve_artifact_name(make_context(), None, "img", fmt) == f"img.{extension}"


def test_default_format_is_spdx_json() -> None:
    assert format_extension(None) == "spdx.json"


def test_image_name_strips_registry_and_encodes_tag() -> None:
    ctx = make_context()
    assert (
        resolve_artifact_name(ctx, None, "ghcr.io/org/app:1.2.3-dev", "spdx-json")
        == "org-app_1_2_3-dev.spdx.json"
    )


def test_image_with_two_segments_keeps_both() -> None:
    assert image_artifact_stem("something-something/image-image") == "something-something-image-image"
    assert (
        image_artifact_stem("ghcr.io/something-something/image-image")
        == "something-something-image-image"
    )


def test_image_digest_is_sanitized() -> None:
    assert image_artifact_stem("alpine@sha256:abc") == "alpine_sha256_abc"


@pytest.mark.parametrize(
    ("action", "expected"),
    [
        ("__anchore_sbom-action", ""),
        ("__self", ""),
        ("__self_2", "-2"),
        ("__anchore_sbom-action_2", "-2"),
        ("generate-sbom", "-generate-sbom"),
        ("", ""),
    ],
)
def test_step_name_normalization(action: str, expected: str) -> None:
    assert normalize_step_name(action) == expected


def test_job_based_name() -> None:
    ctx = make_context(job="build", action="__anchore_sbom-action")
    assert resolve_artifact_name(ctx, None, None, "spdx-json") == "repo-build.spdx.json"

    ctx = make_context(job="build", action="sbom")
    assert resolve_artifact_name(ctx, "", "", "cyclonedx-json") == "repo-build-sbom.cyclonedx.json"


def test_name_is_deterministic() -> None:
    first = resolve_artifact_name(make_context(), None, "ghcr.io/org/app:1", "spdx")
    second = resolve_artifact_name(make_context(), None, "ghcr.io/org/app:1", "spdx")
    assert first == second
