from __future__ import annotations

from fakes import FakeGitHub, make_context
from sbom_action.models import Release
from sbom_action.releases import extract_tag, find_release_by_tag, locate_release


def test_release_event_uses_payload_without_lookup() -> None:
    client = FakeGitHub()
    ctx = make_context(
        event_name="release",
        ref="refs/tags/v3.5.6",
        payload={"release": {"id": 4095345, "tag_name": "v3.5.6", "target_commitish": "main"}},
    )

    release = locate_release(ctx, client)

    assert release is not None
    assert release.id == 4095345
    assert release.target_commitish == "main"
    assert client.calls == []


def test_tag_push_finds_published_release() -> None:
    published = Release(id=1, tag_name="v34.8451")
    client = FakeGitHub(releases=[published])
    ctx = make_context(event_name="push", ref="refs/tags/v34.8451")

    assert locate_release(ctx, client) == published
    assert "list_releases" not in client.calls


def test_tag_push_falls_back_to_draft_release() -> None:
    client = FakeGitHub(
        releases=[
            Release(id=1, tag_name="v1.0.0"),
            Release(id=2, tag_name="v34.8451", draft=True),
        ]
    )
    ctx = make_context(event_name="push", ref="refs/tags/v34.8451")

    release = locate_release(ctx, client)

    assert release is not None
    assert release.id == 2
    assert client.calls == ["get_release_by_tag:v34.8451", "list_releases"]


def test_draft_with_other_tag_is_ignored() -> None:
    client = FakeGitHub(releases=[Release(id=2, tag_name="v2", draft=True)])
    ctx = make_context(event_name="push", ref="refs/tags/v1")
    assert locate_release(ctx, client) is None


def test_branch_push_and_pull_request_have_no_release() -> None:
    client = FakeGitHub(releases=[Release(id=1, tag_name="main")])
    assert locate_release(make_context(event_name="push", ref="refs/heads/main"), client) is None
    assert locate_release(make_context(event_name="pull_request"), client) is None
    assert client.calls == []


def test_custom_ref_prefix_extracts_tag() -> None:
    assert extract_tag("refs/heads/release/v2", "refs/heads/release/") == "v2"
    assert extract_tag("refs/heads/main", "refs/heads/release/") is None
    assert extract_tag("refs/tags/", "refs/tags/") is None

    client = FakeGitHub(releases=[Release(id=7, tag_name="v2")])
    ctx = make_context(event_name="push", ref="refs/heads/release/v2")
    release = locate_release(ctx, client, ref_prefix="refs/heads/release/")
    assert release is not None
    assert release.id == 7


def test_lookup_distinguishes_not_found_from_api_error() -> None:
    client = FakeGitHub()
    result = find_release_by_tag(client, "v9")
    assert result.found is False
    assert result.error == "not_found"

    client.fail_list_releases = True
    result = find_release_by_tag(client, "v9")
    assert result.error == "api_error"


def test_lookup_failure_is_treated_as_no_release() -> None:
    client = FakeGitHub()
    client.fail_by_tag = True
    client.fail_list_releases = True
    ctx = make_context(event_name="push", ref="refs/tags/v1")

    assert locate_release(ctx, client) is None


def test_by_tag_error_still_finds_draft() -> None:
    client = FakeGitHub(releases=[Release(id=3, tag_name="v1", draft=True)])
    client.fail_by_tag = True
    result = find_release_by_tag(client, "v1")
    assert result.value is not None
    assert result.value.id == 3
