from __future__ import annotations

import pytest

from fakes import FakeGitHubClient
from fakes import make_comment
from fakes import make_logger
from fakes import make_pull_request
from metal_robot.actions.release_drafter import AppendMergedPullRequest
from metal_robot.actions.release_drafter import MergedPullRequestParams
from metal_robot.actions.release_drafter import ReleaseDrafter
from metal_robot.actions.release_drafter import ReleaseDraftParams
from metal_robot.github.schemas import GitHubRelease
from metal_robot.handlers.errors import SkipError

ARGS = {
    "repository": "releases",
    "repos": ["metal-api", "metalctl"],
}

DRAFT_BODY = """# General
## metal-api v0.15.0
* Initial import (metal-stack/metal-api#1)
# Merged Pull Requests
* Add docs (metal-stack/docs#41) @bob"""


def with_draft(github: FakeGitHubClient, body: str = DRAFT_BODY) -> GitHubRelease:
    draft = GitHubRelease(id=9, tag_name="v0.3.0", name="v0.3.0", body=body, draft=True)
    github.releases["releases"] = [draft]
    return draft


def fix_typo() -> MergedPullRequestParams:
    return MergedPullRequestParams(repository_name="docs", title="Fix typo", number=42, author="alice", body=None)


@pytest.mark.anyio
async def test_merged_pull_request_is_appended_once(github: FakeGitHubClient) -> None:
    with_draft(github)
    handler = AppendMergedPullRequest(ReleaseDrafter.from_args(github, ARGS))

    await handler.handle(make_logger(), fix_typo())
    await handler.handle(make_logger(), fix_typo())

    assert len(github.edited_releases) == 1
    release_id, body = github.edited_releases[0]
    assert release_id == 9
    assert body.endswith("* Add docs (metal-stack/docs#41) @bob\n* Fix typo (metal-stack/docs#42) @alice")
    assert body.count("Fix typo") == 1


@pytest.mark.anyio
async def test_merged_pull_request_creates_section_and_draft(github: FakeGitHubClient) -> None:
    args = dict(ARGS, **{"merged-prs-section-description": "Contributions of this release:"})
    handler = AppendMergedPullRequest(ReleaseDrafter.from_args(github, args))

    await handler.handle(make_logger(), fix_typo())

    assert len(github.created_releases) == 1
    release = github.created_releases[0]
    assert release.tag_name == "v0.0.1"
    assert release.draft
    assert release.body == (
        "# Merged Pull Requests\nContributions of this release:\n* Fix typo (metal-stack/docs#42) @alice"
    )


@pytest.mark.anyio
async def test_merged_pull_request_in_vector_repo_only_collects_code_blocks(github: FakeGitHubClient) -> None:
    with_draft(github)
    handler = AppendMergedPullRequest(ReleaseDrafter.from_args(github, ARGS))
    body = "Changes\n```BREAKING_CHANGE\nRemoved the v1 endpoints\n```"

    await handler.handle(
        make_logger(),
        MergedPullRequestParams(repository_name="metal-api", title="Drop v1", number=7, author="bob", body=body),
    )

    _, updated = github.edited_releases[0]
    assert updated.startswith("# Breaking Changes\n* Removed the v1 endpoints (metal-stack/metal-api#7)\n# General")
    assert "Drop v1" not in updated

    with pytest.raises(SkipError):
        await handler.handle(
            make_logger(),
            MergedPullRequestParams(repository_name="metal-api", title="Chore", number=8, author="bob", body="nothing"),
        )


@pytest.mark.anyio
async def test_component_release_updates_its_section(github: FakeGitHubClient) -> None:
    with_draft(github)
    drafter = ReleaseDrafter.from_args(github, ARGS)
    notes = "## Changes\n* Fix machine allocation (#42)\nsome prose\n- Faster IPAM <!-- internal -->"

    await drafter.handle(
        make_logger(),
        ReleaseDraftParams(
            repository_name="metal-api",
            tag_name="v0.15.1",
            component_release_info=notes,
            release_url="https://github.com/metal-stack/metal-api/releases/tag/v0.15.1",
        ),
    )

    _, body = github.edited_releases[0]
    assert "## metal-api v0.15.1\n" in body
    assert "## metal-api v0.15.0" not in body
    assert "* Fix machine allocation (metal-stack/metal-api#42)" in body
    assert "- Faster IPAM" in body
    assert "some prose" not in body


@pytest.mark.anyio
async def test_component_release_adds_new_section_under_headline(github: FakeGitHubClient) -> None:
    with_draft(github)
    drafter = ReleaseDrafter.from_args(github, ARGS)

    await drafter.handle(
        make_logger(),
        ReleaseDraftParams(repository_name="metalctl", tag_name="v0.8.1", component_release_info=None, release_url=""),
    )

    _, body = github.edited_releases[0]
    assert body.startswith("# General\n## metal-api v0.15.0\n* Initial import (metal-stack/metal-api#1)\n## metalctl v0.8.1\n#")


@pytest.mark.anyio
async def test_older_component_release_is_ignored(github: FakeGitHubClient) -> None:
    with_draft(github)
    drafter = ReleaseDrafter.from_args(github, ARGS)

    await drafter.handle(
        make_logger(),
        ReleaseDraftParams(repository_name="metal-api", tag_name="v0.14.0", component_release_info="* old", release_url=""),
    )

    assert github.edited_releases == []


@pytest.mark.anyio
async def test_new_draft_tag_is_guessed_from_latest_release(github: FakeGitHubClient) -> None:
    github.latest_releases["releases"] = GitHubRelease(id=1, tag_name="v0.2.4")
    drafter = ReleaseDrafter.from_args(github, dict(ARGS, **{"title-template": "Release %s"}))

    await drafter.handle(
        make_logger(),
        ReleaseDraftParams(repository_name="metalctl", tag_name="v0.8.1", component_release_info=None, release_url=""),
    )

    release = github.created_releases[0]
    assert release.tag_name == "v0.3.0"
    assert release.name == "Release v0.3.0"
    assert release.body == "# General\n## metalctl v0.8.1"


@pytest.mark.anyio
async def test_foreign_release_contributes_code_blocks_only(github: FakeGitHubClient) -> None:
    with_draft(github)
    drafter = ReleaseDrafter.from_args(github, ARGS)
    notes = "```ACTIONS_REQUIRED\nMigrate the database\n```\n```NOTEWORTHY\nNew dashboard\n```"

    await drafter.handle(
        make_logger(),
        ReleaseDraftParams(
            repository_name="metal-console",
            tag_name="v1.0.0",
            component_release_info=notes,
            release_url="https://example.com/r",
        ),
    )

    _, body = github.edited_releases[0]
    assert body.startswith(
        "# Required Actions\n* Migrate the database ([release notes](https://example.com/r))\n"
        "# Noteworthy\n* New dashboard ([release notes](https://example.com/r))\n# General"
    )
    assert "metal-console v1.0.0" not in body


@pytest.mark.anyio
async def test_foreign_release_without_notes_is_skipped(github: FakeGitHubClient) -> None:
    drafter = ReleaseDrafter.from_args(github, ARGS)

    with pytest.raises(SkipError):
        await drafter.handle(
            make_logger(),
            ReleaseDraftParams(repository_name="metal-console", tag_name="v1.0.0", component_release_info=None, release_url=""),
        )


@pytest.mark.anyio
async def test_frozen_release_leaves_draft_untouched(github: FakeGitHubClient) -> None:
    with_draft(github)
    github.pull_requests["releases"] = [make_pull_request(3, "develop", "master")]
    github.comments[("releases", 3)] = [make_comment(1, "/freeze")]
    drafter = ReleaseDrafter.from_args(github, ARGS)

    await drafter.handle(
        make_logger(),
        ReleaseDraftParams(repository_name="metalctl", tag_name="v0.8.1", component_release_info=None, release_url=""),
    )

    assert github.edited_releases == []
    assert github.created_releases == []


def test_duplicate_repos_are_rejected(github: FakeGitHubClient) -> None:
    with pytest.raises(ValueError):
        ReleaseDrafter.from_args(github, {"repository": "releases", "repos": ["metalctl", "metalctl"]})
