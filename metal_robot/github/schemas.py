"""
GitHub Webhook / API response schemas（Pydantic）。

说明：
- 字段只覆盖 action 需要的子集，其余字段忽略
- webhook event 的 class 本身就是 handler registry 的 key
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class GitHubUser(BaseModel):
    login: str


class GitHubOrganization(BaseModel):
    login: str


class GitHubRepository(BaseModel):
    name: str
    full_name: str = ""
    html_url: str = ""
    clone_url: str = ""
    private: bool = False
    fork: bool = False
    owner: GitHubUser | None = None


class GitHubPullRequestHead(BaseModel):
    ref: str
    sha: str = ""
    repo: GitHubRepository | None = None


class GitHubPullRequestBase(BaseModel):
    ref: str


class GitHubPullRequest(BaseModel):
    id: int = 0
    node_id: str = ""
    number: int
    title: str = ""
    body: str | None = None
    state: str = "open"
    html_url: str = ""
    merged: bool | None = None
    draft: bool = False
    user: GitHubUser | None = None
    head: GitHubPullRequestHead
    base: GitHubPullRequestBase


class GitHubRelease(BaseModel):
    id: int = 0
    tag_name: str
    name: str | None = None
    body: str | None = None
    draft: bool = False
    prerelease: bool = False
    html_url: str = ""


class GitHubIssuePullRequestLinks(BaseModel):
    url: str = ""
    html_url: str = ""


class GitHubIssue(BaseModel):
    number: int
    node_id: str = ""
    title: str = ""
    html_url: str = ""
    pull_request: GitHubIssuePullRequestLinks | None = None


class GitHubIssueComment(BaseModel):
    id: int
    body: str = ""
    user: GitHubUser | None = None
    created_at: datetime | None = None


class GitHubTeam(BaseModel):
    id: int
    slug: str
    name: str


class GitHubPermissionLevel(BaseModel):
    permission: str


# --- webhook events ---


class GitHubEvent(BaseModel):
    """所有 webhook event 的公共字段（用于日志上下文）。"""

    action: str | None = None
    sender: GitHubUser | None = None
    organization: GitHubOrganization | None = None
    repository: GitHubRepository | None = None


class GitHubReleaseEvent(GitHubEvent):
    action: str
    release: GitHubRelease
    repository: GitHubRepository


class GitHubPushEvent(GitHubEvent):
    ref: str
    created: bool = False
    deleted: bool = False
    repository: GitHubRepository


class GitHubPullRequestEvent(GitHubEvent):
    action: str
    number: int
    pull_request: GitHubPullRequest
    repository: GitHubRepository


class GitHubIssuesEvent(GitHubEvent):
    action: str
    issue: GitHubIssue
    repository: GitHubRepository


class GitHubIssueCommentEvent(GitHubEvent):
    action: str
    issue: GitHubIssue
    comment: GitHubIssueComment
    repository: GitHubRepository


class GitHubRepositoryEvent(GitHubEvent):
    action: str
    repository: GitHubRepository


class GitHubProjectsV2Item(BaseModel):
    id: int = 0
    node_id: str = ""
    project_node_id: str
    content_node_id: str
    content_type: str = ""


class GitHubFieldValueChange(BaseModel):
    field_node_id: str = ""
    field_type: str = ""
    field_name: str = ""
    from_: Any = Field(default=None, alias="from")
    to: Any = None


class GitHubProjectsV2ItemChanges(BaseModel):
    field_value: GitHubFieldValueChange | None = None


class GitHubProjectsV2ItemEvent(GitHubEvent):
    action: str
    projects_v2_item: GitHubProjectsV2Item
    changes: GitHubProjectsV2ItemChanges | None = None


# X-GitHub-Event header -> event class
GITHUB_EVENT_TYPES: dict[str, type[GitHubEvent]] = {
    "release": GitHubReleaseEvent,
    "push": GitHubPushEvent,
    "pull_request": GitHubPullRequestEvent,
    "issues": GitHubIssuesEvent,
    "issue_comment": GitHubIssueCommentEvent,
    "repository": GitHubRepositoryEvent,
    "projects_v2_item": GitHubProjectsV2ItemEvent,
}
