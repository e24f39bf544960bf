"""
GitLab Webhook schemas（Pydantic）。

说明：
- 只处理 `Tag Push Hook`，字段只覆盖触发 aggregate-releases 所需的子集
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

TAG_PUSH_HOOK = "Tag Push Hook"


class GitLabProject(BaseModel):
    id: int
    name: str
    web_url: str = ""
    path_with_namespace: str = ""


class GitLabRepository(BaseModel):
    name: str
    homepage: str = ""
    git_http_url: str = ""


class GitLabTagPushEvent(BaseModel):
    """tag push 事件；删除 tag 时 `checkout_sha` 为 null。"""

    object_kind: Literal["tag_push"]
    ref: str
    before: str = ""
    after: str = ""
    checkout_sha: str | None = None
    user_username: str = ""
    project: GitLabProject
    repository: GitLabRepository

    @property
    def tag_name(self) -> str:
        return self.ref.removeprefix("refs/tags/")


# X-Gitlab-Event header -> event class
GITLAB_EVENT_TYPES: dict[str, type[BaseModel]] = {
    TAG_PUSH_HOOK: GitLabTagPushEvent,
}
