"""docs-preview-comment：docs 仓库新开 PR 时贴一条预览链接评论。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import Field

from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.github.client import GitHubClient
from metal_robot.handlers.errors import SkipError
from metal_robot.infra.log import ContextLogger


class DocsPreviewCommentConfig(ConfigModel):
    repository: str = "docs"
    comment_tpl: str = Field(default="#%d", alias="comment-tpl")


@dataclass(frozen=True)
class DocsPreviewCommentParams:
    repository_name: str
    pull_request_number: int


class DocsPreviewComment:
    def __init__(self, client: GitHubClient, config: DocsPreviewCommentConfig) -> None:
        self._client = client
        self._config = config

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> DocsPreviewComment:
        return cls(client, validate_args(DocsPreviewCommentConfig, args, "docs-preview-comment"))

    async def handle(self, log: ContextLogger, params: DocsPreviewCommentParams) -> None:
        if params.repository_name != self._config.repository:
            raise SkipError.because(f"docs previews are only posted for repository {self._config.repository}")

        body = self._config.comment_tpl % params.pull_request_number
        await self._client.create_issue_comment(self._config.repository, params.pull_request_number, body)
        log.info(f"posted docs preview comment on pull request #{params.pull_request_number}")
