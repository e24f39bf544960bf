"""
issue-handling：执行 PR 评论里的 slash 命令。

只响应对仓库有 admin 权限的评论者；一条评论只执行第一个命令：
- `/ok-to-build`：把 fork PR 的 head 推到本仓库 `fork-build/<n>`，并开一个 draft PR 触发 CI
- `/tag <name>`：在 PR head 分支上打 lightweight tag
- `/bump-release <repo> [version]`：以该版本调用目标为本仓库的 aggregate-releases
- `/freeze`、`/unfreeze`：不做事，冻结状态由 aggregate 类 action 从评论历史里计算

命令执行成功后给评论加一个 rocket reaction。
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import Field

from metal_robot.actions.aggregate_releases import AggregateReleases
from metal_robot.actions.aggregate_releases import AggregateReleasesParams
from metal_robot.actions.common import COMMAND_BUMP_RELEASE
from metal_robot.actions.common import COMMAND_FREEZE
from metal_robot.actions.common import COMMAND_OK_TO_BUILD
from metal_robot.actions.common import COMMAND_TAG
from metal_robot.actions.common import COMMAND_UNFREEZE
from metal_robot.actions.common import ensure_pull_request
from metal_robot.actions.common import first_command
from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.git import repository as git
from metal_robot.github.client import GitHubClient
from metal_robot.handlers.errors import SkipError
from metal_robot.infra.log import ContextLogger

ADMIN_PERMISSION = "admin"
FORK_BUILD_BRANCH_PREFIX = "fork-build/"
COMMAND_REACTION = "rocket"


class IssueCommentsConfig(ConfigModel):
    repos: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class IssueCommentsParams:
    pull_request_number: int
    repository_name: str
    repository_url: str
    comment: str
    comment_id: int
    user: str


class IssueComments:
    def __init__(
        self,
        client: GitHubClient,
        config: IssueCommentsConfig,
        aggregate_handlers: Mapping[str, Sequence[AggregateReleases]] | None = None,
    ) -> None:
        self._client = client
        self._config = config
        # key：aggregate-releases 的目标仓库
        self._aggregate_handlers = aggregate_handlers if aggregate_handlers is not None else {}

    @classmethod
    def from_args(
        cls,
        client: GitHubClient,
        args: dict[str, Any],
        aggregate_handlers: Mapping[str, Sequence[AggregateReleases]] | None = None,
    ) -> IssueComments:
        return cls(client, validate_args(IssueCommentsConfig, args, "issue-handling"), aggregate_handlers)

    async def handle(self, log: ContextLogger, params: IssueCommentsParams) -> None:
        repos = self._config.repos
        if repos and params.repository_name not in repos:
            raise SkipError.because(f"repository {params.repository_name} is not configured for issue comment commands")

        command = first_command(params.comment)
        if command is None:
            raise SkipError.because("no comment command contained in issue comment")

        permission = await self._client.get_permission_level(params.repository_name, params.user)
        if permission != ADMIN_PERMISSION:
            raise SkipError.because(
                f"author {params.user!r} does not have admin permissions on this repo (but only {permission!r})"
            )

        name, args = command
        log = log.bind(command=name, pull_request=params.pull_request_number)
        log.info(f"running issue comment command with args {args}")

        if name == COMMAND_OK_TO_BUILD:
            await self.build_fork(log, params)
        elif name == COMMAND_TAG:
            await self.tag(log, params, args)
        elif name == COMMAND_BUMP_RELEASE:
            await self.bump_release(log, params, args)
        elif name in (COMMAND_FREEZE, COMMAND_UNFREEZE):
            raise SkipError.because(f"{name} is evaluated from the comment history by release actions")

        await self._client.add_issue_comment_reaction(params.repository_name, params.comment_id, COMMAND_REACTION)

    async def build_fork(self, log: ContextLogger, params: IssueCommentsParams) -> None:
        pull = await self._client.get_pull_request(params.repository_name, params.pull_request_number)
        head_repo = pull.head.repo
        if head_repo is None or not head_repo.fork:
            raise SkipError.because("pull request is not from a fork")

        number = pull.number
        branch = f"{FORK_BUILD_BRANCH_PREFIX}{number}"
        token = await self._client.git_token()

        sha = await git.push_to_remote(
            head_repo.clone_url,
            pull.head.ref,
            git.inject_token(params.repository_url, token),
            branch,
        )
        log.info(f"pushed fork head {pull.head.ref} ({sha}) to branch {branch}")

        await ensure_pull_request(
            self._client,
            log,
            params.repository_name,
            title=f"Fork build for #{number}",
            head=branch,
            base=pull.base.ref,
            body=f"Fork build for #{number} triggered by @{params.user}",
            draft=True,
        )

    async def tag(self, log: ContextLogger, params: IssueCommentsParams, args: list[str]) -> None:
        if not args:
            raise ValueError("no tag name given")
        tag = args[0]

        pull = await self._client.get_pull_request(params.repository_name, params.pull_request_number)
        token = await self._client.git_token()

        sha = await git.create_tag(git.inject_token(params.repository_url, token), pull.head.ref, tag)
        log.info(f"pushed tag {tag} at {pull.head.ref} ({sha})")

    async def bump_release(self, log: ContextLogger, params: IssueCommentsParams, args: list[str]) -> None:
        if not args:
            raise ValueError("no repository name given")

        handlers = self._aggregate_handlers.get(params.repository_name)
        if not handlers:
            raise ValueError(f"no aggregate release handlers configured for {params.repository_name}")

        repo_name = args[0]
        repo = await self._client.get_repository(repo_name)

        if len(args) > 1:
            version = args[1]
        else:
            latest = await self._client.get_latest_release(repo_name)
            if latest is None:
                raise ValueError(f"repository {repo_name} has no release to bump to")
            version = latest.tag_name

        aggregate_params = AggregateReleasesParams(
            repository_name=repo_name,
            repository_url=repo.html_url,
            tag_name=version,
            sender=params.user,
        )

        errors: list[str] = []
        for handler in handlers:
            log.info(f"calling aggregate releases handler for {repo_name} {version}")
            try:
                await handler.handle(log, aggregate_params)
            except SkipError as exc:
                log.debug(f"aggregate releases handler skipped: {exc}")
            except Exception as exc:
                log.error(f"aggregate releases handler failed: {exc!r}")
                errors.append(str(exc))

        if errors:
            raise RuntimeError(f"errors bumping release of {repo_name}: {'; '.join(errors)}")
