"""
aggregate-releases：把组件的新版本号汇总进 release vector 仓库。

流程（单次调用）：
1. 触发仓库不在 `repos` 里，或 tag 不是 `v<semver>` -> skip
2. release PR（branch -> branch-base）被 `/freeze` 冻结 -> 在 PR 下评论并返回
3. 拿目标仓库的锁 -> 克隆 branch -> 依次执行该组件配置的 patcher -> commit & push
4. 释放锁，幂等地创建 release PR
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import Field

from metal_robot.actions.common import ensure_pull_request
from metal_robot.actions.common import find_frozen_release_pr
from metal_robot.actions.common import release_frozen_comment
from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.git import repository as git
from metal_robot.github.client import GitHubClient
from metal_robot.handlers.errors import SkipError
from metal_robot.infra.log import ContextLogger
from metal_robot.infra.multilock import MultiLock
from metal_robot.infra.multilock import repository_locks
from metal_robot.patchers.base import Patcher
from metal_robot.patchers.registry import build_patchers
from metal_robot.versions import parse_release_tag


class AggregateReleasesConfig(ConfigModel):
    repository: str
    repository_url: str = Field(alias="repository-url")
    branch: str = "develop"
    branch_base: str = Field(default="master", alias="branch-base")
    commit_tpl: str = Field(default="Bump %s to version %s", alias="commit-tpl")
    pull_request_title: str = Field(default="Next release", alias="pull-request-title")
    repos: dict[str, list[Any]] = Field(default_factory=dict)


@dataclass(frozen=True)
class AggregateReleasesParams:
    repository_name: str
    repository_url: str
    tag_name: str
    sender: str


class AggregateReleases:
    def __init__(self, client: GitHubClient, config: AggregateReleasesConfig, locks: MultiLock = repository_locks) -> None:
        self._client = client
        self._config = config
        self._locks = locks
        self._patchers: dict[str, list[Patcher]] = {name: build_patchers(mods) for name, mods in config.repos.items()}

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> AggregateReleases:
        return cls(client, validate_args(AggregateReleasesConfig, args, "aggregate-releases"))

    @property
    def target_repository(self) -> str:
        return self._config.repository

    async def handle(self, log: ContextLogger, params: AggregateReleasesParams) -> None:
        config = self._config
        patchers = self._patchers.get(params.repository_name)
        if patchers is None:
            raise SkipError.because(f"repository {params.repository_name} is not configured for release aggregation")

        try:
            parse_release_tag(params.tag_name)
        except ValueError as exc:
            raise SkipError.because(f"tag {params.tag_name!r} is not a semantic version: {exc}") from exc

        log = log.bind(target_repo=config.repository, tag=params.tag_name)

        frozen = await find_frozen_release_pr(self._client, config.repository, config.branch, config.branch_base)
        if frozen is not None:
            body = release_frozen_comment(params.tag_name, params.repository_url, params.sender)
            await self._client.create_issue_comment(config.repository, frozen.number, body)
            log.info(f"release is frozen, rejected release in pull request #{frozen.number}")
            return

        async with self._locks.hold(config.repository) as lock:
            token = await self._client.git_token()
            repo = await git.shallow_clone(git.inject_token(config.repository_url, token), config.branch)

            for patcher in patchers:
                patcher.apply(repo.read_file, repo.write_file, params.tag_name)

            message = config.commit_tpl % (params.repository_name, params.tag_name)
            try:
                sha = await repo.commit_and_push(message)
            except git.NoChangesError:
                log.debug("skip push to target repository because nothing changed")
            else:
                log.info(f"pushed to aggregate target repository, commit {sha}")

            lock.release()

            await ensure_pull_request(
                self._client,
                log,
                config.repository,
                title=config.pull_request_title,
                head=config.branch,
                base=config.branch_base,
                body="",
            )
