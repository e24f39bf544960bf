"""
distribute-releases：把一个源仓库的新 release 分发到依赖它的仓库。

每个目标仓库并发处理（同时最多 `MAX_PARALLEL_TARGETS` 个），各自持有自己的目标仓库锁（同一个共享 multi-lock）：
克隆到 `branch-template % tag` 分支 -> patch -> commit & push -> 向目标 base 分支开 PR。
单个目标失败不影响其他目标，所有错误在最后汇总抛出。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import anyio
from pydantic import Field

from metal_robot.actions.common import ensure_pull_request
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

MAX_PARALLEL_TARGETS = 5


class DistributeTarget(ConfigModel):
    repository: str
    repository_url: str = Field(alias="repository-url")
    branch: str = "master"
    modifiers: list[Any] = Field(default_factory=list)


class DistributeReleasesConfig(ConfigModel):
    repository: str
    repository_url: str = Field(alias="repository-url")
    branch_template: str = Field(default="auto-generate/%s", alias="branch-template")
    commit_tpl: str = Field(default="Bump %s to version %s", alias="commit-tpl")
    pull_request_title: str = Field(default="Bump version", alias="pull-request-title")
    repos: list[DistributeTarget] = Field(default_factory=list)


@dataclass(frozen=True)
class DistributeReleasesParams:
    repository_name: str
    tag_name: str


class DistributeReleases:
    def __init__(
        self,
        client: GitHubClient,
        config: DistributeReleasesConfig,
        locks: MultiLock = repository_locks,
        max_parallel: int = MAX_PARALLEL_TARGETS,
    ) -> None:
        self._client = client
        self._config = config
        self._locks = locks
        self._max_parallel = max_parallel
        self._targets: list[tuple[DistributeTarget, list[Patcher]]] = [
            (target, build_patchers(target.modifiers)) for target in config.repos
        ]

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> DistributeReleases:
        return cls(client, validate_args(DistributeReleasesConfig, args, "distribute-releases"))

    async def handle(self, log: ContextLogger, params: DistributeReleasesParams) -> None:
        if params.repository_name != self._config.repository:
            raise SkipError.because(f"repository {params.repository_name} is not the distribution source")

        try:
            version = parse_release_tag(params.tag_name)
        except ValueError as exc:
            raise SkipError.because(f"tag {params.tag_name!r} is not a semantic version: {exc}") from exc
        if version.prerelease:
            raise SkipError.because(f"tag {params.tag_name} is a pre-release")

        errors: list[str] = []
        limiter = anyio.CapacityLimiter(self._max_parallel)

        async def run(target: DistributeTarget, patchers: list[Patcher]) -> None:
            target_log = log.bind(target_repo=target.repository)
            try:
                async with limiter:
                    await self._distribute(target_log, target, patchers, params)
            except Exception as exc:
                target_log.error(f"error distributing release: {exc!r}")
                errors.append(f"{target.repository}: {exc}")

        async with anyio.create_task_group() as tg:
            for target, patchers in self._targets:
                tg.start_soon(run, target, patchers)

        if errors:
            raise RuntimeError(f"errors distributing release {params.tag_name}: {'; '.join(sorted(errors))}")

    async def _distribute(
        self,
        log: ContextLogger,
        target: DistributeTarget,
        patchers: list[Patcher],
        params: DistributeReleasesParams,
    ) -> None:
        config = self._config
        branch = config.branch_template % params.tag_name
        message = config.commit_tpl % (params.repository_name, params.tag_name)

        async with self._locks.hold(target.repository) as lock:
            token = await self._client.git_token()
            repo = await git.shallow_clone(git.inject_token(target.repository_url, token), branch)

            for patcher in patchers:
                patcher.apply(repo.read_file, repo.write_file, params.tag_name)

            try:
                sha = await repo.commit_and_push(message)
            except git.NoChangesError:
                log.debug("skip push to target repository because nothing changed")
            else:
                log.info(f"pushed to distribution target repository, commit {sha}")

            lock.release()

            await ensure_pull_request(
                self._client,
                log,
                target.repository,
                title=message,
                head=branch,
                base=target.branch,
                body=config.pull_request_title,
            )
