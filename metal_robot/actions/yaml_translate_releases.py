"""
yaml-translate-releases：把源仓库某个 YAML 文件里的值“翻译”到目标仓库。

和 aggregate-releases 的区别：写入的值不是 tag 本身，而是源仓库在该 tag 下
`from.file` 中 `from.yaml-path` 的值。源仓库只读克隆，目标仓库可写克隆；
release 冻结的判断与 aggregate-releases 一致。
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
from metal_robot.patchers.yaml_path_patch import get_yaml
from metal_robot.versions import parse_release_tag


class TranslationSource(ConfigModel):
    file: str
    yaml_path: str = Field(alias="yaml-path")


class Translation(ConfigModel):
    from_: TranslationSource = Field(alias="from")
    to: list[Any] = Field(default_factory=list)


class YAMLTranslateReleasesConfig(ConfigModel):
    repository: str
    repository_url: str = Field(alias="repository-url")
    branch: str = "develop"
    branch_base: str = Field(default="master", alias="branch-base")
    commit_tpl: str = Field(default="Bump %s to version %s", alias="commit-tpl")
    pull_request_title: str = Field(default="Next release", alias="pull-request-title")
    repos: dict[str, list[Translation]] = Field(default_factory=dict)


@dataclass(frozen=True)
class YAMLTranslateReleasesParams:
    repository_name: str
    clone_url: str
    repository_url: str
    tag_name: str
    sender: str


class YAMLTranslateReleases:
    def __init__(self, client: GitHubClient, config: YAMLTranslateReleasesConfig, locks: MultiLock = repository_locks) -> None:
        self._client = client
        self._config = config
        self._locks = locks
        self._translations: dict[str, list[tuple[TranslationSource, list[Patcher]]]] = {
            name: [(t.from_, build_patchers(t.to)) for t in translations] for name, translations in config.repos.items()
        }

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> YAMLTranslateReleases:
        return cls(client, validate_args(YAMLTranslateReleasesConfig, args, "yaml-translate-releases"))

    async def handle(self, log: ContextLogger, params: YAMLTranslateReleasesParams) -> None:
        config = self._config
        translations = self._translations.get(params.repository_name)
        if translations is None:
            raise SkipError.because(f"repository {params.repository_name} is not configured for yaml translation")

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

        token = await self._client.git_token()
        source = await git.clone_at_tag(git.inject_token(params.clone_url, token), params.tag_name)
        values = [get_yaml(source.read_file(s.file), s.yaml_path) for s, _ in translations]

        async with self._locks.hold(config.repository) as lock:
            target = await git.shallow_clone(git.inject_token(config.repository_url, token), config.branch)

            for value, (_, patchers) in zip(values, translations):
                for patcher in patchers:
                    patcher.apply(target.read_file, target.write_file, value)

            message = config.commit_tpl % (params.repository_name, params.tag_name)
            try:
                sha = await target.commit_and_push(message)
            except git.NoChangesError:
                log.debug("skip push to target repository because nothing changed")
            else:
                log.info(f"pushed translated values to target repository, commit {sha}")

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
