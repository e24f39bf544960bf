"""
release-draft：维护 release 仓库里滚动更新的 release draft。

两个 handler 共享同一份配置：
- `ReleaseDrafter`：组件发布 release 时，把组件版本和 release notes 写进 draft
- `AppendMergedPullRequest`：PR 合并时，把 PR 追加到 “Merged Pull Requests” 段落

draft 正文结构（Markdown）：

    # Required Actions / # Breaking Changes / # Noteworthy   （代码块提取，按需出现）
    # General                                                （draft-headline）
    ## <component> v<version>
    * ...
    # Merged Pull Requests
    * <title> (<org>/<repo>#<number>) @<author>

没有 draft 时新建一个，tag 由最新正式 release 按 `next-version-bump` 递增得到，
一个 release 都没有时用 `initial-version`。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

import semver
from pydantic import Field

from metal_robot.actions.common import find_frozen_release_pr
from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.github.client import GitHubClient
from metal_robot.github.schemas import GitHubRelease
from metal_robot.handlers.errors import SkipError
from metal_robot.infra.log import ContextLogger
from metal_robot.markdown.document import Markdown
from metal_robot.markdown.document import Section
from metal_robot.markdown.helpers import NoSuchBlockError
from metal_robot.markdown.helpers import extract_annotated_block
from metal_robot.markdown.helpers import split_lines
from metal_robot.markdown.helpers import strip_html_comments
from metal_robot.markdown.helpers import to_list_item
from metal_robot.versions import bump_version
from metal_robot.versions import find_version
from metal_robot.versions import parse_release_tag

ISSUE_REFERENCE = re.compile(r"\(#(?P<issue>[0-9]+)\)")

# (代码块标识, 段落标题)
CODE_BLOCKS: tuple[tuple[str, str], ...] = (
    ("ACTIONS_REQUIRED", "Required Actions"),
    ("BREAKING_CHANGE", "Breaking Changes"),
    ("NOTEWORTHY", "Noteworthy"),
)


class ReleaseDraftConfig(ConfigModel):
    repository: str
    repository_url: str | None = Field(default=None, alias="repository-url")
    branch: str = "develop"
    branch_base: str = Field(default="master", alias="branch-base")
    title_template: str = Field(default="%s", alias="title-template")
    draft_headline: str = Field(default="General", alias="draft-headline")
    merged_prs_section_headline: str = Field(default="Merged Pull Requests", alias="merged-prs-section-headline")
    merged_prs_section_description: str | None = Field(default=None, alias="merged-prs-section-description")
    repos: list[str] = Field(default_factory=list)
    next_version_bump: Literal["major", "minor", "patch"] = Field(default="minor", alias="next-version-bump")
    initial_version: str = Field(default="v0.0.1", alias="initial-version")


@dataclass(frozen=True)
class ReleaseDraftParams:
    repository_name: str
    tag_name: str
    component_release_info: str | None
    release_url: str


@dataclass(frozen=True)
class MergedPullRequestParams:
    repository_name: str
    title: str
    number: int
    author: str
    body: str | None


@dataclass(frozen=True)
class ReleaseInfos:
    existing: GitHubRelease | None
    tag_name: str
    body: str


def ensure_release_section(doc: Markdown, headline: str) -> Section:
    section = doc.find_section_by_heading(1, headline)
    if section is None:
        section = Section(level=1, heading=headline)
        doc.prepend_section(section)
    return section


class ReleaseDrafter:
    def __init__(self, client: GitHubClient, config: ReleaseDraftConfig) -> None:
        if len(set(config.repos)) != len(config.repos):
            raise ValueError("release-draft repos must not contain duplicates")
        self._client = client
        self._config = config
        self._repos = frozenset(config.repos)

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> ReleaseDrafter:
        return cls(client, validate_args(ReleaseDraftConfig, args, "release-draft"))

    @property
    def config(self) -> ReleaseDraftConfig:
        return self._config

    @property
    def organization(self) -> str:
        return self._client.organization

    def handles_component(self, repository_name: str) -> bool:
        return repository_name in self._repos

    async def handle(self, log: ContextLogger, params: ReleaseDraftParams) -> None:
        log = log.bind(release_repo=self._config.repository, component=params.repository_name, tag=params.tag_name)

        if not self.handles_component(params.repository_name):
            # 非 release vector 仓库：只收集 ACTIONS_REQUIRED 这类代码块
            if params.component_release_info is None:
                raise SkipError.because("not a release vector repository and release has no release notes")

            infos = await self.release_infos(log)
            doc = Markdown.parse(infos.body)
            suffix = f"([release notes]({params.release_url}))" if params.release_url else None
            if not self.prepend_code_blocks(doc, params.component_release_info, suffix):
                raise SkipError.because("release notes contain no special sections")
            await self.create_or_update(log, infos, str(doc))
            return

        try:
            version = parse_release_tag(params.tag_name)
        except ValueError as exc:
            raise SkipError.because(f"tag {params.tag_name!r} is not a semantic version: {exc}") from exc

        config = self._config
        frozen = await find_frozen_release_pr(self._client, config.repository, config.branch, config.branch_base)
        if frozen is not None:
            log.info(f"skip adding release draft because release is frozen in pull request #{frozen.number}")
            return

        infos = await self.release_infos(log)
        body = self.update_release_body(
            infos.body, params.repository_name, version, params.component_release_info, params.release_url
        )
        await self.create_or_update(log, infos, body)

    def update_release_body(
        self,
        prior_body: str,
        component: str,
        version: semver.Version,
        component_body: str | None,
        release_url: str,
    ) -> str:
        doc = Markdown.parse(prior_body)
        release_section = ensure_release_section(doc, self._config.draft_headline)

        lines: list[str] = []
        if component_body is not None:
            stripped = strip_html_comments(component_body)
            for raw in split_lines(stripped):
                line = raw.strip()
                # 只摘取列表项
                if not (line.startswith("-") or line.startswith("*")):
                    continue
                lines.append(ISSUE_REFERENCE.sub(lambda m: f"({self.organization}/{component}#{m['issue']})", line))

            suffix = f"([release notes]({release_url}))" if release_url else None
            self.prepend_code_blocks(doc, stripped, suffix)

        heading = f"{component} v{version}"
        section = doc.find_section_by_heading_prefix(2, f"{component} ")
        if section is None:
            release_section.append_child(Section(level=2, heading=heading, content_lines=lines))
        else:
            old = find_version(section.heading)
            if old is not None and version > old:
                section.heading = heading
                section.append_content(lines)

        return str(doc)

    def append_pull_request(self, prior_body: str, repo: str, title: str, number: int, author: str, pr_body: str | None) -> str:
        config = self._config
        doc = Markdown.parse(prior_body)

        line = f"* {title} ({self.organization}/{repo}#{number}) @{author}"

        section = doc.find_section_by_heading(1, config.merged_prs_section_headline)
        if section is None:
            content = [line]
            if config.merged_prs_section_description is not None:
                content.insert(0, config.merged_prs_section_description)
            doc.append_section(Section(level=1, heading=config.merged_prs_section_headline, content_lines=content))
        elif line not in section.content_lines:
            section.append_content([line])

        if pr_body is not None:
            self.prepend_code_blocks(doc, pr_body, f"({self.organization}/{repo}#{number})")

        return str(doc)

    def prepend_code_blocks(self, doc: Markdown, body: str, suffix: str | None) -> bool:
        """把 body 里的特殊代码块作为顶层段落放到文档最前面；有变化时返回 True。"""
        changed = False
        body = strip_html_comments(body)

        # 倒序 prepend，最终顺序与 CODE_BLOCKS 一致
        for identifier, headline in reversed(CODE_BLOCKS):
            try:
                block = extract_annotated_block(identifier, body)
            except NoSuchBlockError:
                continue
            if not block:
                continue

            if suffix is not None:
                block += " " + suffix
            item = to_list_item(block)

            section = doc.find_section_by_heading(1, headline)
            if section is None:
                doc.prepend_section(Section(level=1, heading=headline, content_lines=item))
                changed = True
            elif "".join(item) not in "".join(section.content_lines):
                section.append_content(item)
                changed = True

        return changed

    async def release_infos(self, log: ContextLogger) -> ReleaseInfos:
        repo = self._config.repository
        existing = next((r for r in await self._client.list_releases(repo) if r.draft), None)
        if existing is not None:
            return ReleaseInfos(existing=existing, tag_name=existing.tag_name, body=existing.body or "")

        return ReleaseInfos(existing=None, tag_name=await self.guess_next_version(log), body="")

    async def guess_next_version(self, log: ContextLogger) -> str:
        latest = await self._client.get_latest_release(self._config.repository)
        if latest is not None:
            version = find_version(latest.tag_name)
            if version is not None:
                return f"v{bump_version(version, self._config.next_version_bump)}"
            log.warning(f"latest release {latest.tag_name} of release repository is not a semantic version")
        return self._config.initial_version

    async def create_or_update(self, log: ContextLogger, infos: ReleaseInfos, body: str) -> None:
        repo = self._config.repository
        if infos.existing is not None:
            if infos.existing.body == body:
                log.debug("release draft is already up to date")
                return
            await self._client.edit_release(repo, infos.existing.id, body)
            log.info(f"release draft {infos.tag_name} updated")
            return

        name = self._config.title_template % infos.tag_name
        await self._client.create_release(repo, tag_name=infos.tag_name, name=name, body=body, draft=True)
        log.info(f"new release draft {infos.tag_name} created")


class AppendMergedPullRequest:
    """PR 合并后把它记进 release draft。"""

    def __init__(self, drafter: ReleaseDrafter) -> None:
        self._drafter = drafter

    async def handle(self, log: ContextLogger, params: MergedPullRequestParams) -> None:
        drafter = self._drafter
        log = log.bind(release_repo=drafter.config.repository, pull_request=params.number)

        if drafter.handles_component(params.repository_name):
            # release vector 仓库的 PR 只贡献代码块，版本号由 release 事件写入
            if params.body is None:
                raise SkipError.because("merged pull requests of release vector repositories are only scanned for special sections")

            infos = await drafter.release_infos(log)
            doc = Markdown.parse(infos.body)
            suffix = f"({drafter.organization}/{params.repository_name}#{params.number})"
            if not drafter.prepend_code_blocks(doc, params.body, suffix):
                raise SkipError.because("pull request contains no special sections")
            await drafter.create_or_update(log, infos, str(doc))
            return

        infos = await drafter.release_infos(log)
        body = drafter.append_pull_request(
            infos.body, params.repository_name, params.title, params.number, params.author, params.body
        )
        await drafter.create_or_update(log, infos, body)
