"""
Action 装配：把一个 webhook 下的 action 配置构造成具体的 handler 实例。

- action type -> 构造函数；未知 type、找不到 client、非 GitHub client 都是 `ConfigError`
- 构造期的参数/patcher 校验失败同样统一成 `ConfigError`（启动即失败）
- issue-handling 的 `/bump-release` 需要调用 aggregate-releases，
  这里按 aggregate 的目标仓库建立索引并共享给它
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from metal_robot.actions.aggregate_releases import AggregateReleases
from metal_robot.actions.distribute_releases import DistributeReleases
from metal_robot.actions.docs_preview_comment import DocsPreviewComment
from metal_robot.actions.issue_comments import IssueComments
from metal_robot.actions.labels_on_creation import LabelsOnCreation
from metal_robot.actions.project_item_add import ProjectItemAdd
from metal_robot.actions.project_v2_item import ProjectV2Item
from metal_robot.actions.release_drafter import AppendMergedPullRequest
from metal_robot.actions.release_drafter import ReleaseDrafter
from metal_robot.actions.repository_maintainers import RepositoryMaintainers
from metal_robot.actions.yaml_translate_releases import YAMLTranslateReleases
from metal_robot.config import ActionSpec
from metal_robot.config import ConfigError
from metal_robot.github.client import GitHubClient
from metal_robot.gitlab.client import GitLabClient

ACTION_AGGREGATE_RELEASES = "aggregate-releases"
ACTION_DISTRIBUTE_RELEASES = "distribute-releases"
ACTION_YAML_TRANSLATE_RELEASES = "yaml-translate-releases"
ACTION_RELEASE_DRAFT = "release-draft"
ACTION_CREATE_REPOSITORY_MAINTAINERS = "create-repository-maintainers"
ACTION_DOCS_PREVIEW_COMMENT = "docs-preview-comment"
ACTION_ISSUE_HANDLING = "issue-handling"
ACTION_ADD_ITEMS_TO_PROJECT = "add-items-to-project"
ACTION_PROJECT_V2_ITEM = "project-v2-item"
ACTION_ISSUE_LABELS_ON_CREATION = "issue-labels-on-creation"

ACTION_TYPES: tuple[str, ...] = (
    ACTION_AGGREGATE_RELEASES,
    ACTION_DISTRIBUTE_RELEASES,
    ACTION_YAML_TRANSLATE_RELEASES,
    ACTION_RELEASE_DRAFT,
    ACTION_CREATE_REPOSITORY_MAINTAINERS,
    ACTION_DOCS_PREVIEW_COMMENT,
    ACTION_ISSUE_HANDLING,
    ACTION_ADD_ITEMS_TO_PROJECT,
    ACTION_PROJECT_V2_ITEM,
    ACTION_ISSUE_LABELS_ON_CREATION,
)

Client = GitHubClient | GitLabClient


@dataclass
class WebhookActions:
    """一个 webhook 下的全部 action 实例，按类型分组，保持配置顺序。"""

    aggregate_releases: list[AggregateReleases] = field(default_factory=list)
    distribute_releases: list[DistributeReleases] = field(default_factory=list)
    yaml_translate_releases: list[YAMLTranslateReleases] = field(default_factory=list)
    release_drafters: list[ReleaseDrafter] = field(default_factory=list)
    merged_pull_request_drafters: list[AppendMergedPullRequest] = field(default_factory=list)
    repository_maintainers: list[RepositoryMaintainers] = field(default_factory=list)
    docs_preview_comments: list[DocsPreviewComment] = field(default_factory=list)
    issue_comments: list[IssueComments] = field(default_factory=list)
    project_item_adds: list[ProjectItemAdd] = field(default_factory=list)
    project_v2_items: list[ProjectV2Item] = field(default_factory=list)
    labels_on_creation: list[LabelsOnCreation] = field(default_factory=list)
    # aggregate 目标仓库 -> aggregate handlers（供 /bump-release 使用）
    aggregate_by_target: dict[str, list[AggregateReleases]] = field(default_factory=dict)


def _github_client(spec: ActionSpec, clients: Mapping[str, Client]) -> GitHubClient:
    client = clients.get(spec.client)
    if client is None:
        raise ConfigError(f"action {spec.type} references unknown client {spec.client!r}")
    if not isinstance(client, GitHubClient):
        raise ConfigError(f"action {spec.type} only supports github clients")
    return client


def _add_action(actions: WebhookActions, spec: ActionSpec, client: GitHubClient) -> None:
    args = spec.args
    if spec.type == ACTION_AGGREGATE_RELEASES:
        aggregate = AggregateReleases.from_args(client, args)
        actions.aggregate_releases.append(aggregate)
        actions.aggregate_by_target.setdefault(aggregate.target_repository, []).append(aggregate)
    elif spec.type == ACTION_DISTRIBUTE_RELEASES:
        actions.distribute_releases.append(DistributeReleases.from_args(client, args))
    elif spec.type == ACTION_YAML_TRANSLATE_RELEASES:
        actions.yaml_translate_releases.append(YAMLTranslateReleases.from_args(client, args))
    elif spec.type == ACTION_RELEASE_DRAFT:
        drafter = ReleaseDrafter.from_args(client, args)
        actions.release_drafters.append(drafter)
        actions.merged_pull_request_drafters.append(AppendMergedPullRequest(drafter))
    elif spec.type == ACTION_CREATE_REPOSITORY_MAINTAINERS:
        actions.repository_maintainers.append(RepositoryMaintainers.from_args(client, args))
    elif spec.type == ACTION_DOCS_PREVIEW_COMMENT:
        actions.docs_preview_comments.append(DocsPreviewComment.from_args(client, args))
    elif spec.type == ACTION_ISSUE_HANDLING:
        # 共享同一个 dict：配置里 issue-handling 可以写在 aggregate-releases 之前
        actions.issue_comments.append(IssueComments.from_args(client, args, actions.aggregate_by_target))
    elif spec.type == ACTION_ADD_ITEMS_TO_PROJECT:
        actions.project_item_adds.append(ProjectItemAdd.from_args(client, args))
    elif spec.type == ACTION_PROJECT_V2_ITEM:
        actions.project_v2_items.append(ProjectV2Item.from_args(client, args))
    elif spec.type == ACTION_ISSUE_LABELS_ON_CREATION:
        actions.labels_on_creation.append(LabelsOnCreation.from_args(client, args))
    else:
        raise ConfigError(f"unsupported action type: {spec.type}")


def build_actions(specs: Sequence[ActionSpec], clients: Mapping[str, Client]) -> WebhookActions:
    actions = WebhookActions()
    for spec in specs:
        client = _github_client(spec, clients)
        try:
            _add_action(actions, spec, client)
        except ConfigError:
            raise
        except ValueError as exc:
            raise ConfigError(f"invalid {spec.type} action: {exc}") from exc
    return actions
