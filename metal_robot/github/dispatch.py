"""
GitHub 事件 -> action 参数的路由表。

每个 converter 只做两件事：判断事件是否归这个 action（否则抛 `SkipError`），
以及从 payload 中取出 action 需要的参数。注册时按事件 class 区分，
同一个 serve path 下不同事件类型的 handler 互不干扰。
"""

from __future__ import annotations

from metal_robot.actions.aggregate_releases import AggregateReleasesParams
from metal_robot.actions.catalog import ACTION_ADD_ITEMS_TO_PROJECT
from metal_robot.actions.catalog import ACTION_AGGREGATE_RELEASES
from metal_robot.actions.catalog import ACTION_CREATE_REPOSITORY_MAINTAINERS
from metal_robot.actions.catalog import ACTION_DISTRIBUTE_RELEASES
from metal_robot.actions.catalog import ACTION_DOCS_PREVIEW_COMMENT
from metal_robot.actions.catalog import ACTION_ISSUE_HANDLING
from metal_robot.actions.catalog import ACTION_ISSUE_LABELS_ON_CREATION
from metal_robot.actions.catalog import ACTION_PROJECT_V2_ITEM
from metal_robot.actions.catalog import ACTION_RELEASE_DRAFT
from metal_robot.actions.catalog import ACTION_YAML_TRANSLATE_RELEASES
from metal_robot.actions.catalog import WebhookActions
from metal_robot.actions.distribute_releases import DistributeReleasesParams
from metal_robot.actions.docs_preview_comment import DocsPreviewCommentParams
from metal_robot.actions.issue_comments import IssueCommentsParams
from metal_robot.actions.labels_on_creation import LabelsOnCreationParams
from metal_robot.actions.project_item_add import ProjectItemAddParams
from metal_robot.actions.project_v2_item import ProjectV2ItemParams
from metal_robot.actions.release_drafter import MergedPullRequestParams
from metal_robot.actions.release_drafter import ReleaseDraftParams
from metal_robot.actions.repository_maintainers import RepositoryMaintainersParams
from metal_robot.actions.yaml_translate_releases import YAMLTranslateReleasesParams
from metal_robot.github.schemas import GitHubEvent
from metal_robot.github.schemas import GitHubIssueCommentEvent
from metal_robot.github.schemas import GitHubIssuesEvent
from metal_robot.github.schemas import GitHubProjectsV2ItemEvent
from metal_robot.github.schemas import GitHubPullRequestEvent
from metal_robot.github.schemas import GitHubPushEvent
from metal_robot.github.schemas import GitHubReleaseEvent
from metal_robot.github.schemas import GitHubRepositoryEvent
from metal_robot.handlers.errors import SkipError
from metal_robot.handlers.registry import HandlerRegistry

TAG_REF_PREFIX = "refs/tags/"
STATUS_FIELD_NAME = "Status"


def _sender(event: GitHubEvent) -> str:
    return event.sender.login if event.sender is not None else ""


def _require_action(event: GitHubEvent, *actions: str) -> None:
    if event.action not in actions:
        raise SkipError.only_actions(*actions)


def _tag_push(event: GitHubPushEvent) -> str:
    """只接受新建的 `refs/tags/v...`，返回 tag 名。"""
    if not event.created or event.deleted:
        raise SkipError.because("only reacting to newly created refs")
    if not event.ref.startswith(TAG_REF_PREFIX + "v"):
        raise SkipError.because(f"ref {event.ref} is not a version tag")
    return event.ref.removeprefix(TAG_REF_PREFIX)


# --- release ---


def release_to_aggregate(event: GitHubReleaseEvent) -> AggregateReleasesParams:
    _require_action(event, "released")
    return AggregateReleasesParams(
        repository_name=event.repository.name,
        repository_url=event.repository.html_url,
        tag_name=event.release.tag_name,
        sender=_sender(event),
    )


def release_to_yaml_translate(event: GitHubReleaseEvent) -> YAMLTranslateReleasesParams:
    _require_action(event, "released")
    return YAMLTranslateReleasesParams(
        repository_name=event.repository.name,
        clone_url=event.repository.clone_url,
        repository_url=event.repository.html_url,
        tag_name=event.release.tag_name,
        sender=_sender(event),
    )


def release_to_draft(event: GitHubReleaseEvent) -> ReleaseDraftParams:
    _require_action(event, "released")
    return ReleaseDraftParams(
        repository_name=event.repository.name,
        tag_name=event.release.tag_name,
        component_release_info=event.release.body,
        release_url=event.release.html_url,
    )


# --- push ---


def push_to_aggregate(event: GitHubPushEvent) -> AggregateReleasesParams:
    tag = _tag_push(event)
    return AggregateReleasesParams(
        repository_name=event.repository.name,
        repository_url=event.repository.html_url,
        tag_name=tag,
        sender=_sender(event),
    )


def push_to_distribute(event: GitHubPushEvent) -> DistributeReleasesParams:
    return DistributeReleasesParams(repository_name=event.repository.name, tag_name=_tag_push(event))


# --- pull_request ---


def pull_request_to_docs_preview(event: GitHubPullRequestEvent) -> DocsPreviewCommentParams:
    _require_action(event, "opened")
    return DocsPreviewCommentParams(repository_name=event.repository.name, pull_request_number=event.number)


def pull_request_to_project_item(event: GitHubPullRequestEvent) -> ProjectItemAddParams:
    _require_action(event, "opened")
    pull = event.pull_request
    return ProjectItemAddParams(repository_name=event.repository.name, node_id=pull.node_id, url=pull.html_url)


def pull_request_to_labels(event: GitHubPullRequestEvent) -> LabelsOnCreationParams:
    _require_action(event, "opened")
    pull = event.pull_request
    return LabelsOnCreationParams(repository_name=event.repository.name, content_node_id=pull.node_id, url=pull.html_url)


def pull_request_to_merged_draft(event: GitHubPullRequestEvent) -> MergedPullRequestParams:
    _require_action(event, "closed")
    pull = event.pull_request
    if not pull.merged:
        raise SkipError.because("pull request was closed without merging")
    if event.repository.private:
        raise SkipError.because("pull requests of private repositories are not listed in release drafts")
    return MergedPullRequestParams(
        repository_name=event.repository.name,
        title=pull.title,
        number=pull.number,
        author=pull.user.login if pull.user is not None else _sender(event),
        body=pull.body,
    )


# --- issues ---


def issue_to_project_item(event: GitHubIssuesEvent) -> ProjectItemAddParams:
    _require_action(event, "opened")
    return ProjectItemAddParams(repository_name=event.repository.name, node_id=event.issue.node_id, url=event.issue.html_url)


def issue_to_labels(event: GitHubIssuesEvent) -> LabelsOnCreationParams:
    _require_action(event, "opened")
    return LabelsOnCreationParams(
        repository_name=event.repository.name,
        content_node_id=event.issue.node_id,
        url=event.issue.html_url,
    )


# --- issue_comment / repository / projects_v2_item ---


def issue_comment_to_commands(event: GitHubIssueCommentEvent) -> IssueCommentsParams:
    _require_action(event, "created")
    if event.issue.pull_request is None:
        raise SkipError.because("comment commands are only supported on pull requests")
    return IssueCommentsParams(
        pull_request_number=event.issue.number,
        repository_name=event.repository.name,
        repository_url=event.repository.clone_url,
        comment=event.comment.body,
        comment_id=event.comment.id,
        user=event.comment.user.login if event.comment.user is not None else _sender(event),
    )


def repository_to_maintainers(event: GitHubRepositoryEvent) -> RepositoryMaintainersParams:
    _require_action(event, "created")
    return RepositoryMaintainersParams(repository_name=event.repository.name, creator=_sender(event))


def project_item_to_label_removal(event: GitHubProjectsV2ItemEvent) -> ProjectV2ItemParams:
    _require_action(event, "edited")
    change = event.changes.field_value if event.changes is not None else None
    if change is None or change.field_name != STATUS_FIELD_NAME:
        raise SkipError.because(f"only reacting to changes of the {STATUS_FIELD_NAME} field")
    if change.from_ is not None:
        raise SkipError.because("only reacting to items that get a status for the first time")
    item = event.projects_v2_item
    return ProjectV2ItemParams(project_id=item.project_node_id, content_node_id=item.content_node_id)


def register_github_actions(registry: HandlerRegistry, path: str, actions: WebhookActions) -> None:
    for aggregate in actions.aggregate_releases:
        registry.register(GitHubReleaseEvent, ACTION_AGGREGATE_RELEASES, path, aggregate, release_to_aggregate)
        registry.register(GitHubPushEvent, ACTION_AGGREGATE_RELEASES, path, aggregate, push_to_aggregate)
    for distribute in actions.distribute_releases:
        registry.register(GitHubPushEvent, ACTION_DISTRIBUTE_RELEASES, path, distribute, push_to_distribute)
    for translate in actions.yaml_translate_releases:
        registry.register(GitHubReleaseEvent, ACTION_YAML_TRANSLATE_RELEASES, path, translate, release_to_yaml_translate)
    for drafter in actions.release_drafters:
        registry.register(GitHubReleaseEvent, ACTION_RELEASE_DRAFT, path, drafter, release_to_draft)
    for merged in actions.merged_pull_request_drafters:
        registry.register(GitHubPullRequestEvent, ACTION_RELEASE_DRAFT, path, merged, pull_request_to_merged_draft)
    for docs in actions.docs_preview_comments:
        registry.register(GitHubPullRequestEvent, ACTION_DOCS_PREVIEW_COMMENT, path, docs, pull_request_to_docs_preview)
    for project in actions.project_item_adds:
        registry.register(GitHubPullRequestEvent, ACTION_ADD_ITEMS_TO_PROJECT, path, project, pull_request_to_project_item)
        registry.register(GitHubIssuesEvent, ACTION_ADD_ITEMS_TO_PROJECT, path, project, issue_to_project_item)
    for labels in actions.labels_on_creation:
        registry.register(GitHubPullRequestEvent, ACTION_ISSUE_LABELS_ON_CREATION, path, labels, pull_request_to_labels)
        registry.register(GitHubIssuesEvent, ACTION_ISSUE_LABELS_ON_CREATION, path, labels, issue_to_labels)
    for comments in actions.issue_comments:
        registry.register(GitHubIssueCommentEvent, ACTION_ISSUE_HANDLING, path, comments, issue_comment_to_commands)
    for maintainers in actions.repository_maintainers:
        registry.register(
            GitHubRepositoryEvent, ACTION_CREATE_REPOSITORY_MAINTAINERS, path, maintainers, repository_to_maintainers
        )
    for item in actions.project_v2_items:
        registry.register(GitHubProjectsV2ItemEvent, ACTION_PROJECT_V2_ITEM, path, item, project_item_to_label_removal)
