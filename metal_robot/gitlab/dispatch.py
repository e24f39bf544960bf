"""GitLab 事件 -> action 参数。GitLab 只触发 aggregate-releases（tag push）。"""

from __future__ import annotations

from metal_robot.actions.aggregate_releases import AggregateReleasesParams
from metal_robot.actions.catalog import ACTION_AGGREGATE_RELEASES
from metal_robot.actions.catalog import WebhookActions
from metal_robot.gitlab.schemas import GitLabTagPushEvent
from metal_robot.handlers.errors import SkipError
from metal_robot.handlers.registry import HandlerRegistry


def tag_push_to_aggregate(event: GitLabTagPushEvent) -> AggregateReleasesParams:
    # 删除 tag 时 checkout_sha 为空
    if event.checkout_sha is None:
        raise SkipError.because(f"tag {event.tag_name} was deleted")
    return AggregateReleasesParams(
        repository_name=event.project.name,
        repository_url=event.project.web_url,
        tag_name=event.tag_name,
        sender=event.user_username,
    )


def register_gitlab_actions(registry: HandlerRegistry, path: str, actions: WebhookActions) -> None:
    for aggregate in actions.aggregate_releases:
        registry.register(GitLabTagPushEvent, ACTION_AGGREGATE_RELEASES, path, aggregate, tag_push_to_aggregate)
