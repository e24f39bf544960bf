"""
GitHub Webhook 接入层。

职责：
- 校验 `X-Hub-Signature-256`（HMAC SHA256），失败返回 500
- 按 `X-GitHub-Event` 解析 payload -> Pydantic event；未知事件记 warning 并返回 200
- 用事件信息丰富日志上下文
- 把事件交给 handler registry 在后台执行，立即返回 200（不能阻塞 GitHub 的投递超时）
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Header
from fastapi import Request
from fastapi import Response
from pydantic import ValidationError

from metal_robot.config import WebhookConfig
from metal_robot.github.schemas import GITHUB_EVENT_TYPES
from metal_robot.github.schemas import GitHubEvent
from metal_robot.github.schemas import GitHubIssueCommentEvent
from metal_robot.github.schemas import GitHubIssuesEvent
from metal_robot.github.schemas import GitHubProjectsV2ItemEvent
from metal_robot.github.schemas import GitHubPullRequestEvent
from metal_robot.github.schemas import GitHubPushEvent
from metal_robot.github.schemas import GitHubReleaseEvent
from metal_robot.handlers.registry import HandlerRegistry
from metal_robot.infra.log import ContextLogger
from metal_robot.infra.log import get_logger

logger = logging.getLogger(__name__)


def verify_signature(body: bytes, signature_header: str | None, secret: str) -> bool:
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header)


def _event_keys(event: GitHubEvent) -> dict[str, Any]:
    if isinstance(event, GitHubReleaseEvent):
        return {"tag": event.release.tag_name}
    if isinstance(event, GitHubPushEvent):
        return {"ref": event.ref}
    if isinstance(event, GitHubPullRequestEvent):
        return {"pull_request": event.number}
    if isinstance(event, (GitHubIssuesEvent, GitHubIssueCommentEvent)):
        return {"issue": event.issue.number}
    if isinstance(event, GitHubProjectsV2ItemEvent):
        return {"project": event.projects_v2_item.project_node_id}
    return {}


def event_logger(kind: str, event: GitHubEvent) -> ContextLogger:
    return get_logger(
        __name__,
        event=kind,
        action=event.action,
        sender=event.sender.login if event.sender is not None else None,
        organization=event.organization.login if event.organization is not None else None,
        repository=event.repository.html_url if event.repository is not None else None,
        **_event_keys(event),
    )


def build_github_webhook_router(webhook: WebhookConfig, registry: HandlerRegistry) -> APIRouter:
    router = APIRouter()

    @router.post("/" + webhook.serve_path.strip("/"))
    async def github_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_github_event: str | None = Header(default=None, alias="X-GitHub-Event"),
        x_hub_signature_256: str | None = Header(default=None, alias="X-Hub-Signature-256"),
    ) -> Response:
        body = await request.body()
        if not verify_signature(body, x_hub_signature_256, webhook.secret):
            logger.error(f"invalid github webhook signature on {webhook.serve_path}")
            return Response(status_code=500)

        event_type = GITHUB_EVENT_TYPES.get(x_github_event or "")
        if event_type is None:
            logger.warning(f"ignoring unsupported github event type: {x_github_event}")
            return Response(status_code=200)

        try:
            event = event_type.model_validate_json(body)
        except ValidationError as exc:
            logger.error(f"unable to parse github {x_github_event} event: {exc}")
            return Response(status_code=500)

        log = event_logger(x_github_event or "", event)
        log.debug("received github webhook event")
        background_tasks.add_task(registry.run, log, webhook.serve_path, event)
        return Response(status_code=200)

    return router
