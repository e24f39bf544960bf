"""
GitLab Webhook 接入层。

职责：
- 校验 `X-Gitlab-Token`（与配置的 secret 做常量时间比较），失败返回 500
- 按 `X-Gitlab-Event` 解析 payload；未知事件记 warning 并返回 200
- 把事件交给 handler registry 在后台执行
"""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Header
from fastapi import Request
from fastapi import Response
from pydantic import ValidationError

from metal_robot.config import WebhookConfig
from metal_robot.gitlab.schemas import GITLAB_EVENT_TYPES
from metal_robot.gitlab.schemas import GitLabTagPushEvent
from metal_robot.handlers.registry import HandlerRegistry
from metal_robot.infra.log import get_logger

logger = logging.getLogger(__name__)


def verify_token(token: str | None, secret: str) -> bool:
    if token is None:
        return False
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def build_gitlab_webhook_router(webhook: WebhookConfig, registry: HandlerRegistry) -> APIRouter:
    router = APIRouter()

    @router.post("/" + webhook.serve_path.strip("/"))
    async def gitlab_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_gitlab_event: str | None = Header(default=None, alias="X-Gitlab-Event"),
        x_gitlab_token: str | None = Header(default=None, alias="X-Gitlab-Token"),
    ) -> Response:
        if not verify_token(x_gitlab_token, webhook.secret):
            logger.error(f"invalid gitlab webhook token on {webhook.serve_path}")
            return Response(status_code=500)

        event_type = GITLAB_EVENT_TYPES.get(x_gitlab_event or "")
        if event_type is None:
            logger.warning(f"ignoring unsupported gitlab event type: {x_gitlab_event}")
            return Response(status_code=200)

        body = await request.body()
        try:
            event = event_type.model_validate_json(body)
        except ValidationError as exc:
            logger.error(f"unable to parse gitlab {x_gitlab_event} event: {exc}")
            return Response(status_code=500)

        fields: dict[str, str] = {}
        if isinstance(event, GitLabTagPushEvent):
            fields = {
                "sender": event.user_username,
                "repository": event.project.web_url,
                "tag": event.tag_name,
            }
        log = get_logger(__name__, event=x_gitlab_event, **fields)
        log.debug("received gitlab webhook event")
        background_tasks.add_task(registry.run, log, webhook.serve_path, event)
        return Response(status_code=200)

    return router
