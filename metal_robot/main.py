"""
FastAPI 服务装配。

这里做三件事：
- 按配置构造 forge client（GitHub App 启动时就查 installation，失败直接退出）
- 按 webhook 构造 action 并注册进 handler registry
- 装配路由（health + 每个 webhook 一个 POST 路由）

注意：
- 业务流程不写在这里（在 `actions/` 里）
- `httpx.AsyncClient` 全局复用，应用关闭时释放
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from metal_robot.actions.catalog import Client
from metal_robot.actions.catalog import build_actions
from metal_robot.config import AppConfig
from metal_robot.github.auth import GitHubAppAuth
from metal_robot.github.client import GitHubClient
from metal_robot.github.dispatch import register_github_actions
from metal_robot.github.webhook import build_github_webhook_router
from metal_robot.gitlab.client import GitLabClient
from metal_robot.gitlab.dispatch import register_gitlab_actions
from metal_robot.gitlab.webhook import build_gitlab_webhook_router
from metal_robot.handlers.registry import HandlerRegistry
from metal_robot.handlers.registry import registry

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 30.0


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS))


def build_clients(config: AppConfig, http_client: httpx.AsyncClient) -> dict[str, Client]:
    """构造配置里的所有 client；GitHub client 会同步查询组织的 app installation。"""
    clients: dict[str, Client] = {}
    with httpx.Client(timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS)) as sync_client:
        for c in config.clients:
            if c.github is not None:
                auth = GitHubAppAuth.from_key_file(c.github.app_id, c.github.key_path, c.organization)
                auth.discover_installation(sync_client)
                clients[c.name] = GitHubClient(c.name, c.organization, auth, http_client)
            elif c.gitlab is not None:
                clients[c.name] = GitLabClient(c.name, c.organization, c.gitlab.token)
            logger.info(f"initialized {clients[c.name].vcs} client {c.name} for organization {c.organization}")
    return clients


def build_app(
    config: AppConfig,
    clients: dict[str, Client],
    http_client: httpx.AsyncClient | None = None,
    handler_registry: HandlerRegistry = registry,
) -> FastAPI:
    """创建并返回 FastAPI app（便于测试/复用）；`http_client` 随应用关闭。"""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if http_client is not None:
            await http_client.aclose()

    app = FastAPI(title="metal-robot", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """健康检查：用于 k8s / LB 探活。"""
        return {"status": "ok"}

    for webhook in config.webhooks:
        actions = build_actions(webhook.actions, clients)
        if webhook.vcs == "github":
            register_github_actions(handler_registry, webhook.serve_path, actions)
            app.include_router(build_github_webhook_router(webhook, handler_registry))
        else:
            register_gitlab_actions(handler_registry, webhook.serve_path, actions)
            app.include_router(build_gitlab_webhook_router(webhook, handler_registry))
        logger.info(f"serving {webhook.vcs} webhook on /{webhook.serve_path.strip('/')} with {len(webhook.actions)} actions")

    return app
