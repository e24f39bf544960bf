"""
GitHub App 认证。

流程：
1. 用 App 私钥签发 RS256 JWT（iss = app id，有效期 10 分钟）
2. 启动时用 JWT 查询组织的 installation（`GET /orgs/{org}/installation`）
3. 运行时用 JWT 换 installation token（`POST /app/installations/{id}/access_tokens`），
   token 缓存到过期前 5 分钟；REST / GraphQL / git 都用这个 token
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import anyio
import httpx
import jwt

from metal_robot.github.errors import GitHubAPIError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
JWT_LIFETIME_SECONDS = 600
JWT_CLOCK_DRIFT_SECONDS = 60
TOKEN_REFRESH_MARGIN_SECONDS = 300


def _app_headers(app_jwt: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {app_jwt}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


class GitHubAppAuth:
    def __init__(
        self,
        app_id: int,
        private_key: str,
        organization: str,
        api_base_url: str = GITHUB_API_URL,
        installation_id: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._app_id = app_id
        self._private_key = private_key
        self._organization = organization
        self._api_base_url = api_base_url.rstrip("/")
        self._installation_id = installation_id
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock: anyio.Lock | None = None

    @classmethod
    def from_key_file(cls, app_id: int, key_path: str, organization: str, api_base_url: str = GITHUB_API_URL) -> GitHubAppAuth:
        private_key = Path(key_path).read_text(encoding="utf-8")
        return cls(app_id=app_id, private_key=private_key, organization=organization, api_base_url=api_base_url)

    @property
    def installation_id(self) -> int | None:
        return self._installation_id

    def app_jwt(self) -> str:
        now = int(self._clock())
        payload = {
            "iat": now - JWT_CLOCK_DRIFT_SECONDS,
            "exp": now + JWT_LIFETIME_SECONDS,
            "iss": str(self._app_id),
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    def discover_installation(self, http_client: httpx.Client) -> int:
        """同步查询组织的 installation id（只在启动时调用）。"""
        url = f"{self._api_base_url}/orgs/{self._organization}/installation"
        response = http_client.get(url, headers=_app_headers(self.app_jwt()))
        if response.status_code >= 400:
            raise GitHubAPIError(response.status_code, response.text)
        self._installation_id = int(response.json()["id"])
        logger.info(f"using github app installation {self._installation_id} for organization {self._organization}")
        return self._installation_id

    async def installation_token(self, http_client: httpx.AsyncClient) -> str:
        if self._token_lock is None:
            self._token_lock = anyio.Lock()
        async with self._token_lock:
            if self._token is not None and self._clock() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
                return self._token
            self._token, self._token_expires_at = await self._mint(http_client)
            return self._token

    async def _mint(self, http_client: httpx.AsyncClient) -> tuple[str, float]:
        if self._installation_id is None:
            raise RuntimeError(f"no github app installation known for organization {self._organization}")
        url = f"{self._api_base_url}/app/installations/{self._installation_id}/access_tokens"
        response = await http_client.post(url, headers=_app_headers(self.app_jwt()))
        if response.status_code >= 400:
            raise GitHubAPIError(response.status_code, response.text)
        data = response.json()
        expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00")).timestamp()
        logger.debug(f"minted installation token for {self._organization}, valid until {data['expires_at']}")
        return data["token"], expires_at
