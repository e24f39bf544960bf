"""
GitHub API 客户端（外部系统连接器）。

约定：
- 这里只做 HTTP 调用 + 错误处理 + schema 校验，不做重试
- 所有调用都限定在 client 配置的 organization 下
- 出错直接抛 `GitHubAPIError`（不要吞），“已存在”类错误由调用方用 `github.errors` 判断
"""

from __future__ import annotations

from typing import Any

import httpx

from metal_robot.github.auth import GITHUB_API_URL
from metal_robot.github.auth import GitHubAppAuth
from metal_robot.github.errors import GitHubAPIError
from metal_robot.github.errors import is_not_found
from metal_robot.github.schemas import GitHubIssueComment
from metal_robot.github.schemas import GitHubPermissionLevel
from metal_robot.github.schemas import GitHubPullRequest
from metal_robot.github.schemas import GitHubRelease
from metal_robot.github.schemas import GitHubRepository
from metal_robot.github.schemas import GitHubTeam

PER_PAGE = 100


class GitHubClient:
    """以 GitHub App installation 身份访问一个组织。"""

    vcs = "github"

    def __init__(
        self,
        name: str,
        organization: str,
        auth: GitHubAppAuth,
        http_client: httpx.AsyncClient,
        api_base_url: str = GITHUB_API_URL,
    ) -> None:
        self.name = name
        self.organization = organization
        self._auth = auth
        self._http_client = http_client
        self._api_base_url = api_base_url.rstrip("/")

    async def _headers(self) -> dict[str, str]:
        token = await self._auth.installation_token(self._http_client)
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _request(self, method: str, path: str, params: dict[str, Any] | None = None, json: Any = None) -> Any:
        response = await self._http_client.request(
            method,
            f"{self._api_base_url}{path}",
            headers=await self._headers(),
            params=params,
            json=json,
        )
        if response.status_code >= 400:
            raise GitHubAPIError(response.status_code, response.text)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        page = 1
        items: list[Any] = []
        while True:
            data = await self._request("GET", path, params={**(params or {}), "per_page": PER_PAGE, "page": page})
            if not isinstance(data, list):
                raise RuntimeError(f"Unexpected GitHub response shape for {path}: {data}")
            items.extend(data)
            if len(data) < PER_PAGE:
                return items
            page += 1

    async def git_token(self) -> str:
        """installation token，可作为 git HTTP Basic 密码使用。"""
        return await self._auth.installation_token(self._http_client)

    # --- repositories ---

    async def get_repository(self, repo: str) -> GitHubRepository:
        data = await self._request("GET", f"/repos/{self.organization}/{repo}")
        return GitHubRepository.model_validate(data)

    async def get_permission_level(self, repo: str, user: str) -> str:
        data = await self._request("GET", f"/repos/{self.organization}/{repo}/collaborators/{user}/permission")
        return GitHubPermissionLevel.model_validate(data).permission

    # --- pull requests ---

    async def list_pull_requests(
        self,
        repo: str,
        state: str = "open",
        head: str | None = None,
        base: str | None = None,
    ) -> list[GitHubPullRequest]:
        params: dict[str, Any] = {"state": state}
        if head is not None:
            params["head"] = f"{self.organization}:{head}"
        if base is not None:
            params["base"] = base
        data = await self._paginate(f"/repos/{self.organization}/{repo}/pulls", params)
        return [GitHubPullRequest.model_validate(x) for x in data]

    async def get_pull_request(self, repo: str, number: int) -> GitHubPullRequest:
        data = await self._request("GET", f"/repos/{self.organization}/{repo}/pulls/{number}")
        return GitHubPullRequest.model_validate(data)

    async def create_pull_request(
        self,
        repo: str,
        title: str,
        head: str,
        base: str,
        body: str,
        draft: bool = False,
    ) -> GitHubPullRequest:
        payload = {
            "title": title,
            "head": head,
            "base": base,
            "body": body,
            "maintainer_can_modify": True,
            "draft": draft,
        }
        data = await self._request("POST", f"/repos/{self.organization}/{repo}/pulls", json=payload)
        return GitHubPullRequest.model_validate(data)

    async def edit_pull_request_state(self, repo: str, number: int, state: str) -> GitHubPullRequest:
        data = await self._request("PATCH", f"/repos/{self.organization}/{repo}/pulls/{number}", json={"state": state})
        return GitHubPullRequest.model_validate(data)

    # --- issue comments ---

    async def create_issue_comment(self, repo: str, number: int, body: str) -> GitHubIssueComment:
        data = await self._request(
            "POST",
            f"/repos/{self.organization}/{repo}/issues/{number}/comments",
            json={"body": body},
        )
        return GitHubIssueComment.model_validate(data)

    async def list_issue_comments(self, repo: str, number: int) -> list[GitHubIssueComment]:
        """按创建时间倒序（最新的在前）。"""
        data = await self._paginate(f"/repos/{self.organization}/{repo}/issues/{number}/comments")
        comments = [GitHubIssueComment.model_validate(x) for x in data]
        comments.sort(key=lambda c: c.created_at.timestamp() if c.created_at else 0.0, reverse=True)
        return comments

    async def add_issue_comment_reaction(self, repo: str, comment_id: int, content: str) -> None:
        await self._request(
            "POST",
            f"/repos/{self.organization}/{repo}/issues/comments/{comment_id}/reactions",
            json={"content": content},
        )

    # --- releases ---

    async def list_releases(self, repo: str) -> list[GitHubRelease]:
        data = await self._paginate(f"/repos/{self.organization}/{repo}/releases")
        return [GitHubRelease.model_validate(x) for x in data]

    async def get_latest_release(self, repo: str) -> GitHubRelease | None:
        """没有任何（非 draft）release 时返回 None。"""
        try:
            data = await self._request("GET", f"/repos/{self.organization}/{repo}/releases/latest")
        except GitHubAPIError as exc:
            if is_not_found(exc):
                return None
            raise
        return GitHubRelease.model_validate(data)

    async def create_release(self, repo: str, tag_name: str, name: str, body: str, draft: bool = True) -> GitHubRelease:
        payload = {"tag_name": tag_name, "name": name, "body": body, "draft": draft}
        data = await self._request("POST", f"/repos/{self.organization}/{repo}/releases", json=payload)
        return GitHubRelease.model_validate(data)

    async def edit_release(self, repo: str, release_id: int, body: str) -> GitHubRelease:
        data = await self._request("PATCH", f"/repos/{self.organization}/{repo}/releases/{release_id}", json={"body": body})
        return GitHubRelease.model_validate(data)

    # --- teams ---

    async def list_teams(self) -> list[GitHubTeam]:
        data = await self._paginate(f"/orgs/{self.organization}/teams")
        return [GitHubTeam.model_validate(x) for x in data]

    async def create_team(self, name: str, description: str, maintainers: list[str], repo_names: list[str]) -> GitHubTeam:
        payload = {
            "name": name,
            "description": description,
            "maintainers": maintainers,
            "repo_names": [f"{self.organization}/{r}" for r in repo_names],
            "privacy": "closed",
        }
        data = await self._request("POST", f"/orgs/{self.organization}/teams", json=payload)
        return GitHubTeam.model_validate(data)

    async def add_team_repository(self, team_slug: str, repo: str, permission: str) -> None:
        await self._request(
            "PUT",
            f"/orgs/{self.organization}/teams/{team_slug}/repos/{self.organization}/{repo}",
            json={"permission": permission},
        )

    # --- graphql ---

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """执行 GraphQL query/mutation，返回 `data`；响应里有 `errors` 时抛错。"""
        data = await self._request("POST", "/graphql", json={"query": query, "variables": variables or {}})
        if not isinstance(data, dict):
            raise RuntimeError(f"Unexpected GitHub GraphQL response: {data}")
        if data.get("errors"):
            raise GitHubAPIError(200, str(data["errors"]))
        return data.get("data") or {}
