"""
GitHub API 错误类型。

GitHub 只在错误文案里表达“已存在”这类语义，这里是唯一做子串匹配的地方：
调用方用 `is_*` 判断后当作幂等成功处理。
"""

from __future__ import annotations

PULL_REQUEST_EXISTS_MESSAGE = "A pull request already exists"
TEAM_NAME_TAKEN_MESSAGE = "Name must be unique for this org"


class GitHubAPIError(RuntimeError):
    """GitHub 返回 status >= 400（或 GraphQL 返回 errors）时抛出。"""

    def __init__(self, status_code: int, text: str) -> None:
        super().__init__(f"GitHub API error {status_code}: {text}")
        self.status_code = status_code
        self.text = text


def is_pull_request_exists(exc: BaseException) -> bool:
    return isinstance(exc, GitHubAPIError) and PULL_REQUEST_EXISTS_MESSAGE in exc.text


def is_team_name_taken(exc: BaseException) -> bool:
    return isinstance(exc, GitHubAPIError) and TEAM_NAME_TAKEN_MESSAGE in exc.text


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, GitHubAPIError) and exc.status_code == 404
