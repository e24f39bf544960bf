"""
GitLab 客户端（secondary forge）。

GitLab 只作为事件来源（tag push webhook），action 全部作用在 GitHub 上；
这里只保存 token 鉴权信息，action 装配时会拒绝 GitLab client。
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field


@dataclass(frozen=True)
class GitLabClient:
    name: str
    organization: str
    token: str = field(repr=False)
    vcs: str = "gitlab"
