"""
create-repository-maintainers：新仓库创建时建一个默认的 maintainers team。

team 名为 `<repo><suffix>`，创建者是唯一 maintainer；team 已存在（webhook 重投）时只记日志。
之后把 maintainers team 和配置的 additional-memberships 依次挂到仓库上。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import Field

from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.github.client import GitHubClient
from metal_robot.github.errors import GitHubAPIError
from metal_robot.github.errors import is_team_name_taken
from metal_robot.infra.log import ContextLogger

MAINTAINERS_PERMISSION = "maintain"


class TeamMembership(ConfigModel):
    team_slug: str = Field(alias="team-slug")
    permission: str


class RepositoryMaintainersConfig(ConfigModel):
    suffix: str = "-maintainers"
    additional_memberships: list[TeamMembership] = Field(default_factory=list, alias="additional-memberships")


@dataclass(frozen=True)
class RepositoryMaintainersParams:
    repository_name: str
    creator: str


class RepositoryMaintainers:
    def __init__(self, client: GitHubClient, config: RepositoryMaintainersConfig) -> None:
        self._client = client
        self._config = config

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> RepositoryMaintainers:
        return cls(client, validate_args(RepositoryMaintainersConfig, args, "create-repository-maintainers"))

    async def handle(self, log: ContextLogger, params: RepositoryMaintainersParams) -> None:
        name = f"{params.repository_name}{self._config.suffix}"
        log = log.bind(team=name)

        try:
            await self._client.create_team(
                name,
                description=f"Maintainers of {params.repository_name}",
                maintainers=[params.creator],
                repo_names=[params.repository_name],
            )
        except GitHubAPIError as exc:
            if not is_team_name_taken(exc):
                raise
            log.info("maintainers team for repository already exists")
        else:
            log.info("created new maintainers team for repository")

        memberships = [TeamMembership(team_slug=name, permission=MAINTAINERS_PERMISSION)]
        memberships.extend(self._config.additional_memberships)

        for team in memberships:
            await self._client.add_team_repository(team.team_slug, params.repository_name, team.permission)
            log.info(f"added team {team.team_slug} to repository with permission {team.permission}")
