"""add-items-to-project：新开的 issue / PR 加进配置的 project（GraphQL）。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import Field

from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.github.client import GitHubClient
from metal_robot.infra.log import ContextLogger

ADD_PROJECT_ITEM_MUTATION = """
mutation($input: AddProjectV2ItemByIdInput!) {
  addProjectV2ItemById(input: $input) {
    item {
      id
      project { title number }
    }
  }
}
"""


class ProjectItemAddConfig(ConfigModel):
    project_id: str = Field(alias="project-id")


@dataclass(frozen=True)
class ProjectItemAddParams:
    repository_name: str
    node_id: str
    url: str


class ProjectItemAdd:
    def __init__(self, client: GitHubClient, config: ProjectItemAddConfig) -> None:
        self._client = client
        self._config = config

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> ProjectItemAdd:
        return cls(client, validate_args(ProjectItemAddConfig, args, "add-items-to-project"))

    async def handle(self, log: ContextLogger, params: ProjectItemAddParams) -> None:
        variables = {"input": {"projectId": self._config.project_id, "contentId": params.node_id}}
        data = await self._client.graphql(ADD_PROJECT_ITEM_MUTATION, variables)

        project = ((data.get("addProjectV2ItemById") or {}).get("item") or {}).get("project") or {}
        log.info(f"added item {params.url} to project {project.get('title')} (#{project.get('number')})")
