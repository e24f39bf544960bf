"""issue-labels-on-creation：新 issue / PR 自动打上配置的 label（只打仓库里真实存在的）。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import Field

from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.github.client import GitHubClient
from metal_robot.handlers.errors import SkipError
from metal_robot.infra.log import ContextLogger

REPOSITORY_LABELS_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    labels(first: 50) { nodes { name id } }
  }
}
"""

ADD_LABELS_MUTATION = """
mutation($input: AddLabelsToLabelableInput!) {
  addLabelsToLabelable(input: $input) { clientMutationId }
}
"""


class RepositoryLabels(ConfigModel):
    labels: list[str] = Field(default_factory=list)


class LabelsOnCreationConfig(ConfigModel):
    repos: dict[str, RepositoryLabels] = Field(default_factory=dict)


@dataclass(frozen=True)
class LabelsOnCreationParams:
    repository_name: str
    content_node_id: str
    url: str


class LabelsOnCreation:
    def __init__(self, client: GitHubClient, config: LabelsOnCreationConfig) -> None:
        self._client = client
        self._config = config

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> LabelsOnCreation:
        return cls(client, validate_args(LabelsOnCreationConfig, args, "issue-labels-on-creation"))

    async def handle(self, log: ContextLogger, params: LabelsOnCreationParams) -> None:
        repo = self._config.repos.get(params.repository_name)
        if repo is None:
            raise SkipError.because(f"repository {params.repository_name} is not configured for labels on creation")
        if not repo.labels:
            return

        data = await self._client.graphql(
            REPOSITORY_LABELS_QUERY,
            {"owner": self._client.organization, "name": params.repository_name},
        )
        existing = {
            label["name"]: label["id"]
            for label in ((data.get("repository") or {}).get("labels") or {}).get("nodes") or []
        }

        # 保持配置顺序
        label_ids = [existing[name] for name in repo.labels if name in existing]
        if not label_ids:
            log.info(f"no need to add creation labels because none of {repo.labels} exist in the repository")
            return

        variables = {"input": {"labelableId": params.content_node_id, "labelIds": label_ids}}
        await self._client.graphql(ADD_LABELS_MUTATION, variables)
        log.info(f"added creation labels {repo.labels} to {params.url}")
