"""
project-v2-item：project 里条目的 Status 第一次被设置时，摘掉配置的 label。

content node 既可能是 PR 也可能是 issue，两种 fragment 都查，结果合并。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import Field

from metal_robot.config import ConfigModel
from metal_robot.config import validate_args
from metal_robot.github.client import GitHubClient
from metal_robot.handlers.errors import SkipError
from metal_robot.infra.log import ContextLogger

NODE_LABELS_QUERY = """
query($node_id: ID!) {
  node(id: $node_id) {
    ... on PullRequest {
      url
      labels(first: 20) { nodes { name id } }
    }
    ... on Issue {
      url
      labels(first: 20) { nodes { name id } }
    }
  }
}
"""

REMOVE_LABELS_MUTATION = """
mutation($input: RemoveLabelsFromLabelableInput!) {
  removeLabelsFromLabelable(input: $input) { clientMutationId }
}
"""


class ProjectV2ItemConfig(ConfigModel):
    project_id: str = Field(alias="project-id")
    remove_labels: list[str] = Field(default_factory=list, alias="remove-labels")


@dataclass(frozen=True)
class ProjectV2ItemParams:
    project_id: str
    content_node_id: str


class ProjectV2Item:
    def __init__(self, client: GitHubClient, config: ProjectV2ItemConfig) -> None:
        self._client = client
        self._config = config

    @classmethod
    def from_args(cls, client: GitHubClient, args: dict[str, Any]) -> ProjectV2Item:
        return cls(client, validate_args(ProjectV2ItemConfig, args, "project-v2-item"))

    async def handle(self, log: ContextLogger, params: ProjectV2ItemParams) -> None:
        config = self._config
        if params.project_id != config.project_id:
            raise SkipError.because(f"item belongs to project {params.project_id}, not {config.project_id}")

        data = await self._client.graphql(NODE_LABELS_QUERY, {"node_id": params.content_node_id})
        node = data.get("node") or {}
        url = node.get("url", "")

        label_ids = [
            label["id"]
            for label in (node.get("labels") or {}).get("nodes") or []
            if label.get("name") in config.remove_labels
        ]

        log = log.bind(project_id=config.project_id, item_url=url)
        if not label_ids:
            log.info(f"no need to remove labels from project v2 item, none of {config.remove_labels} are attached")
            return

        variables = {"input": {"labelableId": params.content_node_id, "labelIds": label_ids}}
        await self._client.graphql(REMOVE_LABELS_MUTATION, variables)
        log.info(f"removed labels {config.remove_labels} from project v2 item")
