"""
Action 之间共享的流程片段。

职责：
- 评论命令解析（`/freeze`、`/ok-to-build` 等）
- 查找 release PR、根据评论历史判断 release 是否被冻结
- 幂等地创建 PR（“已存在”视为成功）
"""

from __future__ import annotations

from metal_robot.github.client import GitHubClient
from metal_robot.github.errors import GitHubAPIError
from metal_robot.github.errors import is_pull_request_exists
from metal_robot.github.schemas import GitHubPullRequest
from metal_robot.infra.log import ContextLogger

COMMAND_OK_TO_BUILD = "/ok-to-build"
COMMAND_FREEZE = "/freeze"
COMMAND_UNFREEZE = "/unfreeze"
COMMAND_TAG = "/tag"
COMMAND_BUMP_RELEASE = "/bump-release"

COMMANDS: tuple[str, ...] = (
    COMMAND_OK_TO_BUILD,
    COMMAND_FREEZE,
    COMMAND_UNFREEZE,
    COMMAND_TAG,
    COMMAND_BUMP_RELEASE,
)


def parse_commands(text: str) -> list[tuple[str, list[str]]]:
    """逐行扫描，返回出现的命令及其参数（保持出现顺序）。"""
    result: list[tuple[str, list[str]]] = []
    for line in text.replace("\r\n", "\n").split("\n"):
        fields = line.strip().split()
        if fields and fields[0] in COMMANDS:
            result.append((fields[0], fields[1:]))
    return result


def search_for_command(text: str, command: str) -> list[str] | None:
    """找到命令时返回参数列表（可能为空），找不到返回 None。"""
    for found, args in parse_commands(text):
        if found == command:
            return args
    return None


def first_command(text: str) -> tuple[str, list[str]] | None:
    commands = parse_commands(text)
    return commands[0] if commands else None


async def find_open_release_pr(client: GitHubClient, repo: str, branch: str, base: str) -> GitHubPullRequest | None:
    """只有恰好一个 open 的 branch -> base PR 时才认为它是 release PR。"""
    pulls = await client.list_pull_requests(repo, state="open", head=branch, base=base)
    if len(pulls) == 1:
        return pulls[0]
    return None


async def is_release_frozen(client: GitHubClient, repo: str, number: int) -> bool:
    """最新的一条 `/freeze` 或 `/unfreeze` 评论决定状态，没有则未冻结。"""
    for comment in await client.list_issue_comments(repo, number):
        if search_for_command(comment.body, COMMAND_FREEZE) is not None:
            return True
        if search_for_command(comment.body, COMMAND_UNFREEZE) is not None:
            return False
    return False


async def find_frozen_release_pr(client: GitHubClient, repo: str, branch: str, base: str) -> GitHubPullRequest | None:
    pull = await find_open_release_pr(client, repo, branch, base)
    if pull is not None and await is_release_frozen(client, repo, pull.number):
        return pull
    return None


def release_frozen_comment(tag: str, repository_url: str, sender: str) -> str:
    return (
        f":warning: Release `{tag}` in repository {repository_url} (issued by @{sender}) was rejected because "
        "release is currently frozen. Please re-issue the release hook once this branch was merged or unfrozen."
    )


async def ensure_pull_request(
    client: GitHubClient,
    log: ContextLogger,
    repo: str,
    title: str,
    head: str,
    base: str,
    body: str,
    draft: bool = False,
) -> GitHubPullRequest | None:
    """创建 PR；同一 head/base 的 PR 已存在时返回 None。"""
    try:
        pull = await client.create_pull_request(repo, title=title, head=head, base=base, body=body, draft=draft)
    except GitHubAPIError as exc:
        if not is_pull_request_exists(exc):
            raise
        log.debug(f"pull request {head} -> {base} already exists in {repo}")
        return None

    log.info(f"created pull request {pull.html_url}")
    return pull
