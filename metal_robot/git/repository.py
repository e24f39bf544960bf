"""
内存中的 git 工作区（基于 dulwich，不落盘）。

职责：
- `shallow_clone`：浅克隆（depth=1），切到指定分支；分支不存在时从默认分支创建
- `clone_at_tag`：只读克隆，定位到某个 tag 指向的提交
- `Repository.read_file/write_file`：读写工作区文件（写入先暂存在内存里）
- `Repository.commit_and_push`：没有变化时抛 `NoChangesError`，否则提交并推送当前分支
- `push_to_remote`：把源仓库的分支强推到目标仓库的分支（fork build 用）
- `create_tag`：在目标分支最新提交上推一个轻量 tag

dulwich 的调用都是阻塞的，统一通过 `anyio.to_thread.run_sync` 执行。
只读的 fetch 在超时取消时不再等待后台线程；推送则在屏蔽取消的 scope 里
等线程结束，调用方持有的仓库锁要覆盖到推送真正完成。
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar
from urllib.parse import urlparse, urlunparse

import anyio
from dulwich.client import get_transport_and_path
from dulwich.object_store import commit_tree_changes
from dulwich.object_store import tree_lookup_path
from dulwich.objects import Blob, Commit, Tag
from dulwich.repo import MemoryRepo

logger = logging.getLogger(__name__)

COMMIT_AUTHOR = b"metal-robot <info@metal-stack.io>"
DEFAULT_FILE_MODE = 0o100644
TOKEN_USER = "x-access-token"

T = TypeVar("T")


class GitError(RuntimeError):
    pass


class NoChangesError(GitError):
    """工作区没有变化，不需要提交。"""

    pass


class NotFoundError(GitError):
    """分支/tag/文件不存在。"""

    pass


def inject_token(clone_url: str, token: str | None, token_user: str = TOKEN_USER) -> str:
    """把安装 token 作为 HTTP Basic 凭据写进 clone URL（ssh/本地路径原样返回）。"""
    if token is None:
        return clone_url
    parsed = urlparse(clone_url)
    if parsed.scheme not in ("http", "https"):
        return clone_url
    if not parsed.netloc:
        raise ValueError(f"Invalid clone_url: {clone_url}")
    host = parsed.netloc.rsplit("@", 1)[-1]
    return urlunparse(parsed._replace(netloc=f"{token_user}:{token}@{host}"))


def redact(url: str) -> str:
    parsed = urlparse(url)
    if parsed.password is None:
        return url
    host = parsed.netloc.rsplit("@", 1)[-1]
    return urlunparse(parsed._replace(netloc=f"{parsed.username}:***@{host}"))


async def _run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs), abandon_on_cancel=True)


async def _run_push(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    with anyio.CancelScope(shield=True):
        return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))


def _branch_ref(branch: str) -> bytes:
    return b"refs/heads/" + branch.encode("utf-8")


def _tag_ref(tag: str) -> bytes:
    return b"refs/tags/" + tag.encode("utf-8")


def _wanted_ref(name: bytes) -> bool:
    return (name.startswith(b"refs/heads/") or name.startswith(b"refs/tags/")) and not name.endswith(b"^{}")


def _check_push_result(result: Any, url: str) -> None:
    failed = {ref.decode("utf-8"): status for ref, status in (result.ref_status or {}).items() if status is not None}
    if failed:
        details = ", ".join(f"{ref}: {status}" for ref, status in sorted(failed.items()))
        raise GitError(f"push to {redact(url)} was rejected: {details}")


def _push_ref(url: str, repo: MemoryRepo, ref: bytes, sha: bytes) -> None:
    """只更新一个 ref；远端已有的对象不会重复发送。"""
    client, path = get_transport_and_path(url)

    def update_refs(refs: dict[bytes, bytes]) -> dict[bytes, bytes]:
        return {ref: sha}

    result = client.send_pack(path, update_refs, generate_pack_data=repo.generate_pack_data)
    _check_push_result(result, url)


class Repository:
    """一次克隆得到的内存仓库，定位在某个分支（或只读地定位在某个提交）上。"""

    def __init__(self, url: str, repo: MemoryRepo, branch: str | None, head: bytes) -> None:
        self._url = url
        self._repo = repo
        self._branch = branch
        self._head = head
        self._pending: dict[str, bytes] = {}

    @property
    def branch(self) -> str | None:
        return self._branch

    @property
    def head(self) -> str:
        return self._head.decode("ascii")

    def read_file(self, path: str) -> bytes:
        if path in self._pending:
            return self._pending[path]
        _, sha = self._lookup(path)
        blob = self._repo.object_store[sha]
        if not isinstance(blob, Blob):
            raise NotFoundError(f"{path} is not a file")
        return blob.data

    def write_file(self, path: str, data: bytes) -> None:
        self._pending[path] = data

    def _lookup(self, path: str) -> tuple[int, bytes]:
        commit = self._repo[self._head]
        try:
            return tree_lookup_path(self._repo.object_store.__getitem__, commit.tree, path.encode("utf-8"))
        except KeyError as exc:
            raise NotFoundError(f"file {path} not found at {self.head}") from exc

    def _stage(self, message: str) -> bytes:
        """把暂存的文件写成一个新提交，返回提交 id；没有变化时抛 `NoChangesError`。"""
        store = self._repo.object_store
        parent = self._repo[self._head]
        tree = store[parent.tree]

        changes = []
        for path, data in sorted(self._pending.items()):
            blob = Blob.from_string(data)
            store.add_object(blob)
            try:
                mode, _ = self._lookup(path)
            except NotFoundError:
                mode = DEFAULT_FILE_MODE
            changes.append((path.encode("utf-8"), mode, blob.id))

        new_tree = commit_tree_changes(store, tree, changes)
        if new_tree.id == parent.tree:
            raise NoChangesError("no changes to commit")

        commit = Commit()
        commit.tree = new_tree.id
        commit.parents = [self._head]
        commit.author = commit.committer = COMMIT_AUTHOR
        commit.author_time = commit.commit_time = int(time.time())
        commit.author_timezone = commit.commit_timezone = 0
        commit.encoding = b"UTF-8"
        commit.message = message.encode("utf-8")
        store.add_object(commit)
        return commit.id

    def _commit_and_push(self, message: str) -> str:
        if self._branch is None:
            raise GitError("repository was cloned read-only, refusing to commit")

        commit_id = self._stage(message)
        ref = _branch_ref(self._branch)

        _push_ref(self._url, self._repo, ref, commit_id)

        self._repo.refs[ref] = commit_id
        self._head = commit_id
        self._pending.clear()
        return commit_id.decode("ascii")

    async def commit_and_push(self, message: str) -> str:
        """返回新提交的 sha；没有变化时抛 `NoChangesError`。"""
        return await _run_push(self._commit_and_push, message)


def _fetch(url: str, depth: int | None, wanted: Callable[[bytes], bool] = _wanted_ref) -> tuple[MemoryRepo, Any]:
    repo = MemoryRepo()
    client, path = get_transport_and_path(url)

    def determine_wants(refs: dict[bytes, bytes], depth: int | None = None) -> list[bytes]:
        return sorted({sha for name, sha in refs.items() if wanted(name) and sha not in repo.object_store})

    result = client.fetch(path, repo, determine_wants=determine_wants, depth=depth)
    for name, sha in result.refs.items():
        if wanted(name) and sha in repo.object_store:
            repo.refs[name] = sha
    return repo, result


def _peel(repo: MemoryRepo, sha: bytes) -> bytes:
    obj = repo[sha]
    while isinstance(obj, Tag):
        obj = repo[obj.object[1]]
    return obj.id


def _shallow_clone(url: str, branch: str, depth: int | None) -> Repository:
    repo, result = _fetch(url, depth)
    ref = _branch_ref(branch)

    if ref in repo.refs:
        head = repo.refs[ref]
    else:
        default = result.symrefs.get(b"HEAD")
        if default is None or default not in repo.refs:
            raise NotFoundError(f"branch {branch} not found in {redact(url)} and no default branch to create it from")
        head = repo.refs[default]
        repo.refs[ref] = head
        logger.debug(f"branch {branch} does not exist yet, creating it from {default.decode('utf-8')}")

    repo.refs.set_symbolic_ref(b"HEAD", ref)
    return Repository(url=url, repo=repo, branch=branch, head=head)


async def shallow_clone(url: str, branch: str, depth: int | None = 1) -> Repository:
    return await _run_sync(_shallow_clone, url, branch, depth)


def _clone_at_tag(url: str, tag: str, depth: int | None) -> Repository:
    ref = _tag_ref(tag)
    repo, _ = _fetch(url, depth, wanted=lambda name: name == ref)
    if ref not in repo.refs:
        raise NotFoundError(f"tag {tag} not found in {redact(url)}")
    return Repository(url=url, repo=repo, branch=None, head=_peel(repo, repo.refs[ref]))


async def clone_at_tag(url: str, tag: str, depth: int | None = 1) -> Repository:
    """只读克隆：`commit_and_push` 会被拒绝。"""
    return await _run_sync(_clone_at_tag, url, tag, depth)


def _push_to_remote(source_url: str, source_branch: str, target_url: str, target_branch: str) -> str:
    source_ref = _branch_ref(source_branch)
    # 完整历史：目标仓库需要一个能接上的 pack
    repo, _ = _fetch(source_url, None, wanted=lambda name: name == source_ref)
    if source_ref not in repo.refs:
        raise NotFoundError(f"branch {source_branch} not found in {redact(source_url)}")
    sha = repo.refs[source_ref]

    _push_ref(target_url, repo, _branch_ref(target_branch), sha)
    return sha.decode("ascii")


async def push_to_remote(source_url: str, source_branch: str, target_url: str, target_branch: str) -> str:
    """强推 `source_branch` 到目标仓库的 `target_branch`，返回推送的提交 sha。"""
    return await _run_push(_push_to_remote, source_url, source_branch, target_url, target_branch)


def _create_tag(url: str, branch: str, tag: str, depth: int | None) -> str:
    branch_ref = _branch_ref(branch)
    repo, _ = _fetch(url, depth, wanted=lambda name: name == branch_ref)
    if branch_ref not in repo.refs:
        raise NotFoundError(f"branch {branch} not found in {redact(url)}")
    sha = repo.refs[branch_ref]

    _push_ref(url, repo, _tag_ref(tag), sha)
    return sha.decode("ascii")


async def create_tag(url: str, branch: str, tag: str, depth: int | None = 1) -> str:
    """在 `branch` 的最新提交上推送轻量 tag，返回 tag 指向的提交 sha。"""
    return await _run_push(_create_tag, url, branch, tag, depth)
