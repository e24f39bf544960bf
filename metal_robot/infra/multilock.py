"""
按 key 加锁（multi-lock）。

职责：
- 同一个 key（目标仓库名）上的操作串行
- 不同 key 之间互不阻塞
- 锁条目按引用计数回收，不会无限增长
- `LockHandle.release()` 只生效一次：push 成功后可以提前释放，finally 里再释放也安全
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from dataclasses import field

import anyio


@dataclass
class _Entry:
    lock: anyio.Lock = field(default_factory=anyio.Lock)
    refs: int = 0


class LockHandle:
    """一次 acquire 的持有凭证。"""

    def __init__(self, owner: MultiLock, key: str) -> None:
        self._owner = owner
        self._key = key
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._owner._release(self._key)


class MultiLock:
    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    async def acquire(self, key: str) -> LockHandle:
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
        entry.refs += 1
        try:
            await entry.lock.acquire()
        except BaseException:
            self._drop(key, entry)
            raise
        return LockHandle(self, key)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[LockHandle]:
        handle = await self.acquire(key)
        try:
            yield handle
        finally:
            handle.release()

    def locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)

    def _release(self, key: str) -> None:
        entry = self._entries[key]
        entry.lock.release()
        self._drop(key, entry)

    def _drop(self, key: str, entry: _Entry) -> None:
        entry.refs -= 1
        if entry.refs == 0:
            del self._entries[key]


# 进程内共享：所有 action 对同一个目标仓库的写操作都在这里串行
repository_locks = MultiLock()
