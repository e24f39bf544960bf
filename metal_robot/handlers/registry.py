"""
Webhook handler 注册表。

职责：
- 按 (serve path, 事件类型) 保存 handler 列表；事件类型就是 Pydantic event class
- `register` 把 “event -> params 转换” 与 handler 绑定成一个 entry
- `run` 对每个 entry 单独起一个任务，各自有 3 分钟超时，互不影响

日志约定：
- `SkipError` -> debug “skip handling event”
- 其他异常 -> error “error handling event”
- 成功 -> info “successfully handled event”
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

import anyio

from metal_robot.handlers.errors import SkipError
from metal_robot.infra.log import ContextLogger

HANDLER_TIMEOUT_SECONDS = 180.0

E = TypeVar("E")
P = TypeVar("P")
P_contra = TypeVar("P_contra", contravariant=True)


class WebhookHandler(Protocol[P_contra]):
    async def handle(self, log: ContextLogger, params: P_contra) -> None: ...


Converter = Callable[[E], P]


@dataclass(frozen=True)
class HandlerEntry(Generic[E, P]):
    name: str
    handler: WebhookHandler[P]
    convert: Converter[E, P]

    async def invoke(self, log: ContextLogger, event: E) -> None:
        params = self.convert(event)
        await self.handler.handle(log, params)


def _trim_path(path: str) -> str:
    return path.strip("/")


class HandlerRegistry:
    """进程级单例见模块底部的 `registry`；`clear()` 只在测试里用。"""

    def __init__(self, timeout_seconds: float = HANDLER_TIMEOUT_SECONDS) -> None:
        self._timeout_seconds = timeout_seconds
        self._lock = threading.Lock()
        self._entries: dict[str, dict[type, list[HandlerEntry[Any, Any]]]] = {}

    def register(
        self,
        event_type: type[E],
        name: str,
        path: str,
        handler: WebhookHandler[P],
        convert: Converter[E, P],
    ) -> None:
        entry: HandlerEntry[E, P] = HandlerEntry(name=name, handler=handler, convert=convert)
        with self._lock:
            by_type = self._entries.setdefault(_trim_path(path), {})
            by_type.setdefault(event_type, []).append(entry)

    def entries(self, path: str, event_type: type) -> list[HandlerEntry[Any, Any]]:
        with self._lock:
            return list(self._entries.get(_trim_path(path), {}).get(event_type, []))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def run(self, log: ContextLogger, path: str, event: object) -> None:
        """对当前事件的每个 entry 并发执行；单个 entry 的失败只记日志。"""
        entries = self.entries(path, type(event))
        if not entries:
            log.debug("no handlers registered for event")
            return

        async with anyio.create_task_group() as tg:
            for entry in entries:
                tg.start_soon(self._invoke, entry, log.bind(handler=entry.name), event)

    async def _invoke(self, entry: HandlerEntry[Any, Any], log: ContextLogger, event: object) -> None:
        try:
            with anyio.fail_after(self._timeout_seconds):
                await entry.invoke(log, event)
        except SkipError as exc:
            log.debug(f"skip handling event: {exc}")
        except Exception as exc:
            log.error(f"error handling event: {exc!r}")
        else:
            log.info("successfully handled event")


registry = HandlerRegistry()

