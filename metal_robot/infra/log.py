"""
日志初始化与上下文 logger。

职责：
- `setup_logging`：进程级日志配置（只在 CLI 入口调用一次）
- `ContextLogger`：携带 key=value 上下文（事件类型、仓库、handler 名称等）
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: str) -> None:
    """按级别名（debug/info/warning/error）配置 root logger。"""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT, force=True)


class ContextLogger(logging.LoggerAdapter):
    """把绑定的字段以 `key=value` 形式追加到每条日志后面。"""

    def __init__(self, logger: logging.Logger, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(logger, dict(context or {}))

    def bind(self, **fields: Any) -> ContextLogger:
        merged = dict(self.extra or {})
        merged.update(fields)
        return ContextLogger(self.logger, merged)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        if self.extra:
            suffix = " ".join(f"{key}={value}" for key, value in self.extra.items())
            msg = f"{msg} {suffix}"
        return msg, kwargs


def get_logger(name: str, **fields: Any) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), fields)
