"""
Handler 层的错误类型。

`SkipError` 表示“这个事件不归我处理”，不是失败：
registry 会把它降级成 debug 日志，并视为成功。
"""

from __future__ import annotations


class SkipError(Exception):
    """handler 主动放弃处理当前事件。"""

    @classmethod
    def because(cls, reason: str) -> SkipError:
        return cls(f"skipping because: {reason}")

    @classmethod
    def only_actions(cls, *actions: str) -> SkipError:
        return cls(f"skipping because only reacting to actions of type(s): {', '.join(actions)}")
