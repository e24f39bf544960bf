"""
文件 patcher 的公共契约。

职责：
- `Patcher` Protocol：`validate()` + `apply(read_file, write_file, value)`
- modifier 配置模型（按 `type` 判别的联合类型）

patcher 不关心文件从哪来：调用方传入 reader/writer（通常是内存里的 git 工作区）。
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Literal, Protocol, Union

from pydantic import Field

from metal_robot.config import ConfigError
from metal_robot.config import ConfigModel

FileReader = Callable[[str], bytes]
FileWriter = Callable[[str, bytes], None]


class PatchError(RuntimeError):
    """patch 找不到锚点（行号/YAML 路径）时抛出，整个 action 中止。"""

    pass


class Patcher(Protocol):
    def validate(self) -> None: ...

    def apply(self, read_file: FileReader, write_file: FileWriter, value: str) -> None: ...


def check_template(template: str | None) -> None:
    if template is None:
        return
    try:
        template % "value"
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"template {template!r} must contain exactly one %s placeholder") from exc


class LinePatchArgs(ConfigModel):
    file: str
    line: int
    template: str | None = None


class YAMLPathPatchArgs(ConfigModel):
    file: str
    yaml_path: str = Field(alias="yaml-path")
    template: str | None = None
    version_compare: bool | None = Field(default=None, alias="version-compare")


class LinePatchModifier(ConfigModel):
    type: Literal["line-patch"]
    args: LinePatchArgs


class YAMLPathPatchModifier(ConfigModel):
    type: Literal["yaml-path-version-patch"]
    args: YAMLPathPatchArgs


Modifier = Annotated[Union[LinePatchModifier, YAMLPathPatchModifier], Field(discriminator="type")]
