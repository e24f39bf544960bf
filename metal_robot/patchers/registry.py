"""
modifier 配置 -> patcher 的路由。

- 统一做配置校验（未知 type / 多余字段都是 `ConfigError`）
- 构造后立刻 `validate()`，非法组合在启动期就暴露
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import TypeAdapter, ValidationError

from metal_robot.config import ConfigError
from metal_robot.patchers.base import LinePatchModifier
from metal_robot.patchers.base import Modifier
from metal_robot.patchers.base import Patcher
from metal_robot.patchers.line_patch import LinePatch
from metal_robot.patchers.yaml_path_patch import YAMLPathPatch

_modifier_adapter: TypeAdapter[Any] = TypeAdapter(Modifier)


def build_patcher(raw: Any) -> Patcher:
    """校验一条 modifier 配置并构造对应的 patcher。"""
    try:
        modifier = _modifier_adapter.validate_python(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid modifier configuration: {exc}") from exc

    patcher: Patcher
    if isinstance(modifier, LinePatchModifier):
        patcher = LinePatch(file=modifier.args.file, line=modifier.args.line, template=modifier.args.template)
    else:
        args = modifier.args
        patcher = YAMLPathPatch(
            file=args.file,
            yaml_path=args.yaml_path,
            template=args.template,
            version_compare=args.version_compare if args.version_compare is not None else args.template is None,
        )

    patcher.validate()
    return patcher


def build_patchers(raw_modifiers: Sequence[Any]) -> list[Patcher]:
    return [build_patcher(raw) for raw in raw_modifiers]
