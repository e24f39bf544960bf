"""
YAML 路径 patch。

流程：YAML -> JSON -> 按点分路径 get/set -> JSON -> YAML。
回写统一走 `yaml.safe_dump`（key 排序、块风格），输出格式是稳定的。

路径语法：
- `a.b.c` 逐级取 key；数组用下标，例如 `images.0.tag`
- key 本身含点时用 `\\.` 转义，例如 `annotations.app\\.kubernetes\\.io/name`
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import yaml

from metal_robot.config import ConfigError
from metal_robot.patchers.base import FileReader
from metal_robot.patchers.base import FileWriter
from metal_robot.patchers.base import PatchError
from metal_robot.patchers.base import check_template
from metal_robot.versions import find_version
from metal_robot.versions import parse_version

logger = logging.getLogger(__name__)


class PathNotFoundError(PatchError):
    pass


def split_path(path: str) -> list[str]:
    segments: list[str] = []
    current = ""
    escaped = False
    for char in path:
        if escaped:
            current += char
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == ".":
            segments.append(current)
            current = ""
        else:
            current += char
    segments.append(current)
    return segments


def yaml_to_json(data: bytes) -> str:
    try:
        loaded = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise PatchError(f"unable to parse yaml: {exc}") from exc
    return json.dumps(loaded, default=str)


def json_to_yaml(document: str) -> bytes:
    loaded = json.loads(document)
    return yaml.safe_dump(loaded, default_flow_style=False, sort_keys=True, allow_unicode=True).encode("utf-8")


def _child(node: Any, segment: str, path: str) -> Any:
    if isinstance(node, dict):
        if segment not in node:
            raise PathNotFoundError(f"yaml path {path!r} not found")
        return node[segment]
    if isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
        return node[int(segment)]
    raise PathNotFoundError(f"yaml path {path!r} not found")


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, (dict, list, bool)):
        return json.dumps(value)
    return str(value)


def get_json_path(document: str, path: str) -> str:
    node: Any = json.loads(document)
    for segment in split_path(path):
        node = _child(node, segment, path)
    return _to_string(node)


def set_json_path(document: str, path: str, value: str) -> str:
    root: Any = json.loads(document)
    segments = split_path(path)

    parent = root
    for segment in segments[:-1]:
        parent = _child(parent, segment, path)

    last = segments[-1]
    # 目标 key 必须已存在：找不到锚点就中止，不隐式创建
    _child(parent, last, path)
    if isinstance(parent, dict):
        parent[last] = value
    else:
        parent[int(last)] = value

    return json.dumps(root)


def get_yaml(data: bytes, path: str) -> str:
    return get_json_path(yaml_to_json(data), path)


def set_yaml(data: bytes, path: str, value: str) -> bytes:
    return json_to_yaml(set_json_path(yaml_to_json(data), path, value))


@dataclass(frozen=True)
class YAMLPathPatch:
    file: str
    yaml_path: str
    template: str | None = None
    version_compare: bool = True

    def validate(self) -> None:
        if not self.file:
            raise ConfigError("yaml-path-version-patch needs a file")
        if not self.yaml_path:
            raise ConfigError("yaml-path-version-patch needs a yaml-path")
        if self.version_compare and self.template is not None:
            raise ConfigError("yaml-path-version-patch does not support version-compare together with a template")
        check_template(self.template)

    def apply(self, read_file: FileReader, write_file: FileWriter, value: str) -> None:
        content = read_file(self.file)

        if self.version_compare:
            new_version = parse_version(value)
            old = get_yaml(content, self.yaml_path)
            old_version = find_version(old)
            if old_version is None:
                logger.debug(f"old value {old!r} at {self.yaml_path} is not a semantic version, overwriting it")
            elif not new_version > old_version:
                logger.debug(f"not patching {self.file}: {value} is not newer than {old}")
                return

        new_value = value
        if self.template is not None:
            new_value = self.template % value

        write_file(self.file, set_yaml(content, self.yaml_path, new_value))
