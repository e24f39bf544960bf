"""
语义化版本工具。

- `parse_version`：宽松解析（允许前缀 v、允许省略 minor/patch）
- `find_version`：从任意字符串（例如镜像 tag `metal-api:v0.15.1`）里提取版本号
- `parse_release_tag`：release tag 必须是 `v<semver>`
"""

from __future__ import annotations

import re

import semver

SEMANTIC_VERSION_PATTERN = re.compile(
    r"v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
)


def parse_version(value: str) -> semver.Version:
    """解析失败抛 `ValueError`。"""
    trimmed = value.strip()
    if trimmed.startswith("v"):
        trimmed = trimmed[1:]
    return semver.Version.parse(trimmed, optional_minor_and_patch=True)


def find_version(text: str) -> semver.Version | None:
    match = SEMANTIC_VERSION_PATTERN.search(text)
    if match is None:
        return None
    return parse_version(match.group(0))


def parse_release_tag(tag: str) -> semver.Version:
    if not tag.startswith("v"):
        raise ValueError(f"tag {tag!r} does not start with v")
    return parse_version(tag)


def bump_version(version: semver.Version, part: str) -> semver.Version:
    if part == "major":
        return version.bump_major()
    if part == "minor":
        return version.bump_minor()
    if part == "patch":
        return version.bump_patch()
    raise ValueError(f"unknown version part: {part}")
