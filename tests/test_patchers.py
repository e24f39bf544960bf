from __future__ import annotations

import pytest

from metal_robot.config import ConfigError
from metal_robot.patchers.base import PatchError
from metal_robot.patchers.line_patch import LinePatch
from metal_robot.patchers.registry import build_patcher
from metal_robot.patchers.yaml_path_patch import PathNotFoundError
from metal_robot.patchers.yaml_path_patch import YAMLPathPatch
from metal_robot.patchers.yaml_path_patch import get_yaml
from metal_robot.patchers.yaml_path_patch import set_yaml
from metal_robot.patchers.yaml_path_patch import split_path

RELEASE_YAML = b"""docker-images:
  metal-stack:
    control-plane:
      metalctl:
        tag: v0.8.0
"""


class Files:
    def __init__(self, **files: bytes) -> None:
        self.files = {name.replace("__", "/"): data for name, data in files.items()}
        self.writes = 0

    def read(self, path: str) -> bytes:
        return self.files[path]

    def write(self, path: str, data: bytes) -> None:
        self.writes += 1
        self.files[path] = data


def test_line_patch_replaces_exactly_one_line() -> None:
    files = Files(version=b"VERSION = 'v0.15.0'\nAUTHOR = 'metal-stack'\n")
    patch = LinePatch(file="version", line=1, template="VERSION = '%s'")

    patch.apply(files.read, files.write, "v0.15.1")

    assert files.files["version"] == b"VERSION = 'v0.15.1'\nAUTHOR = 'metal-stack'\n"


def test_line_patch_without_template_writes_raw_value() -> None:
    files = Files(version=b"a\nb\nc")
    LinePatch(file="version", line=2).apply(files.read, files.write, "v1.0.0")

    assert files.files["version"] == b"a\nv1.0.0\nc"


def test_line_patch_fails_beyond_last_line() -> None:
    files = Files(version=b"a\n")
    with pytest.raises(PatchError):
        LinePatch(file="version", line=3).apply(files.read, files.write, "v1.0.0")
    assert files.writes == 0


@pytest.mark.parametrize(
    "patch",
    [
        LinePatch(file="", line=1),
        LinePatch(file="version", line=0),
        LinePatch(file="version", line=1, template="no placeholder"),
    ],
)
def test_line_patch_validation(patch: LinePatch) -> None:
    with pytest.raises(ConfigError):
        patch.validate()


def test_set_yaml_normalizes_output() -> None:
    assert set_yaml(b"a: b", "a", "c") == b"a: c\n"


def test_get_yaml_reads_nested_and_list_values() -> None:
    data = b"images:\n- name: metal-api\n  tag: v0.1.0\n"

    assert get_yaml(data, "images.0.tag") == "v0.1.0"
    with pytest.raises(PathNotFoundError):
        get_yaml(data, "images.1.tag")


def test_split_path_supports_escaped_dots() -> None:
    assert split_path(r"metadata.labels.app\.kubernetes\.io/name") == [
        "metadata",
        "labels",
        "app.kubernetes.io/name",
    ]


def test_yaml_patch_bumps_newer_version() -> None:
    files = Files(release=RELEASE_YAML)
    patch = YAMLPathPatch(file="release", yaml_path="docker-images.metal-stack.control-plane.metalctl.tag")

    patch.apply(files.read, files.write, "v0.8.1")

    assert get_yaml(files.files["release"], patch.yaml_path) == "v0.8.1"
    assert b"tag: v0.8.1" in files.files["release"]


@pytest.mark.parametrize("value", ["v0.8.0", "v0.7.9", "0.8.0"])
def test_yaml_patch_version_gate_is_a_no_op(value: str) -> None:
    files = Files(release=RELEASE_YAML)
    patch = YAMLPathPatch(file="release", yaml_path="docker-images.metal-stack.control-plane.metalctl.tag")

    patch.apply(files.read, files.write, value)

    assert files.writes == 0
    assert files.files["release"] == RELEASE_YAML


def test_yaml_patch_overwrites_non_version_old_value() -> None:
    files = Files(release=b"tag: latest\n")
    YAMLPathPatch(file="release", yaml_path="tag").apply(files.read, files.write, "v1.0.0")

    assert files.files["release"] == b"tag: v1.0.0\n"


def test_yaml_patch_rejects_unparsable_new_version() -> None:
    files = Files(release=RELEASE_YAML)
    patch = YAMLPathPatch(file="release", yaml_path="docker-images.metal-stack.control-plane.metalctl.tag")

    with pytest.raises(ValueError):
        patch.apply(files.read, files.write, "not-a-version")


def test_yaml_patch_with_template() -> None:
    files = Files(values=b"image: ghcr.io/metal-stack/metal-api:v0.1.0\n")
    patch = YAMLPathPatch(file="values", yaml_path="image", template="ghcr.io/metal-stack/metal-api:%s", version_compare=False)

    patch.apply(files.read, files.write, "v0.2.0")

    assert files.files["values"] == b"image: ghcr.io/metal-stack/metal-api:v0.2.0\n"


def test_yaml_patch_missing_path_aborts() -> None:
    files = Files(release=RELEASE_YAML)
    patch = YAMLPathPatch(file="release", yaml_path="docker-images.metal-stack.control-plane.metal-api.tag")

    with pytest.raises(PathNotFoundError):
        patch.apply(files.read, files.write, "v0.15.1")
    assert files.writes == 0


def test_yaml_patch_rejects_version_compare_with_template() -> None:
    with pytest.raises(ConfigError):
        YAMLPathPatch(file="release", yaml_path="a", template="x:%s", version_compare=True).validate()


def test_build_patcher_defaults_version_compare() -> None:
    plain = build_patcher({"type": "yaml-path-version-patch", "args": {"file": "release.yaml", "yaml-path": "a.b"}})
    templated = build_patcher(
        {"type": "yaml-path-version-patch", "args": {"file": "release.yaml", "yaml-path": "a.b", "template": "img:%s"}}
    )

    assert plain == YAMLPathPatch(file="release.yaml", yaml_path="a.b", template=None, version_compare=True)
    assert isinstance(templated, YAMLPathPatch)
    assert templated.version_compare is False


def test_build_patcher_line_patch() -> None:
    patcher = build_patcher(
        {"type": "line-patch", "args": {"file": "metal_python/version.py", "line": 1, "template": "VERSION = '%s'"}}
    )

    assert patcher == LinePatch(file="metal_python/version.py", line=1, template="VERSION = '%s'")


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "sed", "args": {"file": "a"}},
        {"type": "line-patch", "args": {"file": "a", "line": 1, "unknown": True}},
        {"type": "line-patch", "args": {"file": "a", "line": 0}},
        {"type": "yaml-path-version-patch", "args": {"file": "a", "yaml-path": "b", "template": "%s", "version-compare": True}},
    ],
)
def test_build_patcher_rejects_invalid_modifiers(raw: dict) -> None:
    with pytest.raises(ConfigError):
        build_patcher(raw)
