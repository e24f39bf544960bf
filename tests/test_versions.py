from __future__ import annotations

import pytest
import semver

from metal_robot.versions import bump_version
from metal_robot.versions import find_version
from metal_robot.versions import parse_release_tag
from metal_robot.versions import parse_version


def test_parse_version_is_lenient() -> None:
    assert parse_version("v0.8.1") == semver.Version(0, 8, 1)
    assert parse_version(" 1.2 ") == semver.Version(1, 2, 0)

    with pytest.raises(ValueError):
        parse_version("latest")


def test_find_version_in_image_reference() -> None:
    assert find_version("ghcr.io/metal-stack/metal-api:v0.15.1") == semver.Version(0, 15, 1)
    assert find_version("no version here") is None


def test_release_tag_requires_v_prefix() -> None:
    assert parse_release_tag("v1.0.0-rc.1").prerelease == "rc.1"

    with pytest.raises(ValueError):
        parse_release_tag("1.0.0")


@pytest.mark.parametrize(
    ("part", "expected"),
    [("major", "1.0.0"), ("minor", "0.3.0"), ("patch", "0.2.5")],
)
def test_bump_version(part: str, expected: str) -> None:
    assert str(bump_version(semver.Version(0, 2, 4), part)) == expected


def test_bump_version_rejects_unknown_part() -> None:
    with pytest.raises(ValueError):
        bump_version(semver.Version(0, 2, 4), "build")
