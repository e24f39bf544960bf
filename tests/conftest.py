from __future__ import annotations

import pytest

from fakes import FakeGit
from fakes import FakeGitHubClient
from metal_robot.git import repository as git
from metal_robot.infra.multilock import MultiLock


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_git(monkeypatch: pytest.MonkeyPatch) -> FakeGit:
    fake = FakeGit()
    monkeypatch.setattr(git, "shallow_clone", fake.shallow_clone)
    monkeypatch.setattr(git, "clone_at_tag", fake.clone_at_tag)
    monkeypatch.setattr(git, "push_to_remote", fake.push_to_remote)
    monkeypatch.setattr(git, "create_tag", fake.create_tag)
    return fake


@pytest.fixture
def github() -> FakeGitHubClient:
    return FakeGitHubClient()


@pytest.fixture
def locks() -> MultiLock:
    return MultiLock()
