from __future__ import annotations

import logging
from dataclasses import dataclass

import anyio
import pytest

from fakes import make_logger
from metal_robot.handlers.errors import SkipError
from metal_robot.handlers.registry import HandlerRegistry


@dataclass(frozen=True)
class ReleaseEvent:
    tag: str


@dataclass(frozen=True)
class PushEvent:
    tag: str


class Recorder:
    def __init__(self, fail: Exception | None = None, delay: float = 0.0) -> None:
        self.calls: list[str] = []
        self._fail = fail
        self._delay = delay

    async def handle(self, log, params: str) -> None:
        if self._delay:
            await anyio.sleep(self._delay)
        if self._fail is not None:
            raise self._fail
        self.calls.append(params)


@pytest.mark.anyio
async def test_handlers_only_fire_for_their_event_type() -> None:
    registry = HandlerRegistry()
    on_release = Recorder()
    on_push = Recorder()
    registry.register(ReleaseEvent, "release", "/hook", on_release, lambda e: e.tag)
    registry.register(PushEvent, "push", "/hook", on_push, lambda e: e.tag)

    await registry.run(make_logger(), "hook", ReleaseEvent("v1.0.0"))

    assert on_release.calls == ["v1.0.0"]
    assert on_push.calls == []


@pytest.mark.anyio
async def test_handlers_are_scoped_by_serve_path() -> None:
    registry = HandlerRegistry()
    recorder = Recorder()
    registry.register(ReleaseEvent, "release", "/github", recorder, lambda e: e.tag)

    await registry.run(make_logger(), "/other/", ReleaseEvent("v1.0.0"))
    await registry.run(make_logger(), "/github/", ReleaseEvent("v1.0.1"))

    assert recorder.calls == ["v1.0.1"]


@pytest.mark.anyio
async def test_skip_is_logged_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG)
    registry = HandlerRegistry()
    recorder = Recorder()

    def convert(event: ReleaseEvent) -> str:
        raise SkipError.only_actions("released")

    registry.register(ReleaseEvent, "release", "hook", recorder, convert)
    await registry.run(make_logger(), "hook", ReleaseEvent("v1.0.0"))

    assert recorder.calls == []
    skipped = [r for r in caplog.records if "skip handling event" in r.getMessage()]
    assert len(skipped) == 1
    assert skipped[0].levelno == logging.DEBUG
    assert "only reacting to actions of type(s): released" in skipped[0].getMessage()
    assert "handler=release" in skipped[0].getMessage()
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.anyio
async def test_error_does_not_stop_sibling_handlers(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    registry = HandlerRegistry()
    broken = Recorder(fail=RuntimeError("boom"))
    healthy = Recorder()
    registry.register(ReleaseEvent, "broken", "hook", broken, lambda e: e.tag)
    registry.register(ReleaseEvent, "healthy", "hook", healthy, lambda e: e.tag)

    await registry.run(make_logger(), "hook", ReleaseEvent("v1.0.0"))

    assert healthy.calls == ["v1.0.0"]
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "error handling event" in errors[0].getMessage()
    assert "boom" in errors[0].getMessage()
    assert any("successfully handled event" in r.getMessage() for r in caplog.records)


@pytest.mark.anyio
async def test_handler_timeout_is_an_error(caplog: pytest.LogCaptureFixture) -> None:
    registry = HandlerRegistry(timeout_seconds=0.05)
    slow = Recorder(delay=5)
    registry.register(ReleaseEvent, "slow", "hook", slow, lambda e: e.tag)

    with anyio.fail_after(2):
        await registry.run(make_logger(), "hook", ReleaseEvent("v1.0.0"))

    assert slow.calls == []
    assert any(r.levelno == logging.ERROR for r in caplog.records)


def test_clear_removes_all_entries() -> None:
    registry = HandlerRegistry()
    registry.register(ReleaseEvent, "release", "hook", Recorder(), lambda e: e.tag)

    registry.clear()

    assert registry.entries("hook", ReleaseEvent) == []
