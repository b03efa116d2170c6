"""
File: tests/unit/test_tasks.py
Description: BestEffortRunner 单元测试 (失败只上报、不向调用方传播)

Author: jinmozhe
Created: 2026-10-17
"""

import asyncio
from typing import Any

import pytest

from app.core import tasks
from app.core.tasks import BestEffortRunner


@pytest.fixture
def reported(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, Any]]:
    events: list[tuple[str, Any]] = []

    def fake_report(event: str, *, error: BaseException | None = None, **extra: Any):
        events.append((event, error, extra))

    monkeypatch.setattr(tasks, "report", fake_report)
    return events


@pytest.mark.asyncio
async def test_spawn_runs_in_background(reported) -> None:
    runner = BestEffortRunner()
    done: list[str] = []

    async def work() -> None:
        await asyncio.sleep(0)
        done.append("ok")

    runner.spawn_best_effort(work, event="test.work_failed")
    # 调用方不等待
    assert done == []
    assert runner.pending == 1

    await runner.drain()

    assert done == ["ok"]
    assert runner.pending == 0
    assert reported == []


@pytest.mark.asyncio
async def test_failure_is_reported_not_raised(reported) -> None:
    runner = BestEffortRunner()
    boom = RuntimeError("boom")

    async def failing() -> None:
        raise boom

    task = runner.spawn_best_effort(failing, event="test.failed", user_id="u-1")
    await runner.drain()

    assert task.done()
    assert task.exception() is None
    assert reported == [("test.failed", boom, {"user_id": "u-1"})]


@pytest.mark.asyncio
async def test_drain_waits_for_tasks_spawned_while_draining(reported) -> None:
    runner = BestEffortRunner()
    done: list[str] = []

    async def second() -> None:
        done.append("second")

    async def first() -> None:
        await asyncio.sleep(0)
        runner.spawn_best_effort(second, event="test.second_failed")
        done.append("first")

    runner.spawn_best_effort(first, event="test.first_failed")
    await runner.drain()

    assert done == ["first", "second"]


@pytest.mark.asyncio
async def test_drain_without_tasks() -> None:
    await BestEffortRunner().drain()
