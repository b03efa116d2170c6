"""
File: app/core/tasks.py
Description: 尽力而为的后台任务执行器 (Best-Effort Runner)

本模块把"发出即忘"的副作用建模为一等 API：
1. spawn_best_effort(fn): 以独立 asyncio Task 执行 fn()，调用方不等待
2. fn 抛出的任何异常都会上报到 observability，绝不向调用方传播
3. 持有 Task 强引用直到完成 (防止被 GC 回收)
4. drain(): 等待所有未完成任务 (应用关闭 / 测试断言前调用)

注意：
后台任务执行时请求级 DB 会话可能已关闭，
涉及数据库写入的任务必须自行从 session factory 打开新会话。

Author: jinmozhe
Created: 2026-10-17
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from app.core.logging import logger
from app.core.observability import report


class BestEffortRunner:
    """
    后台任务执行器。
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn_best_effort(
        self,
        fn: Callable[[], Awaitable[Any]],
        *,
        event: str,
        **extra: Any,
    ) -> asyncio.Task[None]:
        """
        提交一个后台任务并立即返回。

        Args:
            fn: 无参协程工厂 (每次调用返回一个新的 awaitable)
            event: 失败时上报的事件名
            extra: 失败上报附带的上下文
        """
        task = asyncio.create_task(self._run(fn, event, extra), name=event)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self, fn: Callable[[], Awaitable[Any]], event: str, extra: dict[str, Any]
    ) -> None:
        try:
            await fn()
        except asyncio.CancelledError:
            logger.bind(event=event).warning("Best-effort task cancelled")
            raise
        except Exception as exc:
            report(event, error=exc, **extra)

    async def drain(self) -> None:
        """等待当前所有后台任务结束。"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# 进程级单例 (通过 app.api.deps.get_runner 注入，测试中可覆写)
runner = BestEffortRunner()
