"""
File: app/core/observability.py
Description: 软失败上报 (Observability Sink)

用于"不阻塞、不抛出"的旁路失败上报：
Refresh Token 轮换失败、后台任务失败、自愈校验的意外异常等。
当前实现基于 Loguru (ERROR 级别 + 堆栈)，可通过 JSON Sink 接入外部采集。

Author: jinmozhe
Created: 2026-10-17
"""

from typing import Any

from app.core.logging import logger


@logger.catch(reraise=False, message="Observability sink failed")
def report(event: str, *, error: BaseException | None = None, **extra: Any) -> None:
    """
    上报一个软失败事件。永不抛出异常。

    Args:
        event: 事件名 (如 "token.refresh_rotation_failed")
        error: 关联的异常 (可选，附带堆栈)
        extra: 附加上下文 (user_id 等，禁止传入密码/令牌)
    """
    logger.opt(exception=error).bind(
        sink="observability", event=event, **extra
    ).error("Soft failure reported")
