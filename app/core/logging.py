"""
File: app/core/logging.py
Description: 全局日志配置模块 (Loguru)

本模块负责：
1. 替代 Python 标准库 logging，接管 Uvicorn/FastAPI/httpx 日志
2. 配置 Loguru 的输出格式（开发环境文本，生产环境 JSON）
3. 设置日志轮转 (Rotation) 和保留 (Retention) 策略
4. 确保所有日志包含 request_id（由中间件注入）与上报事件名 (event)

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-17 (event extra for observability reports)
"""

import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from app.core.config import settings

# 接管这些前缀的标准库 logger，统一转发到 Loguru
INTERCEPTED_PREFIXES: tuple[str, ...] = ("uvicorn.", "fastapi.", "httpx", "sqlalchemy.")


class InterceptHandler(logging.Handler):
    """
    将 Python 标准库 logging 拦截并转发到 Loguru 的 Handler。
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 查找调用者的栈帧，以确保日志行号正确
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            if frame.f_back:
                frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def format_record(record: dict[str, Any]) -> str:
    """
    文本格式化函数。
    context 中存在 request_id / event 时附加在行尾。
    """
    format_string = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    if record["extra"].get("event"):
        format_string += " | <yellow>event={extra[event]}</yellow>"

    if record["extra"].get("request_id"):
        format_string += " | <magenta>req_id={extra[request_id]}</magenta>"

    format_string += "\n{exception}"
    return format_string


def setup_logging() -> None:
    """
    初始化日志配置。
    在 lifespan 启动阶段调用。
    """
    # 1. 拦截标准库日志
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(settings.LOG_LEVEL)

    for name in list(logging.root.manager.loggerDict.keys()):
        if name.startswith(INTERCEPTED_PREFIXES):
            logging.getLogger(name).handlers = []
            logging.getLogger(name).propagate = True

    # 2. 配置 Loguru Sink
    logger.remove()

    base_config: dict[str, Any] = {
        "level": settings.LOG_LEVEL,
        "enqueue": True,
        "backtrace": True,
        "diagnose": settings.LOG_DIAGNOSE and not settings.is_production,
    }

    # Sink 1: 控制台输出 (Stdout)
    console_config = base_config.copy()

    if settings.LOG_JSON_FORMAT:
        console_config["serialize"] = True
    else:
        console_config["format"] = format_record
        console_config["colorize"] = True

    logger.add(sys.stdout, **console_config)

    # Sink 2: 文件输出 (按配置启用)
    if settings.LOG_FILE_ENABLED:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        log_path = log_dir / "app_{time:YYYY-MM-DD_HH}.log"

        file_config = base_config.copy()
        file_config.update(
            {
                "rotation": settings.LOG_ROTATION,
                "retention": settings.LOG_RETENTION,
                "compression": settings.LOG_COMPRESSION,
            }
        )

        if settings.LOG_JSON_FORMAT:
            file_config["serialize"] = True
        else:
            file_config["format"] = format_record

        logger.add(str(log_path), **file_config)

    logger.bind(environment=settings.ENVIRONMENT).info("Logging configured successfully")
