"""
日志模块

日志写到 stderr，stdout 只留给命令输出（JSON 或表格）。
可选地同时写入日志文件。
"""

import os
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

DEBUG_ENV = "MODSYNC_DEBUG"
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def resolve_level(level: Optional[str] = None) -> str:
    if level:
        return level.upper()
    return "DEBUG" if os.environ.get(DEBUG_ENV, "0") == "1" else "INFO"


def setup_logger(
    level: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None,
    colorize: Optional[bool] = None,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别，默认由 MODSYNC_DEBUG 决定
        log_file: 额外写入的日志文件
        colorize: 是否着色，默认仅在 stderr 是终端时着色
    """
    level = resolve_level(level)
    debug = level == "DEBUG"
    if colorize is None:
        colorize = sys.stderr.isatty()

    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=level,
        colorize=colorize,
        backtrace=debug,
        diagnose=debug,
    )

    if log_file:
        # 多个实例的下载在线程中并发写日志
        logger.add(
            Path(log_file).expanduser(),
            format=LOG_FORMAT,
            level="DEBUG",
            enqueue=True,
            encoding="utf-8",
            rotation="5 MB",
            retention=3,
        )

    if debug:
        logger.debug("DEBUG 模式已启用")


__all__ = ["logger", "setup_logger"]
