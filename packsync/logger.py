"""
日志模块

使用 loguru 提供统一的日志记录功能。
"""

import os
import sys
from typing import Optional

from loguru import logger


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stdout,
    enqueue: bool = True,
    colorize: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR)
        sink: 输出目标
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色
        log_file: 额外写入的日志文件路径（始终记录 DEBUG 级别）
    """
    # 从环境变量获取日志级别
    if level is None:
        level = "DEBUG" if os.environ.get("PACKSYNC_DEBUG", "0") == "1" else "INFO"

    # 移除默认处理器
    logger.remove()

    # 添加控制台处理器
    logger.add(
        sink=sink,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if log_file:
        logger.add(
            sink=log_file,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}",
            enqueue=enqueue,
            level="DEBUG",
            encoding="utf-8",
        )

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")


__all__ = ["logger", "setup_logger"]
