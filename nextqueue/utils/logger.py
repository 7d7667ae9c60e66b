"""
日志配置 - 配置 nextqueue 日志记录器

控制台输出 + 可选的按大小滚动的日志文件。
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    max_size: int = 10485760,
    backup_count: int = 5
) -> logging.Logger:
    """
    配置 nextqueue 根日志记录器

    重复调用会替换之前添加的处理器。

    Args:
        log_level: 日志级别名称
        log_file: 日志文件路径，None 表示只输出到控制台
        max_size: 单个日志文件的最大字节数
        backup_count: 保留的备份文件数量

    Returns:
        配置好的日志记录器
    """
    logger = logging.getLogger("nextqueue")
    level = getattr(logging, str(log_level).upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_size,
                backupCount=backup_count,
                encoding="utf-8"
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"无法创建日志文件 {log_file}: {e}，只输出到控制台")

    return logger
