"""
统一日志配置模块
提供集中式的日志配置和管理

注意：危机检测涉及用户提交的敏感文本，日志中只记录文本长度和关键词 ID，
不记录原文。
"""
import logging
import sys
from typing import Optional


# 需要降低日志级别的第三方库
NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


class LogFormatter(logging.Formatter):
    """
    彩色日志格式化器
    只给控制台输出上色，不修改原始 record
    """

    # ANSI 颜色代码
    COLORS = {
        "DEBUG": "\033[36m",     # 青色
        "INFO": "\033[32m",      # 绿色
        "WARNING": "\033[33m",   # 黄色
        "ERROR": "\033[31m",     # 红色
        "CRITICAL": "\033[35m",  # 紫色
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color or record.levelname not in self.COLORS:
            return super().format(record)

        # 同一条 record 会被多个 handler 处理，格式化后恢复原值
        original_levelname = record.levelname
        record.levelname = f"{self.COLORS[original_levelname]}{original_levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


class LoggingConfig:
    """
    日志配置类
    setup 只在第一次调用时生效，测试中可通过 reset 重新配置
    """

    _initialized: bool = False

    DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
    DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def setup(
        cls,
        level: str = "INFO",
        log_format: Optional[str] = None,
        date_format: Optional[str] = None,
        use_color: bool = True,
        log_file: Optional[str] = None,
    ) -> None:
        """
        配置日志系统

        Args:
            level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_format: 自定义日志格式
            date_format: 自定义日期格式
            use_color: 控制台是否使用彩色输出
            log_file: 日志文件路径（可选）
        """
        if cls._initialized:
            return

        log_format = log_format or cls.DEFAULT_FORMAT
        date_format = date_format or cls.DEFAULT_DATE_FORMAT
        log_level = getattr(logging, level.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(
            LogFormatter(use_color=use_color, fmt=log_format, datefmt=date_format)
        )
        root_logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setLevel(log_level)
            # 文件不使用颜色
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            root_logger.addHandler(file_handler)

        for name, noisy_level in NOISY_LOGGERS.items():
            logging.getLogger(name).setLevel(noisy_level)

        cls._initialized = True

    @classmethod
    def reset(cls) -> None:
        """
        重置日志配置（主要用于测试）
        """
        cls._initialized = False
        logging.getLogger().handlers.clear()


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """
    便捷函数：设置日志配置

    Args:
        debug: 是否启用调试模式
        log_file: 日志文件路径（可选）
    """
    level = "DEBUG" if debug else "INFO"
    LoggingConfig.setup(level=level, log_file=log_file or None)


def get_logger(name: str) -> logging.Logger:
    """
    获取指定名称的日志器

    Example:
        >>> from crisiswatch.core.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("检测完成")
    """
    return logging.getLogger(name)
