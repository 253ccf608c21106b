"""
结构化日志配置

使用 structlog 输出结构化日志:
- 开发环境: 彩色控制台输出
- 生产环境: JSON 格式

上游 API 的原始错误体只写入日志，不返回给调用方。
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import structlog
from structlog.typing import Processor

from core.config import get_settings

# 出站 HTTP 相关的第三方 logger，默认压到 WARNING
NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore")


def _renderer_chain(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def setup_logging(
    level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    配置 structlog 日志系统

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 日志格式 (json, console)
        log_file: 日志文件路径
    """
    settings = get_settings()

    level = (level or settings.logging.level).upper()
    log_format = log_format or settings.logging.format
    log_file = log_file or settings.logging.file_path

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + _renderer_chain(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=settings.logging.max_size_mb * 1024 * 1024,
            backupCount=settings.logging.backup_count,
        )
        file_handler.setLevel(getattr(logging, level))
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    获取 logger 实例

    Args:
        name: logger 名称，通常使用 __name__

    Returns:
        structlog BoundLogger 实例
    """
    return structlog.get_logger(name)


def bind_request(request_id: str, **fields) -> None:
    """把请求 ID 等上下文绑定到当前协程的日志上下文"""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **fields)


def truncate_body(body: str, limit: int = 500) -> str:
    """截断上游响应体，避免日志过长"""
    if len(body) <= limit:
        return body
    return body[:limit] + f"...<{len(body) - limit} more chars>"
