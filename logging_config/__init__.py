# 日志配置模块
from .logging import setup_logging, get_logger, bind_request, truncate_body

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_request",
    "truncate_body",
]
