# API 中间件
from .logging import LoggingMiddleware
from .error_handler import register_exception_handlers

__all__ = [
    "LoggingMiddleware",
    "register_exception_handlers",
]
