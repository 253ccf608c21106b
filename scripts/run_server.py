#!/usr/bin/env python
"""
启动 API 服务器

使用方式:
    python scripts/run_server.py
    python scripts/run_server.py --host 0.0.0.0 --port 8000 --reload
    python scripts/run_server.py --log-level DEBUG --log-format console
"""
import argparse
import os

import uvicorn

from core.config import get_settings
from logging_config import setup_logging, get_logger


def main():
    parser = argparse.ArgumentParser(description="启动 ProteinStructService API 服务器")
    parser.add_argument("--host", default=None, help="监听地址")
    parser.add_argument("--port", type=int, default=None, help="监听端口")
    parser.add_argument("--reload", action="store_true", help="开启热重载")
    parser.add_argument("--workers", type=int, default=1, help="Worker 数量")
    parser.add_argument("--log-level", default=None, help="日志级别，覆盖 LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "console"], default=None, help="日志格式，覆盖 LOG_FORMAT")

    args = parser.parse_args()

    # uvicorn 在子进程中重新导入 api.main，日志参数通过环境变量传递
    if args.log_level:
        os.environ["LOG_LEVEL"] = args.log_level.upper()
    if args.log_format:
        os.environ["LOG_FORMAT"] = args.log_format
    get_settings.cache_clear()
    settings = get_settings()

    setup_logging()
    get_logger(__name__).info("server_launching", **settings.display_config())

    uvicorn.run(
        "api.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload or settings.debug,
        workers=args.workers if not args.reload else 1,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
