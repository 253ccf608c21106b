"""
pytest 配置
"""
import os
from typing import Callable

import httpx
import pytest

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOG_FORMAT", "console")
# 测试中轮询不等待
os.environ.setdefault("ALIGNMENT_POLL_INTERVAL", "0")


@pytest.fixture
def context():
    """不限截止时间的请求上下文"""
    from core.context import RequestContext
    return RequestContext.create(request_id="req_test")


@pytest.fixture
def make_http() -> Callable:
    """
    用 httpx.MockTransport 构建 ProteinHttpClient

    使用方式:
        http = make_http(lambda request: httpx.Response(200, json={}))
    """
    from core.config import HTTPSettings
    from core.http import ProteinHttpClient

    def factory(handler, **overrides) -> ProteinHttpClient:
        settings = HTTPSettings(**overrides)
        return ProteinHttpClient(settings, transport=httpx.MockTransport(handler))

    return factory

