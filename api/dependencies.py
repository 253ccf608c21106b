"""
FastAPI 依赖注入

服务实例在 lifespan 中创建并挂在 app.state 上，这里只负责取出。
"""
from fastapi import Request

from core.config import get_settings
from core.context import RequestContext, new_request_id
from core.services.protein_service import ProteinService


def get_protein_service(request: Request) -> ProteinService:
    """
    获取蛋白质结构服务

    使用方式:
    @router.get("/example")
    async def example(service: ProteinService = Depends(get_protein_service)):
        ...
    """
    return request.app.state.protein_service


def get_request_context(request: Request) -> RequestContext:
    """为当前请求创建上下文，沿用中间件生成的请求 ID"""
    request_id = getattr(request.state, "request_id", None) or new_request_id()
    return RequestContext.create(
        timeout=get_settings().http.operation_timeout,
        request_id=request_id,
    )
