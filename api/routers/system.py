"""
系统状态 API 路由
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_protein_service, get_request_context
from api.schemas.response import success_response
from core.config import get_settings
from core.context import RequestContext
from core.services.protein_service import ProteinService

router = APIRouter()


@router.get("/health")
async def health_check(
    request: Request,
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """
    健康检查

    并行探测 RCSB 与 PDBe，任一可用即为 healthy；都不可用时返回 503。
    """
    settings = get_settings()
    status = await service.health_check(context.for_operation("health_check"))
    start_time = getattr(request.app.state, "start_time", None)
    uptime = (datetime.utcnow() - start_time).total_seconds() if start_time else 0

    body = success_response(
        data={
            "status": "healthy" if status.healthy else "unhealthy",
            "providers": status.to_dict(),
            "version": settings.app_version,
            "uptime_seconds": round(uptime, 2),
            "environment": settings.environment,
        },
        message="ok" if status.healthy else "all providers unavailable",
    )
    return JSONResponse(status_code=200 if status.healthy else 503, content=body)
