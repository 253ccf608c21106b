"""
全局异常处理

把服务异常映射为 HTTP 状态码和统一错误响应:
- ValidationError -> 422
- NotFoundError -> 404
- UnsupportedOperationError -> 501
- ServiceUnavailableError -> 503
- InternalError 及未捕获异常 -> 500
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

from api.schemas.response import error_response
from core.exceptions import (
    InternalError,
    NotFoundError,
    ProteinServiceError,
    ServiceUnavailableError,
    UnsupportedOperationError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

STATUS_BY_ERROR = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (UnsupportedOperationError, 501),
    (ServiceUnavailableError, 503),
    (InternalError, 500),
)


def status_for(exc: ProteinServiceError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def protein_error_handler(request: Request, exc: ProteinServiceError) -> JSONResponse:
    """服务异常处理"""
    status_code = status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        code=exc.code,
        error=exc.message,
        status_code=status_code,
    )
    field_errors = exc.field_errors if isinstance(exc, ValidationError) else None
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            message=exc.message,
            code=exc.code,
            error_type=type(exc).__name__,
            detail=str(exc),
            field_errors=field_errors,
        ),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求体 / 参数格式错误"""
    field_errors = {
        ".".join(str(part) for part in error["loc"][1:]) or "body": error["msg"]
        for error in exc.errors()
    }
    logger.warning("request_invalid", path=request.url.path, field_errors=field_errors)
    return JSONResponse(
        status_code=422,
        content=error_response(
            message="Invalid request",
            code=ValidationError.default_code,
            error_type="ValidationError",
            detail="Request body or parameters failed validation",
            field_errors=field_errors,
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """全局异常处理器"""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content=error_response(
            message="Internal server error",
            code=InternalError.default_code,
            error_type="InternalError",
            detail="发生未预期的错误，请联系管理员",
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProteinServiceError, protein_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
