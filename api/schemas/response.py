"""
统一响应格式
"""
from pydantic import BaseModel, Field
from typing import TypeVar, Generic, Optional, Any, Dict
from datetime import datetime

import structlog

from core.context import new_request_id

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """错误详情"""
    type: str = Field(..., description="错误类型")
    detail: str = Field(..., description="错误详细说明")
    field_errors: Optional[Dict[str, str]] = Field(None, description="字段错误")


class APIResponse(BaseModel, Generic[T]):
    """
    统一 API 响应格式

    成功响应:
    {
        "success": true,
        "code": "OK",
        "message": "操作成功",
        "data": { ... },
        "timestamp": "2025-12-30T10:00:00Z",
        "request_id": "req_abc123"
    }

    错误响应:
    {
        "success": false,
        "code": "NOT_FOUND",
        "message": "Structure not found: 9ZZZ",
        "error": { ... },
        "timestamp": "2025-12-30T10:00:00Z",
        "request_id": "req_abc123"
    }
    """
    success: bool = Field(..., description="请求是否成功")
    code: str = Field(..., description="响应码")
    message: str = Field(..., description="响应消息")
    data: Optional[T] = Field(None, description="响应数据")
    error: Optional[ErrorDetail] = Field(None, description="错误详情")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="响应时间")
    request_id: str = Field(default_factory=new_request_id, description="请求 ID")


def current_request_id() -> str:
    """取日志上下文中的请求 ID，没有时生成新的"""
    return structlog.contextvars.get_contextvars().get("request_id") or new_request_id()


def success_response(
    data: Any = None,
    message: str = "操作成功",
    code: str = "OK",
) -> dict:
    """构建成功响应"""
    return {
        "success": True,
        "code": code,
        "message": message,
        "data": data,
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "request_id": current_request_id(),
    }


def error_response(
    message: str,
    code: str,
    error_type: str = "Error",
    detail: str = "",
    field_errors: Optional[Dict[str, str]] = None,
) -> dict:
    """构建错误响应"""
    return {
        "success": False,
        "code": code,
        "message": message,
        "error": {
            "type": error_type,
            "detail": detail,
            "field_errors": field_errors,
        },
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "request_id": current_request_id(),
    }
