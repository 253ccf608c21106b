"""
服务异常类型定义

所有对外暴露的错误都归入四类:
- ValidationError: 输入不合法，任何网络调用之前抛出
- NotFoundError: 上游确认实体不存在
- ServiceUnavailableError: 网络失败、非 2xx、超时、截止时间已过
- InternalError: 本地不变量被破坏

另有 UnsupportedOperationError，表示某个数据源不支持该操作。
"""

from typing import Optional, Dict, Any


class ProteinServiceError(Exception):
    """
    服务基础异常类

    Example:
        ```python
        try:
            record = await service.get_structure("1ABC")
        except ProteinServiceError as e:
            print(f"lookup failed: {e}")
        ```
    """

    default_code = "PROTEIN_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, code={self.code!r})"


class ValidationError(ProteinServiceError):
    """
    输入验证错误

    Attributes:
        field_errors: 字段错误详情
    """

    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field_errors: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message, details={"field_errors": field_errors or {}})
        self.field_errors = field_errors or {}


class NotFoundError(ProteinServiceError):
    """
    实体不存在

    Attributes:
        resource: 资源类型（structure, ligand, sequence...）
        identifier: 未找到的标识符
    """

    default_code = "NOT_FOUND"

    def __init__(
        self,
        resource: str,
        identifier: str,
        *,
        message: Optional[str] = None,
    ):
        super().__init__(
            message or f"{resource.capitalize()} not found: {identifier}",
            details={"resource": resource, "identifier": identifier},
        )
        self.resource = resource
        self.identifier = identifier


class ServiceUnavailableError(ProteinServiceError):
    """
    上游服务不可用

    Attributes:
        provider: 出错的数据源名称（如果已知）
    """

    default_code = "SERVICE_UNAVAILABLE"

    def __init__(
        self,
        message: str = "Upstream service unavailable",
        *,
        provider: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if provider:
            details["provider"] = provider
        super().__init__(message, code=code, details=details)
        self.provider = provider


class AlignmentTimeoutError(ServiceUnavailableError):
    """
    比对任务轮询超时

    Attributes:
        ticket: 比对任务票据
        attempts: 已轮询次数
    """

    def __init__(self, ticket: str, attempts: int):
        super().__init__(
            f"Alignment job {ticket} did not complete after {attempts} polls",
            provider="rcsb-alignment",
            code="ALIGNMENT_TIMEOUT",
            details={"ticket": ticket, "attempts": attempts},
        )
        self.ticket = ticket
        self.attempts = attempts


class InternalError(ProteinServiceError):
    """本地不变量被破坏"""

    default_code = "INTERNAL_ERROR"


class UnsupportedOperationError(ProteinServiceError):
    """
    数据源不支持该操作

    Attributes:
        provider: 数据源名称
        operation: 操作名称
    """

    default_code = "UNSUPPORTED_OPERATION"

    def __init__(self, provider: str, operation: str, *, message: Optional[str] = None):
        super().__init__(
            message or f"Provider {provider} does not support {operation}",
            details={"provider": provider, "operation": operation},
        )
        self.provider = provider
        self.operation = operation
