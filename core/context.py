"""
请求上下文

每次调用携带一个不可变的 RequestContext: 请求 ID 用于日志关联，
截止时间用于限制所有下游请求和轮询等待。取消依赖 asyncio 的任务取消，
CancelledError 不会被捕获，会一路传到正在进行的 HTTP 请求和轮询 sleep。
"""
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from core.exceptions import ServiceUnavailableError


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class RequestContext:
    """单次调用的上下文"""

    request_id: str = field(default_factory=new_request_id)
    operation: Optional[str] = None
    # time.monotonic() 时间点
    deadline: Optional[float] = None

    @classmethod
    def create(
        cls,
        *,
        timeout: Optional[float] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> "RequestContext":
        """
        创建上下文

        Args:
            timeout: 整个调用允许的秒数，None 表示不限
            request_id: 外部传入的请求 ID
            operation: 操作名称，仅用于日志
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        return cls(
            request_id=request_id or new_request_id(),
            operation=operation,
            deadline=deadline,
        )

    def for_operation(self, operation: str) -> "RequestContext":
        return RequestContext(request_id=self.request_id, operation=operation, deadline=self.deadline)

    def remaining(self) -> Optional[float]:
        """剩余秒数，没有截止时间时返回 None"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def ensure_active(self) -> None:
        """截止时间已过则抛出 ServiceUnavailableError"""
        if self.expired:
            raise ServiceUnavailableError(
                "Request deadline exceeded",
                code="DEADLINE_EXCEEDED",
                details={"request_id": self.request_id, "operation": self.operation},
            )

    def timeout_for(self, default: float) -> float:
        """单次请求超时: 取默认值与剩余时间的较小者"""
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def log_fields(self) -> dict:
        fields = {"request_id": self.request_id}
        if self.operation:
            fields["operation"] = self.operation
        return fields
