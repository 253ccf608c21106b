"""
出站 HTTP 客户端

启动时创建一个 httpx.AsyncClient，注入给所有数据源，之后不再修改。
负责把传输层异常和非 2xx 状态码统一映射为服务异常:
- 连接失败 / 超时 / 其他 httpx 异常 -> ServiceUnavailableError
- 404 -> NotFoundError
- 其他非 2xx -> ServiceUnavailableError（响应体只写日志）
"""

from __future__ import annotations

from typing import Optional, Dict, Any

import httpx
import structlog

from core.config import HTTPSettings
from core.context import RequestContext
from core.exceptions import NotFoundError, ServiceUnavailableError
from logging_config import truncate_body

logger = structlog.get_logger(__name__)


class ProteinHttpClient:
    """
    共享的异步 HTTP 客户端

    Example:
        ```python
        async with ProteinHttpClient(settings.http) as http:
            data = await http.get_json(url, context=ctx, provider="rcsb")
        ```

    Args:
        settings: HTTP 配置
        transport: 自定义 transport（测试时传入 httpx.MockTransport）
    """

    def __init__(
        self,
        settings: HTTPSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        headers = {
            "User-Agent": settings.user_agent,
            "Accept": "application/json",
        }
        self._client = httpx.AsyncClient(
            timeout=settings.request_timeout,
            headers=headers,
            transport=transport or httpx.AsyncHTTPTransport(retries=settings.max_retries),
            follow_redirects=True,
        )

    async def __aenter__(self) -> "ProteinHttpClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        context: RequestContext,
        provider: str,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> httpx.Response:
        """
        发送请求，返回原始响应（不检查状态码）

        Raises:
            ServiceUnavailableError: 截止时间已过或传输失败
        """
        context.ensure_active()
        effective_timeout = context.timeout_for(timeout or self.settings.request_timeout)
        try:
            return await self._client.request(method, url, timeout=effective_timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(
                "upstream_timeout",
                provider=provider,
                url=url,
                timeout=effective_timeout,
                **context.log_fields(),
            )
            raise ServiceUnavailableError(f"Request to {provider} timed out", provider=provider) from e
        except httpx.ConnectError as e:
            logger.warning("upstream_connect_failed", provider=provider, url=url, error=str(e), **context.log_fields())
            raise ServiceUnavailableError(f"Failed to connect to {provider}", provider=provider) from e
        except httpx.HTTPError as e:
            logger.warning("upstream_transport_error", provider=provider, url=url, error=str(e), **context.log_fields())
            raise ServiceUnavailableError(f"Transport error talking to {provider}", provider=provider) from e

    def raise_for_status(
        self,
        response: httpx.Response,
        *,
        context: RequestContext,
        provider: str,
        resource: str = "resource",
        identifier: Optional[str] = None,
    ) -> None:
        """按状态码分类错误"""
        if response.is_success:
            return

        status = response.status_code
        logger.warning(
            "upstream_error_response",
            provider=provider,
            url=str(response.request.url) if response.request else None,
            status_code=status,
            body=truncate_body(response.text),
            **context.log_fields(),
        )
        if status == 404:
            raise NotFoundError(resource, identifier or str(response.request.url))
        raise ServiceUnavailableError(
            f"{provider} returned HTTP {status}",
            provider=provider,
            details={"status_code": status},
        )

    def parse_json(self, response: httpx.Response, *, context: RequestContext, provider: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.warning(
                "upstream_invalid_json",
                provider=provider,
                body=truncate_body(response.text),
                **context.log_fields(),
            )
            raise ServiceUnavailableError(f"{provider} returned an invalid JSON body", provider=provider) from e

    # ===== 便捷方法 =====

    async def get_json(
        self,
        url: str,
        *,
        context: RequestContext,
        provider: str,
        params: Optional[Dict[str, Any]] = None,
        resource: str = "resource",
        identifier: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        response = await self.request("GET", url, context=context, provider=provider, params=params, timeout=timeout)
        self.raise_for_status(response, context=context, provider=provider, resource=resource, identifier=identifier)
        return self.parse_json(response, context=context, provider=provider)

    async def get_text(
        self,
        url: str,
        *,
        context: RequestContext,
        provider: str,
        resource: str = "resource",
        identifier: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        response = await self.request("GET", url, context=context, provider=provider, timeout=timeout)
        self.raise_for_status(response, context=context, provider=provider, resource=resource, identifier=identifier)
        return response.text

    async def post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        *,
        context: RequestContext,
        provider: str,
        timeout: Optional[float] = None,
    ) -> Any:
        response = await self.request("POST", url, context=context, provider=provider, json=payload, timeout=timeout)
        self.raise_for_status(response, context=context, provider=provider)
        return self.parse_json(response, context=context, provider=provider)

    async def graphql(
        self,
        url: str,
        query: str,
        variables: Dict[str, Any],
        *,
        context: RequestContext,
        provider: str,
    ) -> Dict[str, Any]:
        """
        执行 GraphQL 查询，返回 data 部分

        Raises:
            ServiceUnavailableError: 返回了 errors 且没有 data
        """
        body = await self.post_json(url, {"query": query, "variables": variables}, context=context, provider=provider)
        errors = body.get("errors") if isinstance(body, dict) else None
        data = body.get("data") if isinstance(body, dict) else None
        if errors:
            logger.warning(
                "graphql_errors",
                provider=provider,
                errors=[e.get("message") for e in errors if isinstance(e, dict)],
                **context.log_fields(),
            )
        if data is None:
            raise ServiceUnavailableError(f"{provider} GraphQL query returned no data", provider=provider)
        return data
