"""
蛋白质结构服务（编排层）

对外暴露六个结构操作和健康检查:
- 先在任何网络调用之前校验输入
- 主数据源优先；检索、获取结构、配体追踪在主数据源失败时尝试备用数据源
- 主数据源返回 NotFound / 输入错误时直接返回，不再尝试备用（两者是同一份数据的镜像）
- 两个数据源都失败时抛出 ServiceUnavailableError，消息取自备用数据源
- 只有主数据源支持的操作，原样抛出主数据源的分类错误，未分类错误包装为 ServiceUnavailableError

服务本身无状态，可以并发调用。
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, TypeVar

import structlog

from core.config import Settings
from core.context import RequestContext
from core.exceptions import (
    NotFoundError,
    ProteinServiceError,
    ServiceUnavailableError,
    ValidationError,
)
from core.models import (
    AnalysisParams,
    AnalysisResult,
    CompareParams,
    CompareResult,
    FindSimilarParams,
    HealthStatus,
    LigandFilters,
    LigandQuery,
    LigandTrackResult,
    SearchQuery,
    SearchResult,
    SimilarityResult,
    StructureFormat,
    StructureRecord,
    canonicalize_pdb_id,
)
from core.http import ProteinHttpClient
from core.providers.base import Operation, ProteinProvider
from core.providers.pdbe import PdbeProvider
from core.providers.rcsb import RcsbProvider
from core.providers.uniprot import UniProtEntry, UniProtProvider

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_LIGAND_LIMIT = 100


class ProteinService:
    """
    蛋白质结构服务

    Args:
        primary: 主数据源（RCSB）
        fallback: 备用数据源（PDBe）
        sequence_provider: 序列数据源（UniProt，可选）
    """

    def __init__(
        self,
        primary: ProteinProvider,
        fallback: ProteinProvider,
        sequence_provider: Optional[UniProtProvider] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.sequence_provider = sequence_provider

    async def _with_fallback(
        self,
        operation: Operation,
        context: RequestContext,
        call: Callable[[ProteinProvider], Awaitable[T]],
    ) -> T:
        try:
            return await call(self.primary)
        except (NotFoundError, ValidationError):
            raise
        except ProteinServiceError as primary_error:
            if not self.fallback.supports(operation):
                raise
            logger.warning(
                "primary_provider_failed",
                provider=self.primary.name,
                error=str(primary_error),
                **context.log_fields(),
            )
        except Exception as e:
            if not self.fallback.supports(operation):
                logger.error(
                    "primary_provider_unexpected_error",
                    error=str(e),
                    exc_info=True,
                    **context.log_fields(),
                )
                raise ServiceUnavailableError(
                    f"{operation.value} failed: {e}",
                    provider=self.primary.name,
                ) from e
            logger.warning(
                "primary_provider_failed",
                provider=self.primary.name,
                error=str(e),
                **context.log_fields(),
            )

        try:
            result = await call(self.fallback)
        except Exception as fallback_error:
            message = fallback_error.message if isinstance(fallback_error, ProteinServiceError) else str(fallback_error)
            logger.error(
                "all_providers_failed",
                fallback=self.fallback.name,
                error=message,
                **context.log_fields(),
            )
            raise ServiceUnavailableError(message, provider=self.fallback.name) from fallback_error

        logger.info(
            "fallback_provider_succeeded",
            provider=self.fallback.name,
            **context.log_fields(),
        )
        return result

    async def _primary_only(
        self,
        operation: Operation,
        context: RequestContext,
        call: Callable[[ProteinProvider], Awaitable[T]],
    ) -> T:
        try:
            return await call(self.primary)
        except ProteinServiceError:
            raise
        except Exception as e:
            logger.error(
                "primary_provider_unexpected_error",
                error=str(e),
                exc_info=True,
                **context.log_fields(),
            )
            raise ServiceUnavailableError(f"{operation.value} failed: {e}", provider=self.primary.name) from e

    # ===== 结构操作 =====

    async def search_structures(self, query: SearchQuery, context: RequestContext) -> SearchResult:
        """结构检索"""
        query.validate()
        context = context.for_operation(Operation.SEARCH.value)
        return await self._with_fallback(
            Operation.SEARCH,
            context,
            lambda provider: provider.search_structures(query, context),
        )

    async def get_structure(
        self,
        pdb_id: str,
        context: RequestContext,
        *,
        format: StructureFormat = StructureFormat.MMCIF,
        include_coordinates: bool = False,
    ) -> StructureRecord:
        """
        获取结构记录

        Raises:
            ValidationError: ID 格式不合法
            NotFoundError: 主数据源确认不存在
            ServiceUnavailableError: 两个数据源都不可用
        """
        pdb_id = canonicalize_pdb_id(pdb_id)
        context = context.for_operation(Operation.GET_STRUCTURE.value)
        return await self._with_fallback(
            Operation.GET_STRUCTURE,
            context,
            lambda provider: provider.get_structure(
                pdb_id,
                context,
                format=format,
                include_coordinates=include_coordinates,
            ),
        )

    async def compare_structures(self, params: CompareParams, context: RequestContext) -> CompareResult:
        """多结构比较，仅主数据源支持"""
        params.validate()
        context = context.for_operation(Operation.COMPARE.value)
        return await self._primary_only(
            Operation.COMPARE,
            context,
            lambda provider: provider.compare_structures(params, context),
        )

    async def find_similar(self, params: FindSimilarParams, context: RequestContext) -> SimilarityResult:
        """相似结构检索，仅主数据源支持"""
        params.validate()
        context = context.for_operation(Operation.FIND_SIMILAR.value)
        return await self._primary_only(
            Operation.FIND_SIMILAR,
            context,
            lambda provider: provider.find_similar(params, context),
        )

    async def track_ligands(
        self,
        query: LigandQuery,
        context: RequestContext,
        *,
        filters: Optional[LigandFilters] = None,
        include_binding_sites: bool = False,
        limit: int = 25,
    ) -> LigandTrackResult:
        """配体追踪"""
        query.validate()
        if not 1 <= limit <= MAX_LIGAND_LIMIT:
            raise ValidationError("Invalid ligand query", field_errors={"limit": f"must be between 1 and {MAX_LIGAND_LIMIT}"})
        context = context.for_operation(Operation.TRACK_LIGANDS.value)
        return await self._with_fallback(
            Operation.TRACK_LIGANDS,
            context,
            lambda provider: provider.track_ligands(
                query,
                context,
                filters=filters,
                include_binding_sites=include_binding_sites,
                limit=limit,
            ),
        )

    async def analyze_collection(self, params: AnalysisParams, context: RequestContext) -> AnalysisResult:
        """集合统计，仅主数据源支持"""
        params.validate()
        context = context.for_operation(Operation.ANALYZE.value)
        return await self._primary_only(
            Operation.ANALYZE,
            context,
            lambda provider: provider.analyze_collection(params, context),
        )

    # ===== 序列 =====

    def _require_sequence_provider(self) -> UniProtProvider:
        if self.sequence_provider is None:
            raise ServiceUnavailableError("No sequence provider configured")
        return self.sequence_provider

    async def get_protein_sequence(self, accession: str, context: RequestContext) -> str:
        provider = self._require_sequence_provider()
        return await provider.get_protein_sequence(accession, context.for_operation("get_protein_sequence"))

    async def search_sequences(self, query: str, context: RequestContext, *, size: Optional[int] = None) -> List[UniProtEntry]:
        provider = self._require_sequence_provider()
        return await provider.search_protein(query, context.for_operation("search_sequences"), size=size)

    # ===== 健康检查 =====

    async def health_check(self, context: Optional[RequestContext] = None) -> HealthStatus:
        """并行探测两个数据源，任一可用即健康"""
        context = context or RequestContext.create(operation="health_check")
        primary_ok, fallback_ok = await asyncio.gather(
            self._check(self.primary, context),
            self._check(self.fallback, context),
        )
        status = HealthStatus(primary=primary_ok, fallback=fallback_ok)
        logger.info("health_checked", **status.to_dict())
        return status

    async def _check(self, provider: ProteinProvider, context: RequestContext) -> bool:
        try:
            return bool(await provider.health_check(context))
        except Exception as e:
            logger.warning("health_check_failed", provider=provider.name, error=str(e))
            return False


def create_protein_service(http: ProteinHttpClient, settings: Settings) -> ProteinService:
    """按配置组装 RCSB（主）、PDBe（备）和 UniProt（序列）"""
    primary = RcsbProvider(
        http,
        settings.rcsb,
        settings.alignment,
        health_timeout=settings.http.health_timeout,
    )
    fallback = PdbeProvider(
        http,
        settings.pdbe,
        health_timeout=settings.http.health_timeout,
        summary_timeout=settings.http.summary_timeout,
    )
    sequences = UniProtProvider(http, settings.uniprot, health_timeout=settings.http.health_timeout)
    return ProteinService(primary, fallback, sequences)
