"""
RCSB PDB 数据源（主数据源）

支持全部六个结构操作。getStructure 同时拉取元数据和结构文件，
文件中解析出的链与元数据中的链按链 ID 合并。
"""

import asyncio
from typing import Optional

import structlog

from core.config import AlignmentSettings, RCSBSettings
from core.context import RequestContext
from core.exceptions import ProteinServiceError
from core.http import ProteinHttpClient
from core.models import (
    AnalysisParams,
    AnalysisResult,
    CompareParams,
    CompareResult,
    FindSimilarParams,
    LigandFilters,
    LigandQuery,
    LigandTrackResult,
    SearchQuery,
    SearchResult,
    SimilarityResult,
    StructureFormat,
    StructureRecord,
    canonicalize_pdb_id,
    merge_chains,
)
from core.parsers.mmcif import parse_chains
from core.providers.base import Operation, ProteinProvider
from core.providers.rcsb.alignment_client import AlignmentClient
from core.providers.rcsb.graphql_client import RcsbGraphQLClient
from core.providers.rcsb.search_client import RcsbSearchClient
from core.providers.rcsb.similarity import SimilarityMerger

logger = structlog.get_logger(__name__)


class RcsbProvider(ProteinProvider):
    """
    RCSB PDB 数据源

    Args:
        http: 共享 HTTP 客户端
        settings: RCSB 配置
        alignment_settings: 比对配置
        health_timeout: 健康检查超时（秒）
    """

    name = "rcsb"
    capabilities = frozenset(Operation)

    def __init__(
        self,
        http: ProteinHttpClient,
        settings: RCSBSettings,
        alignment_settings: AlignmentSettings,
        *,
        health_timeout: float = 5.0,
    ):
        super().__init__(http)
        self.settings = settings
        self.health_timeout = health_timeout
        self.graphql = RcsbGraphQLClient(http, settings)
        self.search = RcsbSearchClient(http, settings, self.graphql)
        self.alignment = AlignmentClient(http, settings, alignment_settings)
        self.similarity = SimilarityMerger(self.search, self.graphql, self.alignment, alignment_settings)

    async def search_structures(self, query: SearchQuery, context: RequestContext) -> SearchResult:
        return await self.search.search_structures(query, context)

    async def _download_file(self, pdb_id: str, format: StructureFormat, context: RequestContext) -> str:
        url = f"{self.settings.files_url}/{pdb_id}.{format.extension}"
        return await self.http.get_text(
            url,
            context=context,
            provider="rcsb-files",
            resource="structure file",
            identifier=pdb_id,
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

        元数据失败直接抛出；结构文件失败只记日志，返回没有链拓扑的记录。
        链解析始终使用 mmCIF，请求其他格式时额外下载该格式作为坐标。
        """
        pdb_id = canonicalize_pdb_id(pdb_id)

        downloads = [self._download_file(pdb_id, StructureFormat.MMCIF, context)]
        if include_coordinates and format != StructureFormat.MMCIF:
            downloads.append(self._download_file(pdb_id, format, context))

        file_tasks = [asyncio.create_task(self._guarded(download, pdb_id, context)) for download in downloads]
        try:
            metadata = await self.graphql.fetch_structure_metadata(pdb_id, context)
        except BaseException:
            # 元数据失败时不再等待文件下载
            for task in file_tasks:
                task.cancel()
            await asyncio.gather(*file_tasks, return_exceptions=True)
            raise
        files = await asyncio.gather(*file_tasks)

        mmcif_text: Optional[str] = files[0]
        chains = parse_chains(mmcif_text, pdb_id=pdb_id) if mmcif_text else []
        coordinates = None
        if include_coordinates:
            coordinates = files[-1] if format != StructureFormat.MMCIF else mmcif_text

        record = StructureRecord(
            pdb_id=pdb_id,
            title=metadata.title,
            experimental=metadata.experimental,
            chains=merge_chains(chains, metadata.chains),
            citations=metadata.citations,
            keywords=metadata.keywords,
            format=format,
            coordinates=coordinates,
            source=self.name,
        )
        logger.info(
            "rcsb_structure_fetched",
            pdb_id=pdb_id,
            chains=len(record.chains),
            has_file=mmcif_text is not None,
            **context.log_fields(),
        )
        return record

    async def _guarded(self, download, pdb_id: str, context: RequestContext) -> Optional[str]:
        try:
            return await download
        except ProteinServiceError as e:
            logger.warning("structure_file_unavailable", pdb_id=pdb_id, error=str(e), **context.log_fields())
            return None

    async def compare_structures(self, params: CompareParams, context: RequestContext) -> CompareResult:
        return await self.alignment.compare_structures(params, context)

    async def find_similar(self, params: FindSimilarParams, context: RequestContext) -> SimilarityResult:
        return await self.similarity.find_similar(params, context)

    async def track_ligands(
        self,
        query: LigandQuery,
        context: RequestContext,
        *,
        filters: Optional[LigandFilters] = None,
        include_binding_sites: bool = False,
        limit: int = 25,
    ) -> LigandTrackResult:
        return await self.search.track_ligands(
            query,
            context,
            filters=filters,
            include_binding_sites=include_binding_sites,
            limit=limit,
        )

    async def analyze_collection(self, params: AnalysisParams, context: RequestContext) -> AnalysisResult:
        return await self.search.analyze_collection(params, context)

    async def health_check(self, context: RequestContext) -> bool:
        try:
            response = await self.http.request(
                "GET",
                self.settings.health_url,
                context=context,
                provider=self.name,
                timeout=self.health_timeout,
            )
        except ProteinServiceError as e:
            logger.warning("rcsb_health_check_failed", error=str(e))
            return False
        return response.is_success
