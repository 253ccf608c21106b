"""
RCSB Search API 客户端

结构检索、配体追踪、集合统计以及相似检索的候选召回都走这里。
Search API 在没有命中时返回 204（无响应体），按空结果处理。
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple

import structlog

from core.config import RCSBSettings
from core.context import RequestContext
from core.http import ProteinHttpClient
from core.models import (
    AnalysisCategory,
    AnalysisParams,
    AnalysisResult,
    LigandFilters,
    LigandInfo,
    LigandQuery,
    LigandQueryType,
    LigandStructureEntry,
    LigandTrackResult,
    SearchQuery,
    SearchResult,
    TrendPoint,
)
from core.providers.rcsb import query_builder
from core.providers.rcsb.graphql_client import RcsbGraphQLClient

logger = structlog.get_logger(__name__)

PROVIDER = "rcsb-search"


@dataclass
class SearchHit:
    """Search API 的一条命中"""
    identifier: str
    score: Optional[float] = None
    match_context: Dict[str, Any] = field(default_factory=dict)

    @property
    def entry_id(self) -> str:
        """polymer_instance 形如 4HHB.A，取点号前的条目 ID"""
        return self.identifier.split(".", 1)[0].upper()

    @property
    def instance_id(self) -> Optional[str]:
        parts = self.identifier.split(".", 1)
        return parts[1] if len(parts) == 2 else None


def _parse_hit(raw: Dict[str, Any]) -> SearchHit:
    match_context: Dict[str, Any] = {}
    for service in raw.get("services") or []:
        for node in service.get("nodes") or []:
            for ctx in node.get("match_context") or []:
                match_context = ctx
                break
            if match_context:
                break
        if match_context:
            break
    return SearchHit(identifier=raw["identifier"], score=raw.get("score"), match_context=match_context)


class RcsbSearchClient:
    """
    RCSB Search API 客户端

    Args:
        http: 共享 HTTP 客户端
        settings: RCSB 配置
        graphql: 用于补全结果的 GraphQL 客户端
    """

    def __init__(self, http: ProteinHttpClient, settings: RCSBSettings, graphql: RcsbGraphQLClient):
        self.http = http
        self.settings = settings
        self.graphql = graphql

    async def _post(self, body: Dict[str, Any], context: RequestContext) -> Dict[str, Any]:
        response = await self.http.request(
            "POST",
            self.settings.search_url,
            context=context,
            provider=PROVIDER,
            json=body,
        )
        if response.status_code == 204:
            return {"total_count": 0, "result_set": []}
        self.http.raise_for_status(response, context=context, provider=PROVIDER)
        return self.http.parse_json(response, context=context, provider=PROVIDER)

    async def search_hits(
        self,
        query_node: Dict[str, Any],
        context: RequestContext,
        *,
        return_type: str = "entry",
        start: int = 0,
        rows: int = 25,
        scoring_strategy: str = "combined",
        verbose: bool = False,
    ) -> Tuple[List[SearchHit], int]:
        """
        执行检索，返回 (命中列表, 总数)

        Raises:
            ServiceUnavailableError: 上游失败
        """
        body = query_builder.build_request(
            query_node,
            return_type=return_type,
            start=start,
            rows=rows,
            scoring_strategy=scoring_strategy,
            verbose=verbose,
        )
        data = await self._post(body, context)
        hits = [_parse_hit(raw) for raw in data.get("result_set") or [] if raw.get("identifier")]
        return hits, int(data.get("total_count") or 0)

    async def search_structures(self, query: SearchQuery, context: RequestContext) -> SearchResult:
        """结构检索，命中后批量补全元数据"""
        query_node = query_builder.build_search_query(query)
        logger.debug("rcsb_search_started", limit=query.limit, offset=query.offset, **context.log_fields())

        hits, total = await self.search_hits(query_node, context, start=query.offset, rows=query.limit)
        ids = [hit.identifier for hit in hits]
        results = await self.graphql.enrich_search_results(
            ids,
            context,
            scores={hit.identifier: hit.score for hit in hits},
        )
        logger.info("rcsb_search_completed", returned=len(results), total=total, **context.log_fields())
        return SearchResult(results=results, total_count=total, offset=query.offset, source="rcsb")

    async def track_ligands(
        self,
        query: LigandQuery,
        context: RequestContext,
        *,
        filters: Optional[LigandFilters] = None,
        include_binding_sites: bool = False,
        limit: int = 25,
    ) -> LigandTrackResult:
        """
        查找包含指定配体的结构

        结合位点只在按化学组分 ID 查询时可用。
        """
        query_node = query_builder.build_ligand_query(query, filters)
        hits, total = await self.search_hits(query_node, context, rows=limit)
        entries = await self.graphql.enrich_search_results([hit.identifier for hit in hits], context)

        if query.type == LigandQueryType.CHEMICAL_ID:
            comp_id = query.value.strip().upper()
            ligand_info = await self.graphql.get_ligand_info(comp_id, context)
        else:
            comp_id = None
            ligand_info = LigandInfo(
                name=query.value if query.type == LigandQueryType.NAME else None,
                smiles=query.value if query.type == LigandQueryType.SMILES else None,
                inchi=query.value if query.type == LigandQueryType.INCHI else None,
            )

        if include_binding_sites and comp_id:
            site_lists = await asyncio.gather(
                *(self.graphql.get_binding_sites(entry.pdb_id, comp_id, context) for entry in entries)
            )
        else:
            site_lists = [[] for _ in entries]

        structures = [
            LigandStructureEntry(
                pdb_id=entry.pdb_id,
                title=entry.title,
                organisms=entry.organisms,
                resolution=entry.resolution,
                binding_sites=sites,
            )
            for entry, sites in zip(entries, site_lists)
        ]
        logger.info(
            "rcsb_ligand_tracking_completed",
            query_type=query.type.value,
            returned=len(structures),
            total=total,
            **context.log_fields(),
        )
        return LigandTrackResult(ligand_info=ligand_info, structures=structures, total_count=total, source="rcsb")

    async def analyze_collection(self, params: AnalysisParams, context: RequestContext) -> AnalysisResult:
        """按分类维度统计集合分布，可选按发布年份给出趋势"""
        with_trends = params.group_by == "year"
        body = query_builder.build_request(
            query_builder.build_analysis_query(params.filters),
            rows=0,
            facets=query_builder.build_analysis_facets(params.analysis_type, params.limit, with_trends=with_trends),
        )
        data = await self._post(body, context)
        total = int(data.get("total_count") or 0)
        facets = {facet.get("name"): facet for facet in data.get("facets") or []}

        terms = (facets.get(query_builder.ANALYSIS_FACET_NAME) or {}).get("terms") or []
        statistics = [
            AnalysisCategory(
                category=str(term.get("label")),
                count=int(term.get("count") or 0),
                percentage=(int(term.get("count") or 0) / total * 100) if total else 0.0,
            )
            for term in terms[: params.limit]
        ]

        trends = None
        if with_trends:
            trends = []
            for term in (facets.get(query_builder.RELEASE_YEAR_FACET_NAME) or {}).get("terms") or []:
                label = str(term.get("label") or "")
                if label[:4].isdigit():
                    trends.append(TrendPoint(year=int(label[:4]), count=int(term.get("count") or 0)))
            trends.sort(key=lambda point: point.year)

        logger.info(
            "rcsb_collection_analyzed",
            analysis_type=params.analysis_type.value,
            categories=len(statistics),
            total=total,
            **context.log_fields(),
        )
        return AnalysisResult(
            analysis_type=params.analysis_type,
            total_structures=total,
            statistics=statistics,
            trends=trends,
        )
