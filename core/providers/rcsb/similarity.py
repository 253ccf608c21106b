"""
相似结构检索

两种模式:
- 序列: RCSB 序列检索，命中得分直接作为 sequence_identity
- 结构: 形状检索召回候选，再与参照结构逐一做两两比对，按 TM-score 排序

结构模式的比对并发执行，单个比对失败只记日志并丢弃；
全部失败时返回空结果而不是报错。
"""

from typing import Optional, Dict, List

import structlog

from core.config import AlignmentSettings
from core.context import RequestContext
from core.exceptions import NotFoundError
from core.models import (
    AlignmentMethod,
    AlignmentScores,
    FindSimilarParams,
    SimilarityEntry,
    SimilarityMetrics,
    SimilarityQueryType,
    SimilarityResult,
    SimilarityThreshold,
    SimilarityType,
    SearchResultEntry,
)
from core.providers.rcsb import query_builder
from core.providers.rcsb.alignment_client import AlignmentClient
from core.providers.rcsb.graphql_client import RcsbGraphQLClient
from core.providers.rcsb.search_client import RcsbSearchClient, SearchHit

logger = structlog.get_logger(__name__)

DEFAULT_CANDIDATE_CHAIN = "A"


def coverage_percent(aligned: Optional[int], query_length: Optional[int]) -> Optional[float]:
    """两个值都已知时才计算覆盖率"""
    if aligned is None or not query_length:
        return None
    return aligned / query_length * 100


def _passes_threshold(scores: AlignmentScores, threshold: SimilarityThreshold) -> bool:
    if threshold.tm_score is not None and scores.tm_score is not None and scores.tm_score < threshold.tm_score:
        return False
    if threshold.rmsd is not None and scores.rmsd is not None and scores.rmsd > threshold.rmsd:
        return False
    return True


def _rank_key(value: Optional[float]):
    # 降序，缺失值排最后；sorted 稳定，平分保持输入顺序
    return (value is None, -(value or 0.0))


class SimilarityMerger:
    """
    相似检索合并器

    Args:
        search: Search API 客户端（召回）
        graphql: GraphQL 客户端（序列获取与结果补全）
        alignment: 比对客户端
        settings: 比对配置（候选上限、默认算法）
    """

    def __init__(
        self,
        search: RcsbSearchClient,
        graphql: RcsbGraphQLClient,
        alignment: AlignmentClient,
        settings: AlignmentSettings,
    ):
        self.search = search
        self.graphql = graphql
        self.alignment = alignment
        self.settings = settings

    async def find_similar(self, params: FindSimilarParams, context: RequestContext) -> SimilarityResult:
        if params.similarity_type == SimilarityType.SEQUENCE:
            return await self.find_sequence_similar(params, context)
        return await self.find_structure_similar(params, context)

    # ===== 序列模式 =====

    async def find_sequence_similar(self, params: FindSimilarParams, context: RequestContext) -> SimilarityResult:
        query = params.query
        if query.type == SimilarityQueryType.SEQUENCE:
            sequence = query.value
        else:
            sequence = await self.graphql.get_sequence_for_pdb_id(query.value, context)
            if not sequence:
                raise NotFoundError("sequence", query.value, message=f"No polymer sequence for {query.value}")

        logger.debug("sequence_similarity_started", sequence_length=len(sequence), **context.log_fields())
        node = query_builder.build_sequence_query(
            sequence,
            identity_percent=params.threshold.sequence_identity,
            evalue_cutoff=params.threshold.e_value,
        )
        hits, total = await self.search.search_hits(
            node,
            context,
            rows=params.limit,
            scoring_strategy="sequence",
            verbose=True,
        )
        return await self.merge_sequence_hits(params, hits, total, context)

    async def merge_sequence_hits(
        self,
        params: FindSimilarParams,
        hits: List[SearchHit],
        total: int,
        context: RequestContext,
    ) -> SimilarityResult:
        """命中得分映射为 sequence_identity，补全后按得分降序"""
        enriched = await self.graphql.enrich_search_results([hit.identifier for hit in hits], context)
        entries = []
        for hit, summary in zip(hits, enriched):
            entries.append(
                SimilarityEntry(
                    pdb_id=summary.pdb_id,
                    title=summary.title,
                    organisms=summary.organisms,
                    similarity=SimilarityMetrics(
                        sequence_identity=hit.score,
                        e_value=hit.match_context.get("evalue"),
                    ),
                )
            )
        entries.sort(key=lambda e: _rank_key(e.similarity.sequence_identity))
        logger.info("sequence_similarity_completed", returned=len(entries), total=total, **context.log_fields())
        return SimilarityResult(
            query=params.query,
            similarity_type=SimilarityType.SEQUENCE,
            results=entries,
            total_count=total,
        )

    # ===== 结构模式 =====

    async def find_structure_similar(self, params: FindSimilarParams, context: RequestContext) -> SimilarityResult:
        node = query_builder.build_structure_query(params.query.value, params.query.chain_id)
        hits, _ = await self.search.search_hits(
            node,
            context,
            return_type="polymer_instance",
            rows=params.limit,
            scoring_strategy="structure",
        )

        # 每个条目只保留得分最高的实例
        candidates: List[SearchHit] = []
        seen = set()
        for hit in hits:
            if hit.entry_id not in seen:
                seen.add(hit.entry_id)
                candidates.append(hit)

        return await self.align_candidates(params, candidates, context)

    async def align_candidates(
        self,
        params: FindSimilarParams,
        candidates: List[SearchHit],
        context: RequestContext,
    ) -> SimilarityResult:
        """
        与候选逐一比对并排序

        候选数量上限为 min(limit, max_structure_candidates)。
        """
        cap = min(len(candidates), params.limit, self.settings.max_structure_candidates)
        chosen = candidates[:cap]
        reference_id = params.query.value
        reference_chain = params.query.chain_id
        method = AlignmentMethod(self.settings.default_method)

        pairs = [
            (reference_id, reference_chain, hit.entry_id, hit.instance_id or DEFAULT_CANDIDATE_CHAIN)
            for hit in chosen
        ]
        logger.debug(
            "structure_similarity_aligning",
            candidates=len(candidates),
            aligning=len(pairs),
            **context.log_fields(),
        )
        outcomes = await self.alignment.align_many(pairs, method, context)

        aligned: List[tuple] = []
        for hit, outcome in zip(chosen, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    "candidate_alignment_dropped",
                    reference=reference_id,
                    candidate=hit.identifier,
                    error=str(outcome),
                    **context.log_fields(),
                )
                continue
            aligned.append((hit, outcome))

        if not aligned:
            logger.warning("structure_similarity_all_alignments_failed", reference=reference_id, **context.log_fields())
            return SimilarityResult(
                query=params.query,
                similarity_type=SimilarityType.STRUCTURE,
                results=[],
                total_count=0,
            )

        summaries = await self.graphql.enrich_search_results([hit.entry_id for hit, _ in aligned], context)
        by_id: Dict[str, SearchResultEntry] = {summary.pdb_id: summary for summary in summaries}

        entries = []
        for hit, scores in aligned:
            if not _passes_threshold(scores, params.threshold):
                continue
            summary = by_id.get(hit.entry_id)
            entries.append(
                SimilarityEntry(
                    pdb_id=hit.entry_id,
                    chain_id=hit.instance_id or DEFAULT_CANDIDATE_CHAIN,
                    title=summary.title if summary else None,
                    organisms=summary.organisms if summary else [],
                    similarity=SimilarityMetrics(
                        sequence_identity=scores.sequence_identity,
                        tm_score=scores.tm_score,
                        rmsd=scores.rmsd,
                        shape_score=hit.score,
                    ),
                    alignment_length=scores.aligned_residues,
                    coverage=coverage_percent(scores.aligned_residues, scores.query_length),
                )
            )

        entries.sort(key=lambda e: _rank_key(e.similarity.tm_score))
        logger.info(
            "structure_similarity_completed",
            aligned=len(aligned),
            returned=len(entries),
            **context.log_fields(),
        )
        return SimilarityResult(
            query=params.query,
            similarity_type=SimilarityType.STRUCTURE,
            results=entries,
            total_count=len(entries),
        )
