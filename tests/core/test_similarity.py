"""
相似结构检索测试
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.config import AlignmentSettings
from core.exceptions import AlignmentTimeoutError, NotFoundError, ServiceUnavailableError
from core.models import (
    AlignmentScores,
    FindSimilarParams,
    SearchResultEntry,
    SimilarityQuery,
    SimilarityQueryType,
    SimilarityThreshold,
    SimilarityType,
)
from core.providers.rcsb.search_client import SearchHit
from core.providers.rcsb.similarity import SimilarityMerger, coverage_percent


def make_merger(*, hits=(), total=None, outcomes=None, max_candidates=10):
    search = MagicMock()
    search.search_hits = AsyncMock(return_value=(list(hits), total if total is not None else len(hits)))

    graphql = MagicMock()
    graphql.enrich_search_results = AsyncMock(
        side_effect=lambda ids, context, **kwargs: [SearchResultEntry(pdb_id=i.split(".")[0], title=f"title {i}") for i in ids]
    )
    graphql.get_sequence_for_pdb_id = AsyncMock(return_value="MKVLAAGLTKVLAG")

    alignment = MagicMock()
    alignment.align_many = AsyncMock(side_effect=lambda pairs, method, context: list(outcomes(pairs)))

    settings = AlignmentSettings(max_structure_candidates=max_candidates)
    return SimilarityMerger(search, graphql, alignment, settings), search, graphql, alignment


def structure_params(limit=10, threshold=None):
    params = FindSimilarParams(
        query=SimilarityQuery(type=SimilarityQueryType.PDB_ID, value="1ABC", chain_id="A"),
        similarity_type=SimilarityType.STRUCTURE,
        threshold=threshold or SimilarityThreshold(),
        limit=limit,
    )
    params.validate()
    return params


class TestStructureSimilarity:
    """结构模式"""

    @pytest.mark.asyncio
    async def test_rejected_alignments_dropped_and_ranked(self, context):
        hits = [SearchHit(identifier=f"{i}XYZ.A", score=1.0 - i * 0.1) for i in range(1, 6)]
        tm_scores = {"1XYZ": 0.6, "3XYZ": 0.9, "5XYZ": 0.75}

        def outcomes(pairs):
            for _, _, entry, _ in pairs:
                if entry in tm_scores:
                    yield AlignmentScores(tm_score=tm_scores[entry], rmsd=1.5, aligned_residues=90, query_length=100)
                else:
                    yield AlignmentTimeoutError("ticket", 15)

        merger, _, _, _ = make_merger(hits=hits, outcomes=outcomes)
        result = await merger.find_similar(structure_params(), context)

        assert [e.pdb_id for e in result.results] == ["3XYZ", "5XYZ", "1XYZ"]
        assert result.total_count == 3
        top = result.results[0]
        assert top.similarity.tm_score == 0.9
        assert top.similarity.shape_score == pytest.approx(0.7)
        assert top.coverage == pytest.approx(90.0)
        assert top.chain_id == "A"
        assert top.title == "title 3XYZ"

    @pytest.mark.asyncio
    async def test_candidate_cap(self, context):
        hits = [SearchHit(identifier=f"{i:02d}AB.A", score=0.5) for i in range(20)]
        merger, _, _, alignment = make_merger(
            hits=hits,
            outcomes=lambda pairs: (AlignmentScores(tm_score=0.5) for _ in pairs),
            max_candidates=4,
        )
        await merger.find_similar(structure_params(limit=20), context)
        pairs = alignment.align_many.call_args.args[0]
        assert len(pairs) == 4

    @pytest.mark.asyncio
    async def test_limit_caps_candidates(self, context):
        hits = [SearchHit(identifier=f"{i:02d}AB.A", score=0.5) for i in range(8)]
        merger, _, _, alignment = make_merger(
            hits=hits,
            outcomes=lambda pairs: (AlignmentScores(tm_score=0.5) for _ in pairs),
        )
        await merger.find_similar(structure_params(limit=3), context)
        assert len(alignment.align_many.call_args.args[0]) == 3

    @pytest.mark.asyncio
    async def test_all_alignments_fail_returns_empty(self, context):
        hits = [SearchHit(identifier=f"{i}XYZ.A", score=0.5) for i in range(1, 4)]
        merger, _, graphql, _ = make_merger(
            hits=hits,
            outcomes=lambda pairs: (ServiceUnavailableError("down") for _ in pairs),
        )
        result = await merger.find_similar(structure_params(), context)
        assert result.results == []
        assert result.total_count == 0
        graphql.enrich_search_results.assert_not_called()

    @pytest.mark.asyncio
    async def test_instances_deduplicated_by_entry(self, context):
        hits = [
            SearchHit(identifier="2XYZ.A", score=0.9),
            SearchHit(identifier="2XYZ.B", score=0.8),
            SearchHit(identifier="3XYZ.C", score=0.7),
        ]
        merger, _, _, alignment = make_merger(
            hits=hits,
            outcomes=lambda pairs: (AlignmentScores(tm_score=0.5) for _ in pairs),
        )
        await merger.find_similar(structure_params(), context)
        pairs = alignment.align_many.call_args.args[0]
        assert pairs == [("1ABC", "A", "2XYZ", "A"), ("1ABC", "A", "3XYZ", "C")]

    @pytest.mark.asyncio
    async def test_threshold_filters(self, context):
        hits = [SearchHit(identifier="2XYZ.A"), SearchHit(identifier="3XYZ.A"), SearchHit(identifier="4XYZ.A")]
        scores = {
            "2XYZ": AlignmentScores(tm_score=0.8, rmsd=1.0),
            "3XYZ": AlignmentScores(tm_score=0.3, rmsd=1.0),
            "4XYZ": AlignmentScores(tm_score=0.9, rmsd=5.0),
        }
        merger, _, _, _ = make_merger(hits=hits, outcomes=lambda pairs: (scores[p[2]] for p in pairs))
        threshold = SimilarityThreshold(tm_score=0.5, rmsd=2.0)
        result = await merger.find_similar(structure_params(threshold=threshold), context)
        assert [e.pdb_id for e in result.results] == ["2XYZ"]

    @pytest.mark.asyncio
    async def test_missing_tm_score_sorted_last(self, context):
        hits = [SearchHit(identifier="2XYZ.A"), SearchHit(identifier="3XYZ.A")]
        scores = {"2XYZ": AlignmentScores(tm_score=None, rmsd=1.0), "3XYZ": AlignmentScores(tm_score=0.4)}
        merger, _, _, _ = make_merger(hits=hits, outcomes=lambda pairs: (scores[p[2]] for p in pairs))
        result = await merger.find_similar(structure_params(), context)
        assert [e.pdb_id for e in result.results] == ["3XYZ", "2XYZ"]


class TestSequenceSimilarity:
    """序列模式"""

    @pytest.mark.asyncio
    async def test_scores_map_to_identity(self, context):
        hits = [
            SearchHit(identifier="2XYZ", score=0.7, match_context={"evalue": 1e-30}),
            SearchHit(identifier="3XYZ", score=0.95, match_context={"evalue": 1e-80}),
        ]
        merger, search, _, _ = make_merger(hits=hits, total=12)
        params = FindSimilarParams(query=SimilarityQuery(type=SimilarityQueryType.SEQUENCE, value="MKVLAAGLTKVLAG"))
        params.validate()

        result = await merger.find_similar(params, context)

        assert [e.pdb_id for e in result.results] == ["3XYZ", "2XYZ"]
        assert result.results[0].similarity.sequence_identity == 0.95
        assert result.results[0].similarity.e_value == 1e-80
        assert result.total_count == 12
        node = search.search_hits.call_args.args[0]
        assert node["parameters"]["value"] == "MKVLAAGLTKVLAG"

    @pytest.mark.asyncio
    async def test_entry_query_fetches_sequence(self, context):
        merger, search, graphql, _ = make_merger(hits=[])
        params = FindSimilarParams(query=SimilarityQuery(type=SimilarityQueryType.PDB_ID, value="1abc"))
        params.validate()
        await merger.find_similar(params, context)
        graphql.get_sequence_for_pdb_id.assert_awaited_once_with("1ABC", context)

    @pytest.mark.asyncio
    async def test_entry_without_sequence(self, context):
        merger, _, graphql, _ = make_merger(hits=[])
        graphql.get_sequence_for_pdb_id = AsyncMock(return_value=None)
        params = FindSimilarParams(query=SimilarityQuery(type=SimilarityQueryType.PDB_ID, value="1ABC"))
        with pytest.raises(NotFoundError):
            await merger.find_similar(params, context)


def test_coverage_percent():
    assert coverage_percent(50, 200) == 25.0
    assert coverage_percent(None, 200) is None
    assert coverage_percent(50, None) is None
