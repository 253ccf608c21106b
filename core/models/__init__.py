# 领域数据模型
from .structure import (
    Chain,
    ChainType,
    Citation,
    ExperimentalData,
    SearchQuery,
    SearchResult,
    SearchResultEntry,
    StructureFormat,
    StructureMetadata,
    StructureRecord,
    UnitCell,
    canonicalize_pdb_id,
    chain_type_from_polymer,
    merge_chain,
    merge_chains,
)
from .ligand import (
    BindingResidue,
    BindingSite,
    LigandFilters,
    LigandInfo,
    LigandMatchType,
    LigandQuery,
    LigandQueryType,
    LigandStructureEntry,
    LigandTrackResult,
)
from .alignment import (
    AlignmentJobStatus,
    AlignmentMethod,
    AlignmentScores,
    AlignmentSummary,
    ChainSelection,
    CompareParams,
    CompareResult,
    PairwiseComparison,
)
from .similarity import (
    FindSimilarParams,
    SimilarityEntry,
    SimilarityMetrics,
    SimilarityQuery,
    SimilarityQueryType,
    SimilarityResult,
    SimilarityThreshold,
    SimilarityType,
)
from .analysis import (
    AnalysisCategory,
    AnalysisFilters,
    AnalysisParams,
    AnalysisResult,
    AnalysisType,
    HealthStatus,
    TrendPoint,
)

__all__ = [
    "Chain",
    "ChainType",
    "Citation",
    "ExperimentalData",
    "SearchQuery",
    "SearchResult",
    "SearchResultEntry",
    "StructureFormat",
    "StructureMetadata",
    "StructureRecord",
    "UnitCell",
    "canonicalize_pdb_id",
    "chain_type_from_polymer",
    "merge_chain",
    "merge_chains",
    "BindingResidue",
    "BindingSite",
    "LigandFilters",
    "LigandInfo",
    "LigandMatchType",
    "LigandQuery",
    "LigandQueryType",
    "LigandStructureEntry",
    "LigandTrackResult",
    "AlignmentJobStatus",
    "AlignmentMethod",
    "AlignmentScores",
    "AlignmentSummary",
    "ChainSelection",
    "CompareParams",
    "CompareResult",
    "PairwiseComparison",
    "FindSimilarParams",
    "SimilarityEntry",
    "SimilarityMetrics",
    "SimilarityQuery",
    "SimilarityQueryType",
    "SimilarityResult",
    "SimilarityThreshold",
    "SimilarityType",
    "AnalysisCategory",
    "AnalysisFilters",
    "AnalysisParams",
    "AnalysisResult",
    "AnalysisType",
    "HealthStatus",
    "TrendPoint",
]
