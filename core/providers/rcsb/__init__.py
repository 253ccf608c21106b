# RCSB PDB 数据源
from .alignment_client import AlignmentClient, AlignmentJob
from .graphql_client import RcsbGraphQLClient
from .provider import RcsbProvider
from .search_client import RcsbSearchClient, SearchHit
from .similarity import SimilarityMerger

__all__ = [
    "AlignmentClient",
    "AlignmentJob",
    "RcsbGraphQLClient",
    "RcsbProvider",
    "RcsbSearchClient",
    "SearchHit",
    "SimilarityMerger",
]
