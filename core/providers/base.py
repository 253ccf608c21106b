"""
数据源抽象

每个数据源声明自己支持的操作（capabilities）。编排层在调用前先检查
supports()，不会为了试探而调用不支持的操作；未支持的操作默认抛出
UnsupportedOperationError。
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import FrozenSet, Optional

from core.context import RequestContext
from core.exceptions import UnsupportedOperationError
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
)


class Operation(str, Enum):
    """编排层暴露的结构操作"""
    SEARCH = "search_structures"
    GET_STRUCTURE = "get_structure"
    COMPARE = "compare_structures"
    FIND_SIMILAR = "find_similar"
    TRACK_LIGANDS = "track_ligands"
    ANALYZE = "analyze_collection"


class ProteinProvider(ABC):
    """
    数据源基类

    子类设置 name 和 capabilities，并实现对应的方法。
    """

    name: str = "provider"
    capabilities: FrozenSet[Operation] = frozenset()

    def __init__(self, http: ProteinHttpClient):
        self.http = http

    def supports(self, operation: Operation) -> bool:
        return operation in self.capabilities

    def _unsupported(self, operation: Operation) -> UnsupportedOperationError:
        return UnsupportedOperationError(self.name, operation.value)

    async def search_structures(self, query: SearchQuery, context: RequestContext) -> SearchResult:
        raise self._unsupported(Operation.SEARCH)

    async def get_structure(
        self,
        pdb_id: str,
        context: RequestContext,
        *,
        format: StructureFormat = StructureFormat.MMCIF,
        include_coordinates: bool = False,
    ) -> StructureRecord:
        raise self._unsupported(Operation.GET_STRUCTURE)

    async def compare_structures(self, params: CompareParams, context: RequestContext) -> CompareResult:
        raise self._unsupported(Operation.COMPARE)

    async def find_similar(self, params: FindSimilarParams, context: RequestContext) -> SimilarityResult:
        raise self._unsupported(Operation.FIND_SIMILAR)

    async def track_ligands(
        self,
        query: LigandQuery,
        context: RequestContext,
        *,
        filters: Optional[LigandFilters] = None,
        include_binding_sites: bool = False,
        limit: int = 25,
    ) -> LigandTrackResult:
        raise self._unsupported(Operation.TRACK_LIGANDS)

    async def analyze_collection(self, params: AnalysisParams, context: RequestContext) -> AnalysisResult:
        raise self._unsupported(Operation.ANALYZE)

    @abstractmethod
    async def health_check(self, context: RequestContext) -> bool:
        """探活，失败返回 False 而不是抛出"""
