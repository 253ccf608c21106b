"""
蛋白质结构 API 请求模型

请求模型只负责形状和类型，取值范围由领域对象的 validate() 统一检查，
保证 HTTP 层与直接调用服务时的校验结果一致。
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from core.models import (
    AlignmentMethod,
    AnalysisFilters,
    AnalysisParams,
    AnalysisType,
    ChainSelection,
    CompareParams,
    FindSimilarParams,
    LigandFilters,
    LigandMatchType,
    LigandQuery,
    LigandQueryType,
    SearchQuery,
    SimilarityQuery,
    SimilarityQueryType,
    SimilarityThreshold,
    SimilarityType,
)


class SearchRequest(BaseModel):
    """结构检索请求"""
    query: Optional[str] = Field(None, description="自由文本（标题、分子名称或 PDB ID）")
    organism: Optional[str] = Field(None, description="物种学名")
    experimental_method: Optional[str] = Field(None, description="实验方法，如 X-RAY DIFFRACTION")
    min_resolution: Optional[float] = Field(None, description="最小分辨率 (Å)")
    max_resolution: Optional[float] = Field(None, description="最大分辨率 (Å)")
    release_date_from: Optional[str] = Field(None, description="发布日期起 (YYYY-MM-DD)")
    release_date_to: Optional[str] = Field(None, description="发布日期止 (YYYY-MM-DD)")
    limit: int = Field(default=25, description="每页条数 1-100")
    offset: int = Field(default=0, description="偏移量")

    def to_domain(self) -> SearchQuery:
        return SearchQuery(**self.model_dump())


class ChainSelectionSchema(BaseModel):
    pdb_id: str
    chain_id: str = "A"


class CompareRequest(BaseModel):
    """多结构比较请求"""
    pdb_ids: List[str] = Field(..., description="2-10 个 PDB ID")
    method: AlignmentMethod = Field(default=AlignmentMethod.CEALIGN, description="比对算法")
    chain_selection: List[ChainSelectionSchema] = Field(default_factory=list, description="每个结构使用的链")
    include_visualization: bool = Field(default=False, description="是否生成 PyMOL 脚本")

    def to_domain(self) -> CompareParams:
        return CompareParams(
            pdb_ids=list(self.pdb_ids),
            method=self.method,
            chain_selections=[ChainSelection(pdb_id=c.pdb_id, chain_id=c.chain_id) for c in self.chain_selection],
            include_visualization=self.include_visualization,
        )


class SimilarityQuerySchema(BaseModel):
    type: SimilarityQueryType = Field(..., description="pdb_id / sequence / structure")
    value: str = Field(..., description="PDB ID 或序列")
    chain_id: str = Field(default="A", description="链 ID（PDB ID 查询时使用）")


class SimilarityThresholdSchema(BaseModel):
    sequence_identity: float = Field(default=30.0, description="最小序列一致性 (%)")
    e_value: float = Field(default=0.001, description="E-value 上限")
    tm_score: Optional[float] = Field(None, description="最小 TM-score")
    rmsd: Optional[float] = Field(None, description="最大 RMSD (Å)")


class SimilarRequest(BaseModel):
    """相似结构检索请求"""
    query: SimilarityQuerySchema
    similarity_type: SimilarityType = Field(default=SimilarityType.SEQUENCE)
    threshold: SimilarityThresholdSchema = Field(default_factory=SimilarityThresholdSchema)
    limit: int = Field(default=10, description="返回条数 1-100")

    def to_domain(self) -> FindSimilarParams:
        return FindSimilarParams(
            query=SimilarityQuery(
                type=self.query.type,
                value=self.query.value,
                chain_id=self.query.chain_id,
            ),
            similarity_type=self.similarity_type,
            threshold=SimilarityThreshold(**self.threshold.model_dump()),
            limit=self.limit,
        )


class LigandQuerySchema(BaseModel):
    type: LigandQueryType = Field(..., description="chemical_id / name / smiles / inchi")
    value: str
    match_type: LigandMatchType = Field(default=LigandMatchType.RELAXED, description="描述符匹配方式")


class LigandFiltersSchema(BaseModel):
    protein_name: Optional[str] = None
    organism: Optional[str] = None
    experimental_method: Optional[str] = None
    max_resolution: Optional[float] = None


class LigandTrackRequest(BaseModel):
    """配体追踪请求"""
    query: LigandQuerySchema
    filters: LigandFiltersSchema = Field(default_factory=LigandFiltersSchema)
    include_binding_sites: bool = False
    limit: int = Field(default=25, description="返回条数 1-100")

    def to_domain(self) -> LigandQuery:
        return LigandQuery(type=self.query.type, value=self.query.value, match_type=self.query.match_type)

    def domain_filters(self) -> LigandFilters:
        return LigandFilters(**self.filters.model_dump())


class AnalysisFiltersSchema(BaseModel):
    organism: Optional[str] = None
    experimental_method: Optional[str] = None
    min_resolution: Optional[float] = None
    max_resolution: Optional[float] = None
    release_year_from: Optional[int] = None
    release_year_to: Optional[int] = None


class AnalyzeRequest(BaseModel):
    """集合统计请求"""
    analysis_type: str = Field(default="method", description="fold / function / organism / method，未知值按 method 处理")
    filters: AnalysisFiltersSchema = Field(default_factory=AnalysisFiltersSchema)
    group_by: Optional[str] = Field(None, description="目前只支持 year")
    limit: int = Field(default=20, description="返回类别数 1-100")

    def to_domain(self) -> AnalysisParams:
        return AnalysisParams(
            analysis_type=AnalysisType.parse(self.analysis_type),
            filters=AnalysisFilters(**self.filters.model_dump()),
            group_by=self.group_by,
            limit=self.limit,
        )
