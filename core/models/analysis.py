"""
结构集合统计分析数据模型
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List

from core.exceptions import ValidationError

MAX_ANALYSIS_CATEGORIES = 100
DEFAULT_ANALYSIS_CATEGORIES = 20


class AnalysisType(str, Enum):
    FOLD = "fold"
    FUNCTION = "function"
    ORGANISM = "organism"
    METHOD = "method"

    @classmethod
    def parse(cls, value: str) -> "AnalysisType":
        """未知类型回退到 METHOD"""
        try:
            return cls(value.lower())
        except (ValueError, AttributeError):
            return cls.METHOD


@dataclass
class AnalysisFilters:
    organism: Optional[str] = None
    experimental_method: Optional[str] = None
    min_resolution: Optional[float] = None
    max_resolution: Optional[float] = None
    release_year_from: Optional[int] = None
    release_year_to: Optional[int] = None


@dataclass
class AnalysisParams:
    """
    Attributes:
        analysis_type: 分类维度
        filters: 集合过滤条件
        group_by: "year" 时额外返回按发布年份的趋势
        limit: 返回的分类数上限
    """
    analysis_type: AnalysisType = AnalysisType.METHOD
    filters: AnalysisFilters = field(default_factory=AnalysisFilters)
    group_by: Optional[str] = None
    limit: int = DEFAULT_ANALYSIS_CATEGORIES

    def validate(self) -> None:
        errors: Dict[str, str] = {}
        if not 1 <= self.limit <= MAX_ANALYSIS_CATEGORIES:
            errors["limit"] = f"must be between 1 and {MAX_ANALYSIS_CATEGORIES}"
        f = self.filters
        if f.min_resolution is not None and f.max_resolution is not None and f.min_resolution > f.max_resolution:
            errors["filters.min_resolution"] = "must not exceed max_resolution"
        if f.release_year_from is not None and f.release_year_to is not None and f.release_year_from > f.release_year_to:
            errors["filters.release_year_from"] = "must not be after release_year_to"
        if self.group_by not in (None, "year"):
            errors["group_by"] = "only 'year' is supported"
        if errors:
            raise ValidationError("Invalid analysis parameters", field_errors=errors)


@dataclass
class AnalysisCategory:
    category: str
    count: int
    percentage: float
    examples: List[str] = field(default_factory=list)


@dataclass
class TrendPoint:
    year: int
    count: int


@dataclass
class AnalysisResult:
    analysis_type: AnalysisType
    total_structures: int
    statistics: List[AnalysisCategory]
    trends: Optional[List[TrendPoint]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HealthStatus:
    """数据源健康状态，任一可用即整体可用"""
    primary: bool
    fallback: bool

    @property
    def healthy(self) -> bool:
        return self.primary or self.fallback

    def to_dict(self) -> Dict[str, Any]:
        return {"primary": self.primary, "fallback": self.fallback, "healthy": self.healthy}
