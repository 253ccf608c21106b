"""
相似结构检索数据模型
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List

from core.exceptions import ValidationError
from core.models.alignment import DEFAULT_CHAIN
from core.models.structure import canonicalize_pdb_id

MAX_SIMILAR_LIMIT = 100
DEFAULT_SIMILAR_LIMIT = 10
MIN_SEQUENCE_LENGTH = 10


class SimilarityType(str, Enum):
    SEQUENCE = "sequence"
    STRUCTURE = "structure"


class SimilarityQueryType(str, Enum):
    PDB_ID = "pdb_id"
    SEQUENCE = "sequence"
    STRUCTURE = "structure"


@dataclass
class SimilarityThreshold:
    """
    阈值

    sequence_identity 为百分比（0-100），e_value 用作序列检索截断；
    tm_score / rmsd 用于过滤结构比对结果。
    """
    sequence_identity: float = 30.0
    e_value: float = 0.001
    tm_score: Optional[float] = None
    rmsd: Optional[float] = None


@dataclass
class SimilarityQuery:
    """相似检索的查询对象"""
    type: SimilarityQueryType
    value: str
    chain_id: str = DEFAULT_CHAIN

    @property
    def is_entry(self) -> bool:
        return self.type in (SimilarityQueryType.PDB_ID, SimilarityQueryType.STRUCTURE)


@dataclass
class FindSimilarParams:
    query: SimilarityQuery
    similarity_type: SimilarityType = SimilarityType.SEQUENCE
    threshold: SimilarityThreshold = field(default_factory=SimilarityThreshold)
    limit: int = DEFAULT_SIMILAR_LIMIT

    def validate(self) -> None:
        errors: Dict[str, str] = {}
        if not 1 <= self.limit <= MAX_SIMILAR_LIMIT:
            errors["limit"] = f"must be between 1 and {MAX_SIMILAR_LIMIT}"
        if not 0 <= self.threshold.sequence_identity <= 100:
            errors["threshold.sequence_identity"] = "must be between 0 and 100"
        if self.threshold.e_value <= 0:
            errors["threshold.e_value"] = "must be positive"
        if errors:
            raise ValidationError("Invalid similarity parameters", field_errors=errors)

        if self.query.is_entry:
            self.query.value = canonicalize_pdb_id(self.query.value)
        else:
            sequence = "".join(self.query.value.split()).upper()
            if len(sequence) < MIN_SEQUENCE_LENGTH or not sequence.isalpha():
                raise ValidationError(
                    "Sequence query must contain at least 10 residue letters",
                    field_errors={"query.value": "invalid sequence"},
                )
            self.query.value = sequence
            if self.similarity_type == SimilarityType.STRUCTURE:
                raise ValidationError(
                    "Structure similarity requires a PDB ID query",
                    field_errors={"query.type": "sequence queries only support sequence similarity"},
                )


@dataclass
class SimilarityMetrics:
    """
    相似度指标

    shape_score 是上游形状检索给出的原始得分，tm_score 来自逐对比对，二者含义不同。
    """
    sequence_identity: Optional[float] = None
    e_value: Optional[float] = None
    tm_score: Optional[float] = None
    rmsd: Optional[float] = None
    shape_score: Optional[float] = None


@dataclass
class SimilarityEntry:
    pdb_id: str
    chain_id: Optional[str] = None
    title: Optional[str] = None
    organisms: List[str] = field(default_factory=list)
    similarity: SimilarityMetrics = field(default_factory=SimilarityMetrics)
    alignment_length: Optional[int] = None
    coverage: Optional[float] = None


@dataclass
class SimilarityResult:
    query: SimilarityQuery
    similarity_type: SimilarityType
    results: List[SimilarityEntry]
    total_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
