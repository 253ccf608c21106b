"""
结构比对数据模型
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List

from core.exceptions import ValidationError
from core.models.structure import canonicalize_pdb_id

MIN_COMPARE_STRUCTURES = 2
MAX_COMPARE_STRUCTURES = 10
DEFAULT_CHAIN = "A"


class AlignmentMethod(str, Enum):
    """比对算法"""
    CEALIGN = "cealign"
    TMALIGN = "tmalign"
    FATCAT = "fatcat"

    @property
    def upstream_name(self) -> str:
        """RCSB 比对服务中的算法名"""
        return {
            AlignmentMethod.CEALIGN: "jce",
            AlignmentMethod.TMALIGN: "tm-align",
            AlignmentMethod.FATCAT: "jfatcat-rigid",
        }[self]


class AlignmentJobStatus(str, Enum):
    """比对任务状态: SUBMITTED -> RUNNING -> COMPLETE | ERROR，TIMEOUT 为客户端判定"""
    SUBMITTED = "SUBMITTED"
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"

    def is_terminal(self) -> bool:
        """是否为终态"""
        return self in (
            AlignmentJobStatus.COMPLETE,
            AlignmentJobStatus.ERROR,
            AlignmentJobStatus.TIMEOUT,
        )


@dataclass
class AlignmentScores:
    """比对得分，上游没给的项保持 None"""
    rmsd: Optional[float] = None
    tm_score: Optional[float] = None
    sequence_identity: Optional[float] = None
    aligned_residues: Optional[int] = None
    query_length: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChainSelection:
    pdb_id: str
    chain_id: str = DEFAULT_CHAIN


@dataclass
class CompareParams:
    """
    多结构比较参数

    Attributes:
        pdb_ids: 2-10 个 PDB ID
        method: 比对算法
        chain_selections: 每个结构使用的链，缺省为 A
        include_visualization: 是否生成 PyMOL 脚本
    """
    pdb_ids: List[str]
    method: AlignmentMethod = AlignmentMethod.CEALIGN
    chain_selections: List[ChainSelection] = field(default_factory=list)
    include_visualization: bool = False

    def validate(self) -> None:
        if not MIN_COMPARE_STRUCTURES <= len(self.pdb_ids) <= MAX_COMPARE_STRUCTURES:
            raise ValidationError(
                f"Between {MIN_COMPARE_STRUCTURES} and {MAX_COMPARE_STRUCTURES} structures are required for comparison",
                field_errors={"pdb_ids": f"got {len(self.pdb_ids)}"},
            )
        self.pdb_ids = [canonicalize_pdb_id(pdb_id) for pdb_id in self.pdb_ids]
        for selection in self.chain_selections:
            selection.pdb_id = canonicalize_pdb_id(selection.pdb_id)

    def chain_for(self, pdb_id: str) -> str:
        for selection in self.chain_selections:
            if selection.pdb_id == pdb_id:
                return selection.chain_id
        return DEFAULT_CHAIN


@dataclass
class PairwiseComparison:
    structure1: str
    structure2: str
    chain1: str
    chain2: str
    scores: AlignmentScores

    def to_dict(self) -> Dict[str, Any]:
        return {
            "structure1": self.structure1,
            "structure2": self.structure2,
            "chain1": self.chain1,
            "chain2": self.chain2,
            **self.scores.to_dict(),
        }


@dataclass
class AlignmentSummary:
    method: AlignmentMethod
    rmsd: Optional[float] = None
    aligned_residues: Optional[int] = None
    sequence_identity: Optional[float] = None
    tm_score: Optional[float] = None


@dataclass
class CompareResult:
    """多结构比较结果"""
    alignment: AlignmentSummary
    pairwise_comparisons: List[PairwiseComparison]
    failed_pairs: List[List[str]] = field(default_factory=list)
    visualization: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alignment": asdict(self.alignment),
            "pairwise_comparisons": [p.to_dict() for p in self.pairwise_comparisons],
            "failed_pairs": self.failed_pairs,
            "visualization": self.visualization,
        }
