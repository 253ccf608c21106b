"""
配体追踪数据模型
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List

from core.exceptions import ValidationError


class LigandQueryType(str, Enum):
    """配体查询方式"""
    CHEMICAL_ID = "chemical_id"
    NAME = "name"
    SMILES = "smiles"
    INCHI = "inchi"

    @property
    def is_descriptor(self) -> bool:
        return self in (LigandQueryType.SMILES, LigandQueryType.INCHI)


class LigandMatchType(str, Enum):
    """化学描述符匹配方式"""
    STRICT = "strict"
    RELAXED = "relaxed"
    RELAXED_STEREO = "relaxed-stereo"
    FINGERPRINT = "fingerprint"

    @property
    def upstream_name(self) -> str:
        """RCSB chemical 服务的 match_type"""
        return {
            LigandMatchType.STRICT: "graph-strict",
            LigandMatchType.RELAXED: "graph-relaxed",
            LigandMatchType.RELAXED_STEREO: "graph-relaxed-stereo",
            LigandMatchType.FINGERPRINT: "fingerprint-similarity",
        }[self]


@dataclass
class LigandQuery:
    """配体查询"""
    type: LigandQueryType
    value: str
    match_type: LigandMatchType = LigandMatchType.RELAXED

    def validate(self) -> None:
        if not self.value or not self.value.strip():
            raise ValidationError("Ligand query value is required", field_errors={"value": "empty"})
        if self.type == LigandQueryType.CHEMICAL_ID and len(self.value.strip()) > 5:
            raise ValidationError(
                f"Invalid chemical component id: {self.value!r}",
                field_errors={"value": "chemical component ids have at most 5 characters"},
            )


@dataclass
class LigandFilters:
    """配体检索的附加过滤条件"""
    protein_name: Optional[str] = None
    organism: Optional[str] = None
    experimental_method: Optional[str] = None
    max_resolution: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return all(v in (None, "") for v in asdict(self).values())


@dataclass
class LigandInfo:
    """配体化学信息"""
    chemical_id: Optional[str] = None
    name: Optional[str] = None
    formula: Optional[str] = None
    molecular_weight: Optional[float] = None
    smiles: Optional[str] = None
    inchi: Optional[str] = None


@dataclass
class BindingResidue:
    name: str
    number: int
    chain: str
    interactions: List[str] = field(default_factory=list)


@dataclass
class BindingSite:
    """按链分组的结合位点"""
    chain: str
    residues: List[BindingResidue] = field(default_factory=list)


@dataclass
class LigandStructureEntry:
    """包含该配体的结构"""
    pdb_id: str
    title: Optional[str] = None
    organisms: List[str] = field(default_factory=list)
    resolution: Optional[float] = None
    binding_sites: List[BindingSite] = field(default_factory=list)


@dataclass
class LigandTrackResult:
    """配体追踪结果"""
    ligand_info: LigandInfo
    structures: List[LigandStructureEntry]
    total_count: int
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return data
