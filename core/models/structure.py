"""
结构相关数据模型

StructureRecord 是 getStructure 的结果；SearchQuery / SearchResult 是检索的输入输出。
"""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List

from core.exceptions import InternalError, ValidationError

PDB_ID_PATTERN = re.compile(r"^[0-9A-Za-z]{4}$")

MAX_SEARCH_LIMIT = 100
DEFAULT_SEARCH_LIMIT = 25


def canonicalize_pdb_id(value: str) -> str:
    """
    规范化 PDB ID: 去空白、校验 4 位字母数字、转大写

    幂等: canonicalize_pdb_id(canonicalize_pdb_id(x)) == canonicalize_pdb_id(x)

    Raises:
        ValidationError: 格式不合法
    """
    if not isinstance(value, str):
        raise ValidationError("PDB ID must be a string", field_errors={"pdb_id": "not a string"})
    candidate = value.strip()
    if not PDB_ID_PATTERN.match(candidate):
        raise ValidationError(
            f"Invalid PDB ID format: {value!r}",
            field_errors={"pdb_id": "expected 4 alphanumeric characters"},
        )
    return candidate.upper()


class ChainType(str, Enum):
    """链类型"""
    PROTEIN = "protein"
    DNA = "dna"
    RNA = "rna"
    LIGAND = "ligand"
    WATER = "water"


def chain_type_from_polymer(value: Optional[str]) -> Optional[ChainType]:
    """
    把聚合物类型字符串映射为 ChainType

    同时接受 mmCIF 词汇（polypeptide(L)、polyribonucleotide...）
    和 RCSB 的简化词汇（Protein、DNA、RNA、NA-hybrid）。
    """
    if not value:
        return None
    v = value.strip().lower()
    if "polydeoxyribonucleotide" in v or v in ("dna", "na-hybrid"):
        return ChainType.DNA
    if "polyribonucleotide" in v or v == "rna":
        return ChainType.RNA
    if "peptide" in v or v == "protein":
        return ChainType.PROTEIN
    if v == "water":
        return ChainType.WATER
    return ChainType.LIGAND


class StructureFormat(str, Enum):
    """结构文件格式"""
    MMCIF = "mmcif"
    PDB = "pdb"
    PDBML = "pdbml"

    @property
    def extension(self) -> str:
        return {
            StructureFormat.MMCIF: "cif",
            StructureFormat.PDB: "pdb",
            StructureFormat.PDBML: "xml",
        }[self]


@dataclass
class Chain:
    """
    单条链

    Attributes:
        id: 作者链 ID（auth asym id）
        type: 链类型
        sequence: 单字母序列（可能未知）
        length: 残基数，有序列时必须等于序列长度
        organism: 来源物种
    """
    id: str
    type: Optional[ChainType] = None
    sequence: Optional[str] = None
    length: Optional[int] = None
    organism: Optional[str] = None

    def __post_init__(self):
        if self.sequence is not None and self.length != len(self.sequence):
            raise InternalError(
                f"Chain {self.id} length {self.length} does not match sequence length {len(self.sequence)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value if self.type else None,
            "sequence": self.sequence,
            "length": self.length,
            "organism": self.organism,
        }


def merge_chain(file_derived: Optional[Chain], metadata_derived: Optional[Chain]) -> Chain:
    """
    合并同一链 ID 的两路来源

    优先级:
    - organism: 元数据优先
    - sequence / length: 结构文件优先
    - type: 结构文件优先
    缺失的字段取另一路的值，不会填占位值。
    """
    if file_derived is None and metadata_derived is None:
        raise InternalError("merge_chain needs at least one source")
    if file_derived is None:
        return metadata_derived
    if metadata_derived is None:
        return file_derived
    if file_derived.id != metadata_derived.id:
        raise InternalError(f"Cannot merge chains {file_derived.id} and {metadata_derived.id}")

    if file_derived.sequence is not None:
        sequence, length = file_derived.sequence, file_derived.length
    elif metadata_derived.sequence is not None:
        sequence, length = metadata_derived.sequence, metadata_derived.length
    else:
        sequence = None
        length = file_derived.length if file_derived.length is not None else metadata_derived.length

    return Chain(
        id=file_derived.id,
        type=file_derived.type or metadata_derived.type,
        sequence=sequence,
        length=length,
        organism=metadata_derived.organism or file_derived.organism,
    )


def merge_chains(file_chains: List[Chain], metadata_chains: Dict[str, Chain]) -> List[Chain]:
    """链拓扑以结构文件为准，按文件顺序逐条与元数据合并"""
    return [merge_chain(chain, metadata_chains.get(chain.id)) for chain in file_chains]


@dataclass
class UnitCell:
    a: Optional[float] = None
    b: Optional[float] = None
    c: Optional[float] = None
    alpha: Optional[float] = None
    beta: Optional[float] = None
    gamma: Optional[float] = None


@dataclass
class ExperimentalData:
    """实验数据"""
    method: Optional[str] = None
    resolution: Optional[float] = None
    r_factor: Optional[float] = None
    r_free: Optional[float] = None
    space_group: Optional[str] = None
    unit_cell: Optional[UnitCell] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Citation:
    """文献引用"""
    title: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    journal: Optional[str] = None
    doi: Optional[str] = None
    pubmed_id: Optional[str] = None
    year: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StructureMetadata:
    """元数据补全的结果，chains 以链 ID 为键"""
    pdb_id: str
    title: Optional[str] = None
    experimental: ExperimentalData = field(default_factory=ExperimentalData)
    citations: List[Citation] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    chains: Dict[str, Chain] = field(default_factory=dict)


@dataclass
class StructureRecord:
    """
    结构记录

    chains 为空是合法的（没有结构文件时链拓扑未知）。
    coordinates 只在请求坐标时填充，内容为原始结构文件文本。
    """
    pdb_id: str
    title: Optional[str] = None
    experimental: ExperimentalData = field(default_factory=ExperimentalData)
    chains: List[Chain] = field(default_factory=list)
    citations: List[Citation] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    format: StructureFormat = StructureFormat.MMCIF
    coordinates: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pdb_id": self.pdb_id,
            "title": self.title,
            "experimental": self.experimental.to_dict(),
            "chains": [c.to_dict() for c in self.chains],
            "citations": [c.to_dict() for c in self.citations],
            "keywords": list(self.keywords),
            "format": self.format.value,
            "coordinates": self.coordinates,
            "source": self.source,
        }


@dataclass
class SearchQuery:
    """
    检索条件

    Attributes:
        query: 自由文本（标题、分子名称或 PDB ID）
        organism: 物种学名
        experimental_method: 实验方法，如 "X-RAY DIFFRACTION"
        min_resolution / max_resolution: 分辨率范围（Å）
        release_date_from / release_date_to: 发布日期范围（YYYY-MM-DD）
        limit: 每页条数 1-100
        offset: 偏移量
    """
    query: Optional[str] = None
    organism: Optional[str] = None
    experimental_method: Optional[str] = None
    min_resolution: Optional[float] = None
    max_resolution: Optional[float] = None
    release_date_from: Optional[str] = None
    release_date_to: Optional[str] = None
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0

    def validate(self) -> None:
        """
        校验参数

        Raises:
            ValidationError: 任一约束不满足
        """
        errors: Dict[str, str] = {}
        if not isinstance(self.limit, int) or not 1 <= self.limit <= MAX_SEARCH_LIMIT:
            errors["limit"] = f"must be between 1 and {MAX_SEARCH_LIMIT}"
        if not isinstance(self.offset, int) or self.offset < 0:
            errors["offset"] = "must be >= 0"
        for name in ("min_resolution", "max_resolution"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                errors[name] = "must be positive"
        if (
            self.min_resolution is not None
            and self.max_resolution is not None
            and self.min_resolution > self.max_resolution
        ):
            errors["min_resolution"] = "must not exceed max_resolution"
        if (
            self.release_date_from
            and self.release_date_to
            and self.release_date_from > self.release_date_to
        ):
            errors["release_date_from"] = "must not be after release_date_to"
        if errors:
            raise ValidationError("Invalid search query", field_errors=errors)

    @property
    def has_filters(self) -> bool:
        return any(
            v not in (None, "")
            for v in (
                self.query,
                self.organism,
                self.experimental_method,
                self.min_resolution,
                self.max_resolution,
                self.release_date_from,
                self.release_date_to,
            )
        )


@dataclass
class SearchResultEntry:
    """检索结果条目"""
    pdb_id: str
    title: Optional[str] = None
    organisms: List[str] = field(default_factory=list)
    experimental_method: Optional[str] = None
    resolution: Optional[float] = None
    release_date: Optional[str] = None
    molecular_weight: Optional[float] = None
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchResult:
    """检索结果，has_more = total_count > offset + len(results)"""
    results: List[SearchResultEntry]
    total_count: int
    offset: int = 0
    source: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.total_count > self.offset + len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "total_count": self.total_count,
            "has_more": self.has_more,
            "source": self.source,
        }
