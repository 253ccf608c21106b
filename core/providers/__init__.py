# 数据源
from .base import Operation, ProteinProvider
from .pdbe import PdbeProvider
from .rcsb import RcsbProvider
from .uniprot import UniProtEntry, UniProtProvider

__all__ = [
    "Operation",
    "ProteinProvider",
    "PdbeProvider",
    "RcsbProvider",
    "UniProtEntry",
    "UniProtProvider",
]
