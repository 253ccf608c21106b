"""
RCSB Search API 查询构建

纯函数: 输入检索条件，输出 Search API 的 JSON 查询树。
相同输入得到相同输出，不做任何网络调用。
"""

from typing import Optional, Dict, Any, List

from core.models import (
    AnalysisFilters,
    AnalysisType,
    LigandFilters,
    LigandQuery,
    LigandQueryType,
    SearchQuery,
)

# ===== 属性路径 =====

ENTRY_ID_ATTR = "rcsb_entry_container_identifiers.entry_id"
TITLE_ATTR = "struct.title"
MACROMOLECULE_NAME_ATTR = "rcsb_polymer_entity.pdbx_description"
ORGANISM_ATTR = "rcsb_entity_source_organism.taxonomy_lineage.name"
METHOD_ATTR = "exptl.method"
RESOLUTION_ATTR = "rcsb_entry_info.resolution_combined"
RELEASE_DATE_ATTR = "rcsb_accession_info.initial_release_date"
PROTEIN_ENTITY_COUNT_ATTR = "rcsb_entry_info.polymer_entity_count_protein"
CHEM_COMP_ID_ATTR = "rcsb_chem_comp_container_identifiers.comp_id"
CHEM_COMP_NAME_ATTR = "chem_comp.name"

ANALYSIS_FACET_NAME = "analysis_facet"
RELEASE_YEAR_FACET_NAME = "release_year"

ANALYSIS_FACETS = {
    AnalysisType.FOLD: "rcsb_struct_symmetry.kind",
    AnalysisType.FUNCTION: "rcsb_polymer_entity_annotation.type",
    AnalysisType.ORGANISM: ORGANISM_ATTR,
    AnalysisType.METHOD: METHOD_ATTR,
}


# ===== 基本节点 =====

def terminal(attribute: str, operator: str, value: Any, *, service: str = "text") -> Dict[str, Any]:
    """属性检索节点"""
    return {
        "type": "terminal",
        "service": service,
        "parameters": {
            "attribute": attribute,
            "operator": operator,
            "value": value,
        },
    }


def group(nodes: List[Dict[str, Any]], logical_operator: str = "and") -> Dict[str, Any]:
    return {
        "type": "group",
        "logical_operator": logical_operator,
        "nodes": nodes,
    }


def text_predicate(text: str) -> Dict[str, Any]:
    """自由文本: 条目 ID 精确匹配 OR 标题短语 OR 大分子名称短语"""
    term = text.strip()
    return group(
        [
            terminal(ENTRY_ID_ATTR, "exact_match", term.upper()),
            terminal(TITLE_ATTR, "contains_phrase", term),
            terminal(MACROMOLECULE_NAME_ATTR, "contains_phrase", term),
        ],
        logical_operator="or",
    )


def date_range_predicate(date_from: Optional[str], date_to: Optional[str]) -> Optional[Dict[str, Any]]:
    if date_from and date_to:
        return terminal(
            RELEASE_DATE_ATTR,
            "range",
            {"from": date_from, "to": date_to, "include_lower": True, "include_upper": True},
        )
    if date_from:
        return terminal(RELEASE_DATE_ATTR, "greater_or_equal", date_from)
    if date_to:
        return terminal(RELEASE_DATE_ATTR, "less_or_equal", date_to)
    return None


def _entry_filters(
    *,
    organism: Optional[str] = None,
    method: Optional[str] = None,
    min_resolution: Optional[float] = None,
    max_resolution: Optional[float] = None,
) -> List[Dict[str, Any]]:
    nodes = []
    if organism:
        nodes.append(terminal(ORGANISM_ATTR, "exact_match", organism))
    if method:
        nodes.append(terminal(METHOD_ATTR, "exact_match", method.upper()))
    if min_resolution is not None:
        nodes.append(terminal(RESOLUTION_ATTR, "greater_or_equal", min_resolution))
    if max_resolution is not None:
        nodes.append(terminal(RESOLUTION_ATTR, "less_or_equal", max_resolution))
    return nodes


def default_predicate() -> Dict[str, Any]:
    """没有任何过滤条件时: 至少包含一个蛋白质实体"""
    return terminal(PROTEIN_ENTITY_COUNT_ATTR, "greater", 0)


# ===== 检索查询 =====

def build_search_query(query: SearchQuery) -> Dict[str, Any]:
    """
    构建结构检索的查询树

    Args:
        query: 检索条件

    Returns:
        以 AND 组合的查询树；没有条件时退化为"蛋白质实体数 > 0"
    """
    nodes: List[Dict[str, Any]] = []
    if query.query and query.query.strip():
        nodes.append(text_predicate(query.query))
    nodes.extend(
        _entry_filters(
            organism=query.organism,
            method=query.experimental_method,
            min_resolution=query.min_resolution,
            max_resolution=query.max_resolution,
        )
    )
    date_node = date_range_predicate(query.release_date_from, query.release_date_to)
    if date_node:
        nodes.append(date_node)

    if not nodes:
        nodes.append(default_predicate())
    return group(nodes)


def build_ligand_query(query: LigandQuery, filters: Optional[LigandFilters] = None) -> Dict[str, Any]:
    """
    构建配体检索的查询树

    chemical_id 精确匹配化学组分 ID；name 按词匹配组分名称；
    smiles / inchi 走 chemical 服务的描述符匹配。
    """
    value = query.value.strip()
    if query.type == LigandQueryType.CHEMICAL_ID:
        ligand_node = terminal(CHEM_COMP_ID_ATTR, "exact_match", value.upper(), service="text_chem")
    elif query.type == LigandQueryType.NAME:
        ligand_node = terminal(CHEM_COMP_NAME_ATTR, "contains_words", value, service="text_chem")
    else:
        ligand_node = {
            "type": "terminal",
            "service": "chemical",
            "parameters": {
                "value": value,
                "type": "descriptor",
                "descriptor_type": "SMILES" if query.type == LigandQueryType.SMILES else "InChI",
                "match_type": query.match_type.upstream_name,
            },
        }

    nodes = [ligand_node]
    if filters is not None:
        if filters.protein_name:
            nodes.append(terminal(MACROMOLECULE_NAME_ATTR, "contains_phrase", filters.protein_name))
        nodes.extend(
            _entry_filters(
                organism=filters.organism,
                method=filters.experimental_method,
                max_resolution=filters.max_resolution,
            )
        )
    return group(nodes)


def build_sequence_query(sequence: str, *, identity_percent: float, evalue_cutoff: float) -> Dict[str, Any]:
    """序列相似检索节点，identity 以百分比传入"""
    return {
        "type": "terminal",
        "service": "sequence",
        "parameters": {
            "evalue_cutoff": evalue_cutoff,
            "identity_cutoff": identity_percent / 100,
            "sequence_type": "protein",
            "value": sequence,
        },
    }


def build_structure_query(entry_id: str, asym_id: str) -> Dict[str, Any]:
    """结构形状相似检索节点"""
    return {
        "type": "terminal",
        "service": "structure",
        "parameters": {
            "value": {"entry_id": entry_id, "asym_id": asym_id},
            "operator": "strict_shape_match",
        },
    }


# ===== 统计分析 =====

def get_analysis_facet(analysis_type: AnalysisType) -> str:
    """分类维度对应的 facet 属性，未知维度回退到实验方法"""
    return ANALYSIS_FACETS.get(analysis_type, METHOD_ATTR)


def build_analysis_query(filters: AnalysisFilters) -> Dict[str, Any]:
    nodes = _entry_filters(
        organism=filters.organism,
        method=filters.experimental_method,
        min_resolution=filters.min_resolution,
        max_resolution=filters.max_resolution,
    )
    date_node = date_range_predicate(
        f"{filters.release_year_from}-01-01" if filters.release_year_from else None,
        f"{filters.release_year_to}-12-31" if filters.release_year_to else None,
    )
    if date_node:
        nodes.append(date_node)
    if not nodes:
        nodes.append(default_predicate())
    return group(nodes)


def build_analysis_facets(analysis_type: AnalysisType, limit: int, *, with_trends: bool = False) -> List[Dict[str, Any]]:
    facets = [
        {
            "name": ANALYSIS_FACET_NAME,
            "aggregation_type": "terms",
            "attribute": get_analysis_facet(analysis_type),
            "min_interval_population": 1,
            "max_num_intervals": limit,
        }
    ]
    if with_trends:
        facets.append(
            {
                "name": RELEASE_YEAR_FACET_NAME,
                "aggregation_type": "date_histogram",
                "attribute": RELEASE_DATE_ATTR,
                "interval": "year",
                "min_interval_population": 1,
            }
        )
    return facets


# ===== 请求体 =====

def build_request(
    query_node: Dict[str, Any],
    *,
    return_type: str = "entry",
    start: int = 0,
    rows: int = 25,
    scoring_strategy: str = "combined",
    facets: Optional[List[Dict[str, Any]]] = None,
    verbose: bool = False,
) -> Dict[str, Any]:
    """组装完整的 Search API 请求体，按得分降序"""
    options: Dict[str, Any] = {
        "paginate": {"start": start, "rows": rows},
        "scoring_strategy": scoring_strategy,
        "sort": [{"sort_by": "score", "direction": "desc"}],
    }
    if facets:
        options["facets"] = facets
    if verbose:
        options["results_verbosity"] = "verbose"
    return {
        "query": query_node,
        "request_options": options,
        "return_type": return_type,
    }
