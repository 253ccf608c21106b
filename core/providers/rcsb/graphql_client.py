"""
RCSB GraphQL 元数据客户端

负责:
- 单个条目的元数据（标题、实验数据、主要文献、每条链的物种/类型/序列）
- 检索结果的批量补全
- 配体的化学信息与结合位点
"""

from typing import Optional, Dict, Any, List

import structlog

from core.config import RCSBSettings
from core.context import RequestContext
from core.exceptions import NotFoundError, ProteinServiceError
from core.http import ProteinHttpClient
from core.models import (
    BindingResidue,
    BindingSite,
    Chain,
    Citation,
    ExperimentalData,
    LigandInfo,
    SearchResultEntry,
    StructureMetadata,
    UnitCell,
    canonicalize_pdb_id,
    chain_type_from_polymer,
)
from core.parsers.mmcif import clean_sequence

logger = structlog.get_logger(__name__)

PROVIDER = "rcsb-graphql"

ENTRY_METADATA_QUERY = """
query($id: String!) {
  entry(entry_id: $id) {
    rcsb_id
    struct { title }
    struct_keywords { pdbx_keywords text }
    exptl { method }
    refine { ls_R_factor_R_free ls_R_factor_R_work }
    cell { length_a length_b length_c angle_alpha angle_beta angle_gamma }
    symmetry { space_group_name_H_M }
    rcsb_entry_info { resolution_combined }
    rcsb_primary_citation {
      title
      pdbx_database_id_DOI
      pdbx_database_id_PubMed
      year
      rcsb_authors
      journal_abbrev
    }
    polymer_entities {
      entity_poly { pdbx_seq_one_letter_code_can type }
      rcsb_polymer_entity_container_identifiers { auth_asym_ids }
      rcsb_entity_source_organism { ncbi_scientific_name }
    }
  }
}
"""

ENTRIES_SUMMARY_QUERY = """
query($ids: [String!]!) {
  entries(entry_ids: $ids) {
    rcsb_id
    struct { title }
    exptl { method }
    rcsb_entry_info { resolution_combined molecular_weight }
    rcsb_accession_info { initial_release_date }
    polymer_entities {
      rcsb_entity_source_organism { ncbi_scientific_name }
    }
  }
}
"""

ENTRY_SEQUENCE_QUERY = """
query($id: String!) {
  entry(entry_id: $id) {
    polymer_entities {
      entity_poly { pdbx_seq_one_letter_code_can }
    }
  }
}
"""

LIGAND_NEIGHBORS_QUERY = """
query($id: String!) {
  entry(entry_id: $id) {
    polymer_entity_instances {
      rcsb_polymer_entity_instance_container_identifiers { asym_id auth_asym_id }
      rcsb_ligand_neighbors { ligand_comp_id comp_id seq_id distance }
    }
  }
}
"""

CHEM_COMP_QUERY = """
query($id: String!) {
  chem_comp(comp_id: $id) {
    chem_comp { id name formula formula_weight }
    rcsb_chem_comp_descriptor { SMILES InChI }
  }
}
"""


def _first(values: Optional[List[Any]]) -> Any:
    """列表中第一个非 None 的元素"""
    for value in values or []:
        if value is not None:
            return value
    return None


def _organisms(entry: Dict[str, Any]) -> List[str]:
    """去重并保持首次出现的顺序"""
    names: List[str] = []
    for entity in entry.get("polymer_entities") or []:
        for organism in entity.get("rcsb_entity_source_organism") or []:
            name = organism.get("ncbi_scientific_name")
            if name and name not in names:
                names.append(name)
    return names


def _parse_citation(raw: Optional[Dict[str, Any]]) -> List[Citation]:
    if not raw:
        return []
    pubmed = raw.get("pdbx_database_id_PubMed")
    return [
        Citation(
            title=raw.get("title"),
            authors=list(raw.get("rcsb_authors") or []),
            journal=raw.get("journal_abbrev"),
            doi=raw.get("pdbx_database_id_DOI"),
            pubmed_id=str(pubmed) if pubmed is not None else None,
            year=raw.get("year"),
        )
    ]


def _parse_experimental(entry: Dict[str, Any]) -> ExperimentalData:
    refine = _first(entry.get("refine")) or {}
    cell = entry.get("cell")
    unit_cell = None
    if cell:
        unit_cell = UnitCell(
            a=cell.get("length_a"),
            b=cell.get("length_b"),
            c=cell.get("length_c"),
            alpha=cell.get("angle_alpha"),
            beta=cell.get("angle_beta"),
            gamma=cell.get("angle_gamma"),
        )
    return ExperimentalData(
        method=(_first(entry.get("exptl")) or {}).get("method"),
        resolution=_first((entry.get("rcsb_entry_info") or {}).get("resolution_combined")),
        r_factor=refine.get("ls_R_factor_R_work"),
        r_free=refine.get("ls_R_factor_R_free"),
        space_group=(entry.get("symmetry") or {}).get("space_group_name_H_M"),
        unit_cell=unit_cell,
    )


def _parse_metadata_chains(entry: Dict[str, Any]) -> Dict[str, Chain]:
    """每个实体按 auth_asym_ids 展开为链"""
    chains: Dict[str, Chain] = {}
    for entity in entry.get("polymer_entities") or []:
        poly = entity.get("entity_poly") or {}
        raw_sequence = poly.get("pdbx_seq_one_letter_code_can")
        sequence = clean_sequence(raw_sequence) if raw_sequence else None
        organism_entry = _first(entity.get("rcsb_entity_source_organism")) or {}
        identifiers = entity.get("rcsb_polymer_entity_container_identifiers") or {}
        for chain_id in identifiers.get("auth_asym_ids") or []:
            chains[chain_id] = Chain(
                id=chain_id,
                type=chain_type_from_polymer(poly.get("type")),
                sequence=sequence or None,
                length=len(sequence) if sequence else None,
                organism=organism_entry.get("ncbi_scientific_name"),
            )
    return chains


def _parse_keywords(entry: Dict[str, Any]) -> List[str]:
    raw = entry.get("struct_keywords") or {}
    keywords: List[str] = []
    for source in (raw.get("pdbx_keywords"), raw.get("text")):
        for word in (source or "").split(","):
            word = word.strip()
            if word and word not in keywords:
                keywords.append(word)
    return keywords


class RcsbGraphQLClient:
    """
    RCSB GraphQL 客户端

    Args:
        http: 共享 HTTP 客户端
        settings: RCSB 配置
    """

    def __init__(self, http: ProteinHttpClient, settings: RCSBSettings):
        self.http = http
        self.settings = settings

    async def _query(self, query: str, variables: Dict[str, Any], context: RequestContext) -> Dict[str, Any]:
        return await self.http.graphql(
            self.settings.graphql_url,
            query,
            variables,
            context=context,
            provider=PROVIDER,
        )

    async def fetch_structure_metadata(self, pdb_id: str, context: RequestContext) -> StructureMetadata:
        """
        获取条目元数据

        Args:
            pdb_id: PDB ID（在任何网络调用之前校验）
            context: 请求上下文

        Returns:
            StructureMetadata，chains 以作者链 ID 为键

        Raises:
            ValidationError: ID 格式不合法
            NotFoundError: 条目不存在
            ServiceUnavailableError: 上游不可用
        """
        pdb_id = canonicalize_pdb_id(pdb_id)
        data = await self._query(ENTRY_METADATA_QUERY, {"id": pdb_id}, context)
        entry = data.get("entry")
        if not entry:
            raise NotFoundError("structure", pdb_id)

        metadata = StructureMetadata(
            pdb_id=pdb_id,
            title=(entry.get("struct") or {}).get("title"),
            experimental=_parse_experimental(entry),
            citations=_parse_citation(entry.get("rcsb_primary_citation")),
            keywords=_parse_keywords(entry),
            chains=_parse_metadata_chains(entry),
        )
        logger.debug(
            "structure_metadata_fetched",
            pdb_id=pdb_id,
            chain_count=len(metadata.chains),
            **context.log_fields(),
        )
        return metadata

    async def enrich_search_results(
        self,
        pdb_ids: List[str],
        context: RequestContext,
        *,
        scores: Optional[Dict[str, float]] = None,
    ) -> List[SearchResultEntry]:
        """
        批量补全检索结果，保持输入顺序

        补全失败时退化为只有 ID 的条目，不抛出。
        """
        if not pdb_ids:
            return []
        scores = scores or {}

        try:
            data = await self._query(ENTRIES_SUMMARY_QUERY, {"ids": pdb_ids}, context)
        except ProteinServiceError as e:
            logger.warning(
                "search_enrichment_failed",
                count=len(pdb_ids),
                error=str(e),
                **context.log_fields(),
            )
            return [SearchResultEntry(pdb_id=pdb_id, score=scores.get(pdb_id)) for pdb_id in pdb_ids]

        by_id: Dict[str, Dict[str, Any]] = {}
        for entry in data.get("entries") or []:
            if entry and entry.get("rcsb_id"):
                by_id[entry["rcsb_id"].upper()] = entry

        results = []
        for pdb_id in pdb_ids:
            entry = by_id.get(pdb_id.upper())
            if entry is None:
                results.append(SearchResultEntry(pdb_id=pdb_id, score=scores.get(pdb_id)))
                continue
            info = entry.get("rcsb_entry_info") or {}
            results.append(
                SearchResultEntry(
                    pdb_id=pdb_id,
                    title=(entry.get("struct") or {}).get("title"),
                    organisms=_organisms(entry),
                    experimental_method=(_first(entry.get("exptl")) or {}).get("method"),
                    resolution=_first(info.get("resolution_combined")),
                    release_date=(entry.get("rcsb_accession_info") or {}).get("initial_release_date"),
                    molecular_weight=info.get("molecular_weight"),
                    score=scores.get(pdb_id),
                )
            )
        return results

    async def get_sequence_for_pdb_id(self, pdb_id: str, context: RequestContext) -> Optional[str]:
        """第一个聚合物实体的规范序列"""
        pdb_id = canonicalize_pdb_id(pdb_id)
        data = await self._query(ENTRY_SEQUENCE_QUERY, {"id": pdb_id}, context)
        entry = data.get("entry")
        if not entry:
            raise NotFoundError("structure", pdb_id)
        entity = _first(entry.get("polymer_entities")) or {}
        raw = (entity.get("entity_poly") or {}).get("pdbx_seq_one_letter_code_can")
        return clean_sequence(raw) if raw else None

    async def get_binding_sites(self, pdb_id: str, ligand_id: str, context: RequestContext) -> List[BindingSite]:
        """
        配体的结合位点，按链分组

        查询失败时返回空列表。
        """
        try:
            data = await self._query(LIGAND_NEIGHBORS_QUERY, {"id": pdb_id}, context)
        except ProteinServiceError as e:
            logger.warning(
                "binding_site_lookup_failed",
                pdb_id=pdb_id,
                ligand_id=ligand_id,
                error=str(e),
                **context.log_fields(),
            )
            return []

        ligand_id = ligand_id.upper()
        sites: Dict[str, Dict[int, BindingResidue]] = {}
        for instance in (data.get("entry") or {}).get("polymer_entity_instances") or []:
            identifiers = instance.get("rcsb_polymer_entity_instance_container_identifiers") or {}
            chain_id = identifiers.get("auth_asym_id") or identifiers.get("asym_id")
            if not chain_id:
                continue
            for neighbor in instance.get("rcsb_ligand_neighbors") or []:
                if (neighbor.get("ligand_comp_id") or "").upper() != ligand_id:
                    continue
                seq_id = neighbor.get("seq_id")
                if seq_id is None:
                    continue
                residues = sites.setdefault(chain_id, {})
                residue = residues.setdefault(
                    seq_id,
                    BindingResidue(name=neighbor.get("comp_id") or "UNK", number=seq_id, chain=chain_id),
                )
                distance = neighbor.get("distance")
                if distance is not None:
                    contact = f"contact {distance:.2f} A"
                    if contact not in residue.interactions:
                        residue.interactions.append(contact)

        return [
            BindingSite(chain=chain_id, residues=sorted(residues.values(), key=lambda r: r.number))
            for chain_id, residues in sites.items()
        ]

    async def get_ligand_info(self, comp_id: str, context: RequestContext) -> LigandInfo:
        """化学组分信息，查询失败时只返回 ID"""
        comp_id = comp_id.upper()
        try:
            data = await self._query(CHEM_COMP_QUERY, {"id": comp_id}, context)
        except ProteinServiceError as e:
            logger.warning("ligand_info_lookup_failed", comp_id=comp_id, error=str(e), **context.log_fields())
            return LigandInfo(chemical_id=comp_id)

        raw = data.get("chem_comp") or {}
        comp = raw.get("chem_comp") or {}
        descriptors = raw.get("rcsb_chem_comp_descriptor") or {}
        return LigandInfo(
            chemical_id=comp.get("id") or comp_id,
            name=comp.get("name"),
            formula=comp.get("formula"),
            molecular_weight=comp.get("formula_weight"),
            smiles=descriptors.get("SMILES"),
            inchi=descriptors.get("InChI"),
        )
