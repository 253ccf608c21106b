"""
PDBe 数据源（备用）

与 RCSB 镜像同一份 wwPDB 数据，只支持检索、获取结构、配体追踪三个操作。
"""

import asyncio
from typing import Optional, Dict, Any, List

import structlog

from core.config import PDBeSettings
from core.context import RequestContext
from core.exceptions import NotFoundError, ProteinServiceError, UnsupportedOperationError
from core.http import ProteinHttpClient
from core.models import (
    Chain,
    ExperimentalData,
    LigandFilters,
    LigandInfo,
    LigandQuery,
    LigandQueryType,
    LigandStructureEntry,
    LigandTrackResult,
    SearchQuery,
    SearchResult,
    SearchResultEntry,
    StructureFormat,
    StructureRecord,
    UnitCell,
    canonicalize_pdb_id,
    chain_type_from_polymer,
    merge_chains,
)
from core.models.structure import PDB_ID_PATTERN
from core.parsers.mmcif import clean_sequence, parse_chains
from core.providers.base import Operation, ProteinProvider

logger = structlog.get_logger(__name__)

SOLR_FIELDS = "pdb_id,title,organism_scientific_name,experimental_method,resolution,release_date"


def _first_record(data: Any, pdb_id: str) -> Optional[Dict[str, Any]]:
    """PDBe 以小写 ID 为键，值为列表（单条）或字典"""
    if not isinstance(data, dict):
        return None
    value = data.get(pdb_id.lower()) or data.get(pdb_id.upper())
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _format_date(value: Optional[str]) -> Optional[str]:
    """20000101 或 2000-01-01T00:00:00Z -> 2000-01-01"""
    if not value:
        return None
    if len(value) == 8 and value.isdigit():
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return value[:10]


def _solr_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_solr_query(query: SearchQuery) -> str:
    """把检索条件转换为 PDBe Solr 查询串"""
    clauses = []
    if query.query and query.query.strip():
        term = _solr_escape(query.query.strip())
        clauses.append(f'(title:"{term}" OR molecule_name:"{term}" OR pdb_id:"{term.lower()}")')
    if query.organism:
        clauses.append(f'organism_scientific_name:"{_solr_escape(query.organism)}"')
    if query.experimental_method:
        clauses.append(f'experimental_method:"{_solr_escape(query.experimental_method)}"')
    if query.min_resolution is not None or query.max_resolution is not None:
        low = query.min_resolution if query.min_resolution is not None else "*"
        high = query.max_resolution if query.max_resolution is not None else "*"
        clauses.append(f"resolution:[{low} TO {high}]")
    if query.release_date_from or query.release_date_to:
        low = f"{query.release_date_from}T00:00:00Z" if query.release_date_from else "*"
        high = f"{query.release_date_to}T23:59:59Z" if query.release_date_to else "*"
        clauses.append(f"release_date:[{low} TO {high}]")
    return " AND ".join(clauses) if clauses else "*:*"


class PdbeProvider(ProteinProvider):
    """
    PDBe 数据源

    Args:
        http: 共享 HTTP 客户端
        settings: PDBe 配置
        health_timeout: 健康检查超时（秒）
        summary_timeout: 条目摘要请求超时（秒）
    """

    name = "pdbe"
    capabilities = frozenset({Operation.SEARCH, Operation.GET_STRUCTURE, Operation.TRACK_LIGANDS})

    def __init__(
        self,
        http: ProteinHttpClient,
        settings: PDBeSettings,
        *,
        health_timeout: float = 5.0,
        summary_timeout: float = 10.0,
    ):
        super().__init__(http)
        self.settings = settings
        self.health_timeout = health_timeout
        self.summary_timeout = summary_timeout

    # ===== 基础请求 =====

    async def _entry_summary(self, pdb_id: str, context: RequestContext) -> Dict[str, Any]:
        data = await self.http.get_json(
            f"{self.settings.api_url}/pdb/entry/summary/{pdb_id.lower()}",
            context=context,
            provider=self.name,
            resource="structure",
            identifier=pdb_id,
            timeout=self.summary_timeout,
        )
        record = _first_record(data, pdb_id)
        if record is None:
            raise NotFoundError("structure", pdb_id)
        return record

    async def _optional_json(self, url: str, pdb_id: str, context: RequestContext) -> Optional[Dict[str, Any]]:
        try:
            data = await self.http.get_json(url, context=context, provider=self.name)
        except ProteinServiceError as e:
            logger.debug("pdbe_optional_lookup_failed", url=url, error=str(e), **context.log_fields())
            return None
        return data

    async def _optional_text(self, url: str, pdb_id: str, context: RequestContext) -> Optional[str]:
        try:
            return await self.http.get_text(url, context=context, provider=self.name)
        except ProteinServiceError as e:
            logger.warning("pdbe_structure_file_unavailable", pdb_id=pdb_id, error=str(e), **context.log_fields())
            return None

    def _summary_entry(self, pdb_id: str, summary: Dict[str, Any]) -> SearchResultEntry:
        methods = summary.get("experimental_method") or []
        return SearchResultEntry(
            pdb_id=pdb_id.upper(),
            title=summary.get("title"),
            organisms=[
                s["organism_scientific_name"]
                for s in summary.get("source") or []
                if s.get("organism_scientific_name")
            ],
            experimental_method=methods[0] if methods else None,
            resolution=summary.get("resolution"),
            release_date=_format_date(summary.get("release_date")),
            molecular_weight=summary.get("molecular_weight"),
        )

    # ===== 检索 =====

    async def search_structures(self, query: SearchQuery, context: RequestContext) -> SearchResult:
        """
        检索

        检索词本身是 PDB ID 且没有其他条件时直接查条目摘要，否则走 Solr。
        """
        term = (query.query or "").strip()
        only_term = not any(
            (query.organism, query.experimental_method, query.min_resolution, query.max_resolution,
             query.release_date_from, query.release_date_to)
        )
        if term and only_term and PDB_ID_PATTERN.match(term):
            return await self._search_by_id(term, query, context)
        return await self._search_solr(query, context)

    async def _search_by_id(self, pdb_id: str, query: SearchQuery, context: RequestContext) -> SearchResult:
        try:
            summary = await self._entry_summary(pdb_id, context)
        except NotFoundError:
            return SearchResult(results=[], total_count=0, offset=query.offset, source=self.name)
        entries = [self._summary_entry(pdb_id, summary)]
        return SearchResult(
            results=entries[query.offset:query.offset + query.limit],
            total_count=len(entries),
            offset=query.offset,
            source=self.name,
        )

    async def _search_solr(self, query: SearchQuery, context: RequestContext) -> SearchResult:
        params = {
            "q": build_solr_query(query),
            "wt": "json",
            "fl": SOLR_FIELDS,
            "start": query.offset,
            "rows": query.limit,
            "group": "true",
            "group.field": "pdb_id",
            "group.ngroups": "true",
        }
        data = await self.http.get_json(self.settings.search_url, context=context, provider=self.name, params=params)
        grouped = ((data or {}).get("grouped") or {}).get("pdb_id") or {}

        results = []
        for group_data in grouped.get("groups") or []:
            docs = (group_data.get("doclist") or {}).get("docs") or []
            if not docs:
                continue
            doc = docs[0]
            organisms = doc.get("organism_scientific_name") or []
            if isinstance(organisms, str):
                organisms = [organisms]
            methods = doc.get("experimental_method") or []
            if isinstance(methods, str):
                methods = [methods]
            title = doc.get("title")
            results.append(
                SearchResultEntry(
                    pdb_id=str(doc.get("pdb_id") or group_data.get("groupValue")).upper(),
                    title=title[0] if isinstance(title, list) else title,
                    organisms=list(dict.fromkeys(organisms)),
                    experimental_method=methods[0] if methods else None,
                    resolution=doc.get("resolution"),
                    release_date=_format_date(doc.get("release_date")),
                )
            )

        total = int(grouped.get("ngroups") or len(results))
        logger.info("pdbe_search_completed", returned=len(results), total=total, **context.log_fields())
        return SearchResult(results=results, total_count=total, offset=query.offset, source=self.name)

    # ===== 结构 =====

    def _metadata_chains(self, molecules: Optional[Dict[str, Any]], pdb_id: str) -> Dict[str, Chain]:
        chains: Dict[str, Chain] = {}
        for entity in _molecule_list(molecules, pdb_id):
            raw_sequence = entity.get("sequence")
            sequence = clean_sequence(raw_sequence) if raw_sequence else None
            source = (entity.get("source") or [{}])[0] or {}
            for chain_id in entity.get("in_chains") or []:
                chains[chain_id] = Chain(
                    id=chain_id,
                    type=chain_type_from_polymer(entity.get("molecule_type")),
                    sequence=sequence or None,
                    length=len(sequence) if sequence else None,
                    organism=source.get("organism_scientific_name"),
                )
        return chains

    async def get_structure(
        self,
        pdb_id: str,
        context: RequestContext,
        *,
        format: StructureFormat = StructureFormat.MMCIF,
        include_coordinates: bool = False,
    ) -> StructureRecord:
        """
        获取结构记录

        条目摘要决定是否存在；实验数据、分子信息、结构文件都是尽力获取。
        """
        pdb_id = canonicalize_pdb_id(pdb_id)
        summary = await self._entry_summary(pdb_id, context)

        lower = pdb_id.lower()
        experiment, molecules, mmcif_text = await asyncio.gather(
            self._optional_json(f"{self.settings.api_url}/pdb/entry/experiment/{lower}", pdb_id, context),
            self._optional_json(f"{self.settings.api_url}/pdb/entry/molecules/{lower}", pdb_id, context),
            self._optional_text(f"{self.settings.files_url}/{lower}.cif", pdb_id, context),
        )
        coordinates = None
        if include_coordinates:
            if format == StructureFormat.MMCIF:
                coordinates = mmcif_text
            else:
                coordinates = await self._optional_text(
                    f"{self.settings.files_url}/{lower}.{format.extension}", pdb_id, context
                )

        file_chains = parse_chains(mmcif_text, pdb_id=pdb_id) if mmcif_text else []
        record = StructureRecord(
            pdb_id=pdb_id,
            title=summary.get("title"),
            experimental=_experimental(summary, _first_record(experiment, pdb_id)),
            chains=merge_chains(file_chains, self._metadata_chains(molecules, pdb_id)),
            format=format,
            coordinates=coordinates,
            source=self.name,
        )
        logger.info("pdbe_structure_fetched", pdb_id=pdb_id, chains=len(record.chains), **context.log_fields())
        return record

    # ===== 配体 =====

    async def track_ligands(
        self,
        query: LigandQuery,
        context: RequestContext,
        *,
        filters: Optional[LigandFilters] = None,
        include_binding_sites: bool = False,
        limit: int = 25,
    ) -> LigandTrackResult:
        """按化学组分 ID 查找包含该配体的条目；不支持描述符和名称查询"""
        if query.type != LigandQueryType.CHEMICAL_ID:
            raise UnsupportedOperationError(
                self.name,
                Operation.TRACK_LIGANDS.value,
                message="PDBe ligand lookup only supports chemical component ids",
            )

        comp_id = query.value.strip().upper()
        ligand_info = LigandInfo(chemical_id=comp_id)
        try:
            data = await self.http.get_json(
                f"{self.settings.api_url}/pdb/compound/in_pdb/{comp_id}",
                context=context,
                provider=self.name,
                resource="ligand",
                identifier=comp_id,
            )
        except NotFoundError:
            return LigandTrackResult(ligand_info=ligand_info, structures=[], total_count=0, source=self.name)

        pdb_ids = []
        for item in (data or {}).get(comp_id) or []:
            value = item.get("pdb_id") if isinstance(item, dict) else item
            if value:
                pdb_ids.append(str(value).upper())

        summaries = await asyncio.gather(
            *(self._guarded_summary(pdb_id, context) for pdb_id in pdb_ids[:limit])
        )
        structures = [
            LigandStructureEntry(
                pdb_id=entry.pdb_id,
                title=entry.title,
                organisms=entry.organisms,
                resolution=entry.resolution,
            )
            for entry in summaries
            if entry is not None
        ]
        logger.info(
            "pdbe_ligand_tracking_completed",
            comp_id=comp_id,
            returned=len(structures),
            total=len(pdb_ids),
            **context.log_fields(),
        )
        return LigandTrackResult(
            ligand_info=ligand_info,
            structures=structures,
            total_count=len(pdb_ids),
            source=self.name,
        )

    async def _guarded_summary(self, pdb_id: str, context: RequestContext) -> Optional[SearchResultEntry]:
        try:
            return self._summary_entry(pdb_id, await self._entry_summary(pdb_id, context))
        except ProteinServiceError as e:
            logger.debug("pdbe_summary_skipped", pdb_id=pdb_id, error=str(e))
            return None

    async def health_check(self, context: RequestContext) -> bool:
        try:
            response = await self.http.request(
                "GET",
                self.settings.health_url,
                context=context,
                provider=self.name,
                timeout=self.health_timeout,
            )
        except ProteinServiceError as e:
            logger.warning("pdbe_health_check_failed", error=str(e))
            return False
        return response.is_success


def _molecule_list(molecules: Optional[Dict[str, Any]], pdb_id: str) -> List[Dict[str, Any]]:
    if not isinstance(molecules, dict):
        return []
    value = molecules.get(pdb_id.lower()) or molecules.get(pdb_id.upper()) or []
    return value if isinstance(value, list) else [value]


def _experimental(summary: Dict[str, Any], experiment: Optional[Dict[str, Any]]) -> ExperimentalData:
    methods = summary.get("experimental_method") or []
    experiment = experiment or {}
    cell = experiment.get("cell")
    return ExperimentalData(
        method=experiment.get("experimental_method") or (methods[0] if methods else None),
        resolution=experiment.get("resolution", summary.get("resolution")),
        r_factor=experiment.get("r_factor"),
        r_free=experiment.get("r_free"),
        space_group=experiment.get("spacegroup"),
        unit_cell=UnitCell(
            a=cell.get("a"),
            b=cell.get("b"),
            c=cell.get("c"),
            alpha=cell.get("alpha"),
            beta=cell.get("beta"),
            gamma=cell.get("gamma"),
        ) if cell else None,
    )
