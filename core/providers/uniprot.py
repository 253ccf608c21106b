"""
UniProt 数据源

UniProt 是序列库，不提供结构，因此不支持六个结构操作；
它为结构数据补充序列和蛋白注释。
"""

import re
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List

import structlog

from core.config import UniProtSettings
from core.context import RequestContext
from core.exceptions import NotFoundError, ProteinServiceError, ServiceUnavailableError, ValidationError
from core.http import ProteinHttpClient
from core.providers.base import ProteinProvider

logger = structlog.get_logger(__name__)

ACCESSION_PATTERN = re.compile(
    r"^([OPQ][0-9][A-Z0-9]{3}[0-9]|[A-NR-Z][0-9]([A-Z][A-Z0-9]{2}[0-9]){1,2})$"
)


@dataclass
class UniProtEntry:
    """UniProt 检索结果条目"""
    accession: str
    id: Optional[str] = None
    protein_name: Optional[str] = None
    gene_name: Optional[str] = None
    organism: Optional[str] = None
    sequence: Optional[str] = None
    length: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UniProtEntry":
        """从 UniProt JSON 结果创建"""
        description = data.get("proteinDescription") or {}
        name = ((description.get("recommendedName") or {}).get("fullName") or {}).get("value")
        if name is None:
            submitted = description.get("submissionNames") or [{}]
            name = ((submitted[0] or {}).get("fullName") or {}).get("value")
        genes = data.get("genes") or [{}]
        sequence = data.get("sequence") or {}
        return cls(
            accession=data.get("primaryAccession", ""),
            id=data.get("uniProtkbId"),
            protein_name=name,
            gene_name=((genes[0] or {}).get("geneName") or {}).get("value"),
            organism=(data.get("organism") or {}).get("scientificName"),
            sequence=sequence.get("value"),
            length=sequence.get("length"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_fasta(text: str) -> str:
    """跳过 > 头行，拼接序列并去掉所有空白"""
    lines = [line for line in text.splitlines() if not line.startswith(">")]
    return "".join("".join(lines).split())


class UniProtProvider(ProteinProvider):
    """
    UniProt 数据源

    Args:
        http: 共享 HTTP 客户端
        settings: UniProt 配置
        health_timeout: 健康检查超时（秒）
    """

    name = "uniprot"
    capabilities = frozenset()

    def __init__(self, http: ProteinHttpClient, settings: UniProtSettings, *, health_timeout: float = 5.0):
        super().__init__(http)
        self.settings = settings
        self.health_timeout = health_timeout

    async def get_protein_sequence(self, accession: str, context: RequestContext) -> str:
        """
        按登录号获取序列

        Raises:
            ValidationError: 登录号格式不合法
            NotFoundError: 条目不存在
            ServiceUnavailableError: 上游不可用
        """
        accession = accession.strip().upper()
        if not ACCESSION_PATTERN.match(accession):
            raise ValidationError(
                f"Invalid UniProt accession: {accession!r}",
                field_errors={"accession": "not a UniProt accession"},
            )

        response = await self.http.request(
            "GET",
            f"{self.settings.api_url}/uniprotkb/{accession}.fasta",
            context=context,
            provider=self.name,
        )
        if 400 <= response.status_code < 500:
            raise NotFoundError("sequence", accession, message=f"UniProt entry {accession} not found")
        self.http.raise_for_status(response, context=context, provider=self.name)

        sequence = parse_fasta(response.text)
        if not sequence:
            raise NotFoundError("sequence", accession, message=f"UniProt entry {accession} has no sequence")
        logger.debug("uniprot_sequence_fetched", accession=accession, length=len(sequence), **context.log_fields())
        return sequence

    async def search_protein(self, query: str, context: RequestContext, *, size: Optional[int] = None) -> List[UniProtEntry]:
        """按基因名 / 蛋白名检索"""
        if not query or not query.strip():
            raise ValidationError("UniProt query is required", field_errors={"query": "empty"})
        data = await self.http.get_json(
            f"{self.settings.api_url}/uniprotkb/search",
            context=context,
            provider=self.name,
            params={
                "query": query.strip(),
                "format": "json",
                "size": size or self.settings.search_page_size,
            },
        )
        if not isinstance(data, dict):
            raise ServiceUnavailableError("UniProt returned an unexpected payload", provider=self.name)
        entries = [UniProtEntry.from_dict(result) for result in data.get("results") or []]
        logger.info("uniprot_search_completed", returned=len(entries), **context.log_fields())
        return entries

    async def health_check(self, context: RequestContext) -> bool:
        try:
            response = await self.http.request(
                "GET",
                f"{self.settings.api_url}/uniprotkb/search",
                context=context,
                provider=self.name,
                params={"query": "P12345", "size": 1},
                timeout=self.health_timeout,
            )
        except ProteinServiceError as e:
            logger.warning("uniprot_health_check_failed", error=str(e))
            return False
        return response.is_success
