"""
RCSB 结构比对客户端

比对是异步任务: 先提交拿到票据，再按固定间隔轮询结果。
AlignmentJob 封装单个任务的轮询；AlignmentClient 负责提交、
两两比对以及多结构比较的汇总。
"""

from __future__ import annotations

import asyncio
import json
from itertools import combinations
from typing import Optional, Dict, Any, List, Tuple

import structlog

from core.config import AlignmentSettings, RCSBSettings
from core.context import RequestContext
from core.exceptions import (
    AlignmentTimeoutError,
    InternalError,
    ServiceUnavailableError,
)
from core.http import ProteinHttpClient
from core.models import (
    AlignmentJobStatus,
    AlignmentMethod,
    AlignmentScores,
    AlignmentSummary,
    CompareParams,
    CompareResult,
    PairwiseComparison,
)
from logging_config import truncate_body

logger = structlog.get_logger(__name__)

PROVIDER = "rcsb-alignment"

# 归一化后的得分名 -> AlignmentScores 字段
SCORE_ALIASES = {
    "rmsd": "rmsd",
    "tm_score": "tm_score",
    "sequence_identity": "sequence_identity",
    "identity": "sequence_identity",
    "seq_identity": "sequence_identity",
    "query_length": "query_length",
}

VISUALIZATION_COLORS = ("cyan", "magenta", "yellow", "orange", "green", "blue")


def _normalize_score_name(name: str) -> str:
    return name.strip().lower().replace("-", "_")


def parse_alignment_scores(result: Dict[str, Any]) -> AlignmentScores:
    """
    把比对结果的 summary 展平为 AlignmentScores

    Raises:
        InternalError: 结果缺少 summary
    """
    summary = result.get("summary") if isinstance(result, dict) else None
    if not isinstance(summary, dict):
        raise InternalError("Alignment result has no summary block")

    values: Dict[str, Any] = {}
    for score in summary.get("scores") or []:
        field_name = SCORE_ALIASES.get(_normalize_score_name(str(score.get("type", ""))))
        if field_name and score.get("value") is not None:
            values[field_name] = score["value"]

    query_length = values.get("query_length") or summary.get("query_length")
    modeled = summary.get("n_modeled_residues")
    if query_length is None and isinstance(modeled, list) and modeled:
        query_length = modeled[0]

    aligned = summary.get("n_aln_residue_pairs")
    return AlignmentScores(
        rmsd=values.get("rmsd"),
        tm_score=values.get("tm_score"),
        sequence_identity=values.get("sequence_identity"),
        aligned_residues=int(aligned) if aligned is not None else None,
        query_length=int(query_length) if query_length is not None else None,
    )


class AlignmentJob:
    """
    比对任务

    Example:
        ```python
        job = await client.submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.CEALIGN, ctx)
        scores = await job.wait(ctx)
        ```
    """

    def __init__(self, ticket: str, client: "AlignmentClient"):
        self.ticket = ticket
        self._client = client
        self.status = AlignmentJobStatus.SUBMITTED
        self.scores: Optional[AlignmentScores] = None
        self.error_message: Optional[str] = None
        self.attempts = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    async def refresh(self, context: RequestContext) -> "AlignmentJob":
        """
        轮询一次

        HTTP 失败视为暂时性问题，状态保持 RUNNING。
        """
        self.attempts += 1
        context.ensure_active()
        try:
            response = await self._client.http.request(
                "GET",
                self._client.results_url(self.ticket),
                context=context,
                provider=PROVIDER,
            )
        except ServiceUnavailableError as e:
            logger.debug("alignment_poll_transport_failed", ticket=self.ticket, attempt=self.attempts, error=str(e))
            self.status = AlignmentJobStatus.RUNNING
            return self

        if not response.is_success:
            logger.debug(
                "alignment_poll_http_error",
                ticket=self.ticket,
                attempt=self.attempts,
                status_code=response.status_code,
            )
            self.status = AlignmentJobStatus.RUNNING
            return self

        try:
            payload = response.json()
        except ValueError:
            logger.debug("alignment_poll_invalid_json", ticket=self.ticket, attempt=self.attempts)
            self.status = AlignmentJobStatus.RUNNING
            return self

        info = payload.get("info") or {}
        status = str(info.get("status", "")).upper()
        results = payload.get("results") or []
        logger.debug("alignment_polled", ticket=self.ticket, attempt=self.attempts, status=status)

        if status == AlignmentJobStatus.COMPLETE.value and results:
            self.scores = parse_alignment_scores(results[0])
            self.status = AlignmentJobStatus.COMPLETE
        elif status == AlignmentJobStatus.ERROR.value:
            self.error_message = info.get("message") or "unknown alignment error"
            self.status = AlignmentJobStatus.ERROR
        else:
            self.status = AlignmentJobStatus.RUNNING
        return self

    async def wait(
        self,
        context: RequestContext,
        *,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> AlignmentScores:
        """
        等待比对完成，每次轮询前先等待一个间隔

        Args:
            context: 请求上下文
            poll_interval: 轮询间隔（秒），缺省取配置
            max_attempts: 最大轮询次数，缺省取配置

        Returns:
            AlignmentScores

        Raises:
            ServiceUnavailableError: 上游报告 ERROR
            AlignmentTimeoutError: 达到最大轮询次数仍未完成
            InternalError: COMPLETE 但结果缺少 summary
        """
        settings = self._client.alignment_settings
        interval = settings.poll_interval if poll_interval is None else poll_interval
        limit = settings.max_poll_attempts if max_attempts is None else max_attempts

        while self.attempts < limit:
            await asyncio.sleep(interval)
            await self.refresh(context)

            # 检查终态
            if self.status == AlignmentJobStatus.COMPLETE:
                logger.debug("alignment_completed", ticket=self.ticket, attempts=self.attempts, **context.log_fields())
                return self.scores
            if self.status == AlignmentJobStatus.ERROR:
                logger.warning(
                    "alignment_failed_upstream",
                    ticket=self.ticket,
                    message=self.error_message,
                    **context.log_fields(),
                )
                raise ServiceUnavailableError(
                    f"Alignment failed: {self.error_message}",
                    provider=PROVIDER,
                    details={"ticket": self.ticket},
                )

        self.status = AlignmentJobStatus.TIMEOUT
        logger.warning("alignment_timed_out", ticket=self.ticket, attempts=self.attempts, **context.log_fields())
        raise AlignmentTimeoutError(self.ticket, self.attempts)


class AlignmentClient:
    """
    比对服务客户端

    Args:
        http: 共享 HTTP 客户端
        settings: RCSB 配置（比对服务地址）
        alignment_settings: 轮询与并发配置
    """

    def __init__(self, http: ProteinHttpClient, settings: RCSBSettings, alignment_settings: AlignmentSettings):
        self.http = http
        self.settings = settings
        self.alignment_settings = alignment_settings

    def results_url(self, ticket: str) -> str:
        return f"{self.settings.alignment_url}/results/{ticket}"

    async def submit(
        self,
        entry1: str,
        chain1: str,
        entry2: str,
        chain2: str,
        method: AlignmentMethod,
        context: RequestContext,
    ) -> AlignmentJob:
        """
        提交两两比对任务

        Raises:
            ServiceUnavailableError: 提交失败（不会进入轮询）
        """
        job_description = {
            "mode": "pairwise",
            "method": {"name": method.upstream_name},
            "structures": [
                {"entry_id": entry1, "selection": {"asym_id": chain1}},
                {"entry_id": entry2, "selection": {"asym_id": chain2}},
            ],
        }
        response = await self.http.request(
            "POST",
            f"{self.settings.alignment_url}/submit",
            context=context,
            provider=PROVIDER,
            data={"query": json.dumps(job_description)},
        )
        if not response.is_success:
            logger.warning(
                "alignment_submit_rejected",
                status_code=response.status_code,
                body=truncate_body(response.text),
                entry1=entry1,
                entry2=entry2,
                **context.log_fields(),
            )
            raise ServiceUnavailableError(
                f"Alignment submission failed with HTTP {response.status_code}",
                provider=PROVIDER,
            )

        try:
            ticket = response.json().get("query_id")
        except (ValueError, AttributeError):
            ticket = None
        if not ticket:
            raise ServiceUnavailableError("Alignment submission returned no ticket", provider=PROVIDER)

        logger.debug("alignment_submitted", ticket=ticket, entry1=entry1, entry2=entry2, **context.log_fields())
        return AlignmentJob(ticket, self)

    async def align_pairwise(
        self,
        entry1: str,
        chain1: str,
        entry2: str,
        chain2: str,
        method: AlignmentMethod,
        context: RequestContext,
    ) -> AlignmentScores:
        """提交并等待一个两两比对"""
        job = await self.submit(entry1, chain1, entry2, chain2, method, context)
        return await job.wait(context)

    async def align_many(
        self,
        pairs: List[Tuple[str, str, str, str]],
        method: AlignmentMethod,
        context: RequestContext,
    ) -> List[Any]:
        """
        并发执行多个比对，并发数受 max_concurrency 限制

        Returns:
            与 pairs 等长的列表，元素为 AlignmentScores 或失败时的异常
        """
        semaphore = asyncio.Semaphore(self.alignment_settings.max_concurrency)

        async def run(pair: Tuple[str, str, str, str]) -> AlignmentScores:
            async with semaphore:
                return await self.align_pairwise(*pair, method, context)

        outcomes = await asyncio.gather(*(run(pair) for pair in pairs), return_exceptions=True)
        for outcome in outcomes:
            # 取消等非 Exception 的信号继续向上传
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
        return outcomes

    async def compare_structures(self, params: CompareParams, context: RequestContext) -> CompareResult:
        """
        多结构两两比较

        单个配对失败只记日志并跳过；全部失败时抛出 ServiceUnavailableError。
        """
        pairs = [
            (id1, params.chain_for(id1), id2, params.chain_for(id2))
            for id1, id2 in combinations(params.pdb_ids, 2)
        ]
        logger.info(
            "structure_comparison_started",
            structures=len(params.pdb_ids),
            pairs=len(pairs),
            method=params.method.value,
            **context.log_fields(),
        )
        outcomes = await self.align_many(pairs, params.method, context)

        comparisons: List[PairwiseComparison] = []
        failed: List[List[str]] = []
        for (id1, chain1, id2, chain2), outcome in zip(pairs, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    "pairwise_alignment_skipped",
                    entry1=id1,
                    entry2=id2,
                    error=str(outcome),
                    **context.log_fields(),
                )
                failed.append([id1, id2])
                continue
            comparisons.append(
                PairwiseComparison(structure1=id1, structure2=id2, chain1=chain1, chain2=chain2, scores=outcome)
            )

        if not comparisons:
            raise ServiceUnavailableError("All pairwise alignments failed", provider=PROVIDER)

        rmsds = [c.scores.rmsd for c in comparisons if c.scores.rmsd is not None]
        aligned = [c.scores.aligned_residues for c in comparisons if c.scores.aligned_residues is not None]
        first = comparisons[0].scores
        summary = AlignmentSummary(
            method=params.method,
            rmsd=sum(rmsds) / len(rmsds) if rmsds else None,
            aligned_residues=round(sum(aligned) / len(aligned)) if aligned else None,
            sequence_identity=first.sequence_identity,
            tm_score=first.tm_score,
        )

        visualization = None
        if params.include_visualization:
            visualization = build_visualization_script(params)

        logger.info(
            "structure_comparison_completed",
            succeeded=len(comparisons),
            failed=len(failed),
            **context.log_fields(),
        )
        return CompareResult(
            alignment=summary,
            pairwise_comparisons=comparisons,
            failed_pairs=failed,
            visualization=visualization,
        )


def build_visualization_script(params: CompareParams) -> str:
    """生成 PyMOL 脚本: 下载、以第一个结构为参照叠合、着色、卡通显示"""
    target = params.pdb_ids[0]
    target_sel = f"{target} and chain {params.chain_for(target)}"
    lines = [f"# PyMOL structural alignment ({params.method.value})"]
    lines.extend(f"fetch {pdb_id}, async=0" for pdb_id in params.pdb_ids)
    for pdb_id in params.pdb_ids[1:]:
        mobile_sel = f"{pdb_id} and chain {params.chain_for(pdb_id)}"
        if params.method == AlignmentMethod.CEALIGN:
            lines.append(f"cealign {target_sel}, {mobile_sel}")
        elif params.method == AlignmentMethod.TMALIGN:
            lines.append(f"tmalign {mobile_sel}, {target_sel}")
        else:
            lines.append(f"super {mobile_sel}, {target_sel}")
    for index, pdb_id in enumerate(params.pdb_ids):
        lines.append(f"color {VISUALIZATION_COLORS[index % len(VISUALIZATION_COLORS)]}, {pdb_id}")
    lines.extend(["hide everything", "show cartoon", "zoom", "center"])
    return "\n".join(lines) + "\n"
