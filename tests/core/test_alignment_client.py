"""
结构比对客户端测试
"""
import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from core.config import AlignmentSettings, RCSBSettings
from core.exceptions import AlignmentTimeoutError, InternalError, ServiceUnavailableError
from core.models import AlignmentJobStatus, AlignmentMethod, ChainSelection, CompareParams
from core.providers.rcsb.alignment_client import (
    AlignmentClient,
    build_visualization_script,
    parse_alignment_scores,
)


def complete_payload(rmsd=1.2, tm_score=0.85, identity=0.42, aligned=140, query_length=150):
    return {
        "info": {"status": "COMPLETE"},
        "results": [
            {
                "summary": {
                    "scores": [
                        {"type": "RMSD", "value": rmsd},
                        {"type": "TM-score", "value": tm_score},
                        {"type": "sequence-identity", "value": identity},
                    ],
                    "n_aln_residue_pairs": aligned,
                    "n_modeled_residues": [query_length, 160],
                }
            }
        ],
    }


def submitted_structures(request: httpx.Request):
    form = parse_qs(request.content.decode())
    description = json.loads(form["query"][0])
    return description


class FakeAlignmentService:
    """
    比对服务替身

    每个票据按 statuses 依次返回状态，最后一个状态之后保持不变。
    """

    def __init__(self, statuses=None, fail_entries=(), submit_status=200):
        self.statuses = list(statuses or ["COMPLETE"])
        self.fail_entries = set(fail_entries)
        self.submit_status = submit_status
        self.polls = {}
        self.submissions = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/submit"):
            description = submitted_structures(request)
            self.submissions.append(description)
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, text="rejected")
            entries = [s["entry_id"] for s in description["structures"]]
            ticket = "-".join(entries)
            return httpx.Response(200, json={"query_id": ticket})

        ticket = path.rsplit("/", 1)[-1]
        count = self.polls.get(ticket, 0)
        self.polls[ticket] = count + 1
        if set(ticket.split("-")) & self.fail_entries:
            return httpx.Response(200, json={"info": {"status": "ERROR", "message": "alignment failed"}})
        status = self.statuses[min(count, len(self.statuses) - 1)]
        if status == "COMPLETE":
            return httpx.Response(200, json=complete_payload())
        if status == "HTTP500":
            return httpx.Response(500, text="oops")
        return httpx.Response(200, json={"info": {"status": status}})


class ConcurrencyTrackingService(FakeAlignmentService):
    """统计同时在途的比对任务数，首次轮询即完成"""

    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.peak = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/submit"):
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            return super().__call__(request)
        # 让其余任务有机会先提交
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return super().__call__(request)


@pytest.fixture
def alignment_settings():
    return AlignmentSettings(poll_interval=0, max_poll_attempts=15, max_concurrency=3)


@pytest.fixture
def make_client(make_http, alignment_settings):
    def factory(service):
        return AlignmentClient(make_http(service), RCSBSettings(), alignment_settings)
    return factory


class TestParseScores:
    def test_flattens_summary(self):
        scores = parse_alignment_scores(complete_payload()["results"][0])
        assert scores.rmsd == 1.2
        assert scores.tm_score == 0.85
        assert scores.sequence_identity == 0.42
        assert scores.aligned_residues == 140
        assert scores.query_length == 150

    def test_missing_summary(self):
        with pytest.raises(InternalError):
            parse_alignment_scores({"structures": []})

    def test_missing_scores_stay_none(self):
        scores = parse_alignment_scores({"summary": {"scores": [{"type": "RMSD", "value": 2.0}]}})
        assert scores.tm_score is None
        assert scores.aligned_residues is None


class TestAlignmentJob:
    """轮询行为"""

    @pytest.mark.asyncio
    async def test_completes_after_three_running_polls(self, make_client, context):
        service = FakeAlignmentService(statuses=["RUNNING"] * 3 + ["COMPLETE"])
        client = make_client(service)

        job = await client.submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.CEALIGN, context)
        scores = await job.wait(context)

        assert job.status == AlignmentJobStatus.COMPLETE
        assert job.attempts == 4
        assert service.polls["1ABC-2XYZ"] == 4
        assert scores.tm_score == 0.85

    @pytest.mark.asyncio
    async def test_times_out_after_max_polls(self, make_client, context):
        service = FakeAlignmentService(statuses=["RUNNING"])
        client = make_client(service)

        job = await client.submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.CEALIGN, context)
        with pytest.raises(AlignmentTimeoutError) as exc_info:
            await job.wait(context)

        assert service.polls["1ABC-2XYZ"] == 15
        assert exc_info.value.attempts == 15
        assert job.status == AlignmentJobStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_explicit_max_attempts(self, make_client, context):
        service = FakeAlignmentService(statuses=["RUNNING"])
        job = await make_client(service).submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.CEALIGN, context)
        with pytest.raises(AlignmentTimeoutError):
            await job.wait(context, poll_interval=0, max_attempts=3)
        assert service.polls["1ABC-2XYZ"] == 3

    @pytest.mark.asyncio
    async def test_zero_max_attempts_never_polls(self, make_client, context):
        service = FakeAlignmentService()
        job = await make_client(service).submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.CEALIGN, context)
        with pytest.raises(AlignmentTimeoutError) as exc_info:
            await job.wait(context, poll_interval=0, max_attempts=0)
        assert exc_info.value.attempts == 0
        assert service.polls == {}

    @pytest.mark.asyncio
    async def test_transient_http_errors_keep_polling(self, make_client, context):
        service = FakeAlignmentService(statuses=["HTTP500", "RUNNING", "COMPLETE"])
        job = await make_client(service).submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.TMALIGN, context)
        scores = await job.wait(context)
        assert scores.rmsd == 1.2
        assert job.attempts == 3

    @pytest.mark.asyncio
    async def test_upstream_error(self, make_client, context):
        service = FakeAlignmentService(fail_entries={"2XYZ"})
        job = await make_client(service).submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.CEALIGN, context)
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await job.wait(context)
        assert "alignment failed" in exc_info.value.message
        assert job.status == AlignmentJobStatus.ERROR

    @pytest.mark.asyncio
    async def test_submit_rejected_never_polls(self, make_client, context):
        service = FakeAlignmentService(submit_status=400)
        with pytest.raises(ServiceUnavailableError):
            await make_client(service).submit("1ABC", "A", "2XYZ", "A", AlignmentMethod.CEALIGN, context)
        assert service.polls == {}

    @pytest.mark.asyncio
    async def test_submission_payload(self, make_client, context):
        service = FakeAlignmentService()
        await make_client(service).submit("1ABC", "B", "2XYZ", "C", AlignmentMethod.FATCAT, context)
        description = service.submissions[0]
        assert description["mode"] == "pairwise"
        assert description["method"] == {"name": "jfatcat-rigid"}
        assert description["structures"][0] == {"entry_id": "1ABC", "selection": {"asym_id": "B"}}


class TestCompareStructures:
    """多结构比较"""

    @pytest.mark.asyncio
    async def test_all_pairs(self, make_client, context):
        service = FakeAlignmentService()
        params = CompareParams(pdb_ids=["1ABC", "2XYZ", "3DEF"])
        result = await make_client(service).compare_structures(params, context)

        pairs = [(c.structure1, c.structure2) for c in result.pairwise_comparisons]
        assert pairs == [("1ABC", "2XYZ"), ("1ABC", "3DEF"), ("2XYZ", "3DEF")]
        assert result.alignment.rmsd == pytest.approx(1.2)
        assert result.alignment.aligned_residues == 140
        assert result.failed_pairs == []
        assert result.visualization is None

    @pytest.mark.asyncio
    async def test_failed_pair_skipped(self, make_client, context):
        service = FakeAlignmentService(fail_entries={"3DEF"})
        params = CompareParams(pdb_ids=["1ABC", "2XYZ", "3DEF"])
        result = await make_client(service).compare_structures(params, context)

        assert len(result.pairwise_comparisons) == 1
        assert result.failed_pairs == [["1ABC", "3DEF"], ["2XYZ", "3DEF"]]

    @pytest.mark.asyncio
    async def test_all_pairs_failed(self, make_client, context):
        service = FakeAlignmentService(submit_status=503)
        params = CompareParams(pdb_ids=["1ABC", "2XYZ"])
        with pytest.raises(ServiceUnavailableError):
            await make_client(service).compare_structures(params, context)

    @pytest.mark.asyncio
    async def test_chain_selection_used(self, make_client, context):
        service = FakeAlignmentService()
        params = CompareParams(
            pdb_ids=["1ABC", "2XYZ"],
            chain_selections=[ChainSelection(pdb_id="2XYZ", chain_id="D")],
        )
        result = await make_client(service).compare_structures(params, context)
        assert result.pairwise_comparisons[0].chain2 == "D"
        assert service.submissions[0]["structures"][1]["selection"] == {"asym_id": "D"}


class TestAlignMany:
    @pytest.mark.asyncio
    async def test_default_settings_submit_all_candidates_at_once(self, make_http, context):
        service = ConcurrencyTrackingService()
        client = AlignmentClient(make_http(service), RCSBSettings(), AlignmentSettings(poll_interval=0))
        pairs = [("1ABC", "A", f"{i}XY{i}", "A") for i in range(10)]

        outcomes = await client.align_many(pairs, AlignmentMethod.CEALIGN, context)

        assert [o.tm_score for o in outcomes] == [0.85] * 10
        assert len(service.submissions) == 10
        assert service.peak == 10

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_setting(self, make_client, context):
        service = ConcurrencyTrackingService()
        pairs = [("1ABC", "A", f"{i}XY{i}", "A") for i in range(6)]
        await make_client(service).align_many(pairs, AlignmentMethod.CEALIGN, context)
        assert service.peak == 3


class TestVisualization:
    def test_pymol_script(self):
        params = CompareParams(pdb_ids=["1ABC", "2XYZ"], include_visualization=True)
        script = build_visualization_script(params)
        assert "fetch 1ABC, async=0" in script
        assert "cealign 1ABC and chain A, 2XYZ and chain A" in script
        assert script.rstrip().endswith("center")
