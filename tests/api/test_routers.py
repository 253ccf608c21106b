"""
API 路由器测试

注入替身服务，验证请求转换、响应格式和异常到状态码的映射。
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from core.exceptions import (
    NotFoundError,
    ServiceUnavailableError,
    UnsupportedOperationError,
    ValidationError,
)
from core.models import (
    AnalysisResult,
    AnalysisType,
    HealthStatus,
    SearchResult,
    SearchResultEntry,
    StructureRecord,
)
from core.providers.uniprot import UniProtEntry

PREFIX = "/api/v1"


@pytest.fixture
def service():
    mock = MagicMock()
    mock.search_structures = AsyncMock(
        return_value=SearchResult(
            results=[SearchResultEntry(pdb_id="4HHB", title="Deoxy human hemoglobin")],
            total_count=3,
            source="rcsb",
        )
    )
    mock.get_structure = AsyncMock(return_value=StructureRecord(pdb_id="4HHB", title="Deoxy human hemoglobin"))
    mock.analyze_collection = AsyncMock(
        return_value=AnalysisResult(analysis_type=AnalysisType.METHOD, total_structures=0, statistics=[])
    )
    mock.health_check = AsyncMock(return_value=HealthStatus(primary=True, fallback=False))
    return mock


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service))


class TestStructuresAPI:
    """结构接口"""

    def test_search(self, client, service):
        response = client.post(f"{PREFIX}/structures/search", json={"query": "hemoglobin", "limit": 1})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["code"] == "OK"
        assert body["data"]["results"][0]["pdb_id"] == "4HHB"
        assert body["data"]["has_more"] is True

        query = service.search_structures.call_args.args[0]
        assert query.query == "hemoglobin"
        assert query.limit == 1

    def test_get_structure(self, client, service):
        response = client.get(f"{PREFIX}/structures/4hhb", params={"include_coordinates": "true"})
        assert response.status_code == 200
        assert response.json()["data"]["pdb_id"] == "4HHB"
        assert service.get_structure.call_args.kwargs["include_coordinates"] is True

    def test_unknown_format_rejected(self, client, service):
        response = client.get(f"{PREFIX}/structures/4HHB", params={"format": "xyz"})
        assert response.status_code == 422
        assert response.json()["error"]["field_errors"]
        service.get_structure.assert_not_called()

    def test_analysis_unknown_type_defaults_to_method(self, client, service):
        response = client.post(f"{PREFIX}/collection/analyze", json={"analysis_type": "shape"})
        assert response.status_code == 200
        params = service.analyze_collection.call_args.args[0]
        assert params.analysis_type == AnalysisType.METHOD

    def test_malformed_body(self, client):
        response = client.post(f"{PREFIX}/structures/compare", json={"method": "cealign"})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert "pdb_ids" in body["error"]["field_errors"]


class TestErrorMapping:
    """服务异常映射为 HTTP 状态码"""

    @pytest.mark.parametrize(
        "error, status_code, code",
        [
            (ValidationError("Invalid PDB ID format", field_errors={"pdb_id": "bad"}), 422, "VALIDATION_ERROR"),
            (NotFoundError("structure", "9ZZZ"), 404, "NOT_FOUND"),
            (ServiceUnavailableError("rcsb down"), 503, "SERVICE_UNAVAILABLE"),
            (UnsupportedOperationError("pdbe", "find_similar"), 501, "UNSUPPORTED_OPERATION"),
        ],
    )
    def test_status_codes(self, client, service, error, status_code, code):
        service.get_structure.side_effect = error
        response = client.get(f"{PREFIX}/structures/9ZZZ")
        assert response.status_code == status_code
        body = response.json()
        assert body["success"] is False
        assert body["code"] == code
        assert body["message"] == error.message

    def test_validation_field_errors(self, client, service):
        service.get_structure.side_effect = ValidationError("Invalid PDB ID format", field_errors={"pdb_id": "bad"})
        body = client.get(f"{PREFIX}/structures/12345").json()
        assert body["error"]["field_errors"] == {"pdb_id": "bad"}

    def test_unexpected_error_is_500(self, service):
        service.get_structure.side_effect = RuntimeError("boom")
        client = TestClient(create_app(service=service), raise_server_exceptions=False)
        response = client.get(f"{PREFIX}/structures/4HHB")
        assert response.status_code == 500


class TestSequencesAPI:
    def test_get_sequence(self, client, service):
        service.get_protein_sequence = AsyncMock(return_value="MVLSPADKTN")
        response = client.get(f"{PREFIX}/sequences/p69905")
        assert response.status_code == 200
        assert response.json()["data"] == {"accession": "P69905", "sequence": "MVLSPADKTN", "length": 10}

    def test_search_sequences(self, client, service):
        service.search_sequences = AsyncMock(return_value=[UniProtEntry(accession="P69905", gene_name="HBA1")])
        response = client.get(f"{PREFIX}/sequences/search", params={"query": "HBA1", "size": 5})
        assert response.status_code == 200
        assert response.json()["data"]["count"] == 1
        assert service.search_sequences.call_args.kwargs["size"] == 5


class TestSystemAPI:
    def test_health(self, client):
        response = client.get(f"{PREFIX}/health")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["providers"] == {"primary": True, "fallback": False, "healthy": True}

    def test_unhealthy_is_503(self, client, service):
        service.health_check = AsyncMock(return_value=HealthStatus(primary=False, fallback=False))
        response = client.get(f"{PREFIX}/health")
        assert response.status_code == 503
        assert response.json()["data"]["status"] == "unhealthy"


class TestRequestId:
    def test_generated(self, client):
        response = client.get(f"{PREFIX}/health")
        request_id = response.headers["X-Request-ID"]
        assert request_id.startswith("req_")
        assert response.json()["request_id"] == request_id
        assert "X-Response-Time" in response.headers

    def test_propagated(self, client, service):
        response = client.get(f"{PREFIX}/structures/4HHB", headers={"X-Request-ID": "req_custom"})
        assert response.headers["X-Request-ID"] == "req_custom"
        context = service.get_structure.call_args.args[1]
        assert context.request_id == "req_custom"
