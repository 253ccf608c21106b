"""
UniProt 数据源测试
"""
import httpx
import pytest

from core.config import UniProtSettings
from core.exceptions import NotFoundError, ServiceUnavailableError, ValidationError
from core.providers.uniprot import UniProtEntry, UniProtProvider, parse_fasta

FASTA = """>sp|P69905|HBA_HUMAN Hemoglobin subunit alpha OS=Homo sapiens
MVLSPADKTNVKAAWGKVGAHAGEYGAEALERMFLSFPTTKTYFPHFDLSHGSAQVKGHGKKVADAL
TNAVAHVDDMPNALSALSDLHAHKLRVDPVNFKLLSHCLLVTLAAHLPAEFTPAVHASLDKFLASV
"""

SEARCH_RESULT = {
    "results": [
        {
            "primaryAccession": "P69905",
            "uniProtkbId": "HBA_HUMAN",
            "proteinDescription": {"recommendedName": {"fullName": {"value": "Hemoglobin subunit alpha"}}},
            "genes": [{"geneName": {"value": "HBA1"}}],
            "organism": {"scientificName": "Homo sapiens"},
            "sequence": {"value": "MVLSPADKTN", "length": 10},
        },
        {
            "primaryAccession": "A0A000",
            "proteinDescription": {"submissionNames": [{"fullName": {"value": "Uncharacterized protein"}}]},
        },
    ]
}


@pytest.fixture
def make_provider(make_http):
    def factory(handler):
        return UniProtProvider(make_http(handler), UniProtSettings())
    return factory


def test_parse_fasta():
    sequence = parse_fasta(FASTA)
    assert sequence.startswith("MVLSPADK")
    assert sequence.endswith("FLASV")
    assert "\n" not in sequence
    assert sequence == "".join(FASTA.splitlines()[1:])


def test_entry_from_dict_fallback_name():
    entry = UniProtEntry.from_dict(SEARCH_RESULT["results"][1])
    assert entry.protein_name == "Uncharacterized protein"
    assert entry.gene_name is None
    assert entry.sequence is None


class TestSequence:
    @pytest.mark.asyncio
    async def test_fetch_sequence(self, make_provider, context):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, text=FASTA)

        sequence = await make_provider(handler).get_protein_sequence(" p69905 ", context)
        assert sequence.startswith("MVLSPADK")
        assert seen == ["/uniprotkb/P69905.fasta"]

    @pytest.mark.asyncio
    async def test_invalid_accession_makes_no_request(self, make_provider, context):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text=FASTA)

        with pytest.raises(ValidationError):
            await make_provider(handler).get_protein_sequence("not-an-accession", context)
        assert seen == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 404])
    async def test_client_errors_are_not_found(self, make_provider, context, status):
        provider = make_provider(lambda request: httpx.Response(status, text="Error"))
        with pytest.raises(NotFoundError):
            await provider.get_protein_sequence("P69905", context)

    @pytest.mark.asyncio
    async def test_server_error(self, make_provider, context):
        provider = make_provider(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(ServiceUnavailableError):
            await provider.get_protein_sequence("P69905", context)

    @pytest.mark.asyncio
    async def test_empty_fasta(self, make_provider, context):
        provider = make_provider(lambda request: httpx.Response(200, text=">sp|P69905|HBA_HUMAN\n"))
        with pytest.raises(NotFoundError):
            await provider.get_protein_sequence("P69905", context)


class TestSearch:
    @pytest.mark.asyncio
    async def test_search(self, make_provider, context):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=SEARCH_RESULT)

        entries = await make_provider(handler).search_protein("hemoglobin", context, size=5)
        assert [e.accession for e in entries] == ["P69905", "A0A000"]
        assert entries[0].gene_name == "HBA1"
        assert entries[0].length == 10
        assert seen[0].url.params["size"] == "5"
        assert seen[0].url.params["format"] == "json"

    @pytest.mark.asyncio
    async def test_empty_query(self, make_provider, context):
        with pytest.raises(ValidationError):
            await make_provider(lambda request: httpx.Response(200, json={})).search_protein("  ", context)

    @pytest.mark.asyncio
    async def test_default_page_size(self, make_provider, context):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"results": []})

        assert await make_provider(handler).search_protein("kinase", context) == []
        assert seen[0].url.params["size"] == "25"
