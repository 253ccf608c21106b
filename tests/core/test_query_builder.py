"""
RCSB 查询构建测试
"""
import json

import pytest

from core.models import (
    AnalysisType,
    LigandFilters,
    LigandMatchType,
    LigandQuery,
    LigandQueryType,
    SearchQuery,
)
from core.models.analysis import AnalysisFilters
from core.providers.rcsb import query_builder as qb


class TestSearchQuery:
    """结构检索查询树"""

    def test_deterministic(self):
        query = SearchQuery(query="kinase", organism="Homo sapiens", max_resolution=2.0)
        first = json.dumps(qb.build_search_query(query), sort_keys=True)
        second = json.dumps(qb.build_search_query(query), sort_keys=True)
        assert first == second

    def test_no_filters_uses_default_predicate(self):
        tree = qb.build_search_query(SearchQuery())
        assert tree["logical_operator"] == "and"
        assert tree["nodes"] == [qb.default_predicate()]
        params = tree["nodes"][0]["parameters"]
        assert params["attribute"] == "rcsb_entry_info.polymer_entity_count_protein"
        assert params["operator"] == "greater"
        assert params["value"] == 0

    def test_text_predicate_is_or_group(self):
        tree = qb.build_search_query(SearchQuery(query=" 4hhb "))
        text_node = tree["nodes"][0]
        assert text_node["logical_operator"] == "or"
        attrs = [n["parameters"]["attribute"] for n in text_node["nodes"]]
        assert attrs == [qb.ENTRY_ID_ATTR, qb.TITLE_ATTR, qb.MACROMOLECULE_NAME_ATTR]
        assert text_node["nodes"][0]["parameters"]["value"] == "4HHB"

    def test_filters_combined_with_and(self):
        query = SearchQuery(
            organism="Homo sapiens",
            experimental_method="x-ray diffraction",
            min_resolution=1.0,
            max_resolution=2.5,
        )
        tree = qb.build_search_query(query)
        operators = [(n["parameters"]["attribute"], n["parameters"]["operator"]) for n in tree["nodes"]]
        assert (qb.ORGANISM_ATTR, "exact_match") in operators
        assert (qb.RESOLUTION_ATTR, "greater_or_equal") in operators
        assert (qb.RESOLUTION_ATTR, "less_or_equal") in operators
        method_node = next(n for n in tree["nodes"] if n["parameters"]["attribute"] == qb.METHOD_ATTR)
        assert method_node["parameters"]["value"] == "X-RAY DIFFRACTION"

    @pytest.mark.parametrize(
        "date_from, date_to, operator",
        [
            ("2020-01-01", "2021-01-01", "range"),
            ("2020-01-01", None, "greater_or_equal"),
            (None, "2021-01-01", "less_or_equal"),
        ],
    )
    def test_date_range(self, date_from, date_to, operator):
        node = qb.date_range_predicate(date_from, date_to)
        assert node["parameters"]["operator"] == operator

    def test_no_date_range(self):
        assert qb.date_range_predicate(None, None) is None


class TestLigandQuery:
    """配体查询树"""

    def test_chemical_id(self):
        tree = qb.build_ligand_query(LigandQuery(type=LigandQueryType.CHEMICAL_ID, value="atp"))
        node = tree["nodes"][0]
        assert node["service"] == "text_chem"
        assert node["parameters"]["attribute"] == qb.CHEM_COMP_ID_ATTR
        assert node["parameters"]["value"] == "ATP"

    def test_name(self):
        tree = qb.build_ligand_query(LigandQuery(type=LigandQueryType.NAME, value="adenosine triphosphate"))
        node = tree["nodes"][0]
        assert node["parameters"]["operator"] == "contains_words"

    def test_smiles_descriptor(self):
        query = LigandQuery(type=LigandQueryType.SMILES, value="CCO", match_type=LigandMatchType.STRICT)
        node = qb.build_ligand_query(query)["nodes"][0]
        assert node["service"] == "chemical"
        assert node["parameters"]["descriptor_type"] == "SMILES"
        assert node["parameters"]["match_type"] == "graph-strict"

    def test_filters_appended(self):
        filters = LigandFilters(protein_name="kinase", organism="Homo sapiens", max_resolution=2.0)
        tree = qb.build_ligand_query(LigandQuery(type=LigandQueryType.CHEMICAL_ID, value="ATP"), filters)
        assert len(tree["nodes"]) == 4
        assert tree["logical_operator"] == "and"


class TestSimilarityQueries:
    def test_sequence_identity_as_fraction(self):
        node = qb.build_sequence_query("MKVLAAGLTK", identity_percent=30, evalue_cutoff=0.001)
        assert node["service"] == "sequence"
        assert node["parameters"]["identity_cutoff"] == pytest.approx(0.3)
        assert node["parameters"]["evalue_cutoff"] == 0.001

    def test_structure_query(self):
        node = qb.build_structure_query("4HHB", "A")
        assert node["parameters"]["value"] == {"entry_id": "4HHB", "asym_id": "A"}


class TestAnalysis:
    def test_facet_per_type(self):
        assert qb.get_analysis_facet(AnalysisType.METHOD) == qb.METHOD_ATTR
        assert qb.get_analysis_facet(AnalysisType.ORGANISM) == qb.ORGANISM_ATTR

    def test_year_filters_become_dates(self):
        tree = qb.build_analysis_query(AnalysisFilters(release_year_from=2010, release_year_to=2020))
        value = tree["nodes"][0]["parameters"]["value"]
        assert value["from"] == "2010-01-01"
        assert value["to"] == "2020-12-31"

    def test_trend_facet(self):
        facets = qb.build_analysis_facets(AnalysisType.FOLD, 10, with_trends=True)
        assert [f["name"] for f in facets] == [qb.ANALYSIS_FACET_NAME, qb.RELEASE_YEAR_FACET_NAME]
        assert facets[0]["max_num_intervals"] == 10

    def test_request_options(self):
        body = qb.build_request(qb.default_predicate(), rows=0, facets=qb.build_analysis_facets(AnalysisType.METHOD, 5))
        assert body["return_type"] == "entry"
        assert body["request_options"]["paginate"] == {"start": 0, "rows": 0}
        assert "facets" in body["request_options"]
