"""
Tests for QueryFilterCompiler.

These tests validate:
1. Absent filters contribute nothing
2. Each filter adds its clause and parameter
3. Listing queries regroup before ordering and paginating
"""

from __future__ import annotations

import math

import pytest

from leadgraph.graph.filters import (
    CollectSpec,
    DateRange,
    FilterSpec,
    InvalidFilterError,
    LeadQuerySchema,
    QueryFilterCompiler,
    compile_filter_query,
)


@pytest.fixture
def compiler() -> QueryFilterCompiler:
    return QueryFilterCompiler()


class TestCompile:
    def test_empty_spec(self, compiler):
        compiled = compiler.compile(FilterSpec())
        assert compiled.match_clauses == ["MATCH (l:Lead)"]
        assert compiled.where_clauses == []
        assert compiled.params == {}
        assert compiled.base_query() == "MATCH (l:Lead)"
        assert compiled.paginated is False

    def test_none_spec_matches_empty(self):
        assert compile_filter_query(None).params == {}

    def test_text_match_is_case_insensitive(self, compiler):
        compiled = compiler.compile(FilterSpec(text_match="ana"))
        assert compiled.where_clauses == ["toLower(l.nome) CONTAINS toLower($textMatch)"]
        assert compiled.params == {"textMatch": "ana"}

    def test_exact_matches_skip_empty_values(self, compiler):
        compiled = compiler.compile(
            FilterSpec(exact_matches={"origemDoLead": "site", "nivelDeInteresseReuniao": "", "x": None})
        )
        assert compiled.where_clauses == ["l.origemDoLead = $eq_origemDoLead"]
        assert compiled.params == {"eq_origemDoLead": "site"}

    def test_exact_match_field_must_be_identifier(self, compiler):
        with pytest.raises(InvalidFilterError):
            compiler.compile(FilterSpec(exact_matches={"nome) DETACH DELETE (l": "x"}))

    def test_date_range_binds_integers(self, compiler):
        compiled = compiler.compile(FilterSpec(date_ranges=[DateRange("dtCriacao", 1000.0, 2000)]))
        assert compiled.where_clauses == [
            "l.dtCriacao >= $dtCriacaoStartMillis",
            "l.dtCriacao <= $dtCriacaoEndMillis",
        ]
        assert compiled.params == {"dtCriacaoStartMillis": 1000, "dtCriacaoEndMillis": 2000}
        assert isinstance(compiled.params["dtCriacaoStartMillis"], int)

    def test_open_ended_date_range(self, compiler):
        compiled = compiler.compile(FilterSpec(date_ranges=[DateRange("dtUltimaAtualizacao", end=5)]))
        assert compiled.params == {"dtUltimaAtualizacaoEndMillis": 5}

    def test_repeated_date_range_field_keeps_every_bound(self, compiler):
        compiled = compiler.compile(
            FilterSpec(date_ranges=[DateRange("dtCriacao", start=5000), DateRange("dtCriacao", start=1000)])
        )
        assert compiled.where_clauses == [
            "l.dtCriacao >= $dtCriacaoStartMillis",
            "l.dtCriacao >= $dtCriacaoStartMillis_1",
        ]
        assert compiled.params == {"dtCriacaoStartMillis": 5000, "dtCriacaoStartMillis_1": 1000}

    @pytest.mark.parametrize("bad", ["2024-01-01", True, math.nan, math.inf, 2**64])
    def test_unusable_date_bounds_rejected(self, compiler, bad):
        with pytest.raises(InvalidFilterError):
            compiler.compile(FilterSpec(date_ranges=[DateRange("dtCriacao", start=bad)]))

    def test_tag_and_pain_add_matches(self, compiler):
        compiled = compiler.compile(FilterSpec(tag_name="vip", pain_name="Preço alto"))
        assert compiled.match_clauses == [
            "MATCH (l:Lead)",
            "MATCH (l)-[:TEM_TAG]->(tg:Tag)",
            "MATCH (l)-[:TEM_DOR]->(dr:Dor)",
        ]
        assert compiled.where_clauses == ["tg.nome = $tag", "dr.nome = $pain"]
        assert compiled.params == {"tag": "vip", "pain": "Preço alto"}

    def test_pagination(self, compiler):
        compiled = compiler.compile(FilterSpec(page=2, limit=10))
        assert compiled.params == {"skip": 10, "limit": 10}
        assert compiled.paginated is True

    def test_limit_without_page_starts_at_zero(self, compiler):
        assert compiler.compile(FilterSpec(limit=5)).params == {"skip": 0, "limit": 5}

    def test_page_without_limit_rejected(self, compiler):
        with pytest.raises(InvalidFilterError):
            compiler.compile(FilterSpec(page=3))

    def test_non_integer_page_rejected(self, compiler):
        with pytest.raises(InvalidFilterError):
            compiler.compile(FilterSpec(page=1.5, limit=10))

    def test_custom_schema(self):
        compiled = QueryFilterCompiler(LeadQuerySchema(label="DorComum", alias="n")).compile(FilterSpec(limit=20))
        assert compiled.base_query() == "MATCH (n:DorComum)"
        assert compiled.count_query() == "MATCH (n:DorComum) RETURN count(DISTINCT n) AS total"


class TestQueries:
    def test_count_query_ignores_pagination(self, compiler):
        compiled = compiler.compile(FilterSpec(text_match="ana", page=2, limit=10))
        assert compiled.count_query() == (
            "MATCH (l:Lead) WHERE toLower(l.nome) CONTAINS toLower($textMatch) "
            "RETURN count(DISTINCT l) AS total"
        )
        assert compiled.filter_params() == {"textMatch": "ana"}

    def test_listing_query_orders_after_regrouping(self, compiler):
        compiled = compiler.compile(FilterSpec(tag_name="vip", page=1, limit=10))
        query = compiled.listing_query(
            "l { .nome, tags: tagNames } AS lead",
            collections=[CollectSpec("(l)-[:TEM_TAG]->(t:Tag)", "t.nome", "tagNames")],
            order_by="l.dtUltimaAtualizacao DESC",
        )
        lines = query.split("\n")
        assert lines == [
            "MATCH (l:Lead) MATCH (l)-[:TEM_TAG]->(tg:Tag) WHERE tg.nome = $tag",
            "WITH DISTINCT l",
            "OPTIONAL MATCH (l)-[:TEM_TAG]->(t:Tag)",
            "WITH l, collect(DISTINCT t.nome) AS tagNames",
            "ORDER BY l.dtUltimaAtualizacao DESC",
            "SKIP $skip LIMIT $limit",
            "RETURN l { .nome, tags: tagNames } AS lead",
        ]

    def test_unpaginated_listing_has_no_skip(self, compiler):
        query = compiler.compile(FilterSpec()).listing_query("l AS lead")
        assert "SKIP" not in query
