"""Tests for lexical similarity scoring."""

import pytest

from universal_memory_mcp.similarity import calculate_similarity, jaccard_similarity, query_coverage


class TestQueryCoverage:
    def test_identical_text_scores_one(self):
        assert query_coverage("Use PostgreSQL", "Use PostgreSQL") == 1.0

    def test_empty_query_scores_zero(self):
        assert query_coverage("", "anything at all") == 0.0
        assert query_coverage("   ", "anything") == 0.0

    def test_non_string_scores_zero(self):
        assert query_coverage(None, "text") == 0.0
        assert query_coverage("text", 42) == 0.0

    def test_substring_match_in_either_direction(self):
        # "postgres" is inside "postgresql"; "db" matches nothing
        assert query_coverage("postgres db", "use PostgreSQL") == 0.5
        # content word "api" is inside query word "apis"
        assert query_coverage("apis", "the api layer") == 1.0

    def test_case_insensitive(self):
        assert query_coverage("POSTGRESQL", "use postgresql") == 1.0


class TestJaccard:
    def test_overlap(self):
        assert jaccard_similarity("a b", "b c") == pytest.approx(1 / 3)

    def test_empty(self):
        assert jaccard_similarity("", "") == 0.0

    def test_identical(self):
        assert jaccard_similarity("same words", "words same") == 1.0


class TestCalculateSimilarity:
    def test_default_policy_is_coverage(self):
        assert calculate_similarity("fast api", "FastAPI server") == query_coverage("fast api", "FastAPI server")

    def test_jaccard_policy(self):
        assert calculate_similarity("a b", "b c", policy="jaccard") == pytest.approx(1 / 3)

    def test_identity(self):
        for text in ["x", "Use PostgreSQL", "several words of text"]:
            assert calculate_similarity(text, text) == 1.0
            assert calculate_similarity(text, text, policy="jaccard") == 1.0

    def test_empty_against_anything(self):
        assert calculate_similarity("", "anything") == 0.0

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            calculate_similarity("a", "a", policy="cosine")
