"""Tests for shared vector helpers and client-side filtering."""

from __future__ import annotations

import math

import pytest

from docqa.adapters.base import (
    MAX_TEXT_LENGTH,
    SearchFilters,
    cosine_similarity,
    l2_normalize,
    matches_filters,
    preprocess_text,
    validate_batch,
    validate_text,
)
from docqa.errors import BATCH_TOO_LARGE, INVALID_INPUT, InputError


# ------------------------------------------------------------------
# Vector math
# ------------------------------------------------------------------


def test_cosine_similarity_identical_vectors():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_similarity_orthogonal_vectors():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_similarity_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_length_mismatch_raises():
    with pytest.raises(ValueError, match="mismatch"):
        cosine_similarity([1.0], [1.0, 0.0])


def test_l2_normalize_produces_unit_vector():
    vector = l2_normalize([3.0, 4.0])
    assert vector == pytest.approx([0.6, 0.8])
    assert math.sqrt(sum(v * v for v in vector)) == pytest.approx(1.0)


def test_l2_normalize_zero_vector_raises():
    with pytest.raises(ValueError):
        l2_normalize([0.0, 0.0, 0.0])


# ------------------------------------------------------------------
# Input validation
# ------------------------------------------------------------------


def test_validate_text_rejects_blank():
    with pytest.raises(InputError) as exc_info:
        validate_text("   ")
    assert exc_info.value.code == INVALID_INPUT


def test_validate_text_rejects_oversized():
    with pytest.raises(InputError, match="too long"):
        validate_text("x" * (MAX_TEXT_LENGTH + 1))


def test_validate_text_accepts_limit():
    validate_text("x" * MAX_TEXT_LENGTH)


def test_validate_batch_rejects_empty():
    with pytest.raises(InputError):
        validate_batch([])


def test_validate_batch_rejects_oversized():
    with pytest.raises(InputError) as exc_info:
        validate_batch(["text"] * 1001)
    assert exc_info.value.code == BATCH_TOO_LARGE


def test_validate_batch_checks_each_item():
    with pytest.raises(InputError):
        validate_batch(["fine", ""])


def test_preprocess_text_collapses_whitespace():
    assert preprocess_text("  How do\n\tI   enroll?  ") == "How do I enroll?"


# ------------------------------------------------------------------
# Filters
# ------------------------------------------------------------------


def test_empty_filters():
    assert SearchFilters().is_empty()
    assert not SearchFilters(similarity_threshold=0.3).is_empty()
    assert not SearchFilters(collections=["admin"]).is_empty()


def test_threshold_is_strict(make_result):
    result = make_result(score=0.82)
    assert matches_filters(result, SearchFilters(similarity_threshold=0.3))
    assert matches_filters(result, SearchFilters(similarity_threshold=0.82))
    assert not matches_filters(result, SearchFilters(similarity_threshold=0.95))


def test_content_type_is_strict(make_result):
    result = make_result(content_type="code")
    assert matches_filters(result, SearchFilters(content_types=["code", "table"]))
    assert not matches_filters(result, SearchFilters(content_types=["text"]))


def test_section_filter_passes_results_without_section(make_result):
    filters = SearchFilters(sections=["Students"])
    assert matches_filters(make_result(section=None), filters)
    assert matches_filters(make_result(section="Students"), filters)
    assert not matches_filters(make_result(section="Attendance"), filters)


def test_collection_filter_passes_results_without_collection(make_result):
    filters = SearchFilters(collections=["admin"])
    assert matches_filters(make_result(collection=None), filters)
    assert not matches_filters(make_result(collection="staff"), filters)
