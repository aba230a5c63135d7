"""Tests for fuzzy field matching."""

from promptpad.launcher.matching import (
    DEFAULT_CUTOFF,
    DEFAULT_FIELD_WEIGHTS,
    RapidFuzzMatcher,
    SimilarityMatcher,
    field_values,
)
from promptpad.launcher.models import Document


def make_doc(name, **kwargs):
    kwargs.setdefault("folder", "writing")
    return Document(id="", name=name, file_path=f"{kwargs['folder']}/{name}.md", **kwargs)


def search(query, documents):
    return RapidFuzzMatcher().search(query, documents, DEFAULT_FIELD_WEIGHTS, DEFAULT_CUTOFF)


def test_matcher_satisfies_protocol():
    assert isinstance(RapidFuzzMatcher(), SimilarityMatcher)


def test_typo_tolerance():
    """A misspelled query still finds the document."""
    doc = make_doc("Code Review")
    candidates = search("reviw", [doc])
    assert [c.document for c in candidates] == [doc]


def test_case_insensitive():
    doc = make_doc("Code Review")
    candidates = search("CODE", [doc])
    assert len(candidates) == 1
    assert candidates[0].dissimilarity < 0.01


def test_unrelated_query_excluded():
    doc = make_doc("Code Review", tags=["dev"])
    assert search("zzzz", [doc]) == []


def test_blank_query_returns_nothing():
    assert search("   ", [make_doc("Code Review")]) == []


def test_name_outweighs_description():
    named = make_doc("Summarize")
    described = make_doc("Other", description="summarize text")

    candidates = search("summarize", [described, named])

    assert [c.document for c in candidates] == [named, described]


def test_match_regions():
    doc = make_doc("Code Review")
    candidates = search("review", [doc])

    name_match = next(m for m in candidates[0].matches if m.field == "name")
    assert name_match.value == "Code Review"
    assert name_match.indices == ((5, 11),)
    assert name_match.ref_index is None


def test_tag_match_reports_tag_position():
    doc = make_doc("Something", tags=["alpha", "python"])
    candidates = search("python", [doc])

    tag_match = next(m for m in candidates[0].matches if m.field == "tags")
    assert tag_match.value == "python"
    assert tag_match.ref_index == 1
    assert tag_match.to_dict()["refIndex"] == 1


def test_field_dissimilarity_query_longer_than_text():
    score, span = RapidFuzzMatcher().field_dissimilarity("developer", "dev")
    assert 0 < score < 1
    assert span == (0, 3)


def test_field_values():
    doc = make_doc("Name", description=None, tags=["a", "b"])
    assert field_values(doc, "tags") == ["a", "b"]
    assert field_values(doc, "description") == []
    assert field_values(doc, "folder") == ["writing"]
