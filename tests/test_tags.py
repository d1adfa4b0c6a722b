"""Unit tests for tag extraction."""

import pytest

from jobfeed.normalization import NormalizationError, TagExtractor, TagHeuristic, extract_tags
from jobfeed.normalization.tags import keyword_to_tag


@pytest.fixture
def extractor():
    return TagExtractor()


class TestKeywordTags:
    """Keyword layer: substring matches, spaces become underscores."""

    def test_multiword_keywords(self, extractor):
        tags = extractor.extract_tags("C++ Developer - Low Latency", "Technology")

        assert tags == {"c++", "low_latency", "engineering"}

    def test_keyword_to_tag(self):
        assert keyword_to_tag(" Market Making ") == "market_making"

    def test_department_contributes(self, extractor):
        """Department text is searched as well as the title."""
        tags = extractor.extract_tags("Software Engineer", "Trading")

        assert "trading" in tags
        assert "quant" in tags


class TestHeuristicTags:
    """Heuristic layer: whole-word role and seniority vocabulary."""

    def test_role_and_seniority(self, extractor):
        tags = extractor.extract_tags("Senior Quantitative Researcher", "Research")

        assert tags == {"quant", "quantitative", "research", "senior"}

    def test_abbreviations(self, extractor):
        """"Sr." counts as senior; "Trading" yields both keyword and umbrella tag."""
        tags = extractor.extract_tags("Sr. Software Engineer", "Trading")

        assert tags == {"senior", "engineering", "trading", "quant"}

    def test_no_partial_word_matches(self, extractor):
        """"Internal" is not "intern" and "Leadership" is not "lead"."""
        assert extractor.extract_tags("Internal Tools Engineer", "Platform") == {"engineering"}
        assert extractor.extract_tags("Team Leadership Coach", "People") == set()

    def test_intern_and_junior(self, extractor):
        tags = extractor.extract_tags("Summer Internship - Junior Analyst", "Operations")

        assert {"intern", "junior", "analyst"} <= tags

    def test_plural_role_words(self, extractor):
        """Plural titles still pick up the umbrella tag."""
        assert extractor.extract_tags("Investment Analysts", "Finance") == {"analyst"}
        assert extractor.extract_tags("Python Developers", "Platform") == {"python", "engineering"}
        assert {"quant", "research"} <= extractor.extract_tags("Traders and Researchers", "Desk")
        assert "junior" in extractor.extract_tags("Summer Associates", "Banking")

    def test_plural_suffix_only(self, extractor):
        """Only "s"/"es" extends a word; "Internals" and "Leaders" stay untagged."""
        assert extractor.extract_tags("Internals Guide", "Docs") == set()
        assert extractor.extract_tags("Leaders Forum", "People") == set()


class TestCustomTables:
    """Tests for per-deployment keyword and heuristic tables."""

    def test_custom_keywords_only(self):
        extractor = TagExtractor(keywords=["Machine Learning"], heuristics=())

        assert extractor.extract_tags("Machine Learning Engineer", "AI") == {"machine_learning"}
        assert extractor.keywords == ("machine learning",)

    def test_custom_heuristic(self):
        extractor = TagExtractor(keywords=(), heuristics=[TagHeuristic("infra", ("sre", "devops"))])

        assert extractor.extract_tags("SRE", "Platform") == {"infra"}
        assert extractor.extract_tags("Sresearch", "Platform") == set()


class TestErrors:
    def test_non_string_raises(self, extractor):
        with pytest.raises(NormalizationError):
            extractor.extract_tags(None, "Engineering")

    def test_module_helper_is_deterministic(self):
        first = extract_tags("Quant Developer", "Alpha Research")
        second = extract_tags("Quant Developer", "Alpha Research")

        assert first == second
        assert {"quant", "alpha", "research", "engineering"} <= first
