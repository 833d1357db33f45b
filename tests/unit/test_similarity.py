"""Tests for field normalization and composite similarity."""

import pytest

from jobdorker.core.config import DedupConfig
from jobdorker.core.schemas import JobSource, NormalizedJobListing
from jobdorker.dedup.similarity import (
    compute_similarity,
    normalize_company,
    normalize_description,
    normalize_location,
    normalize_title,
    normalize_url,
    string_similarity,
)


def _listing(
    *,
    id: str = "a",
    title: str = "Software Engineer",
    company: str = "Tech Corp",
    location: str = "New York, NY",
    url: str = "https://indeed.com/viewjob?jk=1",
    description: str = "Build things",
) -> NormalizedJobListing:
    return NormalizedJobListing(
        id=id,
        title=title,
        company=company,
        location=location,
        description=description,
        url=url,
        source=JobSource(site="indeed", original_url=url),
    )


class TestNormalizers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Sr. Python Developer II", "python developer"),
            ("Senior Software Engineer", "software engineer"),
            ("Lead  Data-Engineer", "data engineer"),
        ],
    )
    def test_title(self, raw: str, expected: str) -> None:
        assert normalize_title(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Acme Corp.", "acme"),
            ("Acme, Inc.", "acme"),
            ("Tech Corporation", "tech"),
            ("Globex LLC", "globex"),
            ("Acme Consulting", "acme consulting"),
        ],
    )
    def test_company(self, raw: str, expected: str) -> None:
        assert normalize_company(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Remote - USA", "united states"),
            ("Austin, TX (Hybrid)", "austin tx"),
            ("New York, US", "new york united states"),
        ],
    )
    def test_location(self, raw: str, expected: str) -> None:
        assert normalize_location(raw) == expected

    def test_description_strips_markup_and_truncates(self) -> None:
        text = "<p>Hello <b>World</b></p>" + " x" * 600
        result = normalize_description(text)
        assert result.startswith("hello world")
        assert len(result) == 500

    def test_url_drops_tracking_and_fragment(self) -> None:
        url = "https://Jobs.Example.com/view/1?utm_source=x&ref=abc&id=5&source=feed#top"
        assert normalize_url(url) == "https://jobs.example.com/view/1?id=5"

    def test_url_path_case_kept(self) -> None:
        assert normalize_url("https://x.com/Jobs/ABC") == "https://x.com/Jobs/ABC"


class TestStringSimilarity:
    def test_equal(self) -> None:
        assert string_similarity("python", "python") == 1.0

    def test_both_empty(self) -> None:
        assert string_similarity("", "") == 1.0

    def test_one_empty(self) -> None:
        assert string_similarity("", "python") == 0.0

    def test_levenshtein(self) -> None:
        assert string_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_symmetric(self) -> None:
        assert string_similarity("abc", "abd") == string_similarity("abd", "abc")


class TestComputeSimilarity:
    def test_url_short_circuit(self) -> None:
        a = _listing(title="Backend Engineer", url="https://x.com/jobs/1?utm_campaign=a")
        b = _listing(id="b", title="Chef", company="Other", url="https://x.com/jobs/1")
        result = compute_similarity(a, b, DedupConfig())
        assert result.score == 1.0
        assert result.matched_fields == ("url",)
        assert result.candidate is b

    def test_url_match_disabled(self) -> None:
        a = _listing(title="Backend Engineer", url="https://x.com/jobs/1")
        b = _listing(id="b", title="Chef", company="Other", url="https://x.com/jobs/1")
        result = compute_similarity(a, b, DedupConfig(url_exact_match=False))
        assert result.score == 0.0

    def test_identical_fields(self) -> None:
        a = _listing(url="https://a.com/1")
        b = _listing(id="b", url="https://b.com/2")
        result = compute_similarity(a, b, DedupConfig())
        assert result.score == pytest.approx(0.9)
        assert result.matched_fields == ("title", "company", "location")

    def test_nyc_abbreviation_stays_below_threshold(self) -> None:
        a = _listing(company="Tech Corp", location="New York, NY", url="https://indeed.com/1")
        b = _listing(id="b", company="Tech Corporation", location="NYC", url="https://linkedin.com/2")
        result = compute_similarity(a, b, DedupConfig())
        assert result.matched_fields == ("title", "company")
        assert result.score == pytest.approx(0.7)
        assert result.score <= DedupConfig().duplicate_threshold

    def test_single_matching_field_scores_zero(self) -> None:
        a = _listing(company="Acme", location="Austin", url="https://a.com/1")
        b = _listing(id="b", company="Globex", location="Berlin", url="https://b.com/2")
        result = compute_similarity(a, b, DedupConfig())
        assert result.matched_fields == ("title",)
        assert result.score == 0.0

    def test_description_considered_when_enabled(self) -> None:
        a = _listing(url="https://a.com/1")
        b = _listing(id="b", url="https://b.com/2")
        result = compute_similarity(a, b, DedupConfig(consider_description=True))
        assert "description" in result.matched_fields
        assert result.score == pytest.approx(1.0)

    def test_score_bounded(self) -> None:
        a = _listing(url="https://a.com/1")
        b = _listing(id="b", url="https://b.com/2")
        score = compute_similarity(a, b, DedupConfig(consider_description=True)).score
        assert 0.0 <= score <= 1.0
