"""Tests for search URL building and page parameters."""

from urllib.parse import parse_qs, urlsplit

import pytest

from jobdorker.core.config import (
    PaginationConfig,
    QueryParamMap,
    SearchCriteria,
    SearchMapping,
    SelectorRules,
    SourceDescriptor,
)
from jobdorker.extraction.sources import GLASSDOOR, INDEED, LINKEDIN, REMOTEOK
from jobdorker.extraction.url_builder import build_search_url, page_param_value


def _criteria(**overrides: object) -> SearchCriteria:
    defaults: dict[str, object] = {"keywords": ["python", "developer"]}
    defaults.update(overrides)
    return SearchCriteria(**defaults)  # type: ignore[arg-type]


def _query(url: str) -> dict[str, list[str]]:
    return parse_qs(urlsplit(url).query)


# ---------------------------------------------------------------------------
# Base URL and keywords
# ---------------------------------------------------------------------------


class TestBaseUrl:
    def test_indeed_base(self) -> None:
        url = build_search_url(INDEED, _criteria())
        assert url.startswith("https://www.indeed.com/jobs?")

    def test_keywords_space_joined(self) -> None:
        params = _query(build_search_url(INDEED, _criteria()))
        assert params["q"] == ["python developer"]

    def test_keywords_are_quoted(self) -> None:
        url = build_search_url(INDEED, _criteria(keywords=["c++ developer"]))
        assert "q=c%2B%2B+developer" in url

    def test_location(self) -> None:
        params = _query(build_search_url(INDEED, _criteria(location="New York, NY")))
        assert params["l"] == ["New York, NY"]

    def test_fixed_params_always_sent(self) -> None:
        assert _query(build_search_url(INDEED, _criteria()))["sort"] == ["date"]
        assert _query(build_search_url(LINKEDIN, _criteria()))["sortBy"] == ["DD"]

    def test_existing_query_string_uses_ampersand(self) -> None:
        source = SourceDescriptor(
            id="custom",
            base_url="https://custom.example.com",
            selectors=SelectorRules(card=".job", title=".t", company=".c"),
            search=SearchMapping(
                search_url="https://custom.example.com/find?lang=en",
                params=QueryParamMap(keywords="kw"),
            ),
        )
        url = build_search_url(source, _criteria())
        assert url.startswith("https://custom.example.com/find?lang=en&kw=")

    def test_unmapped_location_dropped(self) -> None:
        params = _query(build_search_url(REMOTEOK, _criteria(location="Berlin")))
        assert params == {"search": ["python developer"]}


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class TestFilters:
    def test_date_posted_any_omitted(self) -> None:
        params = _query(build_search_url(INDEED, _criteria()))
        assert "fromage" not in params

    @pytest.mark.parametrize(
        ("date_posted", "code"),
        [("today", "1"), ("week", "7"), ("month", "30")],
    )
    def test_indeed_date_posted(self, date_posted: str, code: str) -> None:
        params = _query(build_search_url(INDEED, _criteria(date_posted=date_posted)))
        assert params["fromage"] == [code]

    def test_linkedin_date_posted(self) -> None:
        params = _query(build_search_url(LINKEDIN, _criteria(date_posted="week")))
        assert params["f_TPR"] == ["r604800"]

    def test_remote_true(self) -> None:
        params = _query(build_search_url(LINKEDIN, _criteria(remote=True)))
        assert params["f_WT"] == ["2"]

    @pytest.mark.parametrize("remote", [False, None])
    def test_remote_not_requested(self, remote: bool | None) -> None:
        params = _query(build_search_url(INDEED, _criteria(remote=remote)))
        assert "remotejob" not in params

    def test_salary_min_where_supported(self) -> None:
        params = _query(build_search_url(INDEED, _criteria(salary_min=90000)))
        assert params["salary"] == ["90000"]

    def test_salary_ignored_where_unsupported(self) -> None:
        params = _query(build_search_url(LINKEDIN, _criteria(salary_min=90000)))
        assert "salary" not in params

    def test_employment_types_comma_joined(self) -> None:
        params = _query(build_search_url(
            LINKEDIN, _criteria(employment_types=["full-time", "contract"]),
        ))
        assert params["f_JT"] == ["F,C"]

    def test_unknown_employment_type_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        params = _query(build_search_url(LINKEDIN, _criteria(employment_types=["freelance"])))
        assert "f_JT" not in params
        assert "No site code for job_type value 'freelance'" in caplog.text

    def test_mixed_known_unknown_employment_types(self) -> None:
        params = _query(build_search_url(
            LINKEDIN, _criteria(employment_types=["freelance", "internship"]),
        ))
        assert params["f_JT"] == ["I"]


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class TestPagination:
    def test_first_page_has_no_page_param(self) -> None:
        assert "start" not in _query(build_search_url(INDEED, _criteria(), 0))
        assert "p" not in _query(build_search_url(GLASSDOOR, _criteria(), 0))

    def test_offset_style(self) -> None:
        assert _query(build_search_url(INDEED, _criteria(), 1))["start"] == ["10"]
        assert _query(build_search_url(LINKEDIN, _criteria(), 2))["start"] == ["50"]

    def test_page_style(self) -> None:
        assert _query(build_search_url(GLASSDOOR, _criteria(), 1))["p"] == ["2"]
        assert _query(build_search_url(GLASSDOOR, _criteria(), 3))["p"] == ["4"]

    def test_page_param_value_without_param(self) -> None:
        assert page_param_value(PaginationConfig(param=None), 3) is None

    def test_page_param_value_offset(self) -> None:
        pagination = PaginationConfig(param="start", style="offset", start=0, step=25)
        assert page_param_value(pagination, 0) is None
        assert page_param_value(pagination, 1) == "25"
        assert page_param_value(pagination, 4) == "100"

    def test_page_param_value_page(self) -> None:
        pagination = PaginationConfig(param="page", style="page", start=1)
        assert page_param_value(pagination, 1) == "2"
