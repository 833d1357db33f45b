"""Tests for search-engine dork generation."""

from jobdorker.core.config import SearchCriteria
from jobdorker.extraction.dorks import (
    DORK_SITES,
    DorkConfig,
    UNKNOWN_LOCATION,
    build_query,
    company_from_result,
    dork_searches,
    generate_dorks,
    generate_queries,
    is_blocked_page,
    location_from_result,
    unwrap_result_link,
)


class TestBuildQuery:
    def test_site_and_quoted_phrase(self) -> None:
        query = build_query(DorkConfig(site="indeed.com", keywords=("python", "data engineer")))
        assert query == 'site:indeed.com python "data engineer"'

    def test_exclusions(self) -> None:
        query = build_query(DorkConfig(keywords=("python",), exclude_keywords=("junior", "intern")))
        assert query == "python -junior -intern"

    def test_file_types(self) -> None:
        query = build_query(DorkConfig(keywords=("python",), file_types=("pdf", "doc")))
        assert query == "python filetype:pdf OR filetype:doc"

    def test_custom_params(self) -> None:
        query = build_query(DorkConfig(keywords=("python",), custom_params={"location": "Berlin"}))
        assert query == "python location:Berlin"


class TestGenerateDorks:
    def test_one_per_site_plus_extras(self) -> None:
        dorks = generate_dorks(SearchCriteria(keywords=["python"]))
        assert len(dorks) == len(DORK_SITES) + 2
        assert dorks[0].site == DORK_SITES[0]
        assert dorks[-2].file_types == ("pdf",)
        assert dorks[-1].custom_params["inurl"].startswith("careers")

    def test_remote_adds_terms(self) -> None:
        dork = generate_dorks(SearchCriteria(keywords=["python"], remote=True, location="Berlin"))[0]
        assert "remote" in dork.keywords
        assert "location" not in dork.custom_params

    def test_location_param(self) -> None:
        dork = generate_dorks(SearchCriteria(keywords=["python"], location="Berlin"))[0]
        assert dork.custom_params == {"location": "Berlin"}

    def test_salary_term(self) -> None:
        dork = generate_dorks(SearchCriteria(keywords=["python"], salary_min=120000))[0]
        assert "salary:>120000" in dork.keywords

    def test_exclusions_carried(self) -> None:
        dork = generate_dorks(SearchCriteria(keywords=["python"], exclude_keywords=["php"]))[0]
        assert dork.exclude_keywords == ("php",)


class TestGenerateQueries:
    def test_unique(self) -> None:
        queries = generate_queries(SearchCriteria(keywords=["python", "django", "aws"]))
        assert len(queries) == len(set(queries))

    def test_limit(self) -> None:
        queries = generate_queries(SearchCriteria(keywords=["python", "django", "aws"]), limit=5)
        assert len(queries) == 5

    def test_capped_by_max_results(self) -> None:
        criteria = SearchCriteria(keywords=["python", "django"], max_results=3)
        assert len(generate_queries(criteria)) == 3

    def test_single_keyword_has_no_variations(self) -> None:
        queries = generate_queries(SearchCriteria(keywords=["python"]), limit=100)
        assert len(queries) == len(DORK_SITES) + 2

    def test_primary_queries_first(self) -> None:
        queries = generate_queries(SearchCriteria(keywords=["python", "django"]))
        assert queries[0] == f"site:{DORK_SITES[0]} python django"


class TestDorkSearches:
    def test_one_criteria_per_query(self) -> None:
        criteria = SearchCriteria(keywords=["python", "django"], location="Berlin", max_results=20)
        searches = dork_searches(criteria, limit=4)
        assert [s.keywords[0] for s in searches] == generate_queries(criteria, limit=4)
        assert all(len(s.keywords) == 1 for s in searches)
        assert searches[0].location == "Berlin"
        assert searches[0].max_results == 20

    def test_original_untouched(self) -> None:
        criteria = SearchCriteria(keywords=["python"])
        dork_searches(criteria, limit=2)
        assert criteria.keywords == ["python"]


class TestResultParsing:
    def test_blocked_page(self) -> None:
        assert is_blocked_page("<p>Our systems have detected Unusual Traffic from your network</p>")
        assert is_blocked_page('<form action="/sorry/index">')
        assert not is_blocked_page("<div class='g'><h3>Python Developer</h3></div>")

    def test_company_from_title(self) -> None:
        assert company_from_result("Python Developer at Globex | Berlin", None) == "Globex"

    def test_company_from_snippet(self) -> None:
        company = company_from_result("Python Developer", None, "Initech Labs is hiring engineers")
        assert company == "Initech Labs"

    def test_site_name_before_domain(self) -> None:
        company = company_from_result(
            "Python Developer", "https://boards.example.com/1", site_name="Example Jobs",
        )
        assert company == "Example Jobs"

    def test_company_from_board_domain(self) -> None:
        assert company_from_result("Python Developer", "https://uk.indeed.com/viewjob?jk=1") == "Indeed"

    def test_no_hint_at_all(self) -> None:
        assert company_from_result("Python Developer", None) == ""

    def test_location_from_snippet(self) -> None:
        snippet = "Hybrid role in Austin, TX with travel"
        assert location_from_result("Python Developer", snippet) == "Austin, TX"
        assert location_from_result("Python Developer", "Fully Remote, any timezone") == "Remote"

    def test_location_from_title_suffix(self) -> None:
        assert location_from_result("Python Developer at Globex | Munich", "") == "Munich"

    def test_location_unknown(self) -> None:
        assert location_from_result("Python Developer", "Great team") == UNKNOWN_LOCATION

    def test_unwrap_redirect_link(self) -> None:
        wrapped = "https://www.google.com/url?q=https://jobs.example.com/1&sa=U"
        assert unwrap_result_link(wrapped) == "https://jobs.example.com/1"

    def test_plain_link_unchanged(self) -> None:
        assert unwrap_result_link("https://jobs.example.com/url") == "https://jobs.example.com/url"
