"""Tests for configuration models and YAML loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from jobdorker.core.config import (
    DEFAULT_USER_AGENTS,
    DedupConfig,
    FetchConfig,
    PaginationConfig,
    QueryParamMap,
    SearchCriteria,
    SearchMapping,
    SelectorRules,
    Settings,
    SourceDescriptor,
)

SETTINGS_YAML = """\
database:
  path: data/test.db
fetch:
  page_delay_min_s: 0.5
  page_delay_max_s: 1.5
dedup:
  duplicate_threshold: 0.75
  mode: accurate
enabled_sources:
  - indeed
  - acme
sources:
  - id: ACME
    name: Acme Careers
    base_url: https://careers.acme.com
    selectors:
      card: .opening
      title: .opening-title
      company: .opening-company
      next_page:
        - a.next
        - ".pager a[rel=next]"
    search:
      search_url: https://careers.acme.com/search
      params:
        keywords: q
        location: where
    pagination:
      param: page
      style: page
      start: 1
      max_pages: 3
search:
  keywords: [python, django]
  remote: true
  date_posted: week
"""


def _selectors(**overrides: object) -> SelectorRules:
    defaults: dict[str, object] = {"card": ".job", "title": ".title", "company": ".company"}
    defaults.update(overrides)
    return SelectorRules(**defaults)  # type: ignore[arg-type]


class TestFromYaml:
    def test_loads_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(SETTINGS_YAML)
        settings = Settings.from_yaml(path)
        assert settings.database.path == "data/test.db"
        assert settings.fetch.page_delay_max_s == 1.5
        assert settings.dedup.duplicate_threshold == 0.75
        assert settings.enabled_sources == ["indeed", "acme"]
        assert settings.search is not None
        assert settings.search.keywords == ["python", "django"]
        assert settings.search.date_posted == "week"

    def test_source_descriptor_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(SETTINGS_YAML)
        [source] = Settings.from_yaml(path).sources
        assert source.id == "acme"
        assert source.selectors.card == (".opening",)
        assert source.selectors.next_page == ("a.next", ".pager a[rel=next]")
        assert source.pagination.max_pages == 3
        assert source.render == "static"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            Settings.from_yaml(tmp_path / "nope.yaml")

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        settings = Settings.from_yaml(path)
        assert settings.database.path == "data/jobs.db"
        assert settings.search is None

    def test_invalid_value_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("dedup:\n  duplicate_threshold: 1.5\n")
        with pytest.raises(ValidationError):
            Settings.from_yaml(path)

    def test_example_file_loads(self) -> None:
        example = Path(__file__).parents[2] / "config" / "settings.example.yaml"
        settings = Settings.from_yaml(example)
        assert settings.sources[0].id == "examplejobs"
        assert settings.sources[0].selectors.next_page == ("a[rel=next]",)
        assert settings.search is not None
        assert settings.search.keywords == ["python", "backend engineer"]


class TestSearchCriteria:
    def test_keywords_trimmed(self) -> None:
        criteria = SearchCriteria(keywords=[" python ", "", "django"])
        assert criteria.keywords == ["python", "django"]

    @pytest.mark.parametrize("keywords", [[], ["", "  "]])
    def test_empty_keywords_rejected(self, keywords: list[str]) -> None:
        with pytest.raises(ValidationError, match="at least one keyword"):
            SearchCriteria(keywords=keywords)

    def test_salary_range_order(self) -> None:
        with pytest.raises(ValidationError, match="salary_min"):
            SearchCriteria(keywords=["python"], salary_min=200000, salary_max=100000)

    def test_negative_salary_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchCriteria(keywords=["python"], salary_min=-1)

    def test_unknown_employment_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchCriteria(keywords=["python"], employment_types=["gig"])  # type: ignore[list-item]

    def test_max_results_bounds(self) -> None:
        with pytest.raises(ValidationError):
            SearchCriteria(keywords=["python"], max_results=0)

    def test_defaults(self) -> None:
        criteria = SearchCriteria(keywords=["python"])
        assert criteria.date_posted == "any"
        assert criteria.max_results == 50
        assert criteria.remote is None


class TestSourceDescriptor:
    def _source(self, **overrides: object) -> SourceDescriptor:
        defaults: dict[str, object] = {
            "id": "Example",
            "base_url": "https://example.com",
            "selectors": _selectors(),
            "search": SearchMapping(
                search_url="https://example.com/search", params=QueryParamMap(keywords="q"),
            ),
        }
        defaults.update(overrides)
        return SourceDescriptor(**defaults)  # type: ignore[arg-type]

    def test_id_lowercased(self) -> None:
        assert self._source().id == "example"

    def test_blank_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            self._source(id="  ")

    def test_frozen(self) -> None:
        source = self._source()
        with pytest.raises(ValidationError):
            source.retries = 9  # type: ignore[misc]

    def test_defaults(self) -> None:
        source = self._source()
        assert source.retries == 3
        assert source.timeout_ms == 30000
        assert source.rate_limit.requests_per_minute == 30
        assert source.rate_limit.burst_limit == 5

    def test_retries_bounded(self) -> None:
        with pytest.raises(ValidationError):
            self._source(retries=11)

    def test_max_pages_bounded(self) -> None:
        with pytest.raises(ValidationError):
            PaginationConfig(max_pages=0)


class TestSelectorRules:
    def test_string_coerced_to_tuple(self) -> None:
        assert _selectors(location=".loc").location == (".loc",)

    def test_empty_optional_selectors(self) -> None:
        assert _selectors(salary=None).salary == ()

    @pytest.mark.parametrize("field", ["card", "title", "company"])
    def test_required_selectors(self, field: str) -> None:
        with pytest.raises(ValidationError, match="must not be empty"):
            _selectors(**{field: ""})


class TestOtherSections:
    def test_user_agents_default(self) -> None:
        assert FetchConfig().user_agents == list(DEFAULT_USER_AGENTS)

    def test_user_agents_must_not_be_empty(self) -> None:
        with pytest.raises(ValidationError, match="user agent"):
            FetchConfig(user_agents=["  "])

    def test_dedup_defaults(self) -> None:
        config = DedupConfig()
        assert config.duplicate_threshold == 0.8
        assert config.min_matched_fields == 2
        assert config.mode == "auto"

    def test_duplicate_source_ids_rejected(self) -> None:
        source = SourceDescriptor(
            id="dup",
            base_url="https://example.com",
            selectors=_selectors(),
            search=SearchMapping(search_url="https://example.com", params=QueryParamMap(keywords="q")),
        )
        with pytest.raises(ValidationError, match="unique"):
            Settings(sources=[source, source])
