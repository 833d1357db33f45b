"""Tests for the built-in source registry and source selection."""

import re

import pytest

from jobdorker.core.config import (
    QueryParamMap,
    SearchMapping,
    SelectorRules,
    Settings,
    SourceDescriptor,
)
from jobdorker.extraction.sources import (
    BUILTIN_SOURCES,
    GOOGLE,
    INDEED,
    LINKEDIN,
    build_registry,
    get_source,
    resolve_sources,
)


def _custom(source_id: str = "custom", *, enabled: bool = True) -> SourceDescriptor:
    return SourceDescriptor(
        id=source_id,
        base_url="https://custom.example.com",
        enabled=enabled,
        selectors=SelectorRules(card=".job", title=".title", company=".company"),
        search=SearchMapping(
            search_url="https://custom.example.com/search",
            params=QueryParamMap(keywords="q"),
        ),
    )


class TestBuiltinSources:
    def test_expected_boards_present(self) -> None:
        assert set(BUILTIN_SOURCES) == {
            "linkedin", "indeed", "glassdoor", "stackoverflow", "remoteok", "weworkremotely", "google",
        }

    def test_stackoverflow_disabled_by_default(self) -> None:
        assert BUILTIN_SOURCES["stackoverflow"].enabled is False

    def test_search_engine_opt_in(self) -> None:
        assert GOOGLE.enabled is False
        assert GOOGLE.search.dork is True
        assert GOOGLE.pagination.param == "start"
        assert GOOGLE.pagination.step == 10
        assert not any(s.search.dork for s in BUILTIN_SOURCES.values() if s.id != "google")

    @pytest.mark.parametrize("source_id", sorted(BUILTIN_SOURCES))
    def test_required_selectors_present(self, source_id: str) -> None:
        rules = BUILTIN_SOURCES[source_id].selectors
        assert rules.card and rules.title and rules.company

    def test_linkedin_id_pattern(self) -> None:
        assert LINKEDIN.id_pattern is not None
        match = re.search(
            LINKEDIN.id_pattern,
            "https://www.linkedin.com/jobs/view/senior-dev-at-acme-3812345678/?refId=abc",
        )
        assert match is not None
        assert match.group(1) == "3812345678"

    def test_indeed_id_pattern(self) -> None:
        assert INDEED.id_pattern is not None
        match = re.search(INDEED.id_pattern, "https://www.indeed.com/viewjob?jk=9f3c2a1b")
        assert match is not None
        assert match.group(1) == "9f3c2a1b"


class TestGetSource:
    def test_case_insensitive(self) -> None:
        assert get_source("Indeed") is INDEED

    def test_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown source 'monster'"):
            get_source("monster")


class TestBuildRegistry:
    def test_override_replaces_by_id(self) -> None:
        override = _custom("indeed")
        registry = build_registry([override])
        assert registry["indeed"] is override
        assert len(registry) == len(BUILTIN_SOURCES)

    def test_new_source_added(self) -> None:
        registry = build_registry([_custom()])
        assert "custom" in registry

    def test_builtins_untouched(self) -> None:
        build_registry([_custom("indeed")])
        assert BUILTIN_SOURCES["indeed"] is INDEED


class TestResolveSources:
    def test_default_is_every_enabled_source(self) -> None:
        ids = [s.id for s in resolve_sources(Settings())]
        assert "stackoverflow" not in ids
        assert "google" not in ids
        assert "indeed" in ids and "linkedin" in ids

    def test_settings_enabled_sources(self) -> None:
        ids = [s.id for s in resolve_sources(Settings(enabled_sources=["indeed", "remoteok"]))]
        assert ids == ["indeed", "remoteok"]

    def test_requested_wins_over_settings(self) -> None:
        settings = Settings(enabled_sources=["indeed"])
        ids = [s.id for s in resolve_sources(settings, ["glassdoor"])]
        assert ids == ["glassdoor"]

    def test_explicit_request_may_name_disabled_source(self) -> None:
        ids = [s.id for s in resolve_sources(Settings(), ["stackoverflow"])]
        assert ids == ["stackoverflow"]

    def test_configured_source_used(self) -> None:
        settings = Settings(sources=[_custom()], enabled_sources=["custom"])
        sources = resolve_sources(settings)
        assert sources[0].base_url == "https://custom.example.com"

    def test_unknown_requested_raises(self) -> None:
        with pytest.raises(ValueError):
            resolve_sources(Settings(), ["nope"])
