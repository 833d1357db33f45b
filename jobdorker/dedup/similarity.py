"""Field normalization and composite similarity scoring.

An exact URL match (after stripping tracking parameters) short-circuits to
1.0 and stays outside the weighted sum, so it does not need two fields to
clear their thresholds.
"""

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from rapidfuzz.distance import Levenshtein

from jobdorker.core.config import DedupConfig
from jobdorker.core.schemas import NormalizedJobListing, SimilarityResult

FIELD_WEIGHTS: dict[str, float] = {
    "title": 0.4,
    "company": 0.3,
    "location": 0.2,
    "description": 0.1,
}

TRACKING_PARAMS = frozenset({"ref", "source"})
DESCRIPTION_COMPARE_CHARS = 500

_SPECIAL_RE = re.compile(r"[^\w\s]")
_SENIORITY_RE = re.compile(r"\b(?:jr|sr|senior|junior|lead|principal)\b")
_ROMAN_RE = re.compile(r"\b(?:i|ii|iii|iv|v)\b")
_LEGAL_SUFFIX_RE = re.compile(r"\b(?:inc|llc|ltd|corp|corporation|company|co|llp)\b\.?")
_WORK_TYPE_RE = re.compile(r"\b(?:remote|hybrid|on-site|onsite)\b")
_COUNTRY_RE = re.compile(r"\b(?:usa|us|united states)\b")
_TAG_RE = re.compile(r"<[^>]*>")


def _squash(text: str) -> str:
    return " ".join(text.split())


def normalize_title(title: str) -> str:
    text = _SPECIAL_RE.sub(" ", title.lower())
    text = _SENIORITY_RE.sub("", text)
    text = _ROMAN_RE.sub("", text)
    return _squash(text)


def normalize_company(company: str) -> str:
    text = _LEGAL_SUFFIX_RE.sub("", company.lower())
    return _squash(_SPECIAL_RE.sub(" ", text))


def normalize_location(location: str) -> str:
    text = _WORK_TYPE_RE.sub("", location.lower())
    text = _COUNTRY_RE.sub("united states", text)
    return _squash(_SPECIAL_RE.sub(" ", text))


def normalize_description(description: str) -> str:
    text = _TAG_RE.sub(" ", description.lower())
    return _squash(text)[:DESCRIPTION_COMPARE_CHARS]


def normalize_url(url: str) -> str:
    """Drop ``utm_*``, ``ref`` and ``source`` query parameters and the fragment."""
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.netloc:
        return url.strip().lower()
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith("utm_") and k.lower() not in TRACKING_PARAMS
    ]
    return urlunsplit((
        parts.scheme.lower(), parts.netloc.lower(), parts.path, urlencode(query), "",
    ))


def string_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity; equal strings score 1.0, one empty side 0.0."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a, b)


def compute_similarity(
    a: NormalizedJobListing,
    b: NormalizedJobListing,
    config: DedupConfig,
) -> SimilarityResult:
    """Composite similarity of ``a`` against the admitted listing ``b``."""
    if config.url_exact_match and a.url and b.url and normalize_url(a.url) == normalize_url(b.url):
        return SimilarityResult(candidate=b, score=1.0, matched_fields=("url",))

    pairs: list[tuple[str, float, float]] = [
        ("title", string_similarity(normalize_title(a.title), normalize_title(b.title)),
         config.title_threshold),
        ("company", string_similarity(normalize_company(a.company), normalize_company(b.company)),
         config.company_threshold),
        ("location", string_similarity(normalize_location(a.location), normalize_location(b.location)),
         config.location_threshold),
    ]
    if config.consider_description and a.description and b.description:
        desc = string_similarity(
            normalize_description(a.description), normalize_description(b.description),
        )
        pairs.append(("description", desc, config.description_threshold))

    matched = tuple(name for name, sim, threshold in pairs if sim >= threshold)
    if len(matched) < config.min_matched_fields:
        return SimilarityResult(candidate=b, score=0.0, matched_fields=matched)

    score = sum(sim * FIELD_WEIGHTS[name] for name, sim, threshold in pairs if sim >= threshold)
    return SimilarityResult(candidate=b, score=min(score, 1.0), matched_fields=matched)
