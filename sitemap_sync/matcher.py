"""URL path exclusion rules for sitemap entries."""

from __future__ import annotations

import re
from typing import Iterable, Pattern
from urllib.parse import urlsplit

from sitemap_sync.errors import MalformedRecordError

# Evaluated in order against the path component only.
EXTERNAL_EXCLUDED_PATTERNS: tuple[Pattern[str], ...] = (
    re.compile(r"^/test/"),
    re.compile(r"^/franklin_assets/"),
    re.compile(r"^/tools/"),
    re.compile(r"/nav$"),
    re.compile(r"^/github-actions-test/"),
    re.compile(r"/config/?$"),
)

# Other properties hosted in the same storage account.
EXCLUDED_SITES: frozenset[str] = frozenset({"secured"})

_LONG_DIGIT_RUN = re.compile(r"\d{9,}")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def url_path(url: str) -> str:
    """Return the path component of an absolute URL.

    Raises MalformedRecordError when the value does not parse or is missing
    a scheme or host.
    """

    if not isinstance(url, str) or not url.strip():
        raise MalformedRecordError(url=str(url))
    # urlsplit silently drops tabs and newlines, so reject them first.
    if _CONTROL_CHARS.search(url.strip()):
        raise MalformedRecordError("URL contains control characters.", url=url)
    try:
        parts = urlsplit(url.strip())
        _ = parts.port  # invalid ports only surface here
    except ValueError as exc:
        raise MalformedRecordError(f"Malformed URL: {exc}", url=url) from exc
    if not parts.scheme or not parts.netloc:
        raise MalformedRecordError("URL is not absolute.", url=url)
    return parts.path or "/"


class ExclusionMatcher:
    """Decides whether a URL belongs in the sitemap."""

    def __init__(self, patterns: Iterable[Pattern[str]] = EXTERNAL_EXCLUDED_PATTERNS) -> None:
        self._patterns = tuple(patterns)

    @property
    def patterns(self) -> tuple[Pattern[str], ...]:
        return self._patterns

    def extend(self, patterns: Iterable[Pattern[str]]) -> "ExclusionMatcher":
        """Return a new matcher with extra patterns appended."""

        return ExclusionMatcher(self._patterns + tuple(patterns))

    def should_include(self, url: str) -> bool:
        path = url_path(url)
        return not any(pattern.search(path) for pattern in self._patterns)


def in_excluded_site(route: str, excluded_sites: Iterable[str] = EXCLUDED_SITES) -> bool:
    """True when the route's first segment names an excluded site."""

    return any(route.startswith(f"{site}/") for site in excluded_sites)


def has_long_digit_run(route: str) -> bool:
    """True when a single path segment holds 9 or more consecutive digits."""

    return any(_LONG_DIGIT_RUN.search(segment) for segment in route.split("/"))


__all__ = [
    "EXCLUDED_SITES",
    "EXTERNAL_EXCLUDED_PATTERNS",
    "ExclusionMatcher",
    "has_long_digit_run",
    "in_excluded_site",
    "url_path",
]
