"""Keyword fallback filter for non-code listings."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from repo_navigator.config import KeywordFilterConfig
from repo_navigator.types import Domain, FilteredListing, FilterMode


def _text(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return [str(value)]


def _fields(*names: str) -> Callable[[Any], list[str]]:
    def extract(item: Any) -> list[str]:
        values: list[str] = []
        for name in names:
            if isinstance(item, dict):
                values.extend(_text(item.get(name)))
            else:
                values.extend(_text(getattr(item, name, None)))
        return values

    return extract


# Domains without an entry have no searchable text and are never filtered.
FIELD_EXTRACTORS: dict[Domain, Callable[[Any], list[str]]] = {
    Domain.COMMITS: _fields("message", "files_changed"),
    Domain.PULLS: _fields("title", "description", "labels", "files"),
    Domain.ISSUES: _fields("title", "description", "labels"),
    Domain.RELEASES: _fields("tag_name", "name", "description"),
    Domain.USERS: _fields("username"),
}


class KeywordFallbackFilter:
    """Narrows a most-recent-first listing to items mentioning any keyword.

    Three outcomes are kept distinct through `FilterMode`:

    - `UNFILTERED`: no keywords were given, or the domain has no text fields.
      The listing is truncated to `max_unfiltered`.
    - `MATCHED`: at least one item matched. Matches keep listing order and are
      truncated to `max_matched`.
    - `RECENT_FALLBACK`: keywords were given and nothing matched. The first
      `recent_fallback` items are returned instead of an empty listing.
    """

    def __init__(self, config: KeywordFilterConfig | None = None) -> None:
        self.config = config or KeywordFilterConfig()

    def filter(
        self, domain: Domain, items: Sequence[Any], keywords: Sequence[str]
    ) -> FilteredListing:
        listing = list(items)
        needles = tuple(keyword.lower() for keyword in keywords if keyword and keyword.strip())
        extractor = FIELD_EXTRACTORS.get(domain)

        if not needles or extractor is None:
            return FilteredListing(
                domain=domain,
                items=listing[: self.config.max_unfiltered],
                mode=FilterMode.UNFILTERED,
                total=len(listing),
                keywords=tuple(keywords),
            )

        matched = [item for item in listing if _matches(extractor(item), needles)]
        if not matched:
            return FilteredListing(
                domain=domain,
                items=listing[: self.config.recent_fallback],
                mode=FilterMode.RECENT_FALLBACK,
                total=len(listing),
                keywords=tuple(keywords),
            )
        return FilteredListing(
            domain=domain,
            items=matched[: self.config.max_matched],
            mode=FilterMode.MATCHED,
            total=len(listing),
            keywords=tuple(keywords),
        )


def _matches(values: list[str], needles: tuple[str, ...]) -> bool:
    haystacks = [value.lower() for value in values]
    return any(needle in haystack for needle in needles for haystack in haystacks)
