"""Keyword filter matching (core domain)."""

from __future__ import annotations

from core.models import Item, KeywordFilter


def matches_text(text: str, keyword_filter: KeywordFilter) -> bool:
    """Return True when the text passes the keyword filter.

    Matching logic:
    - If any exclude keyword is present, the filter does not match.
    - An empty keyword list matches everything else.
    - Otherwise, any keyword is sufficient.

    Comparison is plain case-insensitive containment; ``casefold`` keeps it
    correct for non-Latin scripts.
    """

    folded = text.casefold()
    if any(ex.casefold() in folded for ex in keyword_filter.exclude_keywords if ex):
        return False
    if not keyword_filter.keywords:
        return True
    return any(k.casefold() in folded for k in keyword_filter.keywords)


def matches(item: Item, keyword_filter: KeywordFilter) -> bool:
    """Return True when the item's name, description and category pass the filter."""

    return matches_text(item.search_text, keyword_filter)


def within_price(item: Item, keyword_filter: KeywordFilter) -> bool:
    """Price gate for change notifications: no threshold, or price at or below it."""

    if keyword_filter.target_price is None:
        return True
    return item.price <= keyword_filter.target_price
