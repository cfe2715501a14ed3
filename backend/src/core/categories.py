"""
Catalog categories and the tokens used to recognise them in upstream payloads.
"""

import re
from enum import Enum
from typing import Iterable, Optional, Tuple


class Category(str, Enum):
    """Fixed top-level catalog partition used for crawling and subscriptions."""

    WOMEN = "WOMEN"
    MEN = "MEN"
    KIDS = "KIDS"
    BABY = "BABY"

    @property
    def label(self) -> str:
        """Retailer-facing department label."""
        return _LABELS[self]

    @property
    def section_markers(self) -> Tuple[str, ...]:
        """Tokens that mark the end of this category's listing sections."""
        return (_LABELS[self], self.value)

    @property
    def match_tokens(self) -> Tuple[str, ...]:
        """Looser tokens matched against a product's own category text."""
        return _MATCH_TOKENS[self]


_LABELS = {
    Category.WOMEN: "女装",
    Category.MEN: "男装",
    Category.KIDS: "童装",
    Category.BABY: "婴幼儿装",
}

_MATCH_TOKENS = {
    Category.WOMEN: ("女", "women"),
    Category.MEN: ("男", "men"),
    Category.KIDS: ("童", "kids"),
    Category.BABY: ("婴", "baby"),
}


def _contains_token(text: str, token: str) -> bool:
    # ASCII tokens match whole words only ("men" must not match "women")
    if token.isascii():
        return re.search(rf"\b{re.escape(token)}\b", text, re.IGNORECASE) is not None
    return token in text


def parse_category(value: str) -> Category:
    """
    Parse a category from its enum value or department label.

    Raises:
        ValueError: If the value names no known category
    """
    if isinstance(value, Category):
        return value
    normalized = (value or "").strip()
    for category in Category:
        if normalized.upper() == category.value or normalized == category.label:
            return category
    raise ValueError(f"Unknown category: {value!r}")


def category_matches(category: Category, text: Optional[str]) -> bool:
    """Substring-tolerant check of a product's category text against a category."""
    if not text:
        return False
    return any(_contains_token(text, token) for token in category.match_tokens)


def classify_category(text: Optional[str]) -> Optional[Category]:
    """First category whose tokens appear in the text, if any."""
    for category in Category:
        if category_matches(category, text):
            return category
    return None


def find_section_markers(texts: Iterable[str]) -> set:
    """Categories whose section markers appear in any of the texts."""
    found = set()
    for text in texts:
        for category in Category:
            if any(_contains_token(text, marker) for marker in category.section_markers):
                found.add(category)
    return found
