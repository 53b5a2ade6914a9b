"""Building blocks for regex-driven scrapers.

Each field is described by an ordered tuple of :class:`FieldPattern` objects;
the first pattern that matches wins. Adding or reordering a fallback is a
change to the tuple, not to the parsing code.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from ..extraction import extract_date, parse_number

Extractor = Callable[[re.Match[str]], Any]


def create_soup(html: str) -> BeautifulSoup:
    """Create a BeautifulSoup parser from HTML content."""
    return BeautifulSoup(html, "lxml")


def page_text(html: str) -> str:
    """Flatten a page to one whitespace-collapsed string.

    The meta description comes first because some pages only publish their
    summaries (e.g. lift counts per type) there.
    """
    soup = create_soup(html)
    parts = []
    for meta in soup.find_all("meta", attrs={"name": "description"}):
        content = meta.get("content")
        if content:
            parts.append(content)
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    parts.append(soup.get_text(" ", strip=True))
    return re.sub(r"\s+", " ", " ".join(parts)).strip()


@dataclass(frozen=True)
class FieldPattern:
    regex: re.Pattern[str]
    extract: Extractor

    def apply(self, text: str) -> Any:
        match = self.regex.search(text)
        if not match:
            return None
        return self.extract(match)


def pattern(expr: str, extract: Extractor, flags: int = re.IGNORECASE) -> FieldPattern:
    return FieldPattern(re.compile(expr, flags), extract)


def first_match(text: str, patterns: Sequence[FieldPattern]) -> Any:
    """Return the value of the first pattern that matches and extracts successfully."""
    for field_pattern in patterns:
        value = field_pattern.apply(text)
        if value is not None:
            return value
    return None


def sum_matches(text: str, patterns: Sequence[re.Pattern[str]]) -> Optional[int]:
    """Sum group 1 over every match of the first pattern that matches at all."""
    for regex in patterns:
        counts = [int(match.group(1)) for match in regex.finditer(text)]
        if counts:
            return sum(counts)
    return None


def contains_phrase(text: str, vocabulary: Sequence[str]) -> Optional[str]:
    """Return the first vocabulary entry present as whole words in ``text``."""
    for phrase in vocabulary:
        if re.search(rf"\b{re.escape(phrase)}\b", text, re.IGNORECASE):
            return phrase
    return None


# Extractors


def as_int(group: int = 1) -> Extractor:
    return lambda match: int(parse_number(match.group(group)))


def as_float(group: int = 1) -> Extractor:
    return lambda match: float(parse_number(match.group(group)))


def as_int_pair(first: int = 1, second: int = 2) -> Callable[[re.Match[str]], Tuple[int, int]]:
    return lambda match: (int(parse_number(match.group(first))), int(parse_number(match.group(second))))


def as_float_pair(first: int = 1, second: int = 2) -> Callable[[re.Match[str]], Tuple[float, float]]:
    return lambda match: (float(parse_number(match.group(first))), float(parse_number(match.group(second))))


def as_stripped(group: int = 1) -> Extractor:
    return lambda match: match.group(group).strip()


def as_stripped_pair(first: int = 1, second: int = 2) -> Callable[[re.Match[str]], Tuple[str, str]]:
    return lambda match: (match.group(first).strip(), match.group(second).strip())


def as_date(group: int = 1) -> Extractor:
    return lambda match: extract_date(match.group(group))


def as_date_pair(first: int = 1, second: int = 2) -> Callable[[re.Match[str]], Optional[Tuple[str, str]]]:
    def extract(match: re.Match[str]) -> Optional[Tuple[str, str]]:
        start = extract_date(match.group(first))
        end = extract_date(match.group(second))
        if start and end:
            return start, end
        return None

    return extract
