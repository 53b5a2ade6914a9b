"""Pure helpers that turn scraped text fragments into typed values.

Every function accepts ``None`` or text without a match and returns ``None``
(or an empty :class:`OpenTotal`) instead of raising.
"""
from __future__ import annotations

import math
import re
from datetime import date
from typing import NamedTuple, Optional, Union

Number = Union[int, float]

_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_OF_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*(?:of|/)\s*(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE)
_PERCENT_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*%")
_ISO_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_DAY_MONTH_YEAR_RE = re.compile(r"\b(\d{1,2})\.?\s*([A-Za-z]{3})[A-Za-z]*\.?\s*(\d{4})")
_MONTH_DAY_YEAR_RE = re.compile(r"\b([A-Za-z]{3})[A-Za-z]*\.?\s*(\d{1,2}),?\s*(\d{4})")

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}


class OpenTotal(NamedTuple):
    open: Optional[Number]
    total: Optional[Number]


def parse_number(token: str) -> Number:
    """Parse a numeric token such as ``"1,070"`` or ``"144.4"``."""
    cleaned = token.replace(",", "")
    value = float(cleaned)
    if "." not in cleaned:
        return int(value)
    return value


def extract_number(text: Optional[str]) -> Optional[Number]:
    """Extract the first numeric value, honouring thousands separators."""
    if not text:
        return None
    match = _NUMBER_RE.search(text)
    return parse_number(match.group(0)) if match else None


def extract_of_pattern(text: Optional[str]) -> OpenTotal:
    """Parse ``"18 of 34"`` or ``"18/34"`` into ``OpenTotal(18, 34)``."""
    if not text:
        return OpenTotal(None, None)
    match = _OF_RE.search(text)
    if not match:
        return OpenTotal(None, None)
    return OpenTotal(parse_number(match.group(1)), parse_number(match.group(2)))


def extract_percentage(text: Optional[str]) -> Optional[Number]:
    if not text:
        return None
    match = _PERCENT_RE.search(text)
    return parse_number(match.group(1)) if match else None


def _format_date(year: int, month: Optional[int], day: int) -> Optional[str]:
    if month is None:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def extract_date(text: Optional[str]) -> Optional[str]:
    """Return the first date in ``text`` as ``YYYY-MM-DD``.

    ISO dates win; otherwise ``"14 Nov 2025"`` and ``"Nov 14, 2025"`` are
    recognised via the English month-name table.
    """
    if not text:
        return None

    iso = _ISO_DATE_RE.search(text)
    if iso:
        return iso.group(0)

    match = _DAY_MONTH_YEAR_RE.search(text)
    if match:
        formatted = _format_date(
            int(match.group(3)), MONTHS.get(match.group(2).lower()), int(match.group(1))
        )
        if formatted:
            return formatted

    match = _MONTH_DAY_YEAR_RE.search(text)
    if match:
        return _format_date(
            int(match.group(3)), MONTHS.get(match.group(1).lower()), int(match.group(2))
        )
    return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (``50.5 -> 51``)."""
    return math.floor(value + 0.5)


def cm_to_inches(cm: float, digits: int = 1) -> float:
    """Convert centimetres to inches rounded to ``digits`` decimals (0 for whole inches)."""
    factor = 10 ** digits
    return round_half_up(cm / 2.54 * factor) / factor


def meters_to_feet(meters: float) -> int:
    return round_half_up(meters * 3.281)


def km_to_miles(km: float) -> int:
    return round_half_up(km * 0.621)
