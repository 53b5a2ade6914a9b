"""Resort page scrapers."""
from __future__ import annotations

from .skiresortinfo import (
    parse_conditions,
    parse_lift_details,
    parse_resort_info,
    resort_urls,
    scrape_resort_conditions,
)

__all__ = [
    "parse_conditions",
    "parse_lift_details",
    "parse_resort_info",
    "resort_urls",
    "scrape_resort_conditions",
]
