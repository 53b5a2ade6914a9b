"""Scraper for skiresort.info resort pages.

The site has no stable markup, so every field is pulled from the flattened
page text with an ordered list of patterns. A field that no pattern matches
stays ``None``; only a failed fetch of the main page yields no result.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import replace
from typing import Optional, Tuple

import httpx

from slopecast.config import app_config
from slopecast.logging import get_logger

from ..http_client import HttpFetcher, fetcher_scope
from ..models import ScrapedConditions, ScrapedResortInfo, ScrapeResult
from .base import (
    FieldPattern,
    as_date,
    as_date_pair,
    as_float,
    as_float_pair,
    as_int,
    as_int_pair,
    as_stripped,
    as_stripped_pair,
    contains_phrase,
    first_match,
    page_text,
    pattern,
    sum_matches,
)

logger = get_logger(__name__)

_NUM = r"(\d[\d,]*)"
_DECIMAL = r"(\d[\d,]*(?:\.\d+)?)"
_TIME = r"(\d{1,2}:\d{2}\s*(?:[ap]\.?m\.?)?)"
_TEXT_DATE = r"(\d{1,2}\.?\s*[A-Za-z]{3,9}\.?\s*\d{4}|[A-Za-z]{3,9}\.?\s*\d{1,2},?\s*\d{4})"

# Snow depth (cm)

SUMMIT_DEPTH = (
    pattern(r"\b(?:summit|top|peak)\b.{0,60}?\b(\d+)\s*cm\b", as_int()),
    pattern(r"\b(\d+)\s*cm\b.{0,60}?\b(?:summit|top|peak)\b", as_int()),
)

BASE_DEPTH = (
    pattern(r"\b(?:base|valley|bottom)\b.{0,60}?\b(\d+)\s*cm\b", as_int()),
    pattern(r"\b(\d+)\s*cm\b.{0,60}?\b(?:base|valley|bottom)\b", as_int()),
)

NEW_SNOW_24H = (
    pattern(r"\b(?:last\s*)?24\s*h(?:ours?|rs?)?\b[:\s]*(\d+)\s*cm\b", as_int()),
    pattern(r"\btoday\b[:\s]*(\d+)\s*cm\b", as_int()),
)

NEW_SNOW_48H = (
    pattern(r"\b(?:last\s*)?48\s*h(?:ours?|rs?)?\b[:\s]*(\d+)\s*cm\b", as_int()),
    pattern(r"\b(?:last\s*)?2\s*days?\b[:\s]*(\d+)\s*cm\b", as_int()),
)

NEW_SNOW_7D = (
    pattern(r"\b(?:last\s*)?7\s*days?\b[:\s]*(\d+)\s*cm\b", as_int()),
    pattern(r"\b(?:past|last)\s*week\b[:\s]*(\d+)\s*cm\b", as_int()),
)

# Lifts, runs, terrain

LIFTS_OPEN_TOTAL = (
    pattern(r"\b(\d+)\s*(?:of|/)\s*(\d+)\s*(?:ski\s*)?lifts?\b", as_int_pair()),
    pattern(r"\blifts?\s*(?:open)?[:\s]*(\d+)\s*(?:of|/)\s*(\d+)\b", as_int_pair()),
)

RUNS_OPEN_TOTAL = (
    pattern(r"\b(\d+)\s*(?:of|/)\s*(\d+)\s*(?:ski\s*)?(?:runs?|slopes?|pistes?|trails?)\b", as_int_pair()),
    pattern(r"\b(?:runs?|trails?)\s*open[:\s]*(\d+)\s*(?:of|/)\s*(\d+)\b", as_int_pair()),
)

TERRAIN_OPEN_TOTAL = (
    pattern(rf"{_DECIMAL}\s*(?:of|/)\s*{_DECIMAL}\s*km\b", as_float_pair()),
)

TERRAIN_OPEN_PCT = (
    pattern(r"\b(\d+)\s*%\s*open\b", as_int()),
    pattern(r"\bopen\s*(?:terrain|slopes)?[:\s]*(\d+)\s*%", as_int()),
)

# Season, snowfall date, hours

SEASON = (
    pattern(r"(\d{4}-\d{2}-\d{2})\s*(?:to|-|–)\s*(\d{4}-\d{2}-\d{2})", as_date_pair()),
    pattern(rf"\bseason\b.{{0,40}}?{_TEXT_DATE}\s*(?:to|-|–)\s*{_TEXT_DATE}", as_date_pair()),
)

LAST_SNOWFALL = (
    pattern(r"\blast\s*snow(?:fall)?\b[:\s]*(\d{4}-\d{2}-\d{2})", as_date()),
    pattern(rf"\blast\s*snow(?:fall)?\b[:\s]*{_TEXT_DATE}", as_date()),
)

OPERATING_HOURS = (
    pattern(rf"\b(?:operating\s*times?|opening\s*hours?|hours)\b[:\s]*{_TIME}\s*(?:-|–|to)\s*{_TIME}", as_stripped_pair()),
    pattern(rf"{_TIME}\s*(?:-|–)\s*{_TIME}", as_stripped_pair()),
)

FIRST_CHAIR = (pattern(rf"\bfirst\s*chair\b[:\s]*{_TIME}", as_stripped()),)
LAST_CHAIR = (pattern(rf"\blast\s*chair\b[:\s]*{_TIME}", as_stripped()),)

# Multi-word labels come first so "Packed Powder" is not reported as "Powder".
SURFACE_CONDITIONS = (
    "Machine Groomed",
    "Packed Powder",
    "Loose Granular",
    "Frozen Granular",
    "Spring Conditions",
    "Powder",
    "Hardpack",
    "Variable",
    "Ice",
)

# Static resort info

ELEVATION = (
    pattern(
        rf"{_NUM}\s*m\s*(?:-|–)\s*{_NUM}\s*m\s*\((?:difference|diff\.?)\s*{_NUM}\s*m\)",
        lambda m: (as_int(1)(m), as_int(2)(m), as_int(3)(m)),
    ),
    pattern(
        rf"\belevation\b[^\d]{{0,30}}{_NUM}\s*m\s*(?:-|–)\s*{_NUM}\s*m\b",
        lambda m: (as_int(1)(m), as_int(2)(m), None),
    ),
)

TERRAIN_TOTAL = (
    pattern(rf"\b(?:total|slopes?)\b[:\s]*{_DECIMAL}\s*km\b", as_float()),
    pattern(rf"\b{_DECIMAL}\s*km\s*(?:of\s*)?(?:slopes?|pistes?|runs?|terrain)\b", as_float()),
)

LIFTS_TOTAL = (
    pattern(r"\b\d+\s*(?:of|/)\s*(\d+)\s*(?:ski\s*)?lifts?\b", as_int()),
    pattern(r"\b(?:number\s*of|total)\s*(?:ski\s*)?lifts?\b[:\s]*(\d+)\b", as_int()),
    pattern(r"\b(?:ski\s*)?lifts\s*:\s*(\d+)\b(?!\s*(?:of|/))", as_int()),
)

RUNS_TOTAL = (
    pattern(r"\b\d+\s*(?:of|/)\s*(\d+)\s*(?:ski\s*)?(?:runs|trails|pistes|slopes)\b", as_int()),
    pattern(r"\b(\d+)\s*(?:ski\s*)?(?:runs|trails|pistes)\b", as_int()),
)

DIFFICULTY_TIERS = {
    "easy": r"easy",
    "intermediate": r"intermediate",
    "difficult": r"difficult",
}

# Lift page: detailed per-model entries ("2 6pers. High speed chairlift (detachable)")
# and the summary list in the meta description ("Chairlift (21)").

HIGH_SPEED_DETAILED = (
    re.compile(r"\b(\d+)\s+\d+\s*pers\.?\s*high\s*speed\s*chairlift\s*\(detachable\)", re.IGNORECASE),
)
FIXED_GRIP_DETAILED = (
    re.compile(r"\b(\d+)\s+\d+\s*pers\.?\s*chairlift\s*\(fixed[- ]?grip\)", re.IGNORECASE),
)
CHAIRLIFT_SUMMARY = (pattern(r"(?:^|[,;])\s*chairlift\s*\((\d+)\)", as_int()),)

GONDOLA_SUMMARY = (
    pattern(r"\bcirculating\s*ropeway\s*/\s*gondola\s*lift\s*\((\d+)\)", as_int()),
    pattern(r"\bgondola\s*(?:lift)?\s*\((\d+)\)", as_int()),
)
GONDOLA_DETAILED = (
    re.compile(r"\b(\d+)\s+(?:\d+\s*pers\.?\s*)?circulating\s*ropeway\s*/\s*gondola\s*lift\b", re.IGNORECASE),
)

SURFACE_SUMMARY = (
    pattern(r"\bt[- ]?bar\s*lift\s*/\s*platter\s*/\s*button\s*lift\s*\((\d+)\)", as_int()),
    pattern(r"\bsurface\s*lifts?\s*\((\d+)\)", as_int()),
)
SURFACE_DETAILED = (
    re.compile(r"\b(\d+)\s+t[- ]?bar\s*lift\s*/\s*platter\s*/\s*button\s*lift\b", re.IGNORECASE),
)

CARPET_SUMMARY = (
    pattern(r"\bpeople\s*mover\s*/\s*moving\s*carpet\s*\((\d+)\)", as_int()),
    pattern(r"\b(?:moving|magic)\s*carpet\s*\((\d+)\)", as_int()),
)
CARPET_DETAILED = (
    re.compile(r"\b(\d+)\s+(?:people\s*mover\s*/\s*)?(?:moving|magic)\s*carpet\b", re.IGNORECASE),
)


def resort_urls(upstream_id: str, base_url: str | None = None) -> Tuple[str, str]:
    base = (base_url or app_config.scraper.base_url).rstrip("/")
    resort_url = f"{base}/ski-resort/{upstream_id}/"
    return resort_url, f"{resort_url}ski-lifts/"


def looks_open(text: str) -> bool:
    """Best-effort open/closed signal.

    True for an explicit "resort is open" phrase, or when the page mentions
    lifts alongside an "X of Y" fraction that is not "0 of". Unrelated page
    text can trip the second branch, so treat the result as a hint.
    """
    if "resort is open" in text:
        return True
    return "lifts" in text and " of " in text and "0 of" not in text


def _difficulty(text: str, label: str) -> Tuple[Optional[float], Optional[int]]:
    regex = re.compile(
        rf"\b{label}\b.{{0,40}}?{_DECIMAL}\s*km.{{0,20}}?\((\d+)\s*%\)", re.IGNORECASE
    )
    match = regex.search(text)
    if not match:
        return None, None
    return as_float(1)(match), int(match.group(2))


def parse_conditions(text: str) -> ScrapedConditions:
    lifts_open, lifts_total = first_match(text, LIFTS_OPEN_TOTAL) or (None, None)
    runs_open, runs_total = first_match(text, RUNS_OPEN_TOTAL) or (None, None)
    terrain_open, terrain_total = first_match(text, TERRAIN_OPEN_TOTAL) or (None, None)
    season_start, season_end = first_match(text, SEASON) or (None, None)

    first_chair = first_match(text, FIRST_CHAIR)
    last_chair = first_match(text, LAST_CHAIR)
    if first_chair is None or last_chair is None:
        hours = first_match(text, OPERATING_HOURS)
        if hours:
            first_chair = first_chair or hours[0]
            last_chair = last_chair or hours[1]

    return ScrapedConditions(
        snow_depth_summit=first_match(text, SUMMIT_DEPTH),
        snow_depth_base=first_match(text, BASE_DEPTH),
        new_snow_24h=first_match(text, NEW_SNOW_24H),
        new_snow_48h=first_match(text, NEW_SNOW_48H),
        new_snow_7d=first_match(text, NEW_SNOW_7D),
        lifts_open=lifts_open,
        lifts_total=lifts_total,
        runs_open=runs_open,
        runs_total=runs_total,
        terrain_open_km=terrain_open,
        terrain_total_km=terrain_total,
        terrain_open_pct=first_match(text, TERRAIN_OPEN_PCT),
        is_open=looks_open(text),
        season_start=season_start,
        season_end=season_end,
        last_snowfall=first_match(text, LAST_SNOWFALL),
        conditions=contains_phrase(text, SURFACE_CONDITIONS),
        first_chair=first_chair,
        last_chair=last_chair,
    )


def parse_resort_info(text: str) -> ScrapedResortInfo:
    info = ScrapedResortInfo()

    elevation = first_match(text, ELEVATION)
    if elevation:
        base, summit, vertical = elevation
        info.elevation_base = base
        info.elevation_summit = summit
        if vertical is None and summit > base:
            vertical = summit - base
        info.vertical_drop = vertical

    info.terrain_total_km = first_match(text, TERRAIN_TOTAL)
    for tier, label in DIFFICULTY_TIERS.items():
        km, pct = _difficulty(text, label)
        setattr(info, f"terrain_{tier}_km", km)
        setattr(info, f"terrain_{tier}_pct", pct)

    info.lifts_total = first_match(text, LIFTS_TOTAL)
    info.runs_total = first_match(text, RUNS_TOTAL)
    return info


def parse_lift_details(text: str, info: ScrapedResortInfo) -> ScrapedResortInfo:
    """Fill the lift-type counts from the ski-lifts page text.

    A generic "Chairlift (n)" summary is credited to high-speed chairs only
    when the page lists no detailed chairlift entries at all.
    """
    high_speed = sum_matches(text, HIGH_SPEED_DETAILED)
    fixed_grip = sum_matches(text, FIXED_GRIP_DETAILED)
    if high_speed is None and fixed_grip is None:
        high_speed = first_match(text, CHAIRLIFT_SUMMARY)

    gondolas = first_match(text, GONDOLA_SUMMARY)
    if gondolas is None:
        gondolas = sum_matches(text, GONDOLA_DETAILED)
    surface = first_match(text, SURFACE_SUMMARY)
    if surface is None:
        surface = sum_matches(text, SURFACE_DETAILED)
    carpets = first_match(text, CARPET_SUMMARY)
    if carpets is None:
        carpets = sum_matches(text, CARPET_DETAILED)

    updated = replace(
        info,
        lifts_gondolas=gondolas,
        lifts_chairlifts_high_speed=high_speed,
        lifts_chairlifts_fixed_grip=fixed_grip,
        lifts_surface=surface,
        lifts_carpets=carpets,
    )
    if updated.lifts_total is None:
        updated.lifts_total = updated.lift_component_total()
    return updated


async def scrape_resort_conditions(
    upstream_id: str,
    *,
    fetcher: HttpFetcher | None = None,
    base_url: str | None = None,
    trace_id: str | None = None,
) -> Optional[ScrapeResult]:
    """Scrape conditions and static info for one resort.

    Returns ``None`` when the main page cannot be fetched. A failed ski-lifts
    page only leaves the lift-type counts empty.
    """
    trace_id = trace_id or uuid.uuid4().hex
    resort_url, lifts_url = resort_urls(upstream_id, base_url)
    headers = {"Accept": "text/html,application/xhtml+xml"}

    async with fetcher_scope(
        fetcher,
        timeout=app_config.scraper.timeout,
        user_agent=app_config.scraper.user_agent,
    ) as http:
        logger.info("scrape.request", trace_id=trace_id, upstream_id=upstream_id, url=resort_url)
        try:
            response = await http.get(resort_url, headers=headers, trace_id=trace_id)
        except httpx.HTTPError as exc:
            logger.error("scrape.failure", trace_id=trace_id, upstream_id=upstream_id, error=str(exc))
            return None
        if not response.is_success:
            logger.error(
                "scrape.failure",
                trace_id=trace_id,
                upstream_id=upstream_id,
                status_code=response.status_code,
            )
            return None

        text = page_text(response.text)
        conditions = parse_conditions(text)
        info = parse_resort_info(text)

        try:
            lifts_response = await http.get(lifts_url, headers=headers, trace_id=trace_id)
        except httpx.HTTPError as exc:
            logger.warning("scrape.lifts_failure", trace_id=trace_id, upstream_id=upstream_id, error=str(exc))
        else:
            if lifts_response.is_success:
                info = parse_lift_details(page_text(lifts_response.text), info)
            else:
                logger.warning(
                    "scrape.lifts_failure",
                    trace_id=trace_id,
                    upstream_id=upstream_id,
                    status_code=lifts_response.status_code,
                )

    logger.info(
        "scrape.success",
        trace_id=trace_id,
        upstream_id=upstream_id,
        lifts_open=conditions.lifts_open,
        lifts_total=info.lifts_total,
        is_open=conditions.is_open,
    )
    return ScrapeResult(conditions=conditions, info=info)


__all__ = [
    "FieldPattern",
    "looks_open",
    "parse_conditions",
    "parse_lift_details",
    "parse_resort_info",
    "resort_urls",
    "scrape_resort_conditions",
]
