"""Ski resort condition scraping and multi-model snow forecast ingestion."""

from .cache import SnapshotCache
from .ingest import IngestionOrchestrator, IngestionSummary
from .models import Resort, ScrapedConditions, ScrapedResortInfo, ScrapeResult
from .scrapers import scrape_resort_conditions
from .storage import SlopeStore
from .weather import fetch_all_models, fetch_all_models_hourly

__all__ = [
    "IngestionOrchestrator",
    "IngestionSummary",
    "Resort",
    "ScrapeResult",
    "ScrapedConditions",
    "ScrapedResortInfo",
    "SlopeStore",
    "SnapshotCache",
    "fetch_all_models",
    "fetch_all_models_hourly",
    "scrape_resort_conditions",
]
