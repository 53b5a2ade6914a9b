from __future__ import annotations

from pathlib import Path
from typing import List

import yaml

from .errors import MissingCoordinates, ResortNotFound
from .models import Resort
from .storage import SlopeStore


def _slugify(name: str) -> str:
    return "-".join("".join(ch if ch.isalnum() else " " for ch in name.lower()).split())


def load_resorts(path: Path | str) -> List[Resort]:
    """Read a resort catalog from YAML (a list under ``resorts:``)."""

    data = yaml.safe_load(Path(path).read_text()) or {}
    resorts: List[Resort] = []
    for entry in data.get("resorts") or []:
        name = entry["name"]
        resorts.append(
            Resort(
                id=str(entry.get("id") or _slugify(name)),
                name=name,
                slug=entry.get("slug") or _slugify(name),
                state=entry.get("state", ""),
                latitude=entry.get("latitude"),
                longitude=entry.get("longitude"),
                timezone=entry.get("timezone"),
                skiresortinfo_id=entry.get("skiresortinfo_id"),
            )
        )
    return resorts


def seed_resorts(store: SlopeStore, resorts: List[Resort]) -> int:
    for resort in resorts:
        store.upsert_resort(resort)
    return len(resorts)


def resolve_resort(store: SlopeStore, slug: str, *, require_coordinates: bool = True) -> Resort:
    """Look a resort up by slug, raising the lookup errors the API maps to 4xx."""

    resort = store.get_resort_by_slug(slug)
    if resort is None:
        raise ResortNotFound(f"Resort not found: {slug}")
    if require_coordinates and not resort.has_coordinates:
        raise MissingCoordinates(f"Resort coordinates not available: {slug}")
    return resort
