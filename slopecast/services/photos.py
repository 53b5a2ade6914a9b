from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from slopecast.config import AppConfig, app_config
from slopecast.logging import get_logger

from ..cache import SnapshotCache
from ..errors import SlopecastError
from ..http_client import HttpFetcher, fetcher_scope
from ..models import Resort

logger = get_logger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
PHOTO_SOURCE = "unsplash"


class PhotoNotFound(SlopecastError):
    pass


def _photo_payload(photo: Dict[str, Any]) -> Dict[str, Any]:
    user = photo.get("user") or {}
    return {
        "unsplash_id": photo.get("id"),
        "image_url": (photo.get("urls") or {}).get("full"),
        "blur_hash": photo.get("blur_hash"),
        "alt_description": photo.get("alt_description"),
        "photographer_name": user.get("name"),
        "photographer_url": (user.get("links") or {}).get("html"),
        "unsplash_link": (photo.get("links") or {}).get("html"),
    }


async def search_unsplash(query: str, api_key: str, *, fetcher: HttpFetcher) -> Optional[Dict[str, Any]]:
    response = await fetcher.get(
        UNSPLASH_SEARCH_URL,
        params={"query": query, "orientation": "landscape", "per_page": 1},
        headers={"Authorization": f"Client-ID {api_key}"},
    )
    if not response.is_success:
        logger.warning("photos.search_failed", query=query, status_code=response.status_code)
        return None
    results = response.json().get("results") or []
    return results[0] if results else None


async def get_resort_photo(
    cache: SnapshotCache,
    resort: Resort,
    *,
    fetcher: Optional[HttpFetcher] = None,
    config: Optional[AppConfig] = None,
) -> Optional[Dict[str, Any]]:
    """A landscape photo for the resort, cached for a week.

    Searches for the resort by name first, then for its state. Returns
    ``None`` without an API key, when nothing is found, or on any lookup
    failure; misses are not cached.
    """
    config = config or app_config
    api_key = config.api.unsplash_api_key
    if not api_key:
        return None

    async def fetch() -> Dict[str, Any]:
        async with fetcher_scope(fetcher) as http:
            photo = await search_unsplash(f"{resort.name} snow mountain", api_key, fetcher=http)
            if photo is None:
                photo = await search_unsplash(f"{resort.state} snowy mountain landscape", api_key, fetcher=http)
        if photo is None:
            raise PhotoNotFound(resort.slug)
        return _photo_payload(photo)

    try:
        result = await cache.get_or_fetch(resort.id, PHOTO_SOURCE, fetch, ttl=config.cache.photo_ttl)
    except PhotoNotFound:
        logger.info("photos.not_found", resort_id=resort.id)
        return None
    except (httpx.HTTPError, ValueError, AttributeError) as exc:
        logger.warning("photos.lookup_failed", resort_id=resort.id, error=str(exc))
        return None
    return result.payload
