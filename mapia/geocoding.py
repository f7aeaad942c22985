# --- address search via OpenStreetMap Nominatim ---
import logging
import math

from mapia import config
from mapia.http import UpstreamError, fetch_json

logger = logging.getLogger(__name__)


class GeocodeNotFound(UpstreamError):
    pass


def as_number(value):
    # float() accepts "nan"/"inf", which are not coordinates
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _headers():
    return {
        "User-Agent": config.nominatim_user_agent(),  # Nominatim policy requires an identifying UA
        "Accept-Language": "es",
        "Accept": "application/json",
    }


def _search(query, limit):
    results = fetch_json(
        config.NOMINATIM_SEARCH_URL,
        params={"format": "json", "limit": limit, "q": query},
        headers=_headers(),
    )
    return results if isinstance(results, list) else []


# convert an address string to {"lat", "lon", "label"} using the best match
def geocode(address):
    results = _search(address, 1)
    if not results:
        raise GeocodeNotFound(f"No coordinates found for address: {address}", status=404)
    item = results[0]  # take the best match
    lat = as_number(item.get("lat"))
    lon = as_number(item.get("lon"))
    if lat is None or lon is None:
        raise UpstreamError("Invalid response from Nominatim")
    return {"lat": lat, "lon": lon, "label": item.get("display_name") or address}


# autocomplete list for the search box, at most `limit` usable matches
def suggest(query, limit=5):
    query = (query or "").strip()
    if not query:
        return []
    suggestions = []
    for item in _search(query, limit):
        lat = as_number(item.get("lat"))
        lon = as_number(item.get("lon"))
        if lat is None or lon is None:
            continue  # skip entries we cannot place on the map
        suggestions.append({"label": str(item.get("display_name") or query), "lat": lat, "lon": lon})
    logger.debug("nominatim suggest returned %d usable matches", len(suggestions))
    return suggestions
