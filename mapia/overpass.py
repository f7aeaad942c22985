# --- nearby infrastructure from the OpenStreetMap Overpass API ---
import logging
import math
import re

import pandas as pd

from mapia import config
from mapia.http import fetch_json, source_ref, tool_result

logger = logging.getLogger(__name__)

# tag keys checked in priority order when labelling an element
CATEGORY_KEYS = ("amenity", "highway", "railway", "public_transport", "shop", "tourism", "building")
MAIN_ROADS = re.compile(r"^(motorway|trunk|primary|secondary|tertiary)$")
STATIONS = re.compile(r"^(station|halt)$")


# haversine formula (great-circle distance in meters between 2 points)
def haversine(lat1, lon1, lat2, lon2):
    R = 6371000
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# POST a raw Overpass QL query and return its elements list
def overpass_query(query, timeout=None):
    data = fetch_json(
        config.OVERPASS_URL,
        method="POST",
        data=query.encode("utf-8"),
        headers={"Content-Type": "text/plain;charset=UTF-8"},
        timeout=timeout or config.overpass_timeout(),
    )
    elements = data.get("elements") if isinstance(data, dict) else None
    return elements if isinstance(elements, list) else []


def element_category(tags):
    for key in CATEGORY_KEYS:
        if tags.get(key):
            return f"{key}:{tags[key]}"
    return "other"


def _position(el):
    # nodes carry lat/lon, ways only a center when asked for "out center"
    if "lat" in el and "lon" in el:
        return el["lat"], el["lon"]
    center = el.get("center") or {}
    if "lat" in center and "lon" in center:
        return center["lat"], center["lon"]
    return None


def _count(values):
    # value_counts gives the per-key totals; dict for a JSON-friendly result
    if not values:
        return {}
    return {k: int(v) for k, v in pd.Series(values, dtype=object).value_counts().items()}


# category counts + closest named places around the point (used by /api/analyze)
def nearby_infrastructure(lat, lon, radius_m=800):
    clauses = "\n".join(f'  node(around:{radius_m},{lat},{lon})["{key}"];' for key in CATEGORY_KEYS)
    query = f"[out:json][timeout:25];\n(\n{clauses}\n);\nout center 60;"
    elements = overpass_query(query)

    counts = _count([element_category(el.get("tags") or {}) for el in elements])

    named = []
    for el in elements:
        tags = el.get("tags") or {}
        pos = _position(el)
        if not tags.get("name") or pos is None:
            continue
        named.append({
            "name": tags["name"],
            "category": element_category(tags),
            "distance_m": round(haversine(lat, lon, pos[0], pos[1])),
        })
    named.sort(key=lambda n: (n["distance_m"], n["name"]))

    return {"radius_m": radius_m, "total": len(elements), "counts": counts, "nearest": named[:5]}


# amenities / transport / main roads / parks summary, returned as a tool result
def urban_summary(lat, lon, radius_m=900):
    query = f"""[out:json][timeout:25];
(
  node(around:{radius_m},{lat},{lon})["amenity"];
  node(around:{radius_m},{lat},{lon})["highway"="bus_stop"];
  node(around:{radius_m},{lat},{lon})["railway"~"^(station|halt)$"];
  way(around:{radius_m},{lat},{lon})["highway"~"^(motorway|trunk|primary|secondary|tertiary)$"];
  way(around:{radius_m},{lat},{lon})["leisure"="park"];
);
out tags center 250;"""

    try:
        elements = overpass_query(query)
    except Exception as e:
        logger.warning("overpass urban summary failed: %s", e)
        return tool_result(
            False,
            error=str(e) or "Overpass query failed",
            source=source_ref("OpenStreetMap Overpass API", config.OVERPASS_URL),
            limitations=["The Overpass service may be saturated at peak hours."],
        )

    amenities, roads = [], []
    bus_stops = stations = parks = 0
    for el in elements:
        tags = el.get("tags") or {}
        if tags.get("amenity"):
            amenities.append(tags["amenity"])
        if tags.get("highway") == "bus_stop":
            bus_stops += 1
        if tags.get("railway") and STATIONS.match(tags["railway"]):
            stations += 1
        if tags.get("highway") and MAIN_ROADS.match(tags["highway"]):
            roads.append(tags["highway"])
        if tags.get("leisure") == "park":
            parks += 1

    amenity_counts = _count(amenities)
    road_counts = _count(roads)
    top_amenities = sorted(amenity_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:10]

    data = {
        "radius_m": radius_m,
        "counts": {
            "amenities_total": sum(amenity_counts.values()),
            "bus_stops": bus_stops,
            "stations": stations,
            "parks": parks,
            "roads_total": sum(road_counts.values()),
        },
        "top_amenities": [{"amenity": k, "count": v} for k, v in top_amenities],
        "transport": {"bus_stops": bus_stops, "stations": stations},
        "roads": [{"highway": k, "count": v} for k, v in sorted(road_counts.items())],
        "parks": parks,
        "raw_sample": [
            {"type": el.get("type"), "tags": el.get("tags"), "center": el.get("center")}
            for el in elements[:30]
        ],
    }
    return tool_result(
        True,
        data=data,
        source=source_ref("OpenStreetMap Overpass API", config.OVERPASS_URL,
                          "Vector query around the point (amenity/transport/roads/parks)."),
        limitations=[
            "Results depend on how complete OpenStreetMap is in this area.",
            f"Search radius: {radius_m}m. This is an OSM inventory, not an official urban analysis.",
        ],
    )
