"""Point analysis: fetch every source, merge what arrived, ask for the report.

Each source is fetched independently. A failing source never aborts the
analysis: its block stays ``None`` and a limitation string explains why, so the
report can only ever be written from data that was actually received.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import openai

from mapia import config
from mapia.air_quality import current_air_quality
from mapia.efas import efas_feature_info
from mapia.flood import q100_feature_info
from mapia.geocoding import as_number, geocode
from mapia.http import source_ref
from mapia.overpass import nearby_infrastructure
from mapia.report import ReportError, build_model_payload, generate_report
from mapia.risk import dynamic_flood_risk
from mapia.weather import current_weather

logger = logging.getLogger(__name__)


class InvalidRequest(Exception):
    pass


def _valid_coords(lat, lon):
    return lat is not None and lon is not None and -90 <= lat <= 90 and -180 <= lon <= 180


def resolve_coords(body):
    """Return ``(coords, source, limitations)`` for an analyze request body.

    Explicit coordinates win over the address; the address is then only a label.
    """
    address = body.get("address")
    address = address.strip() if isinstance(address, str) else ""
    lat = as_number(body.get("lat"))
    lon = as_number(body.get("lon"))

    if lat is not None and lon is not None:
        if not _valid_coords(lat, lon):
            raise InvalidRequest("lat must be within [-90, 90] and lon within [-180, 180].")
        return {"lat": lat, "lon": lon, "label": address or None}, None, []

    if not address:
        raise InvalidRequest("Send an address or (lat, lon).")

    coords = geocode(address)  # GeocodeNotFound / UpstreamError go to the caller
    return (
        coords,
        source_ref("OpenStreetMap Nominatim", config.NOMINATIM_SEARCH_URL, "geocoding"),
        ["Location based on the first Nominatim match (limit=1)."],
    )


# --- per-source wrappers: (data, source, extra limitations) ---

def _urban(lat, lon):
    return (nearby_infrastructure(lat, lon),
            source_ref("OpenStreetMap Overpass API", config.OVERPASS_URL, "nearby infrastructure / POIs"),
            [])


def _weather(lat, lon):
    return (current_weather(lat, lon),
            source_ref("OpenWeather Current", config.OPENWEATHER_CURRENT_URL, "data/2.5/weather"),
            [])


def _air_quality(lat, lon):
    return (current_air_quality(lat, lon),
            source_ref("OpenWeather Air Pollution", config.OPENWEATHER_AIR_URL, "data/2.5/air_pollution"),
            [])


def _flood_q100(lat, lon):
    check = q100_feature_info(lat, lon)
    return (check,
            source_ref("MITECO/SNCZI WMS ZI_LaminasQ100", config.Q100_WMS_URL,
                       f"{config.Q100_LAYER} GetFeatureInfo ({check['attempt']})"),
            [])


def _efas(lat, lon, layer, when):
    result = efas_feature_info(lat, lon, layer, time=when)
    return result["data"], result["source"], result["limitations"]


OPENWEATHER_MISSING = "OPENWEATHER_API_KEY missing: no current weather or air quality."


def _openweather_missing(lat, lon):
    return None, None, [OPENWEATHER_MISSING]


def _fetch_plan(body, lat, lon):
    # fixed order: limitations and sources are reported in this order
    plan = [("urban", _urban, (lat, lon), "Could not fetch nearby infrastructure (Overpass).")]
    if config.openweather_api_key():
        plan.append(("weather", _weather, (lat, lon), "Could not fetch current weather (OpenWeather)."))
        plan.append(("air_quality", _air_quality, (lat, lon), "Could not fetch current air quality (OpenWeather)."))
    else:
        plan.append(("weather", _openweather_missing, (lat, lon), OPENWEATHER_MISSING))
    plan.append(("flood_q100", _flood_q100, (lat, lon), "Could not query the Q100 layer (WMS GetFeatureInfo)."))
    efas_layer = body.get("efas_layer")
    efas_layer = efas_layer.strip() if isinstance(efas_layer, str) else ""
    if efas_layer:
        plan.append(("efas", _efas, (lat, lon, efas_layer, body.get("efas_time") or None),
                     "Could not query Copernicus EFAS (WMS GetFeatureInfo)."))
    return plan


def run_analysis(body):
    started = time.monotonic()
    coords, geo_source, limitations = resolve_coords(body)
    sources = [geo_source] if geo_source else []
    lat, lon = coords["lat"], coords["lon"]

    blocks = {"urban": None, "weather": None, "air_quality": None,
              "flood_q100": None, "dynamic_flood_risk": None, "efas": None}
    # the sources are independent, fetch them in parallel
    plan = _fetch_plan(body, lat, lon)
    pool = ThreadPoolExecutor(max_workers=len(plan))
    futures = [(name, pool.submit(fn, *args), failure) for name, fn, args, failure in plan]
    for name, future, failure in futures:
        try:
            data, source, extra = future.result()
        except Exception as e:
            logger.warning("source %s failed: %s", name, e)
            limitations.append(failure)
            continue
        if data is not None:
            blocks[name] = data
        if source:
            sources.append(source)
        limitations.extend(extra)
    pool.shutdown(wait=False)

    # Q100 membership + real rain; rain may be unknown
    if blocks["flood_q100"] is not None:
        weather = blocks["weather"] or {}
        blocks["dynamic_flood_risk"] = dynamic_flood_risk(
            blocks["flood_q100"]["inside"], weather.get("rain_1h_mm"))

    report = ""
    if not config.openai_api_key():
        limitations.append("OPENAI_API_KEY missing: the AI report could not be generated.")
    else:
        payload = build_model_payload(coords, blocks, sources, limitations)
        try:
            report = generate_report(payload)
        except (openai.OpenAIError, config.MissingConfigError, ReportError) as e:
            logger.warning("report generation failed: %s", e)
            limitations.append("The AI report could not be generated (language model error).")

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info("analysis at %.5f,%.5f done in %d ms with %d limitations",
                lat, lon, elapsed_ms, len(limitations))
    return {
        "ok": True,
        "coords": coords,
        **blocks,
        "sources": sources,
        "limitations": limitations,
        "report": report,
        "meta": {"ms": elapsed_ms, "at": datetime.now(timezone.utc).isoformat()},
    }
