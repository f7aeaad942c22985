# --- official flood-zone layers (MITECO Q100 + IDEE INSPIRE) ---
import json
import logging
import re
from urllib.parse import urlencode

from mapia import config
from mapia.http import UpstreamError, fetch_text, source_ref, tool_result
from mapia.wms import (
    feature_info_attempts,
    layer_names,
    negotiate_feature_info,
    web_mercator_bbox,
)

logger = logging.getLogger(__name__)

Q100_HALF_SIZE_DEG = 0.0007  # ~75m around the point
Q100_INFO_FORMATS = (
    "application/json",
    "application/geo+json",
    "application/geojson",
    "text/plain",
    "text/html",
)
IDEE_LAYER_HINT = re.compile(r"ARPSI|PELIG|RIESG|INUND|ZONA|ZI", re.I)


# is the point inside the statistical T=100 flood zone?
def q100_feature_info(lat, lon):
    attempts = feature_info_attempts(
        config.Q100_WMS_URL, config.Q100_LAYER, lat, lon, Q100_HALF_SIZE_DEG, Q100_INFO_FORMATS
    )
    result = negotiate_feature_info(attempts, snippet_len=240)
    result.pop("feature_info", None)  # the decision is what callers need
    result["layer"] = config.Q100_LAYER
    result["note"] = (
        "The point returns GetFeatureInfo data on the Q100 layer."
        if result["inside"]
        else "No GetFeatureInfo match on the Q100 layer at this point."
    )
    return result


def pick_flood_layer(names):
    preferred = next((n for n in names if IDEE_LAYER_HINT.search(n)), None)
    return preferred or (names[0] if names else None)


def _idee_feature_info_url(layer, lat, lon, span_m=500):
    minx, miny, maxx, maxy = web_mercator_bbox(lat, lon, span_m)
    params = {
        "SERVICE": "WMS", "VERSION": "1.3.0", "REQUEST": "GetFeatureInfo",
        "CRS": "EPSG:3857",
        "BBOX": f"{minx},{miny},{maxx},{maxy}",
        "WIDTH": 101, "HEIGHT": 101, "I": 50, "J": 50,
        "LAYERS": layer, "QUERY_LAYERS": layer,
        "INFO_FORMAT": "application/json",
    }
    return f"{config.IDEE_FLOOD_WMS_URL}?{urlencode(params)}"


# discover a flood layer from capabilities, then query it at the point
def idee_flood_info(lat, lon):
    wms_url = config.IDEE_FLOOD_WMS_URL
    capabilities_url = f"{wms_url}?service=WMS&request=GetCapabilities"
    source = source_ref("IDEE WMS Inundaciones", wms_url)

    try:
        status, _, caps_xml = fetch_text(capabilities_url, timeout=config.capabilities_timeout())
        if not 200 <= status < 300:
            raise UpstreamError(f"HTTP {status} :: {caps_xml[:200]}", status=status)
    except UpstreamError as e:
        logger.warning("IDEE capabilities failed: %s", e)
        return tool_result(False, error=str(e) or "IDEE flood WMS request failed", source=source,
                           limitations=["The WMS may be down or temporarily blocked."])

    layer_used = pick_flood_layer(layer_names(caps_xml))
    if not layer_used:
        return tool_result(
            True,
            data={"wms_url": wms_url,
                  "note": "GetCapabilities returned no usable layers. Service reachable, no layers detected."},
            source=source_ref("IDEE WMS Inundaciones", capabilities_url),
            limitations=["No layers could be detected from GetCapabilities."],
        )

    try:
        status, content_type, raw = fetch_text(_idee_feature_info_url(layer_used, lat, lon))
    except UpstreamError as e:
        return tool_result(
            True,
            data={"wms_url": wms_url, "layer_used": layer_used,
                  "note": "Service reachable, but GetFeatureInfo failed for the selected layer."},
            source=source,
            limitations=[str(e) or "GetFeatureInfo failed"],
        )

    if 200 <= status < 300 and "application/json" in content_type:
        try:
            feature_info = json.loads(raw)
        except ValueError:
            feature_info = None
        if feature_info is not None:
            return tool_result(
                True,
                data={"wms_url": wms_url, "layer_used": layer_used, "feature_info": feature_info,
                      "note": "GetFeatureInfo answered in JSON. It may be empty when the layer has no entity at the point."},
                source=source,
                limitations=["GetFeatureInfo may come back empty even with nearby mapping (depends on layer and scale)."],
            )

    # non-JSON answer, keep a snippet for traceability
    return tool_result(
        True,
        data={"wms_url": wms_url, "layer_used": layer_used, "raw_text_snippet": raw[:600],
              "note": "GetFeatureInfo answered in a non-JSON format or without entities. Snippet attached."},
        source=source,
        limitations=["The WMS may not offer JSON GetFeatureInfo for some layers."],
    )
