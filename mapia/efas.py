# --- Copernicus EFAS (European Flood Awareness System) WMS ---
import logging

from mapia import config
from mapia.http import UpstreamError, fetch_text, source_ref, tool_result
from mapia.wms import (
    extract_time_dimension,
    feature_info_attempts,
    negotiate_feature_info,
    parse_capabilities_layers,
)

logger = logging.getLogger(__name__)

EFAS_HALF_SIZE_DEG = 0.0009
EFAS_INFO_FORMATS = ("application/json", "application/geo+json", "text/plain", "text/html")


def capabilities_url():
    return f"{config.EFAS_WMS_URL}?SERVICE=WMS&REQUEST=GetCapabilities&VERSION=1.3.0"


# list EFAS layers and the default TIME to paint a WMS-T layer with
def efas_capabilities(selected_layer=None):
    status, _, xml = fetch_text(
        capabilities_url(),
        headers={"User-Agent": "map-ia/1.0", "Accept": "application/xml,text/xml,*/*"},
        timeout=config.capabilities_timeout(),
    )
    if not 200 <= status < 300:
        raise UpstreamError(f"EFAS GetCapabilities error ({status}) :: {xml[:400]}", status=status)

    return {
        "ok": True,
        "wms_url": config.EFAS_WMS_URL,
        "selected_layer": selected_layer,
        "layers": parse_capabilities_layers(xml),
        "default_time": extract_time_dimension(xml),
    }


# does the selected EFAS layer report anything at this point (optionally at TIME)?
def efas_feature_info(lat, lon, layer, time=None):
    attempts = feature_info_attempts(
        config.EFAS_WMS_URL, layer, lat, lon, EFAS_HALF_SIZE_DEG, EFAS_INFO_FORMATS, time=time
    )
    decision = negotiate_feature_info(attempts, snippet_len=260)  # FeatureInfoUnavailable propagates
    inside = decision["inside"]
    textual = decision["raw_text_snippet"] is not None
    if textual:
        note = ("EFAS returns a textual answer for this point (GetFeatureInfo)." if inside
                else "EFAS returns no matches for this point.")
    else:
        note = ("EFAS returns information for this point (GetFeatureInfo)." if inside
                else "EFAS returns no entities for this point.")

    data = {
        "wms_url": config.EFAS_WMS_URL,
        "layer_used": layer,
        "time": time,
        "inside": inside,
        "feature_count": decision["feature_count"],
        "raw_text_snippet": decision["raw_text_snippet"],
        "note": note,
    }
    limitations = [] if inside else [
        "EFAS may have no coverage or relevant data for this point/time; regional scale."
    ]
    return tool_result(
        True,
        data=data,
        source=source_ref("Copernicus EFAS (WMS)", capabilities_url(),
                          f"Layer: {layer} | Attempt: {decision['attempt']}"),
        limitations=limitations,
    )
