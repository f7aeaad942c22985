# --- WMS helpers: GetFeatureInfo negotiation + GetCapabilities scraping ---
import json
import logging
import re
from urllib.parse import urlencode

import geopandas as gpd
from shapely.geometry import Point, box

from mapia.http import UpstreamError, fetch_text

logger = logging.getLogger(__name__)

# textual GetFeatureInfo answers that mean "nothing here"
EMPTY_MARKERS = (
    "no features were found",
    "no features",
    "feature count: 0",
    "featurecount=0",
    "sin resultados",
    "no hay resultados",
)

FI_IMG_PX = 256  # GetFeatureInfo image size, queried at its center pixel
FI_ACCEPT = "application/json,text/plain,text/html,*/*"


class FeatureInfoUnavailable(UpstreamError):
    def __init__(self, message, debug):
        super().__init__(message, status=502)
        self.debug = debug


def snippet(text, n=240):
    return re.sub(r"\s+", " ", text or "").strip()[:n]


def looks_empty(text):
    t = (text or "").lower()
    return any(marker in t for marker in EMPTY_MARKERS)


# small square around the point, (min_lon, min_lat, max_lon, max_lat) in degrees
def bbox_degrees(lat, lon, d):
    return box(lon - d, lat - d, lon + d, lat + d).bounds


# square bbox of span_m meters around the point in Web Mercator (EPSG:3857)
def web_mercator_bbox(lat, lon, span_m):
    p = gpd.GeoSeries([Point(lon, lat)], crs="EPSG:4326").to_crs(epsg=3857).iloc[0]  # shapely point is lon first
    half = span_m / 2
    return p.x - half, p.y - half, p.x + half, p.y + half


def _fmt_bbox(values):
    return ",".join(repr(float(v)) for v in values)


# ordered GetFeatureInfo attempts: every info format with WMS 1.3.0 then 1.1.1
def feature_info_attempts(wms_url, layer, lat, lon, d, info_formats, time=None):
    min_lon, min_lat, max_lon, max_lat = bbox_degrees(lat, lon, d)
    center = FI_IMG_PX // 2
    attempts = []
    for fmt in info_formats:
        # WMS 1.3.0: EPSG:4326 uses lat,lon axis order
        v130 = {
            "service": "WMS", "request": "GetFeatureInfo", "version": "1.3.0",
            "crs": "EPSG:4326",
            "bbox": _fmt_bbox((min_lat, min_lon, max_lat, max_lon)),
            "width": FI_IMG_PX, "height": FI_IMG_PX,
            "layers": layer, "query_layers": layer, "styles": "",
            "format": "image/png", "info_format": fmt,
            "i": center, "j": center,
        }
        # WMS 1.1.1: EPSG:4326 bbox is lon,lat
        v111 = {
            "service": "WMS", "request": "GetFeatureInfo", "version": "1.1.1",
            "srs": "EPSG:4326",
            "bbox": _fmt_bbox((min_lon, min_lat, max_lon, max_lat)),
            "width": FI_IMG_PX, "height": FI_IMG_PX,
            "layers": layer, "query_layers": layer, "styles": "",
            "format": "image/png", "info_format": fmt,
            "x": center, "y": center,
        }
        for name, params in ((f"1.3.0 {fmt}", v130), (f"1.1.1 {fmt}", v111)):
            if time:
                params["time"] = time
            attempts.append({"name": name, "url": f"{wms_url}?{urlencode(params)}"})
    return attempts


# walk the attempts until one gives a usable answer
def negotiate_feature_info(attempts, snippet_len=240):
    debug = []
    for attempt in attempts:
        try:
            status, content_type, text = fetch_text(attempt["url"], headers={"Accept": FI_ACCEPT})
        except UpstreamError as e:
            debug.append({"attempt": attempt["name"], "ok": False, "status": None,
                          "content_type": None, "snippet": snippet(str(e), snippet_len)})
            continue

        ok = 200 <= status < 300
        debug.append({"attempt": attempt["name"], "ok": ok, "status": status,
                      "content_type": content_type, "snippet": snippet(text, snippet_len)})
        if not ok:
            continue

        # JSON/GeoJSON: any feature means the point is inside
        if "json" in content_type:
            try:
                payload = json.loads(text)
            except ValueError:
                continue  # server lied about the format, try the next one
            features = payload.get("features") if isinstance(payload, dict) else None
            features = features if isinstance(features, list) else []
            return {
                "inside": len(features) > 0,
                "feature_count": len(features),
                "attempt": attempt["name"],
                "content_type": content_type,
                "raw_text_snippet": None,
                "feature_info": payload,
            }

        # text/html: decide by content
        inside = not looks_empty(text) and bool(text.strip())
        return {
            "inside": inside,
            "feature_count": 1 if inside else 0,
            "attempt": attempt["name"],
            "content_type": content_type,
            "raw_text_snippet": snippet(text, snippet_len),
            "feature_info": None,
        }

    logger.warning("GetFeatureInfo failed for all %d attempts", len(attempts))
    raise FeatureInfoUnavailable("No GetFeatureInfo attempt returned a compatible answer", debug)


# --- GetCapabilities (regex scraping, good enough for layer pickers) ---

def layer_names(xml):
    return [m.strip() for m in re.findall(r"<Name>([^<]+)</Name>", xml or "") if m.strip()]


def parse_capabilities_layers(xml):
    layers = []
    seen = set()
    for block in re.findall(r"<Layer\b.*?</Layer>", xml or "", flags=re.I | re.S):
        name = re.search(r"<Name>([^<]+)</Name>", block, flags=re.I)
        if not name or not name.group(1).strip():
            continue  # group layers without a real Name
        name = name.group(1).strip()
        if name in seen:
            continue
        seen.add(name)
        title = re.search(r"<Title>([^<]+)</Title>", block, flags=re.I)
        abstract = re.search(r"<Abstract>(.*?)</Abstract>", block, flags=re.I | re.S)
        queryable = re.search(r"<Layer[^>]*queryable=[\"']?(\d)[\"']?", block, flags=re.I)
        layers.append({
            "name": name,
            "title": title.group(1).strip() if title else None,
            "abstract": re.sub(r"\s+", " ", abstract.group(1)).strip() if abstract else None,
            "queryable": (queryable.group(1) == "1") if queryable else None,
        })
    return layers


def pick_default_time(raw):
    s = (raw or "").strip()
    if not s:
        return None
    if "," in s:
        parts = [p.strip() for p in s.split(",") if p.strip()]
        return parts[-1] if parts else None  # latest listed value
    if "/" in s:
        parts = [p.strip() for p in s.split("/")]
        if len(parts) >= 2 and parts[1]:
            return parts[1]  # start/end/period -> end
    return s


def extract_time_dimension(xml):
    match = (re.search(r"<Dimension[^>]*name=[\"']time[\"'][^>]*>(.*?)</Dimension>", xml or "", flags=re.I | re.S)
             or re.search(r"<Extent[^>]*name=[\"']time[\"'][^>]*>(.*?)</Extent>", xml or "", flags=re.I | re.S))
    raw = re.sub(r"\s+", " ", match.group(1)).strip() if match else ""
    return pick_default_time(raw)
