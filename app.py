# --- setup & imports ---
import logging

from flask import Flask, Response, jsonify, request

from mapia import config  # loads API keys from .env
from mapia.air_quality import current_air_quality
from mapia.analysis import InvalidRequest, run_analysis
from mapia.efas import efas_capabilities, efas_feature_info
from mapia.flood import idee_flood_info, q100_feature_info
from mapia.geocoding import GeocodeNotFound, as_number, geocode, suggest
from mapia.http import UpstreamError
from mapia.overpass import urban_summary
from mapia.weather import current_weather, fetch_tile
from mapia.wms import FeatureInfoUnavailable

logging.basicConfig(level=config.log_level(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = Flask(__name__)  # create the Flask web app

WEATHER_CACHE = "public, s-maxage=120, stale-while-revalidate=600"
FLOOD_CACHE = "public, s-maxage=600, stale-while-revalidate=3600"
TILE_CACHE = "public, s-maxage=600, max-age=600"


# lat/lon from the query string, None when missing, non-numeric or out of range
def _point_from_args():
    lat = as_number(request.args.get("lat"))
    lon = as_number(request.args.get("lon"))
    if lat is None or lon is None or not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


def _invalid_point():
    return jsonify({"error": "Invalid lat/lon"}), 400


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


# --- routes ---

@app.route("/")
def home():
    routes = sorted(str(rule) for rule in app.url_map.iter_rules() if rule.endpoint != "static")
    return jsonify({"name": "map-ia", "routes": routes})


@app.route("/healthz")
def healthz():
    return jsonify({"ok": True})


# full analysis: coords (or address) -> every source -> LLM report
@app.route("/api/analyze", methods=["POST"])
def analyze():
    try:
        return jsonify(run_analysis(_json_body()))
    except InvalidRequest as e:
        return jsonify({"error": str(e)}), 400
    except GeocodeNotFound as e:
        return jsonify({"error": str(e)}), 404
    except UpstreamError as e:
        logger.warning("analyze: geocoding failed: %s", e)
        return jsonify({"error": "Geocoding failed", "detail": str(e)}), 502


# geocode endpoint — converts address text to lat/lon JSON
@app.route("/api/geocode", methods=["POST"])
def geocode_address():
    address = _json_body().get("address")
    address = address.strip() if isinstance(address, str) else ""
    if not address:
        return jsonify({"error": "No address provided"}), 400
    try:
        coords = geocode(address)
    except GeocodeNotFound as e:
        return jsonify({"error": str(e)}), 404
    except UpstreamError as e:
        logger.warning("geocode failed: %s", e)
        return jsonify({"error": "Geocoding failed", "detail": str(e)}), 502
    return jsonify({"ok": True, "coords": coords})


@app.route("/api/geocode/suggest")
def geocode_suggest():
    try:
        suggestions = suggest(request.args.get("query", ""))
    except UpstreamError as e:
        logger.warning("geocode suggest failed: %s", e)
        return jsonify({"error": "Suggestion lookup failed", "detail": str(e)}), 502
    return jsonify({"suggestions": suggestions})


@app.route("/api/weather/current")
def weather_current():
    point = _point_from_args()
    if point is None:
        return _invalid_point()
    try:
        payload = current_weather(*point)
    except config.MissingConfigError as e:
        return jsonify({"error": str(e)}), 500
    except UpstreamError as e:
        logger.warning("current weather failed: %s", e)
        return jsonify({"error": "OpenWeather current error", "status": e.status, "detail": str(e)[:200]}), 502
    resp = jsonify(payload)
    resp.headers["Cache-Control"] = WEATHER_CACHE
    return resp


# serves an OpenWeather PNG tile without exposing the key
@app.route("/api/weather/tiles/<layer>/<int:z>/<int:x>/<int:y>.png")
def weather_tile(layer, z, x, y):
    try:
        body = fetch_tile(layer, z, x, y)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except config.MissingConfigError as e:
        return jsonify({"error": str(e)}), 500
    except UpstreamError as e:
        status = e.status if e.status and e.status >= 400 else 502
        return jsonify({"error": str(e)}), status
    return Response(body, mimetype="image/png", headers={"Cache-Control": TILE_CACHE})


@app.route("/api/air-quality/current")
def air_quality_current():
    point = _point_from_args()
    if point is None:
        return _invalid_point()
    try:
        payload = current_air_quality(*point)
    except config.MissingConfigError as e:
        return jsonify({"error": str(e)}), 500
    except UpstreamError as e:
        logger.warning("air quality failed: %s", e)
        return jsonify({"error": "OpenWeather air pollution error", "detail": str(e)[:200]}), 502
    resp = jsonify(payload)
    resp.headers["Cache-Control"] = WEATHER_CACHE
    return resp


@app.route("/api/urban")
def urban():
    point = _point_from_args()
    if point is None:
        return _invalid_point()
    radius = as_number(request.args.get("radius")) or 900
    radius = int(min(max(radius, 50), 3000))  # keep Overpass queries reasonable
    result = urban_summary(*point, radius_m=radius)
    return jsonify(result), (200 if result["ok"] else 502)


# is the point inside the Q100 flood zone?
@app.route("/api/flood/feature-info")
def flood_feature_info():
    point = _point_from_args()
    if point is None:
        return _invalid_point()
    try:
        payload = q100_feature_info(*point)
    except FeatureInfoUnavailable as e:
        return jsonify({"error": "Could not query Q100 (GetFeatureInfo) with a compatible format",
                        "debug": e.debug}), 502
    resp = jsonify(payload)
    resp.headers["Cache-Control"] = FLOOD_CACHE
    return resp


@app.route("/api/flood/idee")
def flood_idee():
    point = _point_from_args()
    if point is None:
        return _invalid_point()
    result = idee_flood_info(*point)
    return jsonify(result), (200 if result["ok"] else 502)


@app.route("/api/copernicus/efas/capabilities")
def efas_caps():
    try:
        return jsonify(efas_capabilities(request.args.get("layer")))
    except UpstreamError as e:
        logger.warning("EFAS capabilities failed: %s", e)
        return jsonify({"error": "EFAS GetCapabilities error", "detail": str(e)[:400]}), 502


@app.route("/api/copernicus/efas/feature-info")
def efas_info():
    point = _point_from_args()
    if point is None:
        return _invalid_point()
    layer = (request.args.get("layer") or "").strip()
    if not layer:
        return jsonify({"error": "Missing 'layer' parameter (EFAS layer name)"}), 400
    try:
        result = efas_feature_info(*point, layer, time=request.args.get("time") or None)
    except FeatureInfoUnavailable as e:
        return jsonify({
            "ok": False,
            "error": "Could not query EFAS (GetFeatureInfo)",
            "debug": e.debug,
            "limitations": ["The EFAS WMS did not answer in a compatible format or a network error occurred."],
        }), 502
    return jsonify(result)


# run with: python app.py (starts on http://localhost:5000)
if __name__ == "__main__":
    app.run(debug=True, port=config.port())
