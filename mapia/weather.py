# --- current weather + map tiles from OpenWeather ---
from mapia import config
from mapia.http import UpstreamError, fetch_bytes, fetch_json

ALLOWED_TILE_LAYERS = frozenset({"temp_new", "precipitation_new", "clouds_new", "wind_new"})
SOURCE_NAME = "OpenWeather Current (data/2.5/weather)"


def _get(d, *path):
    # nested lookup that tolerates missing keys and lists
    for key in path:
        if isinstance(d, dict):
            d = d.get(key)
        elif isinstance(d, list) and isinstance(key, int) and len(d) > key:
            d = d[key]
        else:
            return None
    return d


# point weather for the selected location (real readings, not tiles)
def current_weather(lat, lon):
    key = config.require("OPENWEATHER_API_KEY")
    data = fetch_json(config.OPENWEATHER_CURRENT_URL,
                      params={"lat": lat, "lon": lon, "units": "metric", "appid": key})
    return {
        "lat": lat,
        "lon": lon,
        "temp_c": _get(data, "main", "temp"),
        "wind_ms": _get(data, "wind", "speed"),
        "clouds_pct": _get(data, "clouds", "all"),
        "humidity_pct": _get(data, "main", "humidity"),
        "rain_1h_mm": _get(data, "rain", "1h"),
        "rain_3h_mm": _get(data, "rain", "3h"),
        "description": _get(data, "weather", 0, "description"),
        "icon": _get(data, "weather", 0, "icon"),
        "name": _get(data, "name"),
        "dt": _get(data, "dt"),
        "source": SOURCE_NAME,
    }


# proxy one PNG tile so the API key never reaches the browser
def fetch_tile(layer, z, x, y):
    if layer not in ALLOWED_TILE_LAYERS:
        raise ValueError(f"Layer not allowed: {layer}")
    key = config.require("OPENWEATHER_API_KEY")
    url = config.OPENWEATHER_TILE_URL.format(layer=layer, z=int(z), x=int(x), y=int(y))
    status, content_type, body = fetch_bytes(url, params={"appid": key})
    if not 200 <= status < 300:
        detail = body[:160].decode("utf-8", errors="replace") if body else ""
        raise UpstreamError(f"OpenWeather tiles error ({status}) :: {detail}", status=status)
    return body
