# --- current air pollution from OpenWeather (same key as the weather endpoint) ---
from mapia import config
from mapia.http import UpstreamError, fetch_json

SOURCE_NAME = "OpenWeather Air Pollution (data/2.5/air_pollution)"

# OpenWeather's 1-5 index
AQI_CATEGORIES = {1: "Good", 2: "Fair", 3: "Moderate", 4: "Poor", 5: "Very Poor"}
POLLUTANTS = ("co", "no", "no2", "o3", "so2", "pm2_5", "pm10", "nh3")


def aqi_category(aqi):
    return AQI_CATEGORIES.get(aqi)


def current_air_quality(lat, lon):
    key = config.require("OPENWEATHER_API_KEY")
    data = fetch_json(config.OPENWEATHER_AIR_URL, params={"lat": lat, "lon": lon, "appid": key})

    readings = data.get("list") if isinstance(data, dict) else None
    if not readings:
        raise UpstreamError("Invalid response format from Air Pollution API")

    reading = readings[0]
    aqi = (reading.get("main") or {}).get("aqi")
    components = reading.get("components") or {}
    return {
        "aqi": aqi,
        "category": aqi_category(aqi),
        "components": {name: components.get(name) for name in POLLUTANTS},  # μg/m³
        "dt": reading.get("dt"),
        "source": SOURCE_NAME,
    }
