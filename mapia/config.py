# --- settings & service endpoints ---
import os
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env"))  # load API keys from .env


class MissingConfigError(Exception):
    pass


# fixed upstream services
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
OVERPASS_URL = "https://overpass-api.de/api/interpreter"
Q100_WMS_URL = "https://wms.mapama.gob.es/sig/agua/ZI_LaminasQ100"  # MITECO / SNCZI flood zones T=100
Q100_LAYER = "NZ.RiskZone"
IDEE_FLOOD_WMS_URL = "https://servicios.idee.es/wms-inspire/riesgos-naturales/inundaciones"
EFAS_WMS_URL = "https://european-flood.emergency.copernicus.eu/api/wms/"
OPENWEATHER_CURRENT_URL = "https://api.openweathermap.org/data/2.5/weather"
OPENWEATHER_AIR_URL = "https://api.openweathermap.org/data/2.5/air_pollution"
OPENWEATHER_TILE_URL = "https://tile.openweathermap.org/map/{layer}/{z}/{x}/{y}.png"

DEFAULT_USER_AGENT = "map-ia/1.0 (contact: example@example.com)"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


# read at call time so a changed environment is picked up
def _env_float(name, default):
    raw = os.environ.get(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def openai_api_key():
    return os.environ.get("OPENAI_API_KEY") or None


def openai_model():
    return os.environ.get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL


def openweather_api_key():
    return os.environ.get("OPENWEATHER_API_KEY") or None


def nominatim_user_agent():
    return os.environ.get("NOMINATIM_USER_AGENT") or DEFAULT_USER_AGENT


def http_timeout():
    return _env_float("HTTP_TIMEOUT", 20.0)


def overpass_timeout():
    return _env_float("OVERPASS_TIMEOUT", 25.0)


def capabilities_timeout():
    return _env_float("CAPABILITIES_TIMEOUT", 25.0)


def log_level():
    return (os.environ.get("LOG_LEVEL") or "INFO").upper()


def port():
    return int(_env_float("PORT", 5000))


def require(name):
    """Return an environment value the caller cannot work without."""
    value = os.environ.get(name)
    if not value:
        raise MissingConfigError(f"{name} is not configured on the server")
    return value
