# --- LLM report from the aggregated JSON ---
import json
import logging

import openai

from mapia import config

logger = logging.getLogger(__name__)

# order of the blocks in the payload the model receives
PAYLOAD_BLOCKS = ("urban", "weather", "air_quality", "flood_q100", "dynamic_flood_risk", "efas")

REPORT_RULES = """You are a technical assistant writing a professional geospatial analysis report.
Rules:
- Use ONLY the data provided in the JSON. Do NOT invent sources or data.
- If a block is null or data is missing, state it as a LIMITATION.
- Q100 means a statistical flood zone (return period T=100). Never claim an "active flood".
- Write a clear report with these sections:

1) Description of the area
2) Nearby infrastructure (from "urban")
3) Relevant risks (include "flood_q100", "dynamic_flood_risk", "efas", weather and air quality)
4) Possible urban uses (cautious)
5) Final recommendation
6) Sources and limitations (list)"""


class ReportError(Exception):
    pass


# lazy init so .env loads before we create the client; one client per key
_openai_clients = {}


def _get_openai():
    key = config.require("OPENAI_API_KEY")
    if key not in _openai_clients:
        _openai_clients[key] = openai.OpenAI(api_key=key)
    return _openai_clients[key]


def build_model_payload(coords, blocks, sources, limitations):
    payload = {"coords": {"lat": coords["lat"], "lon": coords["lon"], "label": coords.get("label")}}
    for name in PAYLOAD_BLOCKS:
        payload[name] = blocks.get(name)  # None stays None: the model must see what is missing
    payload["sources"] = list(sources)
    payload["limitations"] = list(limitations)
    return payload


def render_payload(payload):
    return json.dumps(payload, indent=2, ensure_ascii=False)


def build_prompt(payload):
    return f"{REPORT_RULES}\n\nData (JSON):\n{render_payload(payload)}"


def generate_report(payload):
    if not config.openai_api_key():
        raise config.MissingConfigError("OPENAI_API_KEY is not configured on the server")
    resp = _get_openai().chat.completions.create(
        model=config.openai_model(),
        messages=[{"role": "user", "content": build_prompt(payload)}],
        temperature=0.2,
    )
    if not resp.choices:
        raise ReportError("the model returned no choices")
    report = resp.choices[0].message.content or ""
    logger.info("report generated with %s (%d chars)", config.openai_model(), len(report))
    return report
