# --- explainable flood heuristic: Q100 membership + measured rain ---
# not an official forecast of an active flood

LIGHT_RAIN_MM = 1
MODERATE_RAIN_MM = 5


def dynamic_flood_risk(inside_q100, rain_1h_mm):
    level, reason = _classify(inside_q100, rain_1h_mm)
    return {
        "level": level,
        "reason": reason,
        "basis": {"inside_q100": bool(inside_q100), "rain_1h_mm": rain_1h_mm},
    }


def _classify(inside_q100, rain_1h_mm):
    if not inside_q100:
        return "Low", "Outside the Q100 flood zone"
    if rain_1h_mm is None:
        return "Medium", "Inside Q100, no 1h rain reading"
    if rain_1h_mm < LIGHT_RAIN_MM:
        return "Medium", "Inside Q100, light rain"
    if rain_1h_mm < MODERATE_RAIN_MM:
        return "High", "Inside Q100, moderate rain"
    return "Very high", "Inside Q100, heavy rain"
