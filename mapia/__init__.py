"""map-ia: point risk analysis over public geodata services and an LLM report."""

__version__ = "0.1.0"
