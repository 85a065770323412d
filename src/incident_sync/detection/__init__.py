"""Health-check log parsing and outage detection."""

from .detector import OutageDetector, detect_outages
from .log_parser import discover_logs, load_logs, parse_log
from .uptime import UptimeSummary, summarize_uptime

__all__ = [
    "OutageDetector",
    "detect_outages",
    "discover_logs",
    "load_logs",
    "parse_log",
    "UptimeSummary",
    "summarize_uptime",
]
