"""Daily uptime summaries for the status page."""

from collections import defaultdict
from datetime import date, datetime, timezone

from pydantic import BaseModel, Field

from ..models import CheckResult

MAX_DAYS = 30

STATUS_TEXT = {
    "nodata": "No Data Available",
    "success": "Fully Operational",
    "failure": "Major Outage",
    "partial": "Partial Outage",
}


class UptimeSummary(BaseModel):
    """Per-day average uptime keyed by days ago (0 = today)."""

    service: str
    days: dict[int, float] = Field(default_factory=dict)
    uptime: str = "--%"

    def day(self, days_ago: int) -> float | None:
        return self.days.get(days_ago)

    @property
    def current_color(self) -> str:
        return classify_day(self.day(0))


def classify_day(value: float | None) -> str:
    """Map a day's average uptime to a status class."""
    if value is None:
        return "nodata"
    if value == 1:
        return "success"
    if value < 0.3:
        return "failure"
    return "partial"


def status_text(color: str) -> str:
    return STATUS_TEXT.get(color, "Unknown")


def summarize_uptime(
    service: str,
    results: list[CheckResult],
    now: datetime | None = None,
    max_days: int = MAX_DAYS,
) -> UptimeSummary:
    """
    Average check outcomes per UTC day over the last ``max_days`` days.

    The overall uptime percentage covers every result passed in.
    """
    now = now or datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()

    by_day: dict[date, list[int]] = defaultdict(list)
    total = 0
    for result in results:
        value = 1 if result.is_success else 0
        total += value
        by_day[result.timestamp.astimezone(timezone.utc).date()].append(value)

    days = {}
    for day, values in by_day.items():
        days_ago = (today - day).days
        if 0 <= days_ago < max_days:
            days[days_ago] = sum(values) / len(values)

    uptime = f"{total / len(results) * 100:.2f}%" if results else "--%"
    return UptimeSummary(service=service, days=days, uptime=uptime)
