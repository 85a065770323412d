"""
Unit tests for daily uptime summaries.
"""

from datetime import datetime, timedelta, timezone

import pytest

from incident_sync.detection.uptime import classify_day, status_text, summarize_uptime
from incident_sync.models import CheckOutcome, CheckResult

NOW = datetime(2024, 3, 10, 18, 0, tzinfo=timezone.utc)


def _check(days_ago: int, ok: bool, hour: int = 0) -> CheckResult:
    ts = (NOW - timedelta(days=days_ago)).replace(hour=hour)
    return CheckResult(
        timestamp=ts, outcome=CheckOutcome.SUCCESS if ok else CheckOutcome.FAILURE
    )


@pytest.mark.parametrize(
    "value, color",
    [(None, "nodata"), (1.0, "success"), (0.2, "failure"), (0.3, "partial"), (0.99, "partial")],
)
def test_classify_day(value, color):
    assert classify_day(value) == color


def test_status_text():
    assert status_text("success") == "Fully Operational"
    assert status_text("bogus") == "Unknown"


def test_summarize_groups_by_day():
    results = [
        _check(0, True, 1),
        _check(0, False, 2),
        _check(1, True),
        _check(1, True, 3),
    ]

    summary = summarize_uptime("api", results, now=NOW)

    assert summary.day(0) == 0.5
    assert summary.day(1) == 1.0
    assert summary.day(2) is None
    assert summary.uptime == "75.00%"
    assert summary.current_color == "partial"


def test_summarize_drops_days_outside_window():
    summary = summarize_uptime("api", [_check(45, False)], now=NOW, max_days=30)
    assert summary.days == {}
    assert summary.uptime == "0.00%"


def test_summarize_without_data():
    summary = summarize_uptime("api", [], now=NOW)
    assert summary.uptime == "--%"
    assert summary.current_color == "nodata"
