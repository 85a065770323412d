"""Detect outages in check results and turn them into ledger incidents."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from ..models import CheckResult, Incident, Ledger, OutageInterval

logger = logging.getLogger(__name__)

MIN_OUTAGE_DURATION = 2
ACTIVE_WINDOW = timedelta(hours=2)
ETA_HORIZON = timedelta(hours=24)

UNKNOWN_URL = "Unknown URL"


def format_datetime(dt: datetime) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SS GMT``."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S") + " GMT"


def format_iso(dt: datetime) -> str:
    """Format as ISO-8601 UTC with a ``Z`` suffix."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def detect_outages(
    service_id: str,
    results: Iterable[CheckResult],
    min_duration: int = MIN_OUTAGE_DURATION,
) -> list[OutageInterval]:
    """
    Group consecutive failures into outage intervals.

    A run of failures becomes an interval only if it has at least
    ``min_duration`` failed checks. A run still open at the end of the log
    is flushed under the same rule.
    """
    outages: list[OutageInterval] = []
    current: Optional[OutageInterval] = None

    for result in results:
        if not result.is_success:
            if current is None:
                current = OutageInterval(
                    service_id=service_id,
                    start_time=result.timestamp,
                    end_time=result.timestamp,
                    failure_count=1,
                )
            else:
                current.end_time = result.timestamp
                current.failure_count += 1
            continue

        if current is not None and current.failure_count >= min_duration:
            outages.append(current)
        current = None

    if current is not None and current.failure_count >= min_duration:
        outages.append(current)

    return outages


def is_active(outage: OutageInterval, now: datetime, window: timedelta = ACTIVE_WINDOW) -> bool:
    """An outage is active if it ended strictly inside the lookback window."""
    return outage.end_time > now - window


def generate_title(service: str, outage: OutageInterval) -> str:
    minutes = outage.duration_minutes
    if minutes < 60:
        return f"{service} Service Disruption"
    if minutes < 24 * 60:
        return f"{service} Extended Outage"
    return f"{service} Multi-Day Outage"


def generate_description(service: str, outage: OutageInterval, url: str) -> str:
    start = format_datetime(outage.start_time)
    minutes = outage.duration_minutes
    if minutes < 60:
        return f"{service} ({url}) experienced downtime starting at {start}."
    if minutes < 24 * 60:
        hours = round(minutes / 60)
        return f"{service} ({url}) has been inaccessible for approximately {hours} hours since {start}."
    days = round(minutes / (24 * 60))
    return f"{service} ({url}) has been offline for {days} days since {start}."


class OutageDetector:
    """Build a ledger of incidents from per-service check results."""

    def __init__(
        self,
        min_duration: int = MIN_OUTAGE_DURATION,
        active_window: timedelta = ACTIVE_WINDOW,
        eta_horizon: timedelta = ETA_HORIZON,
        excluded_services: Iterable[str] = (),
    ):
        """
        Initialize the detector.

        Args:
            min_duration: Minimum consecutive failures that count as an outage
            active_window: Outages ending within this window of now are active
            eta_horizon: Offset from now used for the provisional ETA
            excluded_services: Service keys (case-insensitive) to ignore
        """
        self.min_duration = min_duration
        self.active_window = active_window
        self.eta_horizon = eta_horizon
        self.excluded_services = {s.lower() for s in excluded_services}

    def to_incident(
        self, outage: OutageInterval, url: str, now: datetime
    ) -> Incident:
        """Render one outage as an active or resolved incident."""
        service = outage.service_id
        fields = dict(
            date=outage.start_time.astimezone(timezone.utc).date(),
            start_time=format_iso(outage.start_time),
            title=generate_title(service, outage),
            description=generate_description(service, outage, url),
            service=service,
            url=url,
        )
        if is_active(outage, now, self.active_window):
            return Incident(
                **fields,
                status="investigating",
                eta=format_iso(now + self.eta_horizon),
            )
        return Incident(
            **fields,
            resolved=f"{format_datetime(outage.end_time)} - Service restored",
        )

    def build_ledger(
        self,
        results_by_service: dict[str, list[CheckResult]],
        service_urls: dict[str, str],
        now: datetime | None = None,
    ) -> Ledger:
        """
        Detect outages for every service and partition them into a ledger.

        Args:
            results_by_service: Parsed check results keyed by service
            service_urls: Service registry (key -> URL)
            now: Reference time, defaults to the current UTC time

        Returns:
            Ledger sorted newest first within each partition
        """
        now = now or datetime.now(timezone.utc)
        ledger = Ledger()

        for service, results in results_by_service.items():
            if service.lower() in self.excluded_services:
                logger.debug(f"Skipping excluded service {service}")
                continue

            outages = detect_outages(service, results, self.min_duration)
            if not outages:
                logger.info(f"{service}: no significant outages detected")
                continue

            logger.info(f"{service}: found {len(outages)} outage(s)")
            url = service_urls.get(service, UNKNOWN_URL)
            for outage in outages:
                incident = self.to_incident(outage, url, now)
                if incident.is_active:
                    ledger.active.append(incident)
                    logger.info(f"  Active: {incident.title}")
                else:
                    ledger.resolved.append(incident)
                    logger.info(f"  Resolved: {incident.title} ({incident.date})")

        ledger.sort()
        return ledger
