"""Rebuild the incident ledger from tracked issues."""

import logging
import re
from datetime import datetime, timezone

from ..detection.detector import format_datetime
from ..models import Incident, Ledger, TrackedIssue
from ..tracker.body import parse_issue_body, strip_title_prefix
from .identity import incident_key

logger = logging.getLogger(__name__)

_SERVICE_FROM_TITLE_RE = re.compile(r"\[INCIDENT\]\s*(.+?)(?:\s*-|\s*:|$)", re.IGNORECASE)


def _parse_when(value: str) -> datetime | None:
    text = value.strip()
    if text.endswith(" GMT"):
        text = text[:-4]
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def issue_to_incident(issue: TrackedIssue, service_urls: dict[str, str]) -> Incident:
    """
    Convert one tracked issue into a ledger incident.

    Open issues become active incidents and closed ones resolved incidents.
    """
    parsed = parse_issue_body(issue.body)

    service = parsed.service
    if not service:
        match = _SERVICE_FROM_TITLE_RE.match(issue.title)
        if match:
            service = match.group(1).strip()

    created = issue.created_at or datetime.now(timezone.utc)
    start_time = parsed.started or created.strftime("%Y-%m-%dT%H:%M:%SZ")
    started_at = _parse_when(start_time) or created
    title = strip_title_prefix(issue.title)

    fields = dict(
        incident_id=parsed.incident_id or f"{service}-{start_time}",
        date=started_at.astimezone(timezone.utc).date(),
        start_time=start_time,
        title=title,
        description=parsed.description or title,
        service=service,
        url=service_urls.get(service) if service else None,
        issue_number=issue.number,
        issue_url=issue.html_url,
    )

    if issue.is_open:
        return Incident(**fields, status=parsed.status or "investigating", eta=parsed.eta)

    closed = issue.closed_at or issue.updated_at or created
    resolution = parsed.resolution or "Issue resolved"
    return Incident(**fields, resolved=f"{format_datetime(closed)} - {resolution}")


def _prefer(candidate: TrackedIssue, existing: TrackedIssue) -> bool:
    """Whether ``candidate`` should replace ``existing`` for the same key."""
    if candidate.is_open != existing.is_open:
        return candidate.is_open
    if candidate.updated_at and existing.updated_at:
        return candidate.updated_at > existing.updated_at
    return False


def pull_ledger(issues: list[TrackedIssue], service_urls: dict[str, str]) -> Ledger:
    """
    Build a ledger from tracked issues, one incident per identity key.

    For duplicate keys an open issue wins over a closed one, otherwise the
    most recently updated issue wins.
    """
    best: dict[str, tuple[TrackedIssue, Incident]] = {}
    for issue in issues:
        incident = issue_to_incident(issue, service_urls)
        key = incident_key(incident)
        existing = best.get(key)
        if existing is None or _prefer(issue, existing[0]):
            best[key] = (issue, incident)

    ledger = Ledger()
    for issue, incident in best.values():
        if issue.is_open:
            ledger.active.append(incident)
            logger.info(f"  Active: #{issue.number} - {incident.title}")
        else:
            ledger.resolved.append(incident)
            logger.info(f"  Resolved: #{issue.number} - {incident.title}")

    ledger.sort()
    return ledger
