"""Identity keys for matching ledger incidents to tracked issues."""

import logging
from typing import Optional

from ..models import Incident, TrackedIssue
from ..tracker.body import UNKNOWN_SERVICE, parse_issue_body, strip_title_prefix

logger = logging.getLogger(__name__)


def incident_key(incident: Incident) -> str:
    """Primary key: the incident ID, else ``<service>-<startTime or date>``."""
    if incident.incident_id:
        return incident.incident_id
    started = incident.start_time or incident.date.isoformat()
    return f"{incident.service or UNKNOWN_SERVICE}-{started}"


def incident_date_key(incident: Incident) -> Optional[str]:
    """
    Day-granular key ``<service>-<date>`` for issues whose body only records
    the start date. None when it would equal the primary key.
    """
    if incident.incident_id or not incident.start_time:
        return None
    return f"{incident.service or UNKNOWN_SERVICE}-{incident.date.isoformat()}"


def incident_fallback_key(incident: Incident) -> str:
    """Fallback key: ``<service>::<title>``, or just the title without a service."""
    if incident.service:
        return f"{incident.service}::{incident.title}"
    return incident.title


def issue_key(issue: TrackedIssue) -> Optional[str]:
    """Primary key parsed from the issue body, or None if not derivable."""
    parsed = parse_issue_body(issue.body)
    if parsed.incident_id:
        return parsed.incident_id
    if parsed.service and parsed.started:
        return f"{parsed.service}-{parsed.started}"
    return None


def issue_fallback_key(issue: TrackedIssue) -> Optional[str]:
    """Fallback key from the body's service and the prefix-stripped title."""
    title = strip_title_prefix(issue.title)
    if not title:
        return None
    service = parse_issue_body(issue.body).service
    if service:
        return f"{service}::{title}"
    return title


class IssueIndex:
    """
    Candidate issues for one reconciliation pass.

    Primary and fallback keys live in separate maps per issue state. Only
    issues without a primary key are indexed by fallback key, so a
    hand-authored issue can be adopted but an issue written by the sync
    cannot be claimed by a different incident. A matched issue is consumed
    and removed from every map.
    """

    def __init__(self, open_issues: list[TrackedIssue], closed_issues: list[TrackedIssue]):
        self.open_primary: dict[str, TrackedIssue] = {}
        self.closed_primary: dict[str, TrackedIssue] = {}
        self.open_fallback: dict[str, TrackedIssue] = {}
        self.closed_fallback: dict[str, TrackedIssue] = {}
        self.open_candidates: dict[int, TrackedIssue] = {}
        self.unkeyed: list[TrackedIssue] = []

        for issue in open_issues:
            self._add(issue, self.open_primary, self.open_fallback, is_open=True)
        for issue in closed_issues:
            self._add(issue, self.closed_primary, self.closed_fallback, is_open=False)

    def _add(
        self,
        issue: TrackedIssue,
        primary: dict[str, TrackedIssue],
        fallback: dict[str, TrackedIssue],
        is_open: bool,
    ) -> None:
        key = issue_key(issue)
        if key is not None:
            primary.setdefault(key, issue)
        else:
            fallback_key = issue_fallback_key(issue)
            if fallback_key is None:
                logger.warning(f"Issue #{issue.number} has no derivable key, ignoring it")
                self.unkeyed.append(issue)
                return
            fallback.setdefault(fallback_key, issue)

        if is_open:
            self.open_candidates[issue.number] = issue

    @property
    def open_count(self) -> int:
        return len(self.open_candidates)

    @property
    def closed_count(self) -> int:
        return len({i.number for i in (*self.closed_primary.values(), *self.closed_fallback.values())})

    def _consume(self, issue: TrackedIssue) -> None:
        for mapping in (
            self.open_primary,
            self.closed_primary,
            self.open_fallback,
            self.closed_fallback,
        ):
            for key in [k for k, v in mapping.items() if v.number == issue.number]:
                del mapping[key]
        self.open_candidates.pop(issue.number, None)

    def match(self, incident: Incident) -> tuple[Optional[TrackedIssue], Optional[str]]:
        """
        Find and consume the issue for an incident.

        Returns:
            ``(issue, via)`` where ``via`` is ``"primary"``, ``"date"`` or
            ``"fallback"``, or ``(None, None)`` when nothing matches
        """
        key = incident_key(incident)
        issue = self.open_primary.get(key) or self.closed_primary.get(key)
        via = "primary"
        date_key = incident_date_key(incident)
        if issue is None and date_key is not None:
            issue = self.open_primary.get(date_key) or self.closed_primary.get(date_key)
            via = "date"
        if issue is None:
            fallback_key = incident_fallback_key(incident)
            issue = self.open_fallback.get(fallback_key) or self.closed_fallback.get(fallback_key)
            via = "fallback"
        if issue is None:
            return None, None

        self._consume(issue)
        return issue, via

    def leftover_open(self) -> list[TrackedIssue]:
        """Open keyed issues that no incident consumed."""
        return list(self.open_candidates.values())
