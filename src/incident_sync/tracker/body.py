"""
Issue body grammar.

Incident issues carry a structured markdown body that both the
reconciler and the pull step read back. The layout is, in order::

    ### Incident ID          (only when the incident has one)
    ### Service
    ### Status
    ### Description
    ### Estimated Resolution Time   (optional)
    ### Resolution Details          (optional)
    ---
    *Auto-generated from health check logs*
    Started: <startTime or date>
    Service URL: <url>                (optional)

Every section is a ``### Heading`` line followed by its value. The GitHub
issue-form placeholder ``_No response_`` is read as an absent value.
``render_issue_body`` and ``parse_issue_body`` round-trip the incident ID,
service, status or resolution, and description. Value lines that would read
as structure (a ``---`` rule, a ``### `` heading, a ``Started:`` or
``Service URL:`` line) are written with one extra leading backslash, which
the parser removes again.
"""

import re
from dataclasses import dataclass

from ..models import Incident

TITLE_PREFIX = "[INCIDENT] "
NO_RESPONSE = "_No response_"
UNKNOWN_SERVICE = "Unknown"
FOOTER_RULE = "---"
FOOTER_NOTE = "*Auto-generated from health check logs*"

SECTION_INCIDENT_ID = "Incident ID"
SECTION_SERVICE = "Service"
SECTION_STATUS = "Status"
SECTION_DESCRIPTION = "Description"
SECTION_ETA = "Estimated Resolution Time"
SECTION_RESOLUTION = "Resolution Details"

_HEADING_RE = re.compile(r"^###\s+(.+?)\s*$")
_STARTED_RE = re.compile(r"^Started:\s*(.+?)\s*$", re.MULTILINE)
_SERVICE_URL_RE = re.compile(r"^Service URL:\s*(.+?)\s*$", re.MULTILINE)
_TITLE_PREFIX_RE = re.compile(r"^\[INCIDENT\]\s*", re.IGNORECASE)
_FOOTER_LINE_RE = re.compile(r"^(Started|Service URL):")


@dataclass
class IssueBody:
    """Fields recovered from an incident issue body."""

    incident_id: str | None = None
    service: str | None = None
    status: str | None = None
    description: str | None = None
    eta: str | None = None
    resolution: str | None = None
    started: str | None = None
    service_url: str | None = None


def issue_title(incident: Incident) -> str:
    return f"{TITLE_PREFIX}{incident.title}"


def strip_title_prefix(title: str) -> str:
    """Recover the incident title from an issue title."""
    return _TITLE_PREFIX_RE.sub("", title).strip()


def started_value(incident: Incident) -> str:
    return incident.start_time or incident.date.isoformat()


def _is_structural(line: str) -> bool:
    line = line.lstrip("\\")
    return (
        line.strip() == FOOTER_RULE
        or bool(_HEADING_RE.match(line))
        or bool(_FOOTER_LINE_RE.match(line))
    )


def _escape(value: str) -> str:
    return "\n".join(
        f"\\{line}" if _is_structural(line) else line for line in value.splitlines()
    )


def _unescape(line: str) -> str:
    if line.startswith("\\") and _is_structural(line):
        return line[1:]
    return line


def render_issue_body(incident: Incident) -> str:
    """Serialize an incident into the structured issue body."""
    sections: list[tuple[str, str]] = []
    if incident.incident_id:
        sections.append((SECTION_INCIDENT_ID, incident.incident_id))
    sections.append((SECTION_SERVICE, incident.service or UNKNOWN_SERVICE))
    sections.append((SECTION_STATUS, incident.status or "resolved"))
    sections.append((SECTION_DESCRIPTION, incident.description))
    if incident.eta:
        sections.append((SECTION_ETA, incident.eta))
    if incident.resolved:
        sections.append((SECTION_RESOLUTION, incident.resolved))

    body = "".join(f"### {heading}\n\n{_escape(value)}\n\n" for heading, value in sections)
    body += f"{FOOTER_RULE}\n\n{FOOTER_NOTE}\n\n"
    body += f"Started: {started_value(incident)}\n"
    if incident.url:
        body += f"Service URL: {incident.url}\n"
    return body


def _split_sections(body: str) -> dict[str, str]:
    """Collect ``### Heading`` sections up to the footer rule."""
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None
    for line in body.splitlines():
        if line.strip() == FOOTER_RULE:
            current = None
            continue
        match = _HEADING_RE.match(line)
        if match:
            current = sections.setdefault(match.group(1), [])
            continue
        if current is not None:
            current.append(_unescape(line))
    return {heading: "\n".join(lines).strip() for heading, lines in sections.items()}


def _value(sections: dict[str, str], heading: str) -> str | None:
    value = sections.get(heading)
    if not value or value == NO_RESPONSE:
        return None
    return value


def _single_line(value: str | None) -> str | None:
    """Keep only the first line of a one-line field."""
    if value is None:
        return None
    return value.splitlines()[0].strip() or None


def _last_match(pattern: re.Pattern, body: str) -> str | None:
    matches = pattern.findall(body)
    if not matches or matches[-1] == NO_RESPONSE:
        return None
    return matches[-1]


def parse_issue_body(body: str | None) -> IssueBody:
    """Parse an issue body; missing or placeholder fields come back as None."""
    if not body:
        return IssueBody()

    sections = _split_sections(body)
    status = _single_line(_value(sections, SECTION_STATUS))
    return IssueBody(
        incident_id=_single_line(_value(sections, SECTION_INCIDENT_ID)),
        service=_single_line(_value(sections, SECTION_SERVICE)),
        status=status.lower() if status else None,
        description=_value(sections, SECTION_DESCRIPTION),
        eta=_single_line(_value(sections, SECTION_ETA)),
        resolution=_value(sections, SECTION_RESOLUTION),
        started=_last_match(_STARTED_RE, body),
        service_url=_last_match(_SERVICE_URL_RE, body),
    )
