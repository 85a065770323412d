"""
Pytest configuration and shared fixtures.

Provides an in-memory issue tracker and sample incidents for unit tests.
"""

from datetime import date, datetime, timezone
from itertools import count

import pytest

from incident_sync.exceptions import TrackerAPIError
from incident_sync.models import Incident, IssueState, Ledger, TrackedIssue
from incident_sync.tracker.base import CallPacer, IssueTracker


class FakeTracker(IssueTracker):
    """
    In-memory issue tracker.

    Every mutating call is recorded in ``calls`` as ``(method, number, fields)``
    so tests can assert on exactly what the reconciler did.
    """

    def __init__(self, issues: list[TrackedIssue] | None = None, fail_on: set[int] | None = None):
        self.issues: dict[int, TrackedIssue] = {i.number: i for i in (issues or [])}
        self.comments: dict[int, list[str]] = {}
        self.calls: list[tuple[str, int | None, dict]] = []
        self.fail_on = fail_on or set()
        self._numbers = count(max(self.issues, default=0) + 1)

    def _check(self, number: int) -> None:
        if number in self.fail_on:
            raise TrackerAPIError(502, "Bad Gateway", "PATCH", f"/issues/{number}")

    async def list_issues(self, labels, state):
        return [
            issue.model_copy()
            for issue in self.issues.values()
            if issue.state is state and all(label in issue.labels for label in labels)
        ]

    async def create_issue(self, title, body, labels):
        number = next(self._numbers)
        self.calls.append(("create", None, {"title": title, "body": body, "labels": list(labels)}))
        issue = TrackedIssue(
            number=number,
            state=IssueState.OPEN,
            title=title,
            body=body,
            labels=list(labels),
            html_url=f"https://github.com/acme/status/issues/{number}",
        )
        self.issues[number] = issue
        return issue.model_copy()

    async def update_issue(self, number, *, body=None, labels=None, state=None):
        fields = {}
        if body is not None:
            fields["body"] = body
        if labels is not None:
            fields["labels"] = list(labels)
        if state is not None:
            fields["state"] = state
        self.calls.append(("update", number, fields))
        self._check(number)
        issue = self.issues[number].model_copy(update=fields)
        self.issues[number] = issue
        return issue.model_copy()

    async def add_comment(self, number, body):
        self.calls.append(("comment", number, {"body": body}))
        self._check(number)
        self.comments.setdefault(number, []).append(body)


@pytest.fixture
def fake_tracker():
    return FakeTracker()


@pytest.fixture
def make_tracker():
    """Factory for a FakeTracker seeded with issues."""
    return FakeTracker


@pytest.fixture
def no_delay():
    return CallPacer(0)


@pytest.fixture
def now():
    return datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def active_incident() -> Incident:
    return Incident(
        date=date(2024, 3, 10),
        start_time="2024-03-10T11:00:00Z",
        title="api Service Disruption",
        description="api (https://api.example.com) experienced downtime starting at 2024-03-10 11:00:00 GMT.",
        service="api",
        url="https://api.example.com",
        status="investigating",
        eta="2024-03-11T12:00:00Z",
    )


@pytest.fixture
def resolved_incident() -> Incident:
    return Incident(
        date=date(2024, 3, 1),
        start_time="2024-03-01T08:00:00Z",
        title="web Extended Outage",
        description="web (https://example.com) has been inaccessible for approximately 2 hours since 2024-03-01 08:00:00 GMT.",
        service="web",
        url="https://example.com",
        resolved="2024-03-01 10:00:00 GMT - Service restored",
    )


@pytest.fixture
def ledger(active_incident, resolved_incident) -> Ledger:
    return Ledger(active=[active_incident], resolved=[resolved_incident])
