"""
Unit tests for the reconciliation engine.
"""

from datetime import date

import pytest

from incident_sync.models import Incident, IssueState, Ledger, TrackedIssue
from incident_sync.sync.reconciler import Reconciler
from incident_sync.sync.report import SyncAction
from incident_sync.tracker.body import issue_title, render_issue_body


def _issue_for(incident: Incident, number: int, state=IssueState.OPEN, labels=None, body=None):
    return TrackedIssue(
        number=number,
        state=state,
        title=issue_title(incident),
        body=render_issue_body(incident) if body is None else body,
        labels=labels or ["incident", "investigating"],
        html_url=f"https://github.com/acme/status/issues/{number}",
    )


def _mutations(tracker) -> list[tuple[str, int | None]]:
    return [(method, number) for method, number, _ in tracker.calls]


@pytest.mark.asyncio
async def test_active_incident_without_issue_is_created(make_tracker, no_delay):
    incident = Incident(
        incident_id="svc-123",
        date=date(2024, 3, 10),
        title="svc Service Disruption",
        service="svc",
        status="investigating",
    )
    tracker = make_tracker()

    report = await Reconciler(tracker, pacer=no_delay).reconcile(Ledger(active=[incident]))

    creates = [c for c in tracker.calls if c[0] == "create"]
    assert len(creates) == 1
    assert len(tracker.calls) == 1
    labels = creates[0][2]["labels"]
    assert "incident" in labels and "investigating" in labels
    assert creates[0][2]["title"] == "[INCIDENT] svc Service Disruption"
    assert report.results[0].action is SyncAction.CREATED
    assert report.ledger.active[0].issue_number == 1
    assert report.ledger.active[0].issue_url.endswith("/issues/1")


@pytest.mark.asyncio
async def test_closed_match_is_reopened_then_updated(make_tracker, no_delay, active_incident):
    stale_body = render_issue_body(active_incident.model_copy(update={"description": "old"}))
    closed = _issue_for(
        active_incident, 4, state=IssueState.CLOSED, labels=["incident", "resolved"], body=stale_body
    )
    tracker = make_tracker([closed])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(Ledger(active=[active_incident]))

    assert _mutations(tracker) == [("update", 4), ("update", 4)]
    reopen, update = tracker.calls[0][2], tracker.calls[1][2]
    assert reopen == {"state": IssueState.OPEN, "labels": ["incident", "investigating"]}
    assert update["body"] == render_issue_body(active_incident)
    assert "state" not in update
    assert tracker.issues[4].state is IssueState.OPEN
    assert report.results[0].action is SyncAction.REOPENED


@pytest.mark.asyncio
async def test_open_match_is_updated_in_place(make_tracker, no_delay, active_incident):
    outdated = _issue_for(active_incident, 2, body="### Service\n\napi\n\n---\n\nStarted: 2024-03-10T11:00:00Z\n")
    tracker = make_tracker([outdated])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(Ledger(active=[active_incident]))

    assert _mutations(tracker) == [("update", 2)]
    assert tracker.issues[2].body == render_issue_body(active_incident)
    assert report.results[0].action is SyncAction.UPDATED


@pytest.mark.asyncio
async def test_update_keeps_unrelated_labels(make_tracker, no_delay, active_incident):
    issue = _issue_for(active_incident, 2, labels=["incident", "resolved", "p1"])
    tracker = make_tracker([issue])

    await Reconciler(tracker, pacer=no_delay).reconcile(Ledger(active=[active_incident]))

    assert tracker.issues[2].labels == ["incident", "investigating", "p1"]


@pytest.mark.asyncio
async def test_resolved_with_open_issue_is_closed_with_comment(
    make_tracker, no_delay, active_incident, resolved_incident
):
    # The issue was opened while the outage was active
    was_active = resolved_incident.model_copy(
        update={"resolved": None, "status": "investigating"}
    )
    tracker = make_tracker([_issue_for(was_active, 3)])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(
        Ledger(resolved=[resolved_incident])
    )

    assert _mutations(tracker) == [("update", 3), ("comment", 3)]
    assert tracker.calls[0][2]["state"] is IssueState.CLOSED
    assert tracker.comments[3] == [f"**Resolved:** {resolved_incident.resolved}"]
    assert tracker.issues[3].body == render_issue_body(resolved_incident)
    assert report.results[0].action is SyncAction.CLOSED


@pytest.mark.asyncio
async def test_resolved_with_closed_issue_refreshes_body_only(
    make_tracker, no_delay, resolved_incident
):
    closed = _issue_for(
        resolved_incident, 6, state=IssueState.CLOSED, labels=["incident", "resolved"], body="### Service\n\nweb\n\n---\n\nStarted: 2024-03-01T08:00:00Z\n"
    )
    tracker = make_tracker([closed])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(
        Ledger(resolved=[resolved_incident])
    )

    assert tracker.calls == [("update", 6, {"body": render_issue_body(resolved_incident)})]
    assert tracker.issues[6].state is IssueState.CLOSED
    assert tracker.issues[6].labels == ["incident", "resolved"]
    assert report.results[0].action is SyncAction.REFRESHED


@pytest.mark.asyncio
async def test_resolved_without_issue_is_backfilled(make_tracker, no_delay, resolved_incident):
    tracker = make_tracker()

    report = await Reconciler(tracker, pacer=no_delay).reconcile(
        Ledger(resolved=[resolved_incident])
    )

    assert _mutations(tracker) == [("create", None), ("update", 1), ("comment", 1)]
    assert tracker.calls[0][2]["labels"] == ["incident", "resolved"]
    assert tracker.issues[1].state is IssueState.CLOSED
    assert report.results[0].action is SyncAction.BACKFILLED


@pytest.mark.asyncio
async def test_leftover_open_issue_is_closed_as_stale(make_tracker, no_delay, active_incident):
    gone = active_incident.model_copy(update={"service": "db", "title": "db Service Disruption"})
    tracker = make_tracker([_issue_for(gone, 8)])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(Ledger())

    assert _mutations(tracker) == [("update", 8), ("comment", 8)]
    assert tracker.issues[8].state is IssueState.CLOSED
    assert tracker.comments[8] == ["**Resolved:** Service has recovered"]
    assert report.results[0].action is SyncAction.STALE_CLOSED


@pytest.mark.asyncio
async def test_closing_resolved_issue_is_not_mistaken_for_stale(
    make_tracker, no_delay, resolved_incident
):
    tracker = make_tracker([_issue_for(resolved_incident, 3)])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(
        Ledger(resolved=[resolved_incident])
    )

    assert [r.action for r in report.results] == [SyncAction.CLOSED]
    assert len(tracker.comments[3]) == 1


@pytest.mark.asyncio
async def test_unkeyed_issue_is_left_alone(make_tracker, no_delay):
    tracker = make_tracker(
        [TrackedIssue(number=1, state=IssueState.OPEN, title="[INCIDENT]", labels=["incident"])]
    )

    report = await Reconciler(tracker, pacer=no_delay).reconcile(Ledger())

    assert tracker.calls == []
    assert report.results == []


@pytest.mark.asyncio
async def test_second_pass_is_idempotent(make_tracker, no_delay, ledger, active_incident):
    stale = active_incident.model_copy(update={"service": "db", "title": "db Service Disruption"})
    tracker = make_tracker([_issue_for(stale, 1)])

    await Reconciler(tracker, pacer=no_delay).reconcile(ledger)
    first_pass = len(tracker.calls)
    report = await Reconciler(tracker, pacer=no_delay).reconcile(ledger)

    assert first_pass > 0
    assert len(tracker.calls) == first_pass
    assert report.mutation_count == 0
    assert {r.action for r in report.results} == {SyncAction.UNCHANGED}


@pytest.mark.asyncio
async def test_shared_fallback_key_falls_through_to_create(make_tracker, no_delay):
    hand_written = TrackedIssue(
        number=1,
        state=IssueState.OPEN,
        title="[INCIDENT] api Service Disruption",
        body="### Service\n\napi\n\nSomething is wrong.",
        labels=["incident"],
    )
    tracker = make_tracker([hand_written])
    incidents = [
        Incident(
            incident_id=incident_id,
            date=date(2024, 3, 10),
            title="api Service Disruption",
            service="api",
            status="investigating",
        )
        for incident_id in ("api-1", "api-2")
    ]

    report = await Reconciler(tracker, pacer=no_delay).reconcile(Ledger(active=incidents))

    assert [r.action for r in report.results] == [SyncAction.UPDATED, SyncAction.CREATED]
    assert report.results[0].matched_via == "fallback"
    assert _mutations(tracker) == [("update", 1), ("create", None)]


@pytest.mark.asyncio
async def test_failure_is_recorded_and_batch_continues(
    make_tracker, no_delay, active_incident, resolved_incident
):
    tracker = make_tracker([_issue_for(resolved_incident, 3)], fail_on={3})
    ledger = Ledger(active=[active_incident], resolved=[resolved_incident])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(ledger)

    assert [r.ok for r in report.results] == [True, False]
    assert "502" in report.failures[0].error
    assert not report.aborted
    # Failed incident keeps its ledger entry without linkage
    assert report.ledger.resolved[0].issue_number is None


@pytest.mark.asyncio
async def test_stop_on_error_aborts(make_tracker, no_delay, active_incident, resolved_incident):
    tracker = make_tracker(
        [_issue_for(resolved_incident, 3), _issue_for(active_incident.model_copy(update={"service": "db"}), 4)],
        fail_on={3},
    )
    ledger = Ledger(resolved=[resolved_incident])

    report = await Reconciler(tracker, pacer=no_delay, continue_on_error=False).reconcile(ledger)

    assert report.aborted
    assert report.ledger is None
    assert len(report.results) == 1
    assert all(number == 3 for _, number, _ in tracker.calls)


@pytest.mark.asyncio
async def test_dry_run_does_not_mutate(make_tracker, no_delay, ledger):
    tracker = make_tracker()

    report = await Reconciler(tracker, pacer=no_delay, dry_run=True).reconcile(ledger)

    assert tracker.calls == []
    assert [r.action for r in report.results] == [SyncAction.CREATED, SyncAction.BACKFILLED]
    assert report.mutation_count == 4


@pytest.mark.asyncio
async def test_serviceless_incident_is_idempotent(make_tracker, no_delay):
    incident = Incident(date=date(2024, 3, 10), title="Everything is down", status="investigating")
    tracker = make_tracker()

    await Reconciler(tracker, pacer=no_delay).reconcile(Ledger(active=[incident]))
    report = await Reconciler(tracker, pacer=no_delay).reconcile(Ledger(active=[incident]))

    assert _mutations(tracker) == [("create", None)]
    assert [r.action for r in report.results] == [SyncAction.UNCHANGED]
    assert report.mutation_count == 0


@pytest.mark.asyncio
async def test_issue_with_date_only_body_is_adopted(make_tracker, no_delay, resolved_incident):
    legacy_body = (
        "### Service\n\nweb\n\n"
        "### Status\n\ninvestigating\n\n"
        "### Description\n\nweb has been inaccessible.\n\n"
        "---\n\n"
        "*Auto-generated from health check logs*\n\n"
        "Started: 2024-03-01\n"
        "Service URL: https://example.com\n"
    )
    legacy = TrackedIssue(
        number=1,
        state=IssueState.OPEN,
        title="[INCIDENT] web Extended Outage",
        body=legacy_body,
        labels=["incident", "investigating"],
    )
    tracker = make_tracker([legacy])
    ledger = Ledger(resolved=[resolved_incident])

    report = await Reconciler(tracker, pacer=no_delay).reconcile(ledger)

    assert _mutations(tracker) == [("update", 1), ("comment", 1)]
    assert [r.action for r in report.results] == [SyncAction.CLOSED]
    assert report.results[0].matched_via == "date"
    assert tracker.issues[1].body == render_issue_body(resolved_incident)

    second = await Reconciler(tracker, pacer=no_delay).reconcile(ledger)
    assert second.mutation_count == 0
