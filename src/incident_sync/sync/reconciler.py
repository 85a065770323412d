"""Reconcile the incident ledger against the issue tracker."""

import logging
from typing import Awaitable, Callable, Optional

import httpx

from ..exceptions import TrackerAPIError
from ..models import Incident, IssueState, Ledger, TrackedIssue
from ..tracker.base import CallPacer, IssueTracker
from ..tracker.body import issue_title, render_issue_body
from .identity import IssueIndex, incident_key
from .report import OperationResult, SyncAction, SyncReport

logger = logging.getLogger(__name__)

CATEGORY_LABEL = "incident"
STATUS_LABELS = {"investigating", "identified", "monitoring", "resolved"}
STALE_RESOLUTION = "Service has recovered"


class SyncAborted(Exception):
    """Internal signal that the continuation policy stopped the batch."""


def _normalize_body(body: str | None) -> str:
    return (body or "").replace("\r\n", "\n").strip()


class Reconciler:
    """
    Converge tracker state toward the ledger.

    One pass processes active incidents, then resolved incidents, then
    closes leftover open issues as stale. Mutating calls run one at a time,
    paced by ``pacer``.
    """

    def __init__(
        self,
        tracker: IssueTracker,
        pacer: Optional[CallPacer] = None,
        category_label: str = CATEGORY_LABEL,
        continue_on_error: bool = True,
        dry_run: bool = False,
    ):
        """
        Initialize the reconciler.

        Args:
            tracker: Issue tracker client
            pacer: Delay enforcer for mutating calls (defaults to 500ms)
            category_label: Label every incident issue carries
            continue_on_error: Keep going after a failed incident
            dry_run: Plan and report without mutating the tracker
        """
        self.tracker = tracker
        self.pacer = pacer or CallPacer(0.5)
        self.category_label = category_label
        self.continue_on_error = continue_on_error
        self.dry_run = dry_run

    async def fetch_index(self) -> IssueIndex:
        """Fetch open and closed incident issues and index them by key."""
        open_issues = await self.tracker.list_issues([self.category_label], IssueState.OPEN)
        closed_issues = await self.tracker.list_issues([self.category_label], IssueState.CLOSED)
        index = IssueIndex(open_issues, closed_issues)
        logger.info(
            f"Found {index.open_count} open and {index.closed_count} closed incident issues"
        )
        return index

    def _labels(self, status: str, existing: list[str] | None = None) -> list[str]:
        """Category and status label, keeping any unrelated labels already present."""
        kept = [
            label
            for label in (existing or [])
            if label != self.category_label and label not in STATUS_LABELS
        ]
        return [self.category_label, status, *kept]

    async def _mutate(
        self, result: OperationResult, call: Callable[..., Awaitable], *args, **kwargs
    ):
        result.mutations += 1
        if self.dry_run:
            return None
        await self.pacer.wait()
        return await call(*args, **kwargs)

    def _link(self, result: OperationResult, issue: Optional[TrackedIssue]) -> None:
        if issue is not None:
            result.issue_number = issue.number
            result.issue_url = issue.html_url

    async def _close(
        self, result: OperationResult, number: int | None, resolution: str, **fields
    ) -> None:
        await self._mutate(
            result, self.tracker.update_issue, number, state=IssueState.CLOSED, **fields
        )
        await self._mutate(
            result, self.tracker.add_comment, number, f"**Resolved:** {resolution}"
        )

    async def _sync_active(
        self, incident: Incident, issue: Optional[TrackedIssue], result: OperationResult
    ) -> None:
        status = incident.status or "investigating"
        body = render_issue_body(incident)

        if issue is None:
            created = await self._mutate(
                result,
                self.tracker.create_issue,
                issue_title(incident),
                body,
                self._labels(status),
            )
            result.action = SyncAction.CREATED
            self._link(result, created)
            logger.info(f"  Created issue for {incident.title}")
            return

        self._link(result, issue)
        labels = self._labels(status, issue.labels)

        if issue.is_open:
            if _normalize_body(issue.body) == _normalize_body(body) and set(labels) == set(issue.labels):
                result.action = SyncAction.UNCHANGED
                return
            await self._mutate(
                result, self.tracker.update_issue, issue.number, body=body, labels=labels
            )
            result.action = SyncAction.UPDATED
            logger.info(f"  Updated issue #{issue.number}")
            return

        # Recurrence: the service went down again
        await self._mutate(
            result,
            self.tracker.update_issue,
            issue.number,
            state=IssueState.OPEN,
            labels=self._labels("investigating", issue.labels),
        )
        await self._mutate(
            result, self.tracker.update_issue, issue.number, body=body, labels=labels
        )
        result.action = SyncAction.REOPENED
        logger.info(f"  Reopened issue #{issue.number}")

    async def _sync_resolved(
        self, incident: Incident, issue: Optional[TrackedIssue], result: OperationResult
    ) -> None:
        body = render_issue_body(incident)
        resolution = incident.resolved or ""

        if issue is None:
            created = await self._mutate(
                result,
                self.tracker.create_issue,
                issue_title(incident),
                body,
                self._labels("resolved"),
            )
            self._link(result, created)
            await self._close(result, created.number if created else None, resolution)
            result.action = SyncAction.BACKFILLED
            logger.info(f"  Created and closed issue for {incident.title}")
            return

        self._link(result, issue)

        if issue.is_open:
            await self._close(result, issue.number, resolution, body=body)
            result.action = SyncAction.CLOSED
            logger.info(f"  Closed issue #{issue.number}")
            return

        if _normalize_body(issue.body) == _normalize_body(body):
            result.action = SyncAction.UNCHANGED
            return
        await self._mutate(result, self.tracker.update_issue, issue.number, body=body)
        result.action = SyncAction.REFRESHED
        logger.info(f"  Refreshed closed issue #{issue.number}")

    async def _run_item(
        self,
        report: SyncReport,
        result: OperationResult,
        step: Callable[[], Awaitable[None]],
    ) -> None:
        """Run one item's operations, recording failure instead of raising."""
        try:
            await step()
        except (TrackerAPIError, httpx.HTTPError) as e:
            result.error = str(e)
            logger.warning(f"  Failed to sync {result.key}: {e}")
        report.add(result)
        if not result.ok and not self.continue_on_error:
            report.aborted = True
            raise SyncAborted(result.key)

    def _linked(self, incident: Incident, result: OperationResult) -> Incident:
        if not result.ok or result.issue_number is None:
            return incident
        return incident.model_copy(
            update={"issue_number": result.issue_number, "issue_url": result.issue_url}
        )

    async def reconcile(self, ledger: Ledger, index: Optional[IssueIndex] = None) -> SyncReport:
        """
        Run one reconciliation pass.

        Args:
            ledger: Canonical incidents
            index: Pre-fetched issue index; fetched from the tracker if omitted

        Returns:
            SyncReport with one result per incident and stale issue, and the
            ledger with tracker linkage filled in
        """
        if index is None:
            index = await self.fetch_index()

        report = SyncReport(dry_run=self.dry_run)
        linked = Ledger()

        try:
            logger.info("Processing active incidents...")
            for incident in ledger.active:
                issue, via = index.match(incident)
                result = OperationResult(
                    action=SyncAction.UNCHANGED,
                    key=incident_key(incident),
                    title=incident.title,
                    matched_via=via,
                )
                await self._run_item(
                    report, result, lambda: self._sync_active(incident, issue, result)
                )
                linked.active.append(self._linked(incident, result))

            logger.info("Processing resolved incidents...")
            for incident in ledger.resolved:
                issue, via = index.match(incident)
                result = OperationResult(
                    action=SyncAction.UNCHANGED,
                    key=incident_key(incident),
                    title=incident.title,
                    matched_via=via,
                )
                await self._run_item(
                    report, result, lambda: self._sync_resolved(incident, issue, result)
                )
                linked.resolved.append(self._linked(incident, result))

            stale = index.leftover_open()
            if stale:
                logger.info(f"Closing {len(stale)} stale issue(s)...")
            for issue in stale:
                result = OperationResult(
                    action=SyncAction.STALE_CLOSED,
                    key=f"#{issue.number}",
                    title=issue.title,
                    issue_number=issue.number,
                    issue_url=issue.html_url,
                )
                await self._run_item(
                    report, result, lambda: self._close(result, issue.number, STALE_RESOLUTION)
                )
        except SyncAborted as e:
            logger.error(f"Stopping sync after failure on {e}")
            return report

        report.ledger = linked
        return report
