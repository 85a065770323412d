"""Per-item results of a reconciliation pass."""

from collections import Counter
from enum import Enum

from pydantic import BaseModel, Field, computed_field

from ..models import Ledger


class SyncAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    REOPENED = "reopened"
    CLOSED = "closed"
    BACKFILLED = "backfilled"
    REFRESHED = "refreshed"
    UNCHANGED = "unchanged"
    STALE_CLOSED = "stale_closed"


class OperationResult(BaseModel):
    """Outcome of reconciling one incident (or one stale issue)."""

    action: SyncAction
    key: str
    title: str = ""
    issue_number: int | None = None
    issue_url: str | None = None
    matched_via: str | None = None
    mutations: int = 0
    error: str | None = None

    @computed_field
    @property
    def ok(self) -> bool:
        return self.error is None


class SyncReport(BaseModel):
    """All results of one pass, in the order they were produced."""

    results: list[OperationResult] = Field(default_factory=list)
    dry_run: bool = False
    aborted: bool = False

    # Ledger with issue numbers and URLs filled in; None if the pass aborted
    ledger: Ledger | None = None

    def add(self, result: OperationResult) -> None:
        self.results.append(result)

    @property
    def failures(self) -> list[OperationResult]:
        return [r for r in self.results if not r.ok]

    @property
    def mutation_count(self) -> int:
        return sum(r.mutations for r in self.results)

    def counts(self) -> dict[str, int]:
        """Successful results per action."""
        return dict(Counter(r.action.value for r in self.results if r.ok))
