"""Data models for incident sync."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel


class CheckOutcome(str, Enum):
    """Result of a single health check."""

    SUCCESS = "success"
    FAILURE = "failure"


class CheckResult(BaseModel):
    """One parsed health-check log line."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    outcome: CheckOutcome

    @property
    def is_success(self) -> bool:
        return self.outcome is CheckOutcome.SUCCESS


class OutageInterval(BaseModel):
    """A run of consecutive failed checks for one service."""

    service_id: str
    start_time: datetime
    end_time: datetime
    failure_count: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_order(self) -> "OutageInterval":
        if self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self

    @computed_field
    @property
    def duration_minutes(self) -> int:
        """Outage duration rounded to whole minutes."""
        return round((self.end_time - self.start_time).total_seconds() / 60)


class Incident(BaseModel):
    """
    Canonical incident record as stored in the ledger.

    An incident is either active (``status`` set, optional ``eta``) or
    resolved (``resolved`` set), never both.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    incident_id: str | None = None
    date: date
    start_time: str | None = None
    title: str
    description: str = ""
    service: str | None = None
    url: str | None = None

    # Active shape
    status: str | None = None
    eta: str | None = None

    # Resolved shape
    resolved: str | None = None

    # Tracker linkage, filled in after a sync round-trip
    issue_number: int | None = None
    issue_url: str | None = None

    @model_validator(mode="after")
    def _check_lifecycle(self) -> "Incident":
        if self.status is not None and self.resolved is not None:
            raise ValueError("incident cannot be both active and resolved")
        if self.status is None and self.resolved is None:
            raise ValueError("incident must carry either status or resolved")
        return self

    @property
    def is_active(self) -> bool:
        return self.resolved is None


class Ledger(BaseModel):
    """The incident ledger, partitioned into active and resolved incidents."""

    active: list[Incident] = Field(default_factory=list)
    resolved: list[Incident] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_partitions(self) -> "Ledger":
        for incident in self.active:
            if not incident.is_active:
                raise ValueError(f"resolved incident in active partition: {incident.title}")
        for incident in self.resolved:
            if incident.is_active:
                raise ValueError(f"active incident in resolved partition: {incident.title}")
        return self

    def sort(self) -> None:
        """Order both partitions newest first by date."""
        self.active.sort(key=lambda i: i.date, reverse=True)
        self.resolved.sort(key=lambda i: i.date, reverse=True)

    def to_json_dict(self) -> dict:
        """Serialize with camelCase keys, dropping absent fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class IssueState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class TrackedIssue(BaseModel):
    """An issue on the remote tracker."""

    number: int
    state: IssueState
    title: str
    body: str = ""
    labels: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    closed_at: datetime | None = None
    updated_at: datetime | None = None
    html_url: str | None = None

    @property
    def is_open(self) -> bool:
        return self.state is IssueState.OPEN
