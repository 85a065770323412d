"""Ledger/tracker reconciliation."""

from .identity import (
    IssueIndex,
    incident_fallback_key,
    incident_key,
    issue_fallback_key,
    issue_key,
)
from .pull import issue_to_incident, pull_ledger
from .reconciler import Reconciler
from .report import OperationResult, SyncAction, SyncReport

__all__ = [
    "IssueIndex",
    "incident_key",
    "incident_fallback_key",
    "issue_key",
    "issue_fallback_key",
    "issue_to_incident",
    "pull_ledger",
    "Reconciler",
    "OperationResult",
    "SyncAction",
    "SyncReport",
]
