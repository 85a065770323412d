"""Issue tracker client and issue body grammar."""

from .base import CallPacer, IssueTracker
from .body import IssueBody, parse_issue_body, render_issue_body
from .github import GitHubIssueTracker

__all__ = [
    "CallPacer",
    "IssueTracker",
    "GitHubIssueTracker",
    "IssueBody",
    "parse_issue_body",
    "render_issue_body",
]
