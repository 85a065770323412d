"""Base issue tracker interface."""

import asyncio
import time
from abc import ABC, abstractmethod

from ..models import IssueState, TrackedIssue


class CallPacer:
    """Enforce a fixed minimum delay between consecutive calls."""

    def __init__(self, delay: float = 0.5):
        """
        Initialize the pacer.

        Args:
            delay: Minimum seconds between two calls
        """
        self.delay = delay
        self.last_call: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Wait until the delay since the previous call has elapsed."""
        async with self._lock:
            if self.last_call is not None and self.delay > 0:
                elapsed = time.monotonic() - self.last_call
                if elapsed < self.delay:
                    await asyncio.sleep(self.delay - elapsed)
            self.last_call = time.monotonic()


class IssueTracker(ABC):
    """Abstract CRUD contract over the remote issue store."""

    @abstractmethod
    async def list_issues(self, labels: list[str], state: IssueState) -> list[TrackedIssue]:
        """
        List issues carrying all of ``labels`` in the given state.

        Args:
            labels: Labels every returned issue must carry
            state: Open or closed

        Returns:
            List of TrackedIssue objects
        """
        pass

    @abstractmethod
    async def create_issue(self, title: str, body: str, labels: list[str]) -> TrackedIssue:
        """Create an open issue and return it."""
        pass

    @abstractmethod
    async def update_issue(
        self,
        number: int,
        *,
        body: str | None = None,
        labels: list[str] | None = None,
        state: IssueState | None = None,
    ) -> TrackedIssue:
        """Patch the given fields of an issue; omitted fields are left alone."""
        pass

    @abstractmethod
    async def add_comment(self, number: int, body: str) -> None:
        """Add a comment to an issue."""
        pass

    async def close(self) -> None:
        """Release any underlying resources."""
        return None
