"""GitHub Issues client for the incident board."""

import logging
from datetime import datetime

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..exceptions import TrackerAPIError
from ..models import IssueState, TrackedIssue
from .base import IssueTracker

logger = logging.getLogger(__name__)

PER_PAGE = 100
MAX_PAGES = 10


class GitHubIssueTracker(IssueTracker):
    """Issue tracker backed by the GitHub REST v3 issues API."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            owner: Repository owner
            repo: Repository name
            token: Personal access or workflow token
            api_url: API root, overridable for GitHub Enterprise
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "User-Agent": "incident-sync/0.1",
                    "Authorization": f"token {self.token}",
                    "Accept": "application/vnd.github.v3+json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self, method: str, path: str, json: dict | None = None, params: dict | None = None
    ) -> httpx.Response:
        """Send a request and raise TrackerAPIError on a non-2xx answer."""
        client = await self._get_client()
        logger.debug(f"{method} {path}")
        response = await client.request(method, path, json=json, params=params)
        if not response.is_success:
            raise TrackerAPIError(response.status_code, response.text, method, path)
        return response

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _get_page(self, path: str, params: dict | None) -> httpx.Response:
        return await self._request("GET", path, params=params)

    @staticmethod
    def _parse_datetime(value: str | None) -> datetime | None:
        if not value:
            return None
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return datetime.fromisoformat(value)

    def _parse_issue(self, data: dict) -> TrackedIssue:
        return TrackedIssue(
            number=data["number"],
            state=IssueState(data.get("state", "open")),
            title=data.get("title") or "",
            body=data.get("body") or "",
            labels=[
                label["name"] if isinstance(label, dict) else str(label)
                for label in data.get("labels", [])
            ],
            created_at=self._parse_datetime(data.get("created_at")),
            closed_at=self._parse_datetime(data.get("closed_at")),
            updated_at=self._parse_datetime(data.get("updated_at")),
            html_url=data.get("html_url"),
        )

    async def list_issues(self, labels: list[str], state: IssueState) -> list[TrackedIssue]:
        """List issues, following ``Link: rel=next`` pagination."""
        path: str | None = f"{self.repo_path}/issues"
        params: dict | None = {
            "labels": ",".join(labels),
            "state": state.value,
            "per_page": PER_PAGE,
        }

        issues: list[TrackedIssue] = []
        pages = 0
        while path and pages < MAX_PAGES:
            response = await self._get_page(path, params)
            pages += 1
            for data in response.json():
                # The issues endpoint also returns pull requests
                if "pull_request" in data:
                    continue
                issues.append(self._parse_issue(data))

            next_link = response.links.get("next")
            path = next_link["url"] if next_link else None
            params = None

        if path:
            logger.warning(f"Stopped listing {state.value} issues after {MAX_PAGES} pages")
        logger.debug(f"Fetched {len(issues)} {state.value} issues")
        return issues

    async def create_issue(self, title: str, body: str, labels: list[str]) -> TrackedIssue:
        response = await self._request(
            "POST",
            f"{self.repo_path}/issues",
            json={"title": title, "body": body, "labels": labels},
        )
        return self._parse_issue(response.json())

    async def update_issue(
        self,
        number: int,
        *,
        body: str | None = None,
        labels: list[str] | None = None,
        state: IssueState | None = None,
    ) -> TrackedIssue:
        payload: dict = {}
        if body is not None:
            payload["body"] = body
        if labels is not None:
            payload["labels"] = labels
        if state is not None:
            payload["state"] = state.value
        response = await self._request(
            "PATCH", f"{self.repo_path}/issues/{number}", json=payload
        )
        return self._parse_issue(response.json())

    async def add_comment(self, number: int, body: str) -> None:
        await self._request(
            "POST", f"{self.repo_path}/issues/{number}/comments", json={"body": body}
        )
