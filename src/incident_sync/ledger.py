"""Incident ledger and service registry storage."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from .exceptions import LedgerError
from .models import Ledger

logger = logging.getLogger(__name__)


def parse_registry(text: str) -> dict[str, str]:
    """
    Parse ``key=url`` lines into a service registry.

    Both sides are trimmed; blank and malformed lines are ignored.
    """
    urls: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, url = line.partition("=")
        key, url = key.strip(), url.strip()
        if sep and key and url:
            urls[key] = url
    return urls


def load_registry(path: str | Path) -> dict[str, str]:
    """Load the service registry, returning an empty one if the file is missing."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Service registry not found at {path}")
        return {}
    return parse_registry(path.read_text(encoding="utf-8"))


def parse_ledger(data: dict) -> Ledger:
    """Validate raw ledger JSON."""
    try:
        return Ledger.model_validate(data)
    except ValidationError as e:
        raise LedgerError(f"Invalid ledger: {e}") from e


def load_ledger(path: str | Path) -> Ledger:
    """
    Read the ledger file.

    Raises:
        LedgerError: If the file is missing, not JSON, or fails validation
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise LedgerError(f"Ledger file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise LedgerError(f"Ledger file {path} is not valid JSON: {e}") from e
    return parse_ledger(data)


def save_ledger(ledger: Ledger, path: str | Path) -> Path:
    """Rewrite the whole ledger file, pretty-printed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(ledger.to_json_dict(), f, indent=2, ensure_ascii=False)
        f.write("\n")
    logger.debug(f"Wrote ledger to {path}")
    return path


@dataclass(frozen=True)
class LedgerCache:
    """A fetched ledger and the time it was fetched."""

    payload: Ledger
    fetched_at: datetime

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.fetched_at < ttl


class RemoteLedgerSource:
    """Fetch a published ledger over HTTP, reusing it while fresh."""

    def __init__(self, url: str, ttl: timedelta = timedelta(minutes=5), timeout: float = 30.0):
        """
        Initialize the source.

        Args:
            url: URL of the published ledger JSON
            ttl: How long a fetched ledger is reused
            timeout: Request timeout in seconds
        """
        self.url = url
        self.ttl = ttl
        self.timeout = timeout
        self.cache: LedgerCache | None = None
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": "incident-sync/0.1", "Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _fetch_json(self) -> dict:
        client = await self._get_client()
        logger.debug(f"Fetching: {self.url}")
        response = await client.get(self.url)
        response.raise_for_status()
        return response.json()

    async def get(self, now: datetime | None = None) -> Ledger:
        """Return the cached ledger if fresh, otherwise fetch it."""
        now = now or datetime.now(timezone.utc)
        if self.cache and self.cache.is_fresh(now, self.ttl):
            return self.cache.payload

        ledger = parse_ledger(await self._fetch_json())
        self.cache = LedgerCache(payload=ledger, fetched_at=now)
        return ledger
