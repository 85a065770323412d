"""Parse raw health-check logs into check results."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..exceptions import LogParseError
from ..models import CheckOutcome, CheckResult

logger = logging.getLogger(__name__)

LOG_SUFFIX = "_report.log"


def make_aware(dt: datetime) -> datetime:
    """Make a datetime timezone-aware (UTC) if it's naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(value: str) -> datetime:
    """
    Parse a log timestamp as UTC wall-clock time.

    Accepts ``2024-01-01 00:00:00`` as well as the legacy ``2024/01/01 00:00``
    form, and tolerates a trailing ``GMT``/``UTC``/``Z`` marker.
    """
    text = value.strip()
    for marker in (" GMT", " UTC", "Z"):
        if text.endswith(marker):
            text = text[: -len(marker)].rstrip()
            break
    text = text.replace("/", "-")
    return make_aware(datetime.fromisoformat(text))


def parse_line(line: str) -> CheckResult:
    """
    Parse one ``timestamp,outcome`` record.

    Raises:
        LogParseError: If the comma is missing or the timestamp is unparsable
    """
    timestamp_str, sep, outcome_str = line.partition(",")
    if not sep:
        raise LogParseError(line, "missing comma")

    try:
        timestamp = parse_timestamp(timestamp_str)
    except ValueError:
        raise LogParseError(line, "unparsable timestamp") from None

    outcome = (
        CheckOutcome.SUCCESS if outcome_str.strip() == "success" else CheckOutcome.FAILURE
    )
    return CheckResult(timestamp=timestamp, outcome=outcome)


def parse_log(content: str, source: str = "<log>") -> list[CheckResult]:
    """
    Parse a whole log file.

    Blank lines are skipped. Malformed lines are logged and skipped so one
    bad record does not drop the rest of the file. Input order is kept.
    """
    results = []
    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            results.append(parse_line(line))
        except LogParseError as e:
            logger.warning(f"{source}:{lineno}: skipping line ({e.reason}): {line!r}")
    return results


def service_from_log_name(path: Path) -> str | None:
    """Return the service key for a ``<service>_report.log`` file."""
    if not path.name.endswith(LOG_SUFFIX):
        return None
    return path.name[: -len(LOG_SUFFIX)]


def discover_logs(logs_dir: Path, excluded: list[str] | None = None) -> dict[str, Path]:
    """
    Find per-service log files in a directory.

    Services whose lowercased key is in ``excluded`` are skipped.
    """
    excluded_set = {name.lower() for name in (excluded or [])}
    found: dict[str, Path] = {}
    for path in sorted(logs_dir.glob(f"*{LOG_SUFFIX}")):
        service = service_from_log_name(path)
        if not service:
            continue
        if service.lower() in excluded_set:
            logger.debug(f"Skipping excluded service {service}")
            continue
        found[service] = path
    return found


async def load_logs(paths: dict[str, Path]) -> dict[str, list[CheckResult]]:
    """Read and parse several service logs concurrently."""

    async def _load(service: str, path: Path) -> tuple[str, list[CheckResult]]:
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return service, parse_log(content, source=path.name)

    loaded = await asyncio.gather(*(_load(s, p) for s, p in paths.items()))
    return dict(loaded)
