"""Regex-based parsers for Chia debug.log lines and harvester reports.

A Chia log line looks like:
    2021-05-01T10:00:00.123 harvester chia.harvester.harvester : INFO     <text>

parse_line() turns it into a LogEntry; extract_event() turns the text of a
harvester report into a HarvestEvent. Both return None on anything they do
not recognise.
"""

import re
from datetime import datetime, timezone

from chia_watcher.models import HarvestEvent, LogEntry

# ---------------------------------------------------------------------------
# Compiled regex patterns
# ---------------------------------------------------------------------------

_LOG_RE = re.compile(
    r'^(?P<timestamp>[0-9T\-:.]+)\s+'
    r'(?P<app>[A-Za-z_.]+)\s+'
    r'(?P<module>[A-Za-z_.]+)\s*:\s*'
    r'(?P<level>[A-Z]+)\s+'
    r'(?P<text>.*)$',
    re.DOTALL,
)

_TIMESTAMP_RE = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}$', re.ASCII)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"

_HARVEST_RE = re.compile(
    r'^(?P<eligible>\d+) plots were eligible for farming [0-9a-f]+\.\.\. '
    r'Found (?P<proofs>\d+) proofs\.'
    r'.*Total (?P<total>\d+) plots',
    re.ASCII,
)

HARVESTER_APP = "harvester"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_timestamp(value: str) -> datetime | None:
    """Convert '2021-05-01T10:00:00.123' → aware UTC datetime."""
    if not _TIMESTAMP_RE.match(value):
        return None
    try:
        dt = datetime.strptime(value, _TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return dt.replace(tzinfo=timezone.utc)


def _safe_int(value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def parse_line(raw: str) -> LogEntry | None:
    """Parse a single log line. Returns None if it does not match."""
    line = raw.rstrip("\r\n")
    m = _LOG_RE.match(line)
    if not m:
        return None

    timestamp = _parse_timestamp(m.group("timestamp"))
    if timestamp is None:
        return None

    return LogEntry(
        timestamp=timestamp,
        app=m.group("app"),
        module=m.group("module"),
        level=m.group("level"),
        text=m.group("text"),
    )


def extract_event(entry: LogEntry) -> HarvestEvent | None:
    """Pull plot counts out of a harvester's 'plots were eligible' report."""
    if entry.app != HARVESTER_APP:
        return None

    m = _HARVEST_RE.match(entry.text)
    if not m:
        return None

    eligible = _safe_int(m.group("eligible"))
    proofs = _safe_int(m.group("proofs"))
    total = _safe_int(m.group("total"))
    if eligible is None or proofs is None or total is None:
        return None

    return HarvestEvent(eligible_plots=eligible, proofs_found=proofs, total_plots=total)
