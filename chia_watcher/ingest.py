"""Ingestion loop: tail → parse → extract → metrics."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from chia_watcher.metrics import MetricsSink
from chia_watcher.parsers import extract_event, parse_line

logger = logging.getLogger(__name__)


@dataclass
class IngestStats:
    lines_seen: int = 0
    lines_parsed: int = 0
    events_applied: int = 0
    lines_before_cutoff: int = 0


def process_line(line: str, sink: MetricsSink, cutoff: datetime, stats: IngestStats):
    """Apply one raw line to the sink.

    Every parsed line counts toward its level. Harvest metrics only move for
    lines stamped at or after the cutoff, so replaying the history of an
    existing log at startup does not inflate them.
    """
    stats.lines_seen += 1
    entry = parse_line(line)
    if entry is None:
        logger.debug("Skipping unrecognised line: %.80s", line)
        return

    stats.lines_parsed += 1
    sink.increment_line_count(entry.level)

    if entry.timestamp < cutoff:
        stats.lines_before_cutoff += 1
        return

    event = extract_event(entry)
    if event is None:
        return

    sink.apply_event(event)
    stats.events_applied += 1


def run_ingestion(
    stream: Iterable[tuple[str, int]],
    sink: MetricsSink,
    cutoff: datetime | None = None,
) -> IngestStats:
    """Consume the stream until it ends. TailError from the stream propagates."""
    if cutoff is None:
        cutoff = datetime.now(timezone.utc)
    logger.info("Ingesting from %s (harvest events before %s are ignored)",
                getattr(stream, "path", "stream"), cutoff.isoformat())

    stats = IngestStats()
    for line, _offset in stream:
        process_line(line, sink, cutoff, stats)
    return stats
