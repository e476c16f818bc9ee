"""Parsed log entry, harvest event, and metrics snapshot models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime  # UTC, millisecond precision
    app: str             # e.g. "harvester", "full_node"
    module: str          # e.g. "chia.harvester.harvester"
    level: str           # INFO, WARNING, ERROR, ...
    text: str            # remainder of the line, verbatim


@dataclass(frozen=True)
class HarvestEvent:
    eligible_plots: int
    proofs_found: int
    total_plots: int


@dataclass(frozen=True)
class MetricsSnapshot:
    line_counts: dict[str, int] = field(default_factory=dict)
    harvester_events: int = 0
    plots_eligible: int = 0
    plots_proofs: int = 0
    plots_total: int = 0
