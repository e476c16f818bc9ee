"""Thread-safe counters and gauge for harvester metrics, rendered for Prometheus."""

import threading

from prometheus_client import generate_latest
from prometheus_client.core import CollectorRegistry, CounterMetricFamily, GaugeMetricFamily, Metric

from chia_watcher.models import HarvestEvent, MetricsSnapshot

LOG_LINES = "chia_log_lines"
HARVESTER_EVENTS_TOTAL = "chia_harvester_events_total"
HARVESTER_PLOTS_ELIGIBLE = "chia_harvester_plots_eligible"
HARVESTER_PLOTS_PROOFS = "chia_harvester_plots_proofs"
HARVESTER_PLOTS_TOTAL = "chia_harvester_plots_total"

_BARE_COUNTERS = tuple(
    name.encode("ascii") for name in (LOG_LINES, HARVESTER_PLOTS_ELIGIBLE, HARVESTER_PLOTS_PROOFS)
)


class _Cell:
    """A single integer value guarded by its own lock."""

    __slots__ = ("_lock", "_value")

    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def add(self, amount: int):
        with self._lock:
            self._value += amount

    def set(self, value: int):
        with self._lock:
            self._value = value

    def get(self) -> int:
        with self._lock:
            return self._value


def _counter_family(name: str, documentation: str) -> Metric:
    # Samples keep the exact series name; CounterMetricFamily would force a _total suffix.
    return Metric(name, documentation, "counter")


class MetricsSink:
    """Counters and gauge shared by the ingestion loop and the /metrics endpoint.

    Every metric has its own lock, so a scrape never waits behind an update
    to an unrelated metric. The per-level map takes a separate lock only when
    a level is seen for the first time.
    """

    def __init__(self):
        self._levels_lock = threading.Lock()
        self._line_counts: dict[str, _Cell] = {}
        self._events = _Cell()
        self._eligible = _Cell()
        self._proofs = _Cell()
        self._total_plots = _Cell()

        self._registry = CollectorRegistry()
        self._registry.register(self)

    # -- updates --------------------------------------------------------------

    def increment_line_count(self, level: str):
        cell = self._line_counts.get(level)
        if cell is None:
            with self._levels_lock:
                cell = self._line_counts.setdefault(level, _Cell())
        cell.add(1)

    def increment_harvester_events(self):
        self._events.add(1)

    def increment_eligible(self, n: int):
        self._check_increment(n)
        self._eligible.add(n)

    def increment_proofs(self, n: int):
        self._check_increment(n)
        self._proofs.add(n)

    def set_total_plots(self, n: int):
        self._total_plots.set(n)

    def apply_event(self, event: HarvestEvent):
        """Record one harvest report: eligible, then proofs, then total."""
        self.increment_harvester_events()
        self.increment_eligible(event.eligible_plots)
        self.increment_proofs(event.proofs_found)
        self.set_total_plots(event.total_plots)

    @staticmethod
    def _check_increment(n: int):
        if n < 0:
            raise ValueError(f"Counters can only be incremented by non-negative amounts, got {n}")

    # -- reads ----------------------------------------------------------------

    def snapshot(self) -> MetricsSnapshot:
        """Read every metric. Each value is consistent; the set as a whole need not be."""
        with self._levels_lock:
            cells = list(self._line_counts.items())
        return MetricsSnapshot(
            line_counts={level: cell.get() for level, cell in cells},
            harvester_events=self._events.get(),
            plots_eligible=self._eligible.get(),
            plots_proofs=self._proofs.get(),
            plots_total=self._total_plots.get(),
        )

    def collect(self):
        """prometheus_client collector hook."""
        snap = self.snapshot()

        lines = _counter_family(LOG_LINES, "Number of total log lines parsed")
        for level in sorted(snap.line_counts):
            lines.add_sample(LOG_LINES, {"level": level}, snap.line_counts[level])
        yield lines

        yield CounterMetricFamily(
            HARVESTER_EVENTS_TOTAL, "Number of harvester eligibility reports", value=snap.harvester_events,
        )

        eligible = _counter_family(HARVESTER_PLOTS_ELIGIBLE, "Cumulative plots eligible for farming")
        eligible.add_sample(HARVESTER_PLOTS_ELIGIBLE, {}, snap.plots_eligible)
        yield eligible

        proofs = _counter_family(HARVESTER_PLOTS_PROOFS, "Cumulative proofs found")
        proofs.add_sample(HARVESTER_PLOTS_PROOFS, {}, snap.plots_proofs)
        yield proofs

        yield GaugeMetricFamily(
            HARVESTER_PLOTS_TOTAL, "Plots currently known to the harvester", value=snap.plots_total,
        )

    def render(self) -> bytes:
        """Encode the current values in the Prometheus text exposition format."""
        text = generate_latest(self._registry)
        # The encoder names counter headers <name>_total; point them back at the real series.
        for name in _BARE_COUNTERS:
            total = name + b"_total"
            text = text.replace(b"# HELP " + total + b" ", b"# HELP " + name + b" ")
            text = text.replace(b"# TYPE " + total + b" counter", b"# TYPE " + name + b" counter")
        return text
