"""
    bench_compare.py - pair two benchmark runs and compute per metric deltas

"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

from bench_parse import Bench, BenchSet, Metric

logger = logging.getLogger(__name__)

UNCHANGED = "~"

Row = Tuple[str, str, str, str]


@dataclass(frozen=True)
class Delta:
    """Change of one metric between a before and an after value.

    A zero before value cannot give a ratio; such a delta reads as unchanged.
    """

    before: float
    after: float

    def ratio(self) -> float:
        if self.before == 0:
            return 1.0
        return self.after / self.before

    def percent_change(self) -> float:
        if self.before == 0:
            return 0.0
        return (self.after - self.before) / self.before * 100

    def changed(self) -> bool:
        return self.before != 0 and self.before != self.after

    def magnitude(self) -> float:
        """Size of the percent change."""
        return abs(self.percent_change())

    def multiple_magnitude(self) -> float:
        return abs(self.ratio())

    def percent(self) -> str:
        if not self.changed():
            return UNCHANGED
        return f"{self.percent_change():+.2f}%"

    def multiple(self) -> str:
        if not self.changed():
            return UNCHANGED
        return f"{self.ratio():+.2f}x"


@dataclass(frozen=True)
class BenchCmp:
    """A benchmark seen in both runs."""

    before: Bench
    after: Bench

    def __post_init__(self):
        if self.before.name != self.after.name:
            raise ValueError(
                f"cannot compare {self.before.name} with {self.after.name}"
            )

    @property
    def name(self) -> str:
        return self.before.name

    def measured(self, metric: Metric) -> bool:
        return self.before.has(metric) and self.after.has(metric)

    def delta(self, metric: Metric) -> Delta:
        return Delta(self.before.value(metric), self.after.value(metric))

    def delta_ns_op(self) -> Delta:
        return self.delta(Metric.NS_OP)

    def delta_mb_s(self) -> Delta:
        return self.delta(Metric.MB_S)

    def delta_allocs_op(self) -> Delta:
        return self.delta(Metric.ALLOCS_OP)

    def delta_b_op(self) -> Delta:
        return self.delta(Metric.B_OP)

    def __str__(self):
        return f"<{self.before}, {self.after}>"


def correlate(before: BenchSet, after: BenchSet) -> Tuple[List[BenchCmp], List[str]]:
    """Pairs benchmarks by name.

    Returns the comparisons, in the order of the before run, and a warning
    for every benchmark found in only one run.
    """
    cmps = []
    warnings = []
    for b in before:
        a = after.get(b.name)
        if a is None:
            warnings.append(f"ignoring {b.name}: missing from after")
            continue
        cmps.append(BenchCmp(b, a))
    for a in after:
        if a.name not in before:
            warnings.append(f"ignoring {a.name}: missing from before")

    logger.debug("%d benchmarks in common, %d one-sided", len(cmps), len(warnings))
    return cmps, warnings


def by_parse_order(cmps: Sequence[BenchCmp], before: BenchSet) -> List[BenchCmp]:
    """Returns cmps in the order their benchmarks first appeared in before."""
    return sorted(cmps, key=lambda c: before.ordinal(c.name))


def by_magnitude(
    cmps: Sequence[BenchCmp],
    metric: Metric,
    magnitude: Callable[[Delta], float] = Delta.magnitude,
) -> List[BenchCmp]:
    """Returns cmps with the largest change of metric first.

    magnitude maps a delta to its sort key. Comparisons that did not measure
    metric on both sides go last, in their incoming order.
    """
    measured = [c for c in cmps if c.measured(metric)]
    unmeasured = [c for c in cmps if not c.measured(metric)]
    measured.sort(key=lambda c: magnitude(c.delta(metric)), reverse=True)
    return measured + unmeasured


def format_ns(ns: float) -> str:
    """Formats ns with the precision `go test` uses for ns/op."""
    prec = 0
    if ns < 10:
        prec = 2
    elif ns < 100:
        prec = 1
    return f"{ns:.{prec}f}"


def format_mb_s(mb_s: float) -> str:
    return f"{mb_s:.2f}"


def format_count(n: int) -> str:
    return f"{n:d}"


@dataclass(frozen=True)
class MetricSpec:
    """How one metric is labelled and formatted in its table."""

    metric: Metric
    label: str
    delta_header: str
    format_value: Callable[[float], str]
    format_delta: Callable[[Delta], str]
    magnitude: Callable[[Delta], float] = Delta.magnitude

    @property
    def header(self) -> Row:
        return ("benchmark", f"old {self.label}", f"new {self.label}", self.delta_header)


METRICS = (
    MetricSpec(Metric.NS_OP, "ns/op", "delta", format_ns, Delta.percent),
    MetricSpec(Metric.MB_S, "MB/s", "speedup", format_mb_s, Delta.multiple, Delta.multiple_magnitude),
    MetricSpec(Metric.ALLOCS_OP, "allocs", "delta", format_count, Delta.percent),
    MetricSpec(Metric.B_OP, "bytes", "delta", format_count, Delta.percent),
)


@dataclass(frozen=True)
class DisplayOptions:
    changed_only: bool = False
    magnitude_sort: bool = False


def metric_rows(cmps: Sequence[BenchCmp], spec: MetricSpec, options: DisplayOptions) -> List[Row]:
    """Returns the table rows of one metric.

    cmps must already be in parse order; magnitude ordering is applied here,
    separately for each metric.
    """
    if options.magnitude_sort:
        cmps = by_magnitude(cmps, spec.metric, spec.magnitude)

    rows = []
    for c in cmps:
        if not c.measured(spec.metric):
            continue
        delta = c.delta(spec.metric)
        if options.changed_only and not delta.changed():
            continue
        rows.append((
            c.name,
            spec.format_value(c.before.value(spec.metric)),
            spec.format_value(c.after.value(spec.metric)),
            spec.format_delta(delta),
        ))
    return rows


def build_tables(cmps: Sequence[BenchCmp], options: DisplayOptions) -> List[Tuple[MetricSpec, List[Row]]]:
    """Returns (metric, rows) for every metric with something to show."""
    tables = []
    for spec in METRICS:
        rows = metric_rows(cmps, spec, options)
        if rows:
            tables.append((spec, rows))
    return tables
