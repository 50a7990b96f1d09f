"""
    bench_parse.py - read `go test -bench` reports into benchmark records

    A report is line oriented. Benchmark lines look like

        BenchmarkFoo-8   2000000   650 ns/op   120.50 MB/s   3 allocs/op   48 B/op

    and everything else (PASS, ok, goos: ..., log output) is noise that is
    skipped.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass
from enum import Flag, auto
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
MARKER = "Benchmark"


class Error(Exception):
    """
        Error is a type of Exception
        Base class for all exception raised by this module
    """
    pass


class ParseError(Error):
    """A benchmark report could not be parsed."""

    def __init__(self, message: str, line: str = "", lineno: Optional[int] = None, source: Optional[str] = None):
        super().__init__(message)
        self.line = line
        self.lineno = lineno
        self.source = source


class MalformedLineError(ParseError):
    """A benchmark line carries a value that is not a number for its unit."""


class Metric(Flag):
    NS_OP = auto()
    MB_S = auto()
    ALLOCS_OP = auto()
    B_OP = auto()


NO_METRICS = Metric(0)


def parse_measure(quant: str) -> float:
    """Parses a rate or duration; nan, inf and underscored digits are rejected."""
    if "_" in quant:
        raise ValueError(quant)
    value = float(quant)
    if not math.isfinite(value):
        raise ValueError(quant)
    return value


def parse_count(quant: str) -> int:
    """Parses a non-negative per-op count."""
    if not quant.isdigit():
        raise ValueError(quant)
    return int(quant)


# unit label -> (metric, record field, value parser)
UNITS = {
    "ns/op": (Metric.NS_OP, "ns_op", parse_measure),
    "MB/s": (Metric.MB_S, "mb_s", parse_measure),
    "allocs/op": (Metric.ALLOCS_OP, "allocs_op", parse_count),
    "B/op": (Metric.B_OP, "b_op", parse_count),
}

FIELDS = {metric: field for metric, field, _ in UNITS.values()}


@dataclass(frozen=True)
class Bench:
    """One benchmark result.

    Values of metrics missing from `measured` are zero placeholders and must
    not be read; check `has(metric)` first.
    """

    name: str
    iterations: int
    ns_op: float = 0.0
    mb_s: float = 0.0
    allocs_op: int = 0
    b_op: int = 0
    measured: Metric = NO_METRICS

    def has(self, metric: Metric) -> bool:
        return metric in self.measured

    def value(self, metric: Metric):
        return getattr(self, FIELDS[metric])

    def merge(self, other: "Bench") -> "Bench":
        """Returns the best-of-both record for two runs of the same benchmark.

        Every metric measured by both runs keeps the smaller value; a metric
        measured by only one run is taken from that run, so runs that share no
        ns/op measurement still merge. The iteration count follows the run with
        the lower ns/op, or self when that is not measured on both.
        """
        if other.name != self.name:
            raise ValueError(f"cannot merge {other.name} into {self.name}")

        values = {}
        for metric, field in FIELDS.items():
            if self.has(metric) and other.has(metric):
                values[field] = min(self.value(metric), other.value(metric))
            elif other.has(metric):
                values[field] = other.value(metric)
            else:
                values[field] = self.value(metric)

        iterations = self.iterations
        if self.has(Metric.NS_OP) and other.has(Metric.NS_OP) and other.ns_op < self.ns_op:
            iterations = other.iterations

        return dataclasses.replace(
            self,
            iterations=iterations,
            measured=self.measured | other.measured,
            **values,
        )

    def __str__(self):
        parts = [f"{self.name} {self.iterations}"]
        if self.has(Metric.NS_OP):
            parts.append(f"{self.ns_op:.2f} ns/op")
        if self.has(Metric.MB_S):
            parts.append(f"{self.mb_s:.2f} MB/s")
        if self.has(Metric.B_OP):
            parts.append(f"{self.b_op} B/op")
        if self.has(Metric.ALLOCS_OP):
            parts.append(f"{self.allocs_op} allocs/op")
        return " ".join(parts)


class BenchSet:
    """Benchmarks of one report, keyed by name, in first-seen order."""

    def __init__(self, benches: Iterable[Bench] = ()):
        self._benches: Dict[str, Bench] = {}
        self._order: Dict[str, int] = {}
        for b in benches:
            self.add(b)

    def add(self, bench: Bench) -> Bench:
        """Adds bench, folding a repeated name into the existing record."""
        old = self._benches.get(bench.name)
        if old is None:
            self._order[bench.name] = len(self._order)
            self._benches[bench.name] = bench
        else:
            logger.debug("aggregating repeated run of %s", bench.name)
            self._benches[bench.name] = old.merge(bench)
        return self._benches[bench.name]

    def names(self) -> List[str]:
        return list(self._benches)

    def ordinal(self, name: str) -> int:
        """Returns the position at which name was first seen."""
        return self._order[name]

    def get(self, name: str, default=None):
        return self._benches.get(name, default)

    def __getitem__(self, name: str) -> Bench:
        return self._benches[name]

    def __contains__(self, name) -> bool:
        return name in self._benches

    def __iter__(self) -> Iterator[Bench]:
        return iter(self._benches.values())

    def __len__(self) -> int:
        return len(self._benches)

    def __eq__(self, other):
        if not isinstance(other, BenchSet):
            return NotImplemented
        return list(self._benches.items()) == list(other._benches.items())

    def __repr__(self):
        return f"BenchSet({list(self._benches.values())!r})"


def parse_line(line: str) -> Optional[Bench]:
    """Returns the Bench on line, or None if line is not a benchmark line.

    Raises MalformedLineError when a known unit carries a value that is not
    a finite number, or not a non-negative integer for the per-op counts.
    """
    fields = line.split()
    if len(fields) < 2:
        return None
    name = fields[0]
    if not name.startswith(MARKER):
        return None
    try:
        iterations = int(fields[1])
    except ValueError:
        return None

    values = {}
    measured = NO_METRICS
    # (value, unit) pairs follow the name and iteration count
    for i in range(2, len(fields) - 1, 2):
        quant, unit = fields[i], fields[i + 1]
        if unit not in UNITS:
            continue
        metric, field, parse = UNITS[unit]
        try:
            values[field] = parse(quant)
        except ValueError:
            raise MalformedLineError(
                f"bad {unit} value {quant!r} for {name}", line=line.rstrip("\r\n")
            ) from None
        measured |= metric

    return Bench(name=name, iterations=iterations, measured=measured, **values)


def parse_bench_set(lines: Iterable[str], source: Optional[str] = None) -> BenchSet:
    """Parses every benchmark line of lines into a BenchSet."""
    source = source or "<input>"
    bb = BenchSet()
    parsed = skipped = 0
    for lineno, line in enumerate(lines, 1):
        try:
            b = parse_line(line)
        except MalformedLineError as e:
            raise ParseError(
                f"{source}:{lineno}: {e}: {e.line}",
                line=e.line,
                lineno=lineno,
                source=source,
            ) from e
        if b is None:
            skipped += 1
            continue
        parsed += 1
        bb.add(b)

    logger.debug(
        "%s: %d benchmark lines, %d distinct benchmarks, %d lines skipped",
        source, parsed, len(bb), skipped,
    )
    return bb


def parse_bench_file(path) -> BenchSet:
    """Reads and parses the report at path."""
    path = Path(path)
    # only benchmark lines need to decode; noise may hold any bytes
    with open(path, "r", encoding=ENCODING, errors="replace") as f:
        return parse_bench_set(f, source=str(path))
