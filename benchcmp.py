#!/usr/bin/env python3

import logging
import logging.config
from pathlib import Path
from typing import List, Optional, Tuple

import typer
import yaml
from rich.cells import cell_len
from rich.console import Console
from rich.markup import escape
from rich.table import Table

import bench_compare
import bench_parse
from bench_compare import DisplayOptions, MetricSpec, Row

app = typer.Typer(help="Compare two runs of Go benchmarks.")
console = Console()

logger = logging.getLogger("benchcmp")

ENCODING = "utf-8"
VERBOSE_LOGGERS = ("benchcmp", "bench_parse", "bench_compare")

LOGGING_CONFIG = """
version: 1
disable_existing_loggers: false
formatters:
  simple:
    format: '%(message)s'
handlers:
  stderr:
    class: logging.StreamHandler
    formatter: simple
    stream: ext://sys.stderr
loggers:
  benchcmp:
    level: INFO
root:
  level: WARNING
  handlers: [stderr]
"""

USAGE_FOOTER = """
Each input file should be the output of:

    go test -run=NONE -bench=. > [old,new].txt

benchcmp compares old and new for each benchmark.

If -benchmem is added to the "go test" command
benchcmp will also compare memory allocations.
"""


def fatal(message: str):
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def configure_logging(verbose: bool = False, log_config: Optional[Path] = None):
    """Configures logging from log_config, or from the built-in YAML config."""
    if log_config is None:
        d_config = yaml.safe_load(LOGGING_CONFIG)
    else:
        with open(log_config, "r", encoding=ENCODING) as f:
            d_config = yaml.safe_load(f)
    logging.config.dictConfig(d_config)

    if verbose:
        for name in VERBOSE_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)


def read_bench_set(path: Path) -> bench_parse.BenchSet:
    """Parses the report at path, exiting on unreadable or malformed input."""
    try:
        return bench_parse.parse_bench_file(path)
    except (OSError, bench_parse.ParseError) as e:
        fatal(f"benchcmp: {e}")


def render_table(spec: MetricSpec, rows: List[Row]) -> Table:
    table = Table(box=None, pad_edge=False, show_edge=False, header_style="bold")
    name_header, *value_headers = spec.header
    table.add_column(name_header, no_wrap=True, overflow="fold")
    for header in value_headers:
        table.add_column(header, justify="right", no_wrap=True, overflow="fold")
    for row in rows:
        table.add_row(*(escape(cell) for cell in row))
    return table


def table_width(spec: MetricSpec, rows: List[Row]) -> int:
    """Returns the width at which no cell of the table is cut."""
    widths = [max(cell_len(cell) for cell in column) for column in zip(spec.header, *rows)]
    return sum(widths) + 2 * len(widths)


def display(tables: List[Tuple[MetricSpec, List[Row]]]):
    if not tables:
        return
    # rows are never cut to fit the terminal; piped output is 80 wide
    width = max([console.width] + [table_width(spec, rows) for spec, rows in tables])
    out = Console(width=width)
    for i, (spec, rows) in enumerate(tables):
        if i:
            out.print()
        out.print(render_table(spec, rows))


@app.command(epilog=USAGE_FOOTER)
def compare(
    old: Path = typer.Argument(..., help="Benchmark output of the old code"),
    new: Path = typer.Argument(..., help="Benchmark output of the new code"),
    changed: bool = typer.Option(
        False, "--changed", help="Show only benchmarks that have changed"
    ),
    mag: bool = typer.Option(
        False, "--mag", help="Sort benchmarks by magnitude of change"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log parsing details"),
    log_config: Optional[Path] = typer.Option(
        None, "--log-config", help="YAML logging config (logging.config.dictConfig schema)"
    ),
):
    """Compare old and new for each benchmark, one table per metric."""
    try:
        configure_logging(verbose, log_config)
    except (OSError, yaml.YAMLError, ValueError) as e:
        fatal(f"benchcmp: bad logging config {log_config}: {e}")

    before = read_bench_set(old)
    after = read_bench_set(new)

    cmps, warnings = bench_compare.correlate(before, after)
    for warning in warnings:
        logger.warning(warning)

    if not cmps:
        fatal("benchcmp: no repeated benchmarks")

    cmps = bench_compare.by_parse_order(cmps, before)
    options = DisplayOptions(changed_only=changed, magnitude_sort=mag)
    display(bench_compare.build_tables(cmps, options))


if __name__ == "__main__":
    app()
