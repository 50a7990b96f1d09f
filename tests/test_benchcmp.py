import sys
from pathlib import Path as _P

import pytest
import typer
from typer.testing import CliRunner

# ensure repo root is importable
sys.path.insert(0, str(_P(__file__).resolve().parents[1]))
import benchcmp


OLD = """goos: linux
BenchmarkA-8   1000000   100 ns/op   10.00 MB/s   2 allocs/op   64 B/op
BenchmarkB-8   1000000   50 ns/op
PASS
"""

NEW = """goos: linux
BenchmarkA-8   1000000   80 ns/op   20.00 MB/s   2 allocs/op   32 B/op
BenchmarkC-8   1000000   10 ns/op
PASS
"""


def write_reports(tmp_path, old, new):
    o = tmp_path / "old.txt"
    n = tmp_path / "new.txt"
    o.write_text(old)
    n.write_text(new)
    return o, n


def run_compare(old, new, changed=False, mag=False, verbose=False, log_config=None):
    benchcmp.compare(
        old=old, new=new, changed=changed, mag=mag, verbose=verbose, log_config=log_config
    )


def test_compare_end_to_end(tmp_path, capsys):
    o, n = write_reports(tmp_path, OLD, NEW)

    run_compare(o, n)

    captured = capsys.readouterr()
    out = captured.out
    assert "old ns/op" in out
    assert "-20.00%" in out
    assert "speedup" in out
    assert "+2.00x" in out
    assert "old allocs" in out
    assert "old bytes" in out
    assert "-50.00%" in out
    assert "BenchmarkB-8" not in out
    assert "BenchmarkC-8" not in out

    err = captured.err
    assert "ignoring BenchmarkB-8: missing from after" in err
    assert "ignoring BenchmarkC-8: missing from before" in err
    assert err.index("BenchmarkB-8") < err.index("BenchmarkC-8")


def test_compare_tables_in_metric_order(tmp_path, capsys):
    o, n = write_reports(tmp_path, OLD, NEW)
    run_compare(o, n)
    out = capsys.readouterr().out
    assert out.index("old ns/op") < out.index("old MB/s") < out.index("old allocs") < out.index("old bytes")


def test_compare_changed_only(tmp_path, capsys):
    o, n = write_reports(tmp_path, OLD, NEW)
    run_compare(o, n, changed=True)
    out = capsys.readouterr().out
    assert "old ns/op" in out
    # allocs did not change so its table has no rows and no header
    assert "old allocs" not in out


def test_compare_magnitude_sort(tmp_path, capsys):
    old = "BenchmarkA 1 100 ns/op\nBenchmarkB 1 100 ns/op\nBenchmarkC 1 100 ns/op\n"
    new = "BenchmarkA 1 150 ns/op\nBenchmarkB 1 300 ns/op\nBenchmarkC 1 100 ns/op\n"
    o, n = write_reports(tmp_path, old, new)

    run_compare(o, n)
    out = capsys.readouterr().out
    assert out.index("BenchmarkA") < out.index("BenchmarkB") < out.index("BenchmarkC")

    run_compare(o, n, mag=True)
    out = capsys.readouterr().out
    assert out.index("BenchmarkB") < out.index("BenchmarkA") < out.index("BenchmarkC")


def test_compare_no_common_benchmarks(tmp_path, capsys):
    o, n = write_reports(tmp_path, "BenchmarkA 1 1 ns/op\n", "BenchmarkB 1 1 ns/op\n")

    with pytest.raises(typer.Exit) as exc:
        run_compare(o, n)

    assert exc.value.exit_code == 1
    captured = capsys.readouterr()
    assert "no repeated benchmarks" in captured.err
    assert captured.out == ""


def test_compare_missing_file(tmp_path, capsys):
    o, _ = write_reports(tmp_path, OLD, NEW)

    with pytest.raises(typer.Exit) as exc:
        run_compare(o, tmp_path / "missing.txt")

    assert exc.value.exit_code == 1
    captured = capsys.readouterr()
    assert "missing.txt" in captured.err
    assert captured.out == ""


def test_compare_malformed_report(tmp_path, capsys):
    o, n = write_reports(tmp_path, OLD, "BenchmarkA-8 100 fast ns/op\n")

    with pytest.raises(typer.Exit) as exc:
        run_compare(o, n)

    assert exc.value.exit_code == 1
    captured = capsys.readouterr()
    assert "BenchmarkA-8 100 fast ns/op" in captured.err
    assert captured.out == ""


def test_compare_escapes_markup_in_names(tmp_path, capsys):
    o, n = write_reports(tmp_path, "Benchmark[bold]X 1 10 ns/op\n", "Benchmark[bold]X 1 20 ns/op\n")
    run_compare(o, n)
    assert "Benchmark[bold]X" in capsys.readouterr().out


def test_compare_verbose_logs_parsing(tmp_path, capsys):
    o, n = write_reports(tmp_path, OLD, NEW)
    run_compare(o, n, verbose=True)
    err = capsys.readouterr().err
    assert "2 distinct benchmarks" in err


def test_compare_log_config_file(tmp_path, capsys):
    o, n = write_reports(tmp_path, OLD, NEW)
    cfg = tmp_path / "logging.yml"
    cfg.write_text(
        "version: 1\n"
        "disable_existing_loggers: false\n"
        "formatters:\n"
        "  tagged:\n"
        "    format: 'WARN %(message)s'\n"
        "handlers:\n"
        "  stderr:\n"
        "    class: logging.StreamHandler\n"
        "    formatter: tagged\n"
        "    stream: ext://sys.stderr\n"
        "root:\n"
        "  level: WARNING\n"
        "  handlers: [stderr]\n"
    )

    run_compare(o, n, log_config=cfg)

    assert "WARN ignoring BenchmarkB-8: missing from after" in capsys.readouterr().err


def test_cli_requires_two_files(tmp_path):
    o, _ = write_reports(tmp_path, OLD, NEW)
    result = CliRunner().invoke(benchcmp.app, [str(o)])
    assert result.exit_code == 2


def test_compare_long_names_are_not_cut(tmp_path, capsys):
    name = "BenchmarkDecode/format=protobuf/payload=large_nested_message/size=1048576-8"
    o, n = write_reports(tmp_path, f"{name} 10 123456 ns/op\n", f"{name} 10 100000 ns/op\n")

    run_compare(o, n)

    out = capsys.readouterr().out
    assert name in out
    assert "123456" in out
    assert "100000" in out
    assert "-19.00%" in out


def test_compare_undecodable_noise_line(tmp_path, capsys):
    o = tmp_path / "old.txt"
    n = tmp_path / "new.txt"
    o.write_bytes(b"log: caf\xe9 warmed up\nBenchmarkA 1 100 ns/op\n")
    n.write_text("BenchmarkA 1 80 ns/op\n")

    run_compare(o, n)

    assert "-20.00%" in capsys.readouterr().out
