from datetime import datetime
from pathlib import Path

from avalanche import Candidate, EvaluationResult
from report import format_histogram, format_result, format_summary, report_filename, write_report


def _result() -> EvaluationResult:
    return EvaluationResult(
        candidate=Candidate(1_000_000_007, 5),
        histogram={31: 4000, 32: 6000},
        mean=31.6,
        stddev=0.489898,
        zero_change_percentage=0.0,
        trial_count=10_000,
    )


def test_marker_below_resolution_prints_count_only() -> None:
    assert format_histogram({20: 10_000}, 10_000_000) == "20 bits: (10000)\n"


def test_bars_scale_and_sort_by_key() -> None:
    text = format_histogram({33: 40_000, 5: 20_000}, 10_000_000)
    assert text == " 5 bits: # (20000)\n33 bits: ## (40000)\n"


def test_tiny_trial_counts_do_not_divide_by_zero() -> None:
    assert format_histogram({1: 3}, 100) == " 1 bits: ### (3)\n"


def test_summary_line() -> None:
    assert format_summary(_result()) == (
        "P: 1000000007, G: 5, Zero bits %: 0, Mean: 31.6, Stddev: 0.489898"
    )


def test_result_block_has_histogram() -> None:
    text = format_result(_result())
    lines = text.split("\n")
    assert lines[0].startswith("P: 1000000007")
    assert lines[1] == "Histogram:"
    assert lines[2].startswith("31 bits: ")
    assert text.endswith("(6000)\n\n")


def test_report_filename_is_timestamped() -> None:
    name = report_filename(datetime(2026, 10, 19, 8, 5, 3))
    assert name == "avalanche_results_2026-10-19_08-05-03.txt"


def test_write_report(tmp_path: Path) -> None:
    path = write_report(tmp_path / "out.txt", [_result(), _result()])
    content = path.read_text(encoding="utf-8")
    assert content.count("Histogram:") == 2
    assert content == format_result(_result()) * 2
