from datetime import datetime
from pathlib import Path
from typing import Iterable, Union

from avalanche import EvaluationResult, Histogram

# Each bar marker stands for 1/HISTOGRAM_RESOLUTION of the trials (0.2%).
HISTOGRAM_RESOLUTION = 500


def format_summary(result: EvaluationResult) -> str:
    return (
        f"P: {result.p}, G: {result.g}, "
        f"Zero bits %: {result.zero_change_percentage:g}, "
        f"Mean: {result.mean:g}, Stddev: {result.stddev:g}"
    )


def format_histogram(histogram: Histogram, trial_count: int) -> str:
    """Render one bar per change count, ascending, followed by the raw count."""
    per_marker = max(trial_count // HISTOGRAM_RESOLUTION, 1)
    lines = []
    for bits in sorted(histogram):
        count = histogram[bits]
        bar = "#" * (count // per_marker)
        if bar:
            bar += " "
        lines.append(f"{bits:2d} bits: {bar}({count})\n")
    return "".join(lines)


def format_result(result: EvaluationResult) -> str:
    return (
        f"{format_summary(result)}\n"
        f"Histogram:\n{format_histogram(result.histogram, result.trial_count)}\n"
    )


def report_filename(now: datetime) -> str:
    return f"avalanche_results_{now:%Y-%m-%d_%H-%M-%S}.txt"


def write_report(path: Union[str, Path], results: Iterable[EvaluationResult]) -> Path:
    """Persist every result, summary and histogram, in the given order."""
    path = Path(path)
    with path.open("w", encoding="utf-8") as f:
        for result in results:
            f.write(format_result(result))
    return path
