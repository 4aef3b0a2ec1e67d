from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, Tuple
import argparse
import logging
import sys
import threading

import numpy as np
import sympy

from avalanche import (
    TRIAL_COUNT,
    UINT64_MAX,
    Candidate,
    EvaluationResult,
    InvalidCandidateError,
    evaluate,
)
from math_utils import fixed_prime_candidate, random_candidate
from ranking import rank
from report import format_result, format_summary, report_filename, write_report

DEFAULT_SAMPLES = 10
TOP_RESULTS = 50

logger = logging.getLogger(__name__)

CandidateSource = Callable[[np.random.Generator], Candidate]


class EvaluationFailure(NamedTuple):
    index: int
    candidate: Optional[Candidate]
    reason: str


class RunOutcome(NamedTuple):
    results: List[EvaluationResult]  # best first
    failures: List[EvaluationFailure]


class ResultBatch:
    """Thread-safe sink for finished evaluations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: List[Tuple[int, EvaluationResult]] = []

    def append(self, index: int, result: EvaluationResult) -> None:
        with self._lock:
            self._entries.append((index, result))

    def ranked(self) -> List[EvaluationResult]:
        """Best first; equal scores keep task submission order."""
        with self._lock:
            entries = sorted(self._entries, key=lambda entry: entry[0])
        return rank([result for _, result in entries])


def run_batch(
    make_candidate: CandidateSource,
    samples: int,
    trial_count: int = TRIAL_COUNT,
    workers: Optional[int] = None,
    seed: Optional[int] = None,
) -> RunOutcome:
    """Evaluate `samples` independent candidates in parallel and rank them.

    Args:
        make_candidate: Candidate source, called once per task with that
            task's generator.
        samples: Number of candidates.
        trial_count: Trials per evaluation.
        workers: Thread pool size; None uses the executor default.
        seed: Root seed. Task streams are spawned from it, so a fixed seed
            reproduces every candidate and histogram.
    """
    if samples <= 0:
        raise ValueError(f"samples must be positive, got {samples}")
    streams = np.random.SeedSequence(seed).spawn(samples)
    batch = ResultBatch()

    def task(index: int) -> None:
        rng = np.random.default_rng(streams[index])
        candidate = make_candidate(rng)
        result = evaluate(candidate, trial_count, rng)
        batch.append(index, result)
        logger.info(
            "Candidate %d/%d done: P=%d G=%d mean=%.4f stddev=%.4f",
            index + 1, samples, result.p, result.g, result.mean, result.stddev,
        )

    logger.info("Evaluating %d candidates with %d trials each", samples, trial_count)
    failures: List[EvaluationFailure] = []
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(task, index) for index in range(samples)]
        for index, future in enumerate(futures):
            try:
                future.result()
            except InvalidCandidateError as exc:
                logger.warning("Excluding candidate %d: %s", index, exc)
                failures.append(EvaluationFailure(index, exc.candidate, str(exc)))

    return RunOutcome(batch.ranked(), failures)


def run_fixed_prime(
    prime: int,
    samples: int,
    trial_count: int = TRIAL_COUNT,
    workers: Optional[int] = None,
    seed: Optional[int] = None,
) -> RunOutcome:
    """Evaluate `samples` generators of the same prime."""
    return run_batch(
        lambda rng: fixed_prime_candidate(prime, rng),
        samples, trial_count, workers, seed,
    )


def run_exploration(
    samples: int,
    trial_count: int = TRIAL_COUNT,
    workers: Optional[int] = None,
    seed: Optional[int] = None,
) -> RunOutcome:
    """Evaluate `samples` fresh primes, each with its own generator."""
    return run_batch(random_candidate, samples, trial_count, workers, seed)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.exit(1, f"Error: {message}\n")


def _positive_int(name: str) -> Callable[[str], int]:
    def parse(s: str) -> int:
        try:
            value = int(s)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{name} must be a positive integer (got {s!r})")
        if value <= 0:
            raise argparse.ArgumentTypeError(f"{name} must be a positive integer (got {s!r})")
        return value
    return parse


def _non_negative_int(s: str) -> int:
    try:
        value = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"seed must be a non-negative integer (got {s!r})")
    if value < 0:
        raise argparse.ArgumentTypeError(f"seed must be a non-negative integer (got {s!r})")
    return value


def _prime(s: str) -> int:
    try:
        value = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"prime must be a positive integer (got {s!r})")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"prime must be a positive integer (got {s!r})")
    if value > UINT64_MAX:
        raise argparse.ArgumentTypeError(f"prime must fit in 64 bits (got {s!r})")
    if value < 3 or not sympy.isprime(value):
        raise argparse.ArgumentTypeError(f"{value} is not an odd prime")
    return value


def _parse_cli(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog="cornice",
        description="Rank (P, G) pairs of x -> (x * G) mod P by avalanche quality.",
        epilog=(
            "examples:\n"
            "  cornice                             # 10 random primes\n"
            "  cornice 100                         # 100 random primes\n"
            "  cornice -p 1000000007               # one generator for a given prime\n"
            "  cornice -p 1000000007 --p-samples 5 # five generators for that prime\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "num_samples",
        nargs="?",
        type=_positive_int("num_samples"),
        default=DEFAULT_SAMPLES,
        help=f"number of (P,G) pairs to test in exploration mode (default: {DEFAULT_SAMPLES})",
    )
    parser.add_argument("-p", dest="prime", type=_prime, help="test a specific prime P")
    parser.add_argument(
        "--p-samples",
        type=_positive_int("--p-samples"),
        default=1,
        help="with -p, number of (P,G) pairs to test for that prime (default: 1)",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int("--workers"),
        help="number of evaluation threads (default: executor default)",
    )
    parser.add_argument("--seed", type=_non_negative_int, help="root seed for reproducible runs")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="directory for the exploration report file (default: current directory)",
    )
    parser.add_argument(
        "--log-level",
        choices=["WARNING", "INFO", "DEBUG"],
        default="WARNING",
        help="logging level",
    )
    ns = parser.parse_args(argv)
    if ns.prime is None and not ns.output_dir.is_dir():
        parser.error(f"--output-dir {str(ns.output_dir)!r} is not a directory")
    return ns


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(format=logging.BASIC_FORMAT)
    logging.getLogger().setLevel(getattr(logging, level_name))


def main(argv: Optional[List[str]] = None) -> int:
    ns = _parse_cli(argv)
    _configure_logging(ns.log_level)

    if ns.prime is not None:
        outcome = run_fixed_prime(ns.prime, ns.p_samples, TRIAL_COUNT, ns.workers, ns.seed)
        print(f"Results for P: {ns.prime} (best first):")
        for result in outcome.results:
            print(format_result(result), end="")
    else:
        outcome = run_exploration(ns.num_samples, TRIAL_COUNT, ns.workers, ns.seed)
        if outcome.results:
            path = write_report(ns.output_dir / report_filename(datetime.now()), outcome.results)
            logger.info("Wrote %d results to %s", len(outcome.results), path)
        print(f"Top {TOP_RESULTS} results:")
        for result in outcome.results[:TOP_RESULTS]:
            print(format_summary(result))

    if outcome.failures:
        print(f"{len(outcome.failures)} evaluation(s) excluded; see log for reasons.", file=sys.stderr)
    if not outcome.results:
        print("Error: no candidate could be evaluated.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
