from pathlib import Path
import itertools

import numpy as np
import pytest

import cornice
from avalanche import Candidate, EvaluationResult
from cornice import ResultBatch, main, run_batch, run_exploration, run_fixed_prime
from ranking import score

P = 1_000_000_007


def test_fixed_prime_mode_evaluates_every_sample() -> None:
    outcome = run_fixed_prime(P, 5, trial_count=2000, seed=1)
    assert len(outcome.results) == 5
    assert not outcome.failures
    assert {r.p for r in outcome.results} == {P}
    assert len({r.g for r in outcome.results}) == 5
    scores = [score(r) for r in outcome.results]
    assert scores == sorted(scores)


def test_seeded_runs_are_reproducible() -> None:
    first = run_fixed_prime(P, 4, trial_count=1000, workers=4, seed=42)
    second = run_fixed_prime(P, 4, trial_count=1000, workers=1, seed=42)
    assert first.results == second.results


def test_exploration_mode_uses_fresh_primes() -> None:
    outcome = run_exploration(3, trial_count=1000, seed=2)
    assert len(outcome.results) == 3
    assert all(r.p.bit_length() == 64 for r in outcome.results)


def test_malformed_candidate_is_excluded() -> None:
    calls = itertools.count()

    def source(rng: np.random.Generator) -> Candidate:
        if next(calls) == 0:
            return Candidate(1, 1)
        return Candidate(P, 5)

    outcome = run_batch(source, 3, trial_count=500, workers=1)
    assert len(outcome.results) == 2
    assert len(outcome.failures) == 1
    failure = outcome.failures[0]
    assert failure.index == 0
    assert failure.candidate == Candidate(1, 1)
    assert "greater than 1" in failure.reason


def test_unexpected_errors_abort_the_run() -> None:
    def source(rng: np.random.Generator) -> Candidate:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        run_batch(source, 2, trial_count=10)


def test_samples_must_be_positive() -> None:
    with pytest.raises(ValueError):
        run_batch(lambda rng: Candidate(P, 5), 0)


def test_result_batch_breaks_ties_by_task_index() -> None:
    def result(g: int) -> EvaluationResult:
        return EvaluationResult(Candidate(P, g), {32: 10}, 32.0, 4.0, 0.0, 10)

    batch = ResultBatch()
    batch.append(2, result(13))
    batch.append(0, result(7))
    batch.append(1, result(11))
    assert [r.g for r in batch.ranked()] == [7, 11, 13]


def test_main_fixed_prime(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    monkeypatch.setattr(cornice, "TRIAL_COUNT", 1000)
    monkeypatch.chdir(tmp_path)
    assert main(["-p", str(P), "--p-samples", "2", "--seed", "3"]) == 0
    out = capsys.readouterr().out
    assert out.startswith(f"Results for P: {P} (best first):\n")
    assert out.count("Histogram:") == 2
    assert list(tmp_path.iterdir()) == []


def test_main_exploration_writes_report(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    monkeypatch.setattr(cornice, "TRIAL_COUNT", 1000)
    monkeypatch.setattr(cornice, "TOP_RESULTS", 2)
    assert main(["3", "--output-dir", str(tmp_path), "--seed", "5", "--workers", "2"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Top 2 results:"
    assert len(out) == 3
    assert all(line.startswith("P: ") for line in out[1:])

    reports = list(tmp_path.glob("avalanche_results_*.txt"))
    assert len(reports) == 1
    content = reports[0].read_text(encoding="utf-8")
    assert content.count("Histogram:") == 3
    assert content.startswith(out[1])


@pytest.mark.parametrize(
    "argv",
    [
        ["0"],
        ["-5"],
        ["abc"],
        ["-p"],
        ["-p", "0"],
        ["-p", "15"],
        ["-p", str(2**64 + 13)],
        ["-p", str(P), "--p-samples", "0"],
        ["--p-samples"],
        ["-p", str(P), "--seed", "-1"],
        ["--seed", "x"],
    ],
)
def test_invalid_arguments_exit_with_status_1(argv: list[str], capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 1
    captured = capsys.readouterr()
    assert captured.err.startswith("Error: ")
    assert captured.out == ""


def test_help_exits_cleanly(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["-h"])
    assert excinfo.value.code == 0
    assert "--p-samples" in capsys.readouterr().out


def test_missing_output_dir_is_rejected_before_any_evaluation(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    calls = []
    monkeypatch.setattr(cornice, "run_exploration", lambda *args: calls.append(args))
    with pytest.raises(SystemExit) as excinfo:
        main(["2", "--output-dir", str(tmp_path / "missing"), "--seed", "1"])
    assert excinfo.value.code == 1
    assert calls == []
    assert "--output-dir" in capsys.readouterr().err


def test_exploration_with_no_results_writes_no_report(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    failure = cornice.EvaluationFailure(0, Candidate(1, 1), "P must be greater than 1, got 1")
    monkeypatch.setattr(cornice, "run_exploration", lambda *args: cornice.RunOutcome([], [failure]))
    assert main(["1", "--output-dir", str(tmp_path)]) == 1
    assert list(tmp_path.iterdir()) == []
    assert "no candidate could be evaluated" in capsys.readouterr().err
