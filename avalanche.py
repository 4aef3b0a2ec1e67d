from dataclasses import dataclass
import math
from typing import NamedTuple, Optional, Tuple, TypeAlias
import logging

import numpy as np
import numpy.typing as npt

# 1D array of uint64 states fed through the map f(x) = (x * G) mod P.
Inputs: TypeAlias = npt.NDArray[np.uint64]
# 1D array of per-trial output bit change counts, each in [0, NBITS].
BitCounts: TypeAlias = npt.NDArray[np.uint8]
# Occurrence count per change count, iterated in ascending key order.
Histogram: TypeAlias = dict[int, int]

NBITS = 64
UINT64_MAX = (1 << NBITS) - 1

# Trials per candidate in the reference workload.
TRIAL_COUNT = 10_000_000
# Trials drawn per vectorized pass; keeps memory bounded at ten million trials.
CHUNK_SIZE = 1 << 20

logger = logging.getLogger(__name__)


class Candidate(NamedTuple):
    """A (P, G) pair: prime modulus and multiplier of the mixing map."""
    p: int
    g: int


class InvalidCandidateError(ValueError):
    """Raised when a candidate cannot be generated or evaluated."""

    def __init__(self, message: str, candidate: Optional[Candidate] = None) -> None:
        super().__init__(message)
        self.candidate = candidate


@dataclass(frozen=True)
class EvaluationResult:
    candidate: Candidate
    histogram: Histogram
    mean: float
    stddev: float
    zero_change_percentage: float
    trial_count: int

    @property
    def p(self) -> int:
        return self.candidate.p

    @property
    def g(self) -> int:
        return self.candidate.g


def sample_perturbations(rng: np.random.Generator, n: int) -> Tuple[Inputs, Inputs]:
    """Draw n uniform uint64 states and their single-bit-flipped twins.

    Returns:
        (states, modified) where modified[i] = states[i] ^ (1 << b[i]) and each
        b[i] is uniform in [0, NBITS).
    """
    if n <= 0:
        raise ValueError(f"n must be positive, got {n}")
    states = rng.integers(0, UINT64_MAX, size=n, dtype=np.uint64, endpoint=True)
    flip_bits = rng.integers(0, NBITS, size=n, dtype=np.uint64)
    modified = states ^ (np.uint64(1) << flip_bits)
    return states, modified


def sample_perturbation(rng: np.random.Generator) -> Tuple[int, int]:
    """Draw a single (state, modified_state) pair as Python ints."""
    states, modified = sample_perturbations(rng, 1)
    return int(states[0]), int(modified[0])


def _add_mod(a: Inputs, b: Inputs, p: np.uint64) -> Inputs:
    # a, b < p, so the true sum is below 2p and needs at most one subtraction.
    # A wrapped sum (s < a) is always >= p in exact arithmetic.
    s = a + b
    return np.where((s < a) | (s >= p), s - p, s)


def mul_mod(x: Inputs, g: int, p: int) -> Inputs:
    """Compute (x * g) mod p elementwise without losing the high product bits.

    When p fits in 32 bits the reduced operands multiply within 64 bits. For
    larger moduli the product is built by double-and-add over the bits of g,
    each step an overflow-aware modular addition.
    """
    if p <= 1:
        raise ValueError(f"p must be greater than 1, got {p}")
    p64 = np.uint64(p)
    residues = x % p64
    g %= p
    if p <= (1 << 32):
        return (residues * np.uint64(g)) % p64

    out = np.zeros_like(residues)
    addend = residues
    while g:
        if g & 1:
            out = _add_mod(out, addend, p64)
        g >>= 1
        if g:
            addend = _add_mod(addend, addend, p64)
    return out


def hamming_distances(a: Inputs, b: Inputs) -> BitCounts:
    """Number of differing bits between each pair of a and b."""
    return np.bitwise_count(a ^ b)


def _check_candidate(candidate: Candidate) -> None:
    p, g = candidate
    if p <= 1:
        raise InvalidCandidateError(f"P must be greater than 1, got {p}", candidate)
    if p > UINT64_MAX:
        raise InvalidCandidateError(f"P must fit in {NBITS} bits, got {p}", candidate)
    if not 0 <= g <= UINT64_MAX:
        raise InvalidCandidateError(f"G must fit in {NBITS} bits, got {g}", candidate)


def evaluate(
    candidate: Candidate,
    trial_count: int = TRIAL_COUNT,
    rng: Optional[np.random.Generator] = None,
    *,
    chunk_size: int = CHUNK_SIZE,
) -> EvaluationResult:
    """Measure the avalanche behavior of f(x) = (x * G) mod P.

    Each trial maps a random state and its one-bit-flipped twin through f and
    records how many output bits differ. The per-trial counts are folded into
    a histogram, from which the population standard deviation is computed.

    Args:
        candidate: The (P, G) pair to evaluate.
        trial_count: Number of sampled perturbations.
        rng: Random stream owned by this evaluation. A fresh unseeded
            generator is used when omitted.
        chunk_size: Trials drawn per vectorized pass. Results for a seeded rng
            depend on this value.

    Raises:
        InvalidCandidateError: P <= 1, or P or G outside the uint64 range.
        ValueError: trial_count is not positive.
    """
    if trial_count <= 0:
        raise ValueError(f"trial_count must be positive, got {trial_count}")
    _check_candidate(candidate)
    if rng is None:
        rng = np.random.default_rng()

    p, g = candidate
    counts = np.zeros(NBITS + 1, dtype=np.int64)
    total_changed = 0
    remaining = trial_count
    while remaining > 0:
        n = min(chunk_size, remaining)
        states, modified = sample_perturbations(rng, n)
        changed = hamming_distances(mul_mod(states, g, p), mul_mod(modified, g, p))
        counts += np.bincount(changed, minlength=NBITS + 1)
        total_changed += int(changed.sum(dtype=np.int64))
        remaining -= n

    mean = total_changed / trial_count
    zero_change_percentage = 100.0 * int(counts[0]) / trial_count

    # The histogram is a sufficient statistic for the variance.
    deviations = np.arange(NBITS + 1, dtype=np.float64) - mean
    variance = float(np.sum(counts * deviations * deviations)) / trial_count
    histogram = {int(k): int(counts[k]) for k in np.flatnonzero(counts)}

    logger.debug("Evaluated P=%d G=%d over %d trials: mean=%.4f", p, g, trial_count, mean)
    return EvaluationResult(
        candidate=candidate,
        histogram=histogram,
        mean=mean,
        stddev=math.sqrt(variance),
        zero_change_percentage=zero_change_percentage,
        trial_count=trial_count,
    )
