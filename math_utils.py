from typing import List
import logging

import numpy as np
import sympy

from avalanche import NBITS, UINT64_MAX, Candidate, InvalidCandidateError

logger = logging.getLogger(__name__)


def hamming_distance(a: int, b: int) -> int:
    """Number of differing bits between two unsigned integers."""
    return (a ^ b).bit_count()


def random_large_prime(rng: np.random.Generator) -> int:
    """Return a prime in [2**(NBITS-1), 2**NBITS)."""
    start = int(rng.integers(1 << (NBITS - 1), UINT64_MAX, dtype=np.uint64, endpoint=True)) | 1
    p = int(sympy.nextprime(start))
    if p > UINT64_MAX:
        # No prime between start and the top of the range; step down instead.
        p = int(sympy.prevprime(start))
    return p


def factorize_source(p: int) -> List[int]:
    """Sorted distinct prime factors of p - 1, the order of Z*_p."""
    return [int(q) for q in sympy.primefactors(p - 1)]


def find_big_generator(factors: List[int], p: int, rng: np.random.Generator) -> int:
    """
    Pick a random generator of Z*_p.

    An element g has full order p - 1 exactly when g**((p-1)/q) != 1 (mod p)
    for every prime q dividing p - 1. Primitive roots make up phi(p-1)/(p-1)
    of the group, so random probing terminates quickly.

    Args:
        factors: Distinct prime factors of p - 1, as from factorize_source.
        p: An odd prime.
    """
    if p < 3:
        raise InvalidCandidateError(f"P must be an odd prime, got {p}", Candidate(p, 0))
    exponents = [(p - 1) // q for q in factors]
    while True:
        g = int(rng.integers(2, p, dtype=np.uint64))
        if all(pow(g, e, p) != 1 for e in exponents):
            return g


def fixed_prime_candidate(p: int, rng: np.random.Generator) -> Candidate:
    """Derive a fresh generator for a caller-supplied prime."""
    if p > UINT64_MAX or not sympy.isprime(p):
        raise InvalidCandidateError(f"P must be a prime below 2**{NBITS}, got {p}", Candidate(p, 0))
    g = find_big_generator(factorize_source(p), p, rng)
    logger.debug("Derived G=%d for P=%d", g, p)
    return Candidate(p, g)


def random_candidate(rng: np.random.Generator) -> Candidate:
    """Sample a fresh large prime and derive a generator for it."""
    p = random_large_prime(rng)
    g = find_big_generator(factorize_source(p), p, rng)
    logger.debug("Sampled P=%d with G=%d", p, g)
    return Candidate(p, g)
