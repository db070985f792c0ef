"""
Deterministic searches for a high-fidelity overhang set.

The main entry point is :py:meth:`find_optimal_overhang_set`, which chooses between
:py:meth:`exhaustive_search` (few positions to fill) and :py:meth:`greedy_search` (many positions).
Both maximize :py:meth:`fidelity.assembly_fidelity`. Simulated annealing lives in
:mod:`ligo.annealing` and is never chosen automatically.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Callable, Iterator, Tuple, Dict, Any

import numpy as np
from tabulate import tabulate

import ligo.np as ln
from ligo.constraints import InsufficientCandidatesError
from ligo.fidelity import assembly_fidelity, has_zero_cross_ligation, cross_ligates, conflicts, \
    perfect_fidelity_threshold
from ligo.ligation import LigationMatrix, logger
from ligo.stopwatch import Stopwatch


@dataclass
class SearchResult:
    """Outcome of a search: the overhang set, its fidelity, and how it was found."""

    overhangs: List[str]
    """Designed set; required overhangs come first, in the order given."""

    fidelity: float
    """Value of the objective named by :py:data:`SearchResult.objective`."""

    method: str
    """
    Which procedure produced :py:data:`SearchResult.overhangs`: ``'exhaustive'``, ``'greedy'``,
    ``'greedy+2opt'``, ``'greedy+restart'``, or ``'annealing'``.
    """

    objective: str = 'assembly'
    """``'assembly'`` for :py:meth:`fidelity.assembly_fidelity`, ``'ligation'`` for
    :py:meth:`fidelity.ligation_fidelity`."""

    enzyme: str = ''

    required: List[str] = field(default_factory=list)

    candidates_considered: int = 0

    combinations_checked: int = 0
    """Number of complete sets scored by exhaustive search."""

    iterations: int = 0
    """Local-search passes (greedy) or Monte Carlo steps (annealing)."""

    acceptance_ratio: Optional[float] = None

    temperature_exponent: Optional[float] = None

    fallback_reason: Optional[str] = None
    """Why the requested method handed over to another one, if it did."""

    cancelled: bool = False
    """Whether the search stopped early because it was asked to or ran out of time."""

    warnings: List[str] = field(default_factory=list)

    elapsed_seconds: float = 0.0

    @property
    def is_perfect(self) -> bool:
        return self.fidelity >= perfect_fidelity_threshold

    def summary(self) -> str:
        rows = [
            ['overhangs', ' '.join(self.overhangs)],
            [f'{self.objective} fidelity', f'{100 * self.fidelity:.2f}%'],
            ['method', self.method],
            ['enzyme', self.enzyme],
            ['required', ' '.join(self.required)],
            ['candidates considered', self.candidates_considered],
            ['combinations checked', self.combinations_checked],
            ['iterations', self.iterations],
        ]
        if self.acceptance_ratio is not None:
            rows.append(['acceptance ratio', f'{self.acceptance_ratio:.4f}'])
        if self.temperature_exponent is not None:
            rows.append(['temperature exponent', self.temperature_exponent])
        if self.fallback_reason is not None:
            rows.append(['fallback', self.fallback_reason])
        if self.cancelled:
            rows.append(['cancelled', 'yes'])
        rows.append(['time', f'{self.elapsed_seconds:.3f} s'])
        lines = [tabulate(rows, tablefmt='github')]
        lines.extend(f'warning: {warning}' for warning in self.warnings)
        return '\n'.join(lines)

    def to_json_serializable(self) -> Dict[str, Any]:
        return {
            'overhangs': list(self.overhangs),
            'fidelity': self.fidelity,
            'objective': self.objective,
            'method': self.method,
            'enzyme': self.enzyme,
            'required': list(self.required),
            'is_perfect': self.is_perfect,
            'candidates_considered': self.candidates_considered,
            'combinations_checked': self.combinations_checked,
            'iterations': self.iterations,
            'acceptance_ratio': self.acceptance_ratio,
            'temperature_exponent': self.temperature_exponent,
            'fallback_reason': self.fallback_reason,
            'cancelled': self.cancelled,
            'warnings': list(self.warnings),
            'elapsed_seconds': self.elapsed_seconds,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_json_serializable(), indent=2)


def make_rng(rng: Optional[np.random.Generator], random_seed: Optional[int]) -> np.random.Generator:
    """`rng` if given, else a generator seeded with `random_seed`, else the shared default generator."""
    if rng is not None:
        return rng
    if random_seed is not None:
        logger.info(f'using random seed of {random_seed}; use this same seed to reproduce this search')
        return np.random.default_rng(random_seed)
    return ln.default_rng


def combinations_pruned(n: int, k: int,
                        keep_prefix: Optional[Callable[[Sequence[int]], bool]] = None) \
        -> Iterator[Tuple[int, ...]]:
    """
    Yield the `k`-subsets of ``range(n)`` as increasing tuples, in lexicographic order, without
    recursion.

    If `keep_prefix` is given it is called on each partial subset as it grows (the last index is the
    newest); when it returns False, that partial subset and every extension of it are skipped.
    `keep_prefix` must therefore be monotone: if a prefix is rejected, so is every extension.
    """
    if k < 0 or k > n:
        return
    if k == 0:
        yield ()
        return
    stack: List[int] = [0]
    while stack:
        depth = len(stack) - 1
        if stack[-1] > n - (k - depth):
            stack.pop()
            if stack:
                stack[-1] += 1
            continue
        if keep_prefix is not None and not keep_prefix(stack):
            stack[-1] += 1
            continue
        if depth == k - 1:
            yield tuple(stack)
            stack[-1] += 1
        else:
            stack.append(stack[-1] + 1)


@dataclass
class ExhaustiveConfig:
    """Parameters of :py:meth:`exhaustive_search`."""

    candidate_limits: Tuple[Tuple[int, int], ...] = ((4, 80), (6, 60))
    """
    Pairs ``(max_positions, num_candidates)``: when at most ``max_positions`` non-required positions
    are filled, only the ``num_candidates`` best-ranked candidates are enumerated.
    """

    default_candidate_limit: int = 50
    """Number of candidates enumerated when no entry of `candidate_limits` applies."""

    relaxed_candidate_limit: int = 40
    """Number of candidates enumerated by the second pass, which allows cross-ligation."""

    max_residual_size: int = 8
    """:py:meth:`find_optimal_overhang_set` uses exhaustive search up to this many non-required positions."""

    perfect_fidelity: float = perfect_fidelity_threshold
    """Stop as soon as a set reaches this fidelity."""

    max_combinations: Optional[int] = None
    """If given, each pass scores at most this many complete sets."""

    def __post_init__(self) -> None:
        if self.default_candidate_limit < 1 or self.relaxed_candidate_limit < 1:
            raise ValueError('candidate limits must be positive')
        if self.max_combinations is not None and self.max_combinations < 1:
            raise ValueError(f'max_combinations must be positive but is {self.max_combinations}')

    def candidate_limit(self, num_positions: int) -> int:
        for max_positions, limit in sorted(self.candidate_limits):
            if num_positions <= max_positions:
                return limit
        return self.default_candidate_limit


@dataclass
class GreedyConfig:
    """Parameters of :py:meth:`greedy_search`."""

    max_local_search_iterations: int = 50
    """Maximum number of improving substitutions made by :py:meth:`two_opt` per starting set."""

    num_restarts: int = 3
    """Number of random starting sets tried after the greedy one, unless a perfect set is found."""

    require_zero_cross_swaps: bool = True
    """Whether :py:meth:`two_opt` only substitutes overhangs that do not cross-ligate with the rest."""

    perfect_fidelity: float = perfect_fidelity_threshold

    random_seed: Optional[int] = None
    """Seed for restarts when no random number generator is passed."""

    def __post_init__(self) -> None:
        if self.max_local_search_iterations < 0:
            raise ValueError(f'max_local_search_iterations must be nonnegative but is '
                             f'{self.max_local_search_iterations}')
        if self.num_restarts < 0:
            raise ValueError(f'num_restarts must be nonnegative but is {self.num_restarts}')


def exhaustive_search(num_junctions: int, pool: Sequence[str], matrix: LigationMatrix,
                      required: Sequence[str] = (),
                      config: Optional[ExhaustiveConfig] = None,
                      greedy_config: Optional[GreedyConfig] = None,
                      rng: Optional[np.random.Generator] = None) -> SearchResult:
    """
    Enumerate combinations of the best-ranked candidates to find the set with the highest
    assembly fidelity.

    The first pass only accepts sets in which no overhang cross-ligates with another and stops at the
    first perfect set. If there is no such set among the candidates, a second pass over fewer
    candidates maximizes fidelity allowing cross-ligation. If the required overhangs cross-ligate with
    each other, or neither pass finds a set, :py:meth:`greedy_search` is used instead.

    :param num_junctions:
        size of the set, including required overhangs
    :param pool:
        ranked candidates, e.g., :py:data:`constraints.CandidatePool.candidates`
    :param matrix:
        ligation data
    :param required:
        overhangs occupying the first positions
    :param config:
        exhaustive search parameters
    :param greedy_config:
        parameters used if greedy search takes over
    :param rng:
        random number generator used if greedy search takes over
    :return:
        the best set found
    """
    if config is None:
        config = ExhaustiveConfig()
    stopwatch = Stopwatch()
    required = list(required)
    num_positions = num_junctions - len(required)

    if len(required) > 1 and not has_zero_cross_ligation(required, matrix):
        reason = 'required overhangs cross-ligate with each other'
        logger.info(f'{reason}; using greedy search instead of exhaustive search')
        return _fall_back_to_greedy(num_junctions, pool, matrix, required, greedy_config, rng, reason)

    available = [oh for oh in pool if not conflicts(oh, required)]
    candidates = available[:config.candidate_limit(num_positions)]
    logger.info(f'exhaustive search for {num_positions} overhangs among {len(candidates)} candidates')

    best: Optional[List[str]] = None
    best_fidelity = -1.0
    num_checked = 0

    def zero_cross_prefix(prefix: Sequence[int]) -> bool:
        newest = candidates[prefix[-1]]
        others = required + [candidates[i] for i in prefix[:-1]]
        return not conflicts(newest, others) and \
            not any(cross_ligates(newest, other, matrix) for other in others)

    for combination in combinations_pruned(len(candidates), num_positions, zero_cross_prefix):
        num_checked += 1
        overhangs = required + [candidates[i] for i in combination]
        fidelity = assembly_fidelity(overhangs, matrix)
        if fidelity > best_fidelity:
            best, best_fidelity = overhangs, fidelity
            logger.debug(f'new best set {overhangs} with fidelity {fidelity:.6f}')
            if fidelity >= config.perfect_fidelity:
                break
        if config.max_combinations is not None and num_checked >= config.max_combinations:
            logger.warning(f'stopped exhaustive search after {num_checked} combinations')
            break

    if best is None:
        relaxed = candidates[:config.relaxed_candidate_limit]
        logger.info(f'no set without cross-ligation exists among {len(candidates)} candidates; '
                    f'maximizing fidelity over {len(relaxed)} candidates')

        # fidelity of a partial set bounds the fidelity of all of its extensions
        def improvable_prefix(prefix: Sequence[int]) -> bool:
            newest = relaxed[prefix[-1]]
            others = required + [relaxed[i] for i in prefix[:-1]]
            if conflicts(newest, others):
                return False
            return assembly_fidelity(others + [newest], matrix) > best_fidelity

        num_checked_relaxed = 0
        for combination in combinations_pruned(len(relaxed), num_positions, improvable_prefix):
            num_checked_relaxed += 1
            overhangs = required + [relaxed[i] for i in combination]
            fidelity = assembly_fidelity(overhangs, matrix)
            if fidelity > best_fidelity:
                best, best_fidelity = overhangs, fidelity
                if fidelity >= config.perfect_fidelity:
                    break
            if config.max_combinations is not None and num_checked_relaxed >= config.max_combinations:
                logger.warning(f'stopped relaxed exhaustive search after {num_checked_relaxed} combinations')
                break
        num_checked += num_checked_relaxed

    if best is None:
        reason = 'no viable combination among the exhaustive search candidates'
        logger.info(f'{reason}; using greedy search')
        return _fall_back_to_greedy(num_junctions, pool, matrix, required, greedy_config, rng, reason)

    return SearchResult(overhangs=best, fidelity=best_fidelity, method='exhaustive', required=required,
                        candidates_considered=len(candidates), combinations_checked=num_checked,
                        elapsed_seconds=stopwatch.seconds())


def _fall_back_to_greedy(num_junctions: int, pool: Sequence[str], matrix: LigationMatrix,
                         required: List[str], greedy_config: Optional[GreedyConfig],
                         rng: Optional[np.random.Generator], reason: str) -> SearchResult:
    result = greedy_search(num_junctions, pool, matrix, required, config=greedy_config, rng=rng)
    result.fallback_reason = reason
    return result


def greedy_build(num_junctions: int, pool: Sequence[str], matrix: LigationMatrix,
                 required: Sequence[str] = ()) -> List[str]:
    """
    Starting from `required`, append candidates of `pool` in order, keeping only those that do not
    cross-ligate with anything chosen so far; then fill any remaining positions with candidates that
    merely do not duplicate a member or its reverse complement.
    """
    selected = list(required)
    for overhang in pool:
        if len(selected) >= num_junctions:
            break
        if conflicts(overhang, selected):
            continue
        if any(cross_ligates(overhang, other, matrix) for other in selected):
            continue
        selected.append(overhang)
    for overhang in pool:
        if len(selected) >= num_junctions:
            break
        if not conflicts(overhang, selected):
            selected.append(overhang)
    return selected


def _first_improving_swap(overhangs: List[str], fidelity: float, pool: Sequence[str],
                          matrix: LigationMatrix, num_fixed: int,
                          require_zero_cross: bool) -> Optional[Tuple[int, str, float]]:
    for position in range(num_fixed, len(overhangs)):
        others = overhangs[:position] + overhangs[position + 1:]
        for candidate in pool:
            if candidate == overhangs[position] or conflicts(candidate, others):
                continue
            if require_zero_cross and any(cross_ligates(candidate, other, matrix) for other in others):
                continue
            trial = overhangs[:position] + [candidate] + overhangs[position + 1:]
            trial_fidelity = assembly_fidelity(trial, matrix)
            if trial_fidelity > fidelity:
                return position, candidate, trial_fidelity
    return None


def two_opt(overhangs: Sequence[str], pool: Sequence[str], matrix: LigationMatrix,
            num_fixed: int = 0, config: Optional[GreedyConfig] = None) -> Tuple[List[str], float, int]:
    """
    Local search: repeatedly make the first substitution (scanning positions from the first one not
    fixed, then candidates in pool order) that strictly improves assembly fidelity.

    :param overhangs:
        starting set
    :param pool:
        candidates that may be substituted in
    :param matrix:
        ligation data
    :param num_fixed:
        number of leading positions (required overhangs) never replaced
    :param config:
        iteration cap and substitution rule
    :return:
        triple (improved set, its fidelity, number of improving substitutions made)
    """
    if config is None:
        config = GreedyConfig()
    current = list(overhangs)
    fidelity = assembly_fidelity(current, matrix)
    num_swaps = 0
    while num_swaps < config.max_local_search_iterations and fidelity < config.perfect_fidelity:
        swap = _first_improving_swap(current, fidelity, pool, matrix, num_fixed,
                                     config.require_zero_cross_swaps)
        if swap is None:
            break
        position, overhang, fidelity = swap
        current[position] = overhang
        num_swaps += 1
    return current, fidelity, num_swaps


def random_initial_set(num_junctions: int, pool: Sequence[str], matrix: LigationMatrix,
                       required: Sequence[str], rng: np.random.Generator) -> List[str]:
    """Like :py:meth:`greedy_build`, but visiting `pool` in a random order."""
    order = rng.permutation(len(pool))
    shuffled = [pool[int(i)] for i in order]
    return greedy_build(num_junctions, shuffled, matrix, required)


def greedy_search(num_junctions: int, pool: Sequence[str], matrix: LigationMatrix,
                  required: Sequence[str] = (),
                  config: Optional[GreedyConfig] = None,
                  rng: Optional[np.random.Generator] = None) -> SearchResult:
    """
    :py:meth:`greedy_build`, improved by :py:meth:`two_opt`, then random restarts (each improved by
    :py:meth:`two_opt`) while the best set is not perfect. The returned fidelity is never below that of
    the plain greedy set.

    :raises InsufficientCandidatesError:
        if `pool` cannot fill the set
    """
    if config is None:
        config = GreedyConfig()
    rng = make_rng(rng, config.random_seed)
    stopwatch = Stopwatch()
    required = list(required)
    candidates = [oh for oh in pool if not conflicts(oh, required)]

    best = greedy_build(num_junctions, candidates, matrix, required)
    if len(best) < num_junctions:
        raise InsufficientCandidatesError(num_junctions - len(required), len(candidates), {})
    best_fidelity = assembly_fidelity(best, matrix)
    method = 'greedy'
    logger.info(f'greedy set has fidelity {best_fidelity:.6f}')

    num_swaps = 0
    if best_fidelity < config.perfect_fidelity:
        improved, improved_fidelity, swaps = two_opt(best, candidates, matrix, len(required), config)
        num_swaps += swaps
        if improved_fidelity > best_fidelity:
            best, best_fidelity, method = improved, improved_fidelity, 'greedy+2opt'
            logger.info(f'local search improved fidelity to {best_fidelity:.6f}')

    for restart in range(config.num_restarts):
        if best_fidelity >= config.perfect_fidelity:
            break
        start = random_initial_set(num_junctions, candidates, matrix, required, rng)
        refined, refined_fidelity, swaps = two_opt(start, candidates, matrix, len(required), config)
        num_swaps += swaps
        if refined_fidelity > best_fidelity:
            best, best_fidelity, method = refined, refined_fidelity, 'greedy+restart'
            logger.info(f'restart {restart + 1} improved fidelity to {best_fidelity:.6f}')

    return SearchResult(overhangs=best, fidelity=best_fidelity, method=method, required=required,
                        candidates_considered=len(candidates), iterations=num_swaps,
                        elapsed_seconds=stopwatch.seconds())


def find_optimal_overhang_set(num_junctions: int, pool: Sequence[str], matrix: LigationMatrix,
                              required: Sequence[str] = (),
                              force_exhaustive: bool = False,
                              exhaustive_config: Optional[ExhaustiveConfig] = None,
                              greedy_config: Optional[GreedyConfig] = None,
                              rng: Optional[np.random.Generator] = None) -> SearchResult:
    """
    Use :py:meth:`exhaustive_search` if at most :py:data:`ExhaustiveConfig.max_residual_size`
    non-required positions must be filled (or if `force_exhaustive`), otherwise :py:meth:`greedy_search`.
    """
    if exhaustive_config is None:
        exhaustive_config = ExhaustiveConfig()
    num_positions = num_junctions - len(required)
    if force_exhaustive or num_positions <= exhaustive_config.max_residual_size:
        return exhaustive_search(num_junctions, pool, matrix, required, config=exhaustive_config,
                                 greedy_config=greedy_config, rng=rng)
    logger.info(f'{num_positions} positions to fill exceeds {exhaustive_config.max_residual_size}; '
                f'using greedy search')
    return greedy_search(num_junctions, pool, matrix, required, config=greedy_config, rng=rng)
