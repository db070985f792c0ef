"""
Simulated annealing over overhang sets, maximizing :py:meth:`fidelity.ligation_fidelity`.

Each step replaces the overhang at one random non-required position with a random candidate that is
not already in the set (as itself or as its reverse complement). Improvements are always kept;
a change of fidelity ``delta <= 0`` is kept with probability ``exp(delta / T)``
(the Metropolis criterion), where ``T = temperature_scale * 2**exponent``. The exponent is
calibrated before the run so that the fraction of accepted steps is close to a target ratio.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Callable, Tuple

import numpy as np
from tabulate import tabulate

import ligo.np as ln
from ligo.constraints import InsufficientCandidatesError
from ligo.fidelity import ligation_fidelity, conflicts, perfect_fidelity_threshold
from ligo.ligation import LigationMatrix, logger
from ligo.search import SearchResult, make_rng
from ligo.stopwatch import Stopwatch

max_temperature_exponent = 512


@dataclass
class AnnealingProgress:
    """Snapshot passed to :py:data:`AnnealingConfig.on_progress`."""

    iteration: int
    total_iterations: int
    current_fidelity: float
    best_fidelity: float
    acceptance_ratio: float
    """Fraction of steps accepted so far."""


@dataclass
class AnnealingConfig:
    """
    Parameters of :py:meth:`anneal`.
    """

    iterations: int = 10000
    """Number of Monte Carlo steps."""

    target_acceptance_ratio: float = 0.05
    """Fraction of accepted steps the temperature is calibrated to produce."""

    calibration_iterations: Optional[int] = None
    """
    Steps per trial run during calibration. Defaults to a tenth of
    :py:data:`AnnealingConfig.iterations`, at most 1000.
    """

    max_calibration_steps: int = 100
    """Maximum number of times calibration moves the temperature exponent."""

    temperature_scale: float = 1.0
    """Temperature at exponent 0."""

    temperature_exponent: Optional[float] = None
    """If given, calibration is skipped and this exponent is used."""

    progress_interval: int = 100
    """:py:data:`AnnealingConfig.on_progress` is called every this many iterations."""

    on_progress: Optional[Callable[[AnnealingProgress], None]] = None

    should_stop: Optional[Callable[[], bool]] = None
    """Polled every iteration; when it returns True the run ends and the best set so far is returned."""

    max_seconds: Optional[float] = None
    """Wall-clock budget (calibration included); the run ends with the best set so far when exceeded."""

    stop_at_perfect: bool = True
    """Whether to end the run once the best set reaches :py:data:`AnnealingConfig.perfect_fidelity`."""

    perfect_fidelity: float = perfect_fidelity_threshold

    log_progress: bool = False
    """Whether to log a table row at every progress interval."""

    random_seed: Optional[int] = None
    """
    Integer given as a random seed to the numpy random number generator, used for
    all random choices in the run when no generator is passed. Set this to a fixed value to allow
    reproducibility.
    """

    def __post_init__(self) -> None:
        if self.iterations < 1:
            raise ValueError(f'iterations must be positive but is {self.iterations}')
        if not 0 < self.target_acceptance_ratio < 1:
            raise ValueError(f'target_acceptance_ratio must be strictly between 0 and 1 '
                             f'but is {self.target_acceptance_ratio}')
        if self.calibration_iterations is not None and self.calibration_iterations < 1:
            raise ValueError(f'calibration_iterations must be positive but is {self.calibration_iterations}')
        if self.max_calibration_steps < 0:
            raise ValueError(f'max_calibration_steps must be nonnegative but is {self.max_calibration_steps}')
        if self.temperature_scale <= 0:
            raise ValueError(f'temperature_scale must be positive but is {self.temperature_scale}')
        if self.temperature_exponent is not None and abs(self.temperature_exponent) > max_temperature_exponent:
            raise ValueError(f'temperature_exponent must be between {-max_temperature_exponent} and '
                             f'{max_temperature_exponent} but is {self.temperature_exponent}')
        if self.progress_interval < 1:
            raise ValueError(f'progress_interval must be positive but is {self.progress_interval}')
        if self.max_seconds is not None and self.max_seconds < 0:
            raise ValueError(f'max_seconds must be nonnegative but is {self.max_seconds}')

    def num_calibration_iterations(self) -> int:
        if self.calibration_iterations is not None:
            return self.calibration_iterations
        return max(1, min(self.iterations // 10, 1000))


def scaled_temperature(scale: float, exponent: float) -> float:
    return scale * 2.0 ** exponent


def metropolis_accept(delta: float, temperature: float, rng: np.random.Generator) -> bool:
    """Accept if `delta` > 0, else with probability ``exp(delta / temperature)``."""
    if delta > 0:
        return True
    if temperature <= 0:
        return False
    return bool(rng.random() < math.exp(max(delta / temperature, -745.0)))


class MetropolisChain:
    """Current set of a Monte Carlo run, with its fidelity."""

    def __init__(self, overhangs: Sequence[str], pool: Sequence[str], matrix: LigationMatrix,
                 num_fixed: int, rng: np.random.Generator) -> None:
        self.overhangs: List[str] = list(overhangs)
        self.pool = pool
        self.matrix = matrix
        self.num_fixed = num_fixed
        self.rng = rng
        self.fidelity: float = ligation_fidelity(self.overhangs, matrix)

    @property
    def num_mutable(self) -> int:
        return len(self.overhangs) - self.num_fixed

    def step(self, temperature: float) -> bool:
        """
        Propose and possibly accept one substitution.

        :return:
            whether the substitution was accepted
        """
        if self.num_mutable <= 0:
            return False
        position = self.num_fixed + int(self.rng.integers(self.num_mutable))
        occupied = set(self.overhangs) | {ln.wc(oh) for oh in self.overhangs}
        available = [oh for oh in self.pool if oh not in occupied]
        if len(available) == 0:
            return False
        candidate = available[int(self.rng.integers(len(available)))]

        trial = list(self.overhangs)
        trial[position] = candidate
        trial_fidelity = ligation_fidelity(trial, self.matrix)
        if metropolis_accept(trial_fidelity - self.fidelity, temperature, self.rng):
            self.overhangs = trial
            self.fidelity = trial_fidelity
            return True
        return False


def random_fill(num_junctions: int, pool: Sequence[str], required: Sequence[str],
                rng: np.random.Generator) -> List[str]:
    """`required` followed by randomly chosen members of `pool`, avoiding duplicates and reverse complements."""
    selected = list(required)
    for idx in rng.permutation(len(pool)):
        if len(selected) >= num_junctions:
            break
        overhang = pool[int(idx)]
        if not conflicts(overhang, selected):
            selected.append(overhang)
    if len(selected) < num_junctions:
        raise InsufficientCandidatesError(num_junctions - len(required), len(pool), {})
    return selected


class _CalibrationStopped(Exception):
    pass


def _stop_requested(config: AnnealingConfig, stopwatch: Stopwatch) -> bool:
    return (config.should_stop is not None and config.should_stop()) or stopwatch.exceeded(config.max_seconds)


def calibrate_temperature_exponent(initial: Sequence[str], pool: Sequence[str], matrix: LigationMatrix,
                                   num_fixed: int, config: AnnealingConfig,
                                   rng: np.random.Generator,
                                   stopwatch: Optional[Stopwatch] = None) -> Tuple[float, float]:
    """
    Find the temperature exponent whose trial runs accept close to
    :py:data:`AnnealingConfig.target_acceptance_ratio` of their steps. Starting from exponent 0,
    the exponent is lowered while the measured ratio is above target, or raised while it is below.

    Trial runs check :py:data:`AnnealingConfig.should_stop` and :py:data:`AnnealingConfig.max_seconds`
    (measured on `stopwatch`) before every step; when either fires, calibration ends at the last fully
    measured exponent.

    :return:
        pair (exponent, acceptance ratio measured at that exponent)
    """
    if len(initial) <= num_fixed:
        return 0, 0.0
    if stopwatch is None:
        stopwatch = Stopwatch()
    steps = config.num_calibration_iterations()
    target = config.target_acceptance_ratio

    def acceptance_at(exponent: float) -> float:
        chain = MetropolisChain(initial, pool, matrix, num_fixed, rng)
        temperature = scaled_temperature(config.temperature_scale, exponent)
        accepted = 0
        for _ in range(steps):
            if _stop_requested(config, stopwatch):
                raise _CalibrationStopped()
            if chain.step(temperature):
                accepted += 1
        return accepted / steps

    exponent, ratio = 0, 0.0
    try:
        ratio = acceptance_at(exponent)
        adjustments = 0
        if ratio > target:
            while ratio > target and adjustments < config.max_calibration_steps:
                ratio = acceptance_at(exponent - 1)
                exponent -= 1
                adjustments += 1
        elif ratio < target:
            while ratio < target and adjustments < config.max_calibration_steps:
                ratio = acceptance_at(exponent + 1)
                exponent += 1
                adjustments += 1
    except _CalibrationStopped:
        logger.info(f'temperature calibration stopped early at exponent {exponent}')
        return exponent, ratio
    logger.info(f'temperature exponent {exponent} gives acceptance ratio {ratio:.4f} '
                f'(target {target})')
    return exponent, ratio


def _log_progress(progress: AnnealingProgress, first: bool) -> None:
    header = ['iteration', 'current', 'best', 'accepted']
    row = [progress.iteration, f'{progress.current_fidelity:.6f}', f'{progress.best_fidelity:.6f}',
           f'{progress.acceptance_ratio:.4f}']
    table = tabulate([header, row], tablefmt='github', numalign='right', stralign='right')
    lines = table.split('\n')
    logger.info('\n'.join(lines) if first else lines[-1])


def anneal(num_junctions: int, pool: Sequence[str], matrix: LigationMatrix,
           required: Sequence[str] = (),
           config: Optional[AnnealingConfig] = None,
           rng: Optional[np.random.Generator] = None) -> SearchResult:
    """
    Run simulated annealing from a random set (required overhangs first, never moved).

    :param num_junctions:
        size of the set, including required overhangs
    :param pool:
        candidates for the non-required positions
    :param matrix:
        ligation data
    :param required:
        overhangs pinned to the first positions
    :param config:
        run parameters
    :param rng:
        random number generator; if None, one is made from :py:data:`AnnealingConfig.random_seed`
    :return:
        best set seen during the run; :py:data:`search.SearchResult.cancelled` is True if the run was
        stopped by :py:data:`AnnealingConfig.should_stop` or :py:data:`AnnealingConfig.max_seconds`
    """
    if config is None:
        config = AnnealingConfig()
    rng = make_rng(rng, config.random_seed)
    stopwatch = Stopwatch()
    required = list(required)
    candidates = [oh for oh in pool if not conflicts(oh, required)]
    initial = random_fill(num_junctions, candidates, required, rng)

    if config.temperature_exponent is not None:
        exponent = config.temperature_exponent
    else:
        exponent, _ = calibrate_temperature_exponent(initial, candidates, matrix, len(required), config, rng,
                                                     stopwatch=stopwatch)
    temperature = scaled_temperature(config.temperature_scale, exponent)

    chain = MetropolisChain(initial, candidates, matrix, len(required), rng)
    best, best_fidelity = list(chain.overhangs), chain.fidelity
    num_accepted = 0
    num_run = 0
    cancelled = False
    for iteration in range(config.iterations):
        if _stop_requested(config, stopwatch):
            cancelled = True
            logger.info(f'annealing stopped early after {num_run} iterations')
            break
        if chain.step(temperature):
            num_accepted += 1
        num_run = iteration + 1
        if chain.fidelity > best_fidelity:
            best, best_fidelity = list(chain.overhangs), chain.fidelity

        if iteration % config.progress_interval == 0:
            progress = AnnealingProgress(iteration=iteration, total_iterations=config.iterations,
                                         current_fidelity=chain.fidelity, best_fidelity=best_fidelity,
                                         acceptance_ratio=num_accepted / num_run)
            if config.on_progress is not None:
                config.on_progress(progress)
            if config.log_progress:
                _log_progress(progress, first=iteration == 0)

        if config.stop_at_perfect and best_fidelity >= config.perfect_fidelity:
            break

    acceptance_ratio = num_accepted / num_run if num_run > 0 else 0.0
    return SearchResult(overhangs=best, fidelity=best_fidelity, method='annealing', objective='ligation',
                        required=required, candidates_considered=len(candidates), iterations=num_run,
                        acceptance_ratio=acceptance_ratio, temperature_exponent=exponent,
                        cancelled=cancelled, elapsed_seconds=stopwatch.seconds())
