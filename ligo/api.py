"""
Public entry points for designing and scoring Golden Gate overhang sets.

Typical use::

    import ligo.api as la
    from ligo.constraints import Constraints

    result = la.optimize_overhang_set(5, 'BsaI', Constraints(required=['GGAG'], max_gc=3))
    print(result.summary())
    report = la.evaluate_overhang_set(result.overhangs, 'BsaI')

Every function takes an optional :any:`LigationDataset`; without one, the default dataset is used
(see :py:meth:`ligation.default_ligation_dataset`).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Dict, Iterable, Any, Tuple

import numpy as np
from tabulate import tabulate

import ligo.fidelity as lf
import ligo.np as ln
from ligo.annealing import AnnealingConfig, anneal
from ligo.constraints import Constraints, PoolConfig, build_candidate_pool, check_junction_count, \
    check_required_fit, default_min_self_ligation
from ligo.ligation import LigationDataset, LigationMatrix, default_ligation_dataset, logger
from ligo.search import SearchResult, ExhaustiveConfig, GreedyConfig, find_optimal_overhang_set, make_rng

objectives = ('ligation', 'assembly')


def _matrix(enzyme: str, dataset: Optional[LigationDataset]) -> LigationMatrix:
    if dataset is None:
        dataset = default_ligation_dataset()
    return dataset.matrix_for(enzyme)


def _with_default_floor(pool_config: Optional[PoolConfig]) -> PoolConfig:
    if pool_config is None:
        return PoolConfig(default_min_self_ligation=default_min_self_ligation)
    if pool_config.default_min_self_ligation is None:
        return dataclasses.replace(pool_config, default_min_self_ligation=default_min_self_ligation)
    return pool_config


def _prepare(num_junctions: int, enzyme: str, constraints: Optional[Constraints],
             dataset: Optional[LigationDataset],
             pool_config: Optional[PoolConfig]) -> Tuple[Constraints, LigationMatrix, int]:
    check_junction_count(num_junctions)
    if constraints is None:
        constraints = Constraints()
    matrix = _matrix(enzyme, dataset)
    constraints.check_overhang_length(matrix.overhang_length)
    constraints.check_required_bounds(matrix, pool_config.default_min_self_ligation
                                      if pool_config is not None else None)
    num_positions = check_required_fit(num_junctions, constraints.required)
    return constraints, matrix, num_positions


def _finish(result: SearchResult, enzyme: str, matrix: LigationMatrix,
            constraints: Constraints) -> SearchResult:
    result.enzyme = enzyme
    report = lf.fidelity_report(result.overhangs, matrix, enzyme=enzyme, required=constraints.required)
    for warning in report.warnings:
        if warning not in result.warnings:
            result.warnings.append(warning)
    logger.info(f'designed {len(result.overhangs)} overhangs for {enzyme} by {result.method}: '
                f'{" ".join(result.overhangs)} ({result.objective} fidelity {100 * result.fidelity:.2f}%)')
    return result


def optimize_overhang_set(num_junctions: int, enzyme: str = 'BsaI',
                          constraints: Optional[Constraints] = None, *,
                          force_exhaustive: bool = False,
                          pool_config: Optional[PoolConfig] = None,
                          exhaustive_config: Optional[ExhaustiveConfig] = None,
                          greedy_config: Optional[GreedyConfig] = None,
                          dataset: Optional[LigationDataset] = None,
                          rng: Optional[np.random.Generator] = None) -> SearchResult:
    """
    Design a set of `num_junctions` overhangs maximizing assembly fidelity, by exhaustive search when
    few positions must be filled and greedy search otherwise.

    :param num_junctions:
        number of overhangs in the set, between 2 and 50
    :param enzyme:
        enzyme name (e.g., ``'BsaI'``, ``'BsmBI'``) selecting the ligation data
    :param constraints:
        required/excluded overhangs and composition limits
    :param force_exhaustive:
        use exhaustive search regardless of the number of positions
    :param pool_config:
        candidate pool settings; if its :py:data:`constraints.PoolConfig.default_min_self_ligation` is
        None (or `pool_config` is None), candidates must self-ligate at least
        :py:data:`constraints.default_min_self_ligation` times unless `constraints` sets a floor
    :param exhaustive_config:
        exhaustive search parameters
    :param greedy_config:
        greedy search parameters
    :param dataset:
        ligation data; defaults to :py:meth:`ligation.default_ligation_dataset`
    :param rng:
        random number generator for greedy restarts
    :return:
        the designed set with search metadata and warnings
    :raises constraints.JunctionCountError:
        if `num_junctions` is out of range
    :raises ligation.UnknownEnzymeError:
        if there is no ligation data for `enzyme`
    :raises constraints.ConstraintConflictError:
        if the constraints contradict each other or the enzyme
    :raises constraints.InsufficientCandidatesError:
        if too few candidates survive the constraints
    """
    pool_config = _with_default_floor(pool_config)
    constraints, matrix, num_positions = _prepare(num_junctions, enzyme, constraints, dataset, pool_config)
    pool = build_candidate_pool(matrix, constraints, pool_config, num_needed=num_positions)
    result = find_optimal_overhang_set(num_junctions, pool.candidates, matrix, constraints.required,
                                       force_exhaustive=force_exhaustive,
                                       exhaustive_config=exhaustive_config, greedy_config=greedy_config,
                                       rng=rng)
    return _finish(result, enzyme, matrix, constraints)


def evaluate_overhang_set(overhangs: Sequence[str], enzyme: str = 'BsaI', *,
                          required: Iterable[str] = (),
                          dataset: Optional[LigationDataset] = None) -> lf.FidelityReport:
    """
    Score a given set without changing it.

    :param overhangs:
        the set to score
    :param enzyme:
        enzyme name selecting the ligation data
    :param required:
        overhangs to mark as required in the report
    :param dataset:
        ligation data; defaults to :py:meth:`ligation.default_ligation_dataset`
    :return:
        :any:`fidelity.FidelityReport` with both objectives and per-junction detail
    """
    matrix = _matrix(enzyme, dataset)
    return lf.fidelity_report(overhangs, matrix, enzyme=enzyme, required=required)


def run_simulated_annealing(num_junctions: int, enzyme: str = 'BsaI',
                            constraints: Optional[Constraints] = None, *,
                            config: Optional[AnnealingConfig] = None,
                            pool_config: Optional[PoolConfig] = None,
                            dataset: Optional[LigationDataset] = None,
                            rng: Optional[np.random.Generator] = None) -> SearchResult:
    """
    Design a set of `num_junctions` overhangs maximizing ligation fidelity by simulated annealing.
    Parameters and errors are as in :py:meth:`optimize_overhang_set`, except that no self-ligation
    floor is applied unless `constraints` sets one.
    """
    constraints, matrix, num_positions = _prepare(num_junctions, enzyme, constraints, dataset, pool_config)
    pool = build_candidate_pool(matrix, constraints, pool_config, num_needed=num_positions)
    result = anneal(num_junctions, pool.candidates, matrix, constraints.required, config=config, rng=rng)
    return _finish(result, enzyme, matrix, constraints)


@dataclass
class MultiRunResult:
    """Best of several independent annealing runs."""

    best: SearchResult

    fidelities: List[float]
    """Best fidelity of each run, in run order."""

    best_run_index: int

    @property
    def mean_fidelity(self) -> float:
        return float(np.mean(self.fidelities))


def optimize_overhang_set_multi_run(num_junctions: int, enzyme: str = 'BsaI',
                                    constraints: Optional[Constraints] = None, *,
                                    runs: int = 5,
                                    config: Optional[AnnealingConfig] = None,
                                    pool_config: Optional[PoolConfig] = None,
                                    dataset: Optional[LigationDataset] = None,
                                    rng: Optional[np.random.Generator] = None) -> MultiRunResult:
    """Run :py:meth:`run_simulated_annealing` `runs` times from different random starts and keep the best."""
    if runs < 1:
        raise ValueError(f'runs must be positive but is {runs}')
    constraints, matrix, num_positions = _prepare(num_junctions, enzyme, constraints, dataset, pool_config)
    pool = build_candidate_pool(matrix, constraints, pool_config, num_needed=num_positions)
    rng = make_rng(rng, config.random_seed if config is not None else None)

    results: List[SearchResult] = []
    for run in range(runs):
        result = anneal(num_junctions, pool.candidates, matrix, constraints.required, config=config, rng=rng)
        logger.info(f'run {run + 1}/{runs}: fidelity {result.fidelity:.6f}')
        results.append(result)
        if result.cancelled:
            break

    fidelities = [result.fidelity for result in results]
    best_run_index = int(np.argmax(fidelities))
    best = _finish(results[best_run_index], enzyme, matrix, constraints)
    return MultiRunResult(best=best, fidelities=fidelities, best_run_index=best_run_index)


@dataclass
class ScoredSet:
    overhangs: List[str]
    fidelity: float


@dataclass
class DistributionReport:
    """Distribution of fidelity over randomly drawn sets."""

    enzyme: str

    num_junctions: int

    objective: str

    samples: List[ScoredSet]
    """All sampled sets, best first."""

    mean: float

    std_dev: float
    """Population standard deviation."""

    minimum: float

    maximum: float

    median: float

    percentiles: Dict[int, float] = field(default_factory=dict)
    """Percentile (10, 25, 50, 75, 90) to fidelity."""

    @property
    def best(self) -> ScoredSet:
        return self.samples[0]

    @property
    def worst(self) -> ScoredSet:
        return self.samples[-1]

    def summary(self) -> str:
        rows = [['samples', len(self.samples)],
                ['mean', f'{self.mean:.6f}'],
                ['std dev', f'{self.std_dev:.6f}'],
                ['min', f'{self.minimum:.6f}'],
                ['median', f'{self.median:.6f}'],
                ['max', f'{self.maximum:.6f}']]
        rows.extend([f'p{p}', f'{value:.6f}'] for p, value in sorted(self.percentiles.items()))
        rows.append(['best set', ' '.join(self.best.overhangs)])
        return tabulate(rows, tablefmt='github')

    def to_json_serializable(self) -> Dict[str, Any]:
        return {
            'enzyme': self.enzyme,
            'num_junctions': self.num_junctions,
            'objective': self.objective,
            'mean': self.mean,
            'std_dev': self.std_dev,
            'min': self.minimum,
            'max': self.maximum,
            'median': self.median,
            'percentiles': {f'p{p}': value for p, value in self.percentiles.items()},
            'best': {'overhangs': self.best.overhangs, 'fidelity': self.best.fidelity},
            'worst': {'overhangs': self.worst.overhangs, 'fidelity': self.worst.fidelity},
        }


def batch_score_random_sets(num_junctions: int, enzyme: str = 'BsaI', sample_count: int = 100, *,
                            excluded: Sequence[str] = (),
                            objective: str = 'ligation',
                            dataset: Optional[LigationDataset] = None,
                            rng: Optional[np.random.Generator] = None,
                            random_seed: Optional[int] = None) -> DistributionReport:
    """
    Score `sample_count` random valid sets of `num_junctions` overhangs, as a baseline against which a
    designed set can be compared.

    :param num_junctions:
        size of each set
    :param enzyme:
        enzyme name selecting the ligation data
    :param sample_count:
        number of random sets
    :param excluded:
        overhangs (and their reverse complements) never drawn
    :param objective:
        ``'ligation'`` or ``'assembly'``
    :param dataset:
        ligation data; defaults to :py:meth:`ligation.default_ligation_dataset`
    :param rng:
        random number generator
    :param random_seed:
        seed used when `rng` is None
    :return:
        :any:`DistributionReport`
    """
    check_junction_count(num_junctions)
    if sample_count < 1:
        raise ValueError(f'sample_count must be positive but is {sample_count}')
    if objective not in objectives:
        raise ValueError(f'objective must be one of {", ".join(objectives)} but is "{objective}"')
    matrix = _matrix(enzyme, dataset)
    constraints = Constraints(excluded=list(excluded))
    constraints.check_overhang_length(matrix.overhang_length)
    pool = build_candidate_pool(matrix, constraints, PoolConfig(), num_needed=num_junctions)
    rng = make_rng(rng, random_seed)
    score = lf.ligation_fidelity if objective == 'ligation' else lf.assembly_fidelity

    samples: List[ScoredSet] = []
    for _ in range(sample_count):
        idxs = rng.choice(len(pool.candidates), size=num_junctions, replace=False)
        overhangs = [pool.candidates[int(idx)] for idx in idxs]
        samples.append(ScoredSet(overhangs=overhangs, fidelity=score(overhangs, matrix)))
    samples.sort(key=lambda sample: sample.fidelity, reverse=True)

    fidelities = np.array([sample.fidelity for sample in samples])
    percentiles = {p: float(np.percentile(fidelities, p)) for p in (10, 25, 50, 75, 90)}
    return DistributionReport(enzyme=enzyme, num_junctions=num_junctions, objective=objective,
                              samples=samples, mean=float(np.mean(fidelities)),
                              std_dev=float(np.std(fidelities)), minimum=float(np.min(fidelities)),
                              maximum=float(np.max(fidelities)), median=float(np.median(fidelities)),
                              percentiles=percentiles)


def compare_enzyme_fidelity(overhangs: Sequence[str],
                            dataset: Optional[LigationDataset] = None) -> List[lf.EnzymeComparison]:
    """Assembly fidelity of `overhangs` under each enzyme with ligation data, best first."""
    if dataset is None:
        dataset = default_ligation_dataset()
    return lf.compare_enzyme_fidelity([ln.normalize_overhang(oh) for oh in overhangs], dataset)
