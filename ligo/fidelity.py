"""
Scoring of overhang sets against a :any:`LigationMatrix`.

Two objectives are provided and deliberately kept separate:

- :py:meth:`assembly_fidelity` is the product over junctions of
  ``correct / (correct + cross)``, where ``correct`` is ``matrix[oh][wc(oh)]`` and ``cross`` sums
  ``matrix[oh][wc(other)]`` over the other members. Exhaustive and greedy search optimize this.

- :py:meth:`ligation_fidelity` counts both strands of every junction against every member of the set
  (including itself). Simulated annealing optimizes this.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Iterable, Dict, Any

import numpy as np
from tabulate import tabulate

import ligo.np as ln
from ligo.ligation import LigationMatrix, LigationDataset, golden_gate_enzymes

perfect_fidelity_threshold = 0.9999
"""A set whose fidelity reaches this value is treated as perfect and ends a search early."""

low_junction_fidelity_threshold = 0.95
"""Junctions with fidelity below this value are reported with a warning."""

problematic_pair_threshold = 0.05
"""Minimum ratio cross/correct for :py:meth:`find_problematic_pairs` to report a pair."""


@dataclass
class JunctionFidelity:
    """Fidelity of one junction (overhang) within a set."""

    overhang: str

    partner: str
    """Reverse complement of :py:data:`JunctionFidelity.overhang`."""

    correct: float
    """Frequency of ligation to the correct partner."""

    total: float
    """``correct`` plus all cross-ligation with partners of the other members."""

    fidelity: float

    is_required: bool = False

    def to_json_serializable(self) -> Dict[str, Any]:
        return {
            'overhang': self.overhang,
            'partner': self.partner,
            'correct': self.correct,
            'total': self.total,
            'fidelity': self.fidelity,
            'is_required': self.is_required,
        }


def junction_fidelity(overhang: str, overhangs: Sequence[str], matrix: LigationMatrix,
                      is_required: bool = False) -> JunctionFidelity:
    """
    :param overhang:
        member of `overhangs` to score
    :param overhangs:
        the whole set
    :param matrix:
        ligation frequencies
    :param is_required:
        recorded in the result
    :return:
        :any:`JunctionFidelity`; fidelity is 0 when there is no ligation data for `overhang`
    """
    partner = ln.wc(overhang)
    correct = matrix.frequency(overhang, partner)
    total = correct
    for other in overhangs:
        if other != overhang:
            total += matrix.frequency(overhang, ln.wc(other))
    fidelity = correct / total if total > 0 and correct > 0 else 0.0
    return JunctionFidelity(overhang=overhang, partner=partner, correct=correct, total=total,
                            fidelity=fidelity, is_required=is_required)


def assembly_fidelity(overhangs: Sequence[str], matrix: LigationMatrix) -> float:
    """Product of junction fidelities; 1.0 for the empty set."""
    product = 1.0
    for overhang in overhangs:
        product *= junction_fidelity(overhang, overhangs, matrix).fidelity
        if product == 0.0:
            break
    return product


def ligation_fidelity(overhangs: Sequence[str], matrix: LigationMatrix) -> float:
    """
    Fidelity counting both strands of each junction. For member ``oh`` with reverse complement ``rc``,
    the correct count is ``m[oh][rc] + m[rc][oh]`` and the total sums ``m[oh][x] + m[rc][x]`` for every
    ``x`` that is a member of the set or the reverse complement of one (including ``oh`` itself).
    A member with total 0 contributes 0. 1.0 for the empty set.
    """
    ends = [(oh, ln.wc(oh)) for oh in overhangs]
    product = 1.0
    for oh, rc in ends:
        correct = matrix.frequency(oh, rc) + matrix.frequency(rc, oh)
        total = 0.0
        for oh2, rc2 in ends:
            total += (matrix.frequency(oh, oh2) + matrix.frequency(oh, rc2)
                      + matrix.frequency(rc, oh2) + matrix.frequency(rc, rc2))
        if total <= 0:
            return 0.0
        product *= correct / total
    return product


def cross_ligates(overhang1: str, overhang2: str, matrix: LigationMatrix) -> bool:
    """Whether either overhang ligates to the reverse complement of the other."""
    return (matrix.frequency(overhang1, ln.wc(overhang2)) > 0
            or matrix.frequency(overhang2, ln.wc(overhang1)) > 0)


def has_zero_cross_ligation(overhangs: Sequence[str], matrix: LigationMatrix) -> bool:
    """Whether no member ligates to the reverse complement of another member."""
    return not any(cross_ligates(oh1, oh2, matrix)
                   for oh1, oh2 in itertools.combinations(overhangs, 2))


def conflicts(overhang: str, overhangs: Iterable[str]) -> bool:
    """Whether `overhang` equals a member of `overhangs` or the reverse complement of one."""
    rc = ln.wc(overhang)
    return any(other == overhang or other == rc for other in overhangs)


def is_valid_overhang_set(overhangs: Sequence[str]) -> bool:
    """No duplicates and no member equal to the reverse complement of another."""
    return not any(conflicts(overhangs[i], overhangs[:i]) for i in range(len(overhangs)))


@dataclass
class FidelityReport:
    """Full evaluation of an overhang set."""

    overhangs: List[str]

    junctions: List[JunctionFidelity]

    assembly_fidelity: float
    """Product of junction fidelities; see :py:meth:`assembly_fidelity`."""

    ligation_fidelity: float
    """See :py:meth:`ligation_fidelity`."""

    enzyme: str = ''

    warnings: List[str] = field(default_factory=list)

    @property
    def weakest_junction(self) -> Optional[JunctionFidelity]:
        return min(self.junctions, key=lambda j: j.fidelity) if self.junctions else None

    @property
    def strongest_junction(self) -> Optional[JunctionFidelity]:
        return max(self.junctions, key=lambda j: j.fidelity) if self.junctions else None

    @property
    def is_perfect(self) -> bool:
        return self.assembly_fidelity >= perfect_fidelity_threshold

    def summary(self) -> str:
        header = ['overhang', 'partner', 'GC', 'correct', 'total', 'fidelity', 'required']
        table = [[j.overhang, j.partner, ln.gc_count(j.overhang), j.correct, j.total,
                  f'{100 * j.fidelity:.2f}%', 'yes' if j.is_required else '']
                 for j in self.junctions]
        lines = [f'enzyme: {self.enzyme}' if self.enzyme else 'enzyme: (unspecified)',
                 tabulate(table, headers=header, tablefmt='github'),
                 f'assembly fidelity: {100 * self.assembly_fidelity:.2f}%',
                 f'ligation fidelity: {100 * self.ligation_fidelity:.2f}%']
        lines.extend(f'warning: {warning}' for warning in self.warnings)
        return '\n'.join(lines)

    def to_json_serializable(self) -> Dict[str, Any]:
        return {
            'enzyme': self.enzyme,
            'overhangs': list(self.overhangs),
            'assembly_fidelity': self.assembly_fidelity,
            'ligation_fidelity': self.ligation_fidelity,
            'junctions': [j.to_json_serializable() for j in self.junctions],
            'warnings': list(self.warnings),
        }


def fidelity_report(overhangs: Sequence[str], matrix: LigationMatrix, enzyme: str = '',
                    required: Iterable[str] = ()) -> FidelityReport:
    """
    Evaluate `overhangs`. Overhangs with no ligation data score 0 and are reported in
    :py:data:`FidelityReport.warnings`, as are junctions below 95% fidelity.
    """
    overhangs = [ln.normalize_overhang(oh) for oh in overhangs]
    required_set = {ln.normalize_overhang(oh) for oh in required}
    junctions = [junction_fidelity(oh, overhangs, matrix, is_required=oh in required_set)
                 for oh in overhangs]
    warnings: List[str] = []
    for junction in junctions:
        if junction.correct == 0:
            warnings.append(f'no ligation data for overhang {junction.overhang}')
        elif junction.fidelity < low_junction_fidelity_threshold:
            warnings.append(f'junction {junction.overhang} has {100 * junction.fidelity:.1f}% fidelity')
    if not is_valid_overhang_set(overhangs):
        warnings.append('set contains a duplicate overhang or an overhang together with its '
                        'reverse complement')

    product = 1.0
    for junction in junctions:
        product *= junction.fidelity
    return FidelityReport(overhangs=overhangs, junctions=junctions, assembly_fidelity=product,
                          ligation_fidelity=ligation_fidelity(overhangs, matrix),
                          enzyme=enzyme, warnings=warnings)


def cross_ligation_array(overhangs: Sequence[str], matrix: LigationMatrix,
                         normalize: bool = False) -> np.ndarray:
    """
    2D array with entry ``[i][j]`` the frequency of ``overhangs[i]`` ligating to the reverse
    complement of ``overhangs[j]``; the diagonal holds the correct ligations. If `normalize`, entries
    are divided by the largest entry.
    """
    arr = np.array(matrix.to_array(list(overhangs), [ln.wc(oh) for oh in overhangs]))
    if normalize and arr.size > 0:
        max_value = np.max(arr)
        if max_value > 0:
            arr = arr / max_value
    return arr


@dataclass
class ProblematicPair:
    """Pair of overhangs in a set with noticeable cross-ligation."""

    overhang1: str

    overhang2: str

    cross_frequency: float
    """Frequency of ``overhang1`` ligating to the reverse complement of ``overhang2``."""

    ratio: float
    """``cross_frequency`` divided by the correct frequency of ``overhang1``."""

    @property
    def severity(self) -> str:
        if self.ratio >= 0.2:
            return 'high'
        elif self.ratio >= 0.1:
            return 'medium'
        else:
            return 'low'


def find_problematic_pairs(overhangs: Sequence[str], matrix: LigationMatrix,
                           threshold: float = problematic_pair_threshold) -> List[ProblematicPair]:
    """Ordered pairs whose cross-ligation ratio is at least `threshold`, worst first."""
    pairs: List[ProblematicPair] = []
    for oh1, oh2 in itertools.permutations(overhangs, 2):
        correct = matrix.self_ligation(oh1)
        if correct <= 0:
            continue
        cross = matrix.frequency(oh1, ln.wc(oh2))
        ratio = cross / correct
        if cross > 0 and ratio >= threshold:
            pairs.append(ProblematicPair(overhang1=oh1, overhang2=oh2, cross_frequency=cross, ratio=ratio))
    pairs.sort(key=lambda pair: pair.ratio, reverse=True)
    return pairs


@dataclass
class EnzymeComparison:
    enzyme: str
    assembly_fidelity: float
    weakest_junction: Optional[JunctionFidelity]
    num_warnings: int


def compare_enzyme_fidelity(overhangs: Sequence[str], dataset: LigationDataset) -> List[EnzymeComparison]:
    """Score `overhangs` under every registered enzyme that `dataset` has data for, best first."""
    comparisons: List[EnzymeComparison] = []
    for name in dataset.enzymes_with_data():
        enzyme = golden_gate_enzymes[name]
        if len(overhangs) > 0 and len(overhangs[0]) != enzyme.overhang_length:
            continue
        report = fidelity_report(overhangs, dataset.matrix_for(enzyme), enzyme=name)
        comparisons.append(EnzymeComparison(enzyme=name, assembly_fidelity=report.assembly_fidelity,
                                            weakest_junction=report.weakest_junction,
                                            num_warnings=len(report.warnings)))
    comparisons.sort(key=lambda c: c.assembly_fidelity, reverse=True)
    return comparisons
