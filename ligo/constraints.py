"""
This module defines the constraints a designed overhang set must satisfy, and the
candidate pool builder that turns a ligation matrix plus :any:`Constraints` into the ranked list of
overhangs the searches in :mod:`ligo.search` and :mod:`ligo.annealing` draw from.

A :any:`Constraints` object is validated when constructed: required overhangs must be distinct,
must not contain a reverse-complement pair, and must not be excluded. Problems discovered later
(e.g., too few candidates survive filtering) raise :any:`InsufficientCandidatesError`, which names
the filters responsible.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Tuple, Sequence

import numpy as np
from ordered_set import OrderedSet

import ligo.np as ln
from ligo.ligation import LigationMatrix, logger

min_junctions = 2
max_junctions = 50

default_min_self_ligation = 300.0
"""Self-ligation floor applied by exhaustive and greedy design when the caller sets none."""

rejection_reasons = ('palindrome', 'excluded', 'required', 'max_gc', 'max_at', 'min_self_ligation',
                     'rc_duplicate')
"""Reasons a candidate can be dropped from the pool, in the order they are checked."""


class JunctionCountError(ValueError):
    """Requested number of junctions is outside the supported range."""

    def __init__(self, num_junctions: int) -> None:
        self.num_junctions = num_junctions
        super().__init__(f'number of junctions must be between {min_junctions} and {max_junctions}, '
                         f'but is {num_junctions}')


class ConstraintConflictError(ValueError):
    """Constraints contradict each other, e.g., an overhang is both required and excluded."""


class InsufficientCandidatesError(ValueError):
    """
    Too few overhangs survive filtering to fill the requested set. :py:data:`rejections` maps each
    filter to the number of overhangs it removed.
    """

    def __init__(self, needed: int, available: int, rejections: Dict[str, int]) -> None:
        self.needed = needed
        self.available = available
        self.rejections = {reason: count for reason, count in
                           sorted(rejections.items(), key=lambda item: item[1], reverse=True)
                           if count > 0}
        super().__init__(f'need {needed} candidate overhangs but only {available} are available; '
                         f'removed by: {self.formatted_rejections()}')

    def formatted_rejections(self) -> str:
        if not self.rejections:
            return 'nothing (the ligation data has too few overhangs)'
        return ', '.join(f'{reason}={count}' for reason, count in self.rejections.items())


@dataclass
class Constraints:
    """User constraints on the designed set."""

    required: List[str] = field(default_factory=list)
    """
    Overhangs that must appear in the result. They are pinned to the first positions, in this order,
    and are never replaced by a search.
    """

    excluded: List[str] = field(default_factory=list)
    """Overhangs that must not appear in the result; neither may their reverse complements."""

    max_gc: Optional[int] = None
    """Maximum number of G/C bases in a candidate overhang (None for no limit)."""

    max_at: Optional[int] = None
    """Maximum number of A/T bases in a candidate overhang (None for no limit)."""

    min_self_ligation: Optional[float] = None
    """
    Minimum frequency of correct ligation of a candidate to its reverse complement.
    None means the default of the search being run.
    """

    def __post_init__(self) -> None:
        self.required = [ln.normalize_overhang(oh) for oh in self.required]
        self.excluded = [ln.normalize_overhang(oh) for oh in self.excluded]
        for name in ('max_gc', 'max_at', 'min_self_ligation'):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f'{name} must be nonnegative but is {value}')

        for i, oh in enumerate(self.required):
            for earlier in self.required[:i]:
                if oh == earlier:
                    raise ConstraintConflictError(f'required overhang {oh} is listed more than once')
                if oh == ln.wc(earlier):
                    raise ConstraintConflictError(f'required overhangs {earlier} and {oh} are reverse '
                                                  f'complements of each other and would ligate together')
            if ln.is_palindrome(oh):
                logger.warning(f'required overhang {oh} is palindromic and can ligate to itself')

        excluded_with_rc = self.excluded_with_reverse_complements()
        for oh in self.required:
            if oh in self.excluded:
                raise ConstraintConflictError(f'required overhang {oh} is also in excluded list')
            if oh in excluded_with_rc:
                raise ConstraintConflictError(f'required overhang {oh} is the reverse complement of '
                                              f'excluded overhang {ln.wc(oh)}')

    def excluded_with_reverse_complements(self) -> OrderedSet[str]:
        return OrderedSet(self.excluded) | OrderedSet(ln.wc(oh) for oh in self.excluded)

    def check_overhang_length(self, length: int) -> None:
        """
        :raises ConstraintConflictError:
            if a required or excluded overhang does not have length `length`
        """
        for oh in self.required + self.excluded:
            if len(oh) != length:
                raise ConstraintConflictError(f'overhang {oh} has length {len(oh)}, but this enzyme '
                                              f'produces overhangs of length {length}')

    def check_required_bounds(self, matrix: LigationMatrix,
                              default_min_self_ligation: Optional[float] = None) -> None:
        """
        Check each required overhang against the composition limits and self-ligation floor that
        candidates are filtered by. A required overhang below `default_min_self_ligation` (the floor
        used when :py:data:`min_self_ligation` is None) is only logged as a warning.

        :raises ConstraintConflictError:
            if a required overhang breaks one of these bounds
        """
        for oh in self.required:
            if self.max_gc is not None and ln.gc_count(oh) > self.max_gc:
                raise ConstraintConflictError(f'required overhang {oh} has {ln.gc_count(oh)} G/C bases, '
                                              f'more than max_gc = {self.max_gc}')
            if self.max_at is not None and ln.at_count(oh) > self.max_at:
                raise ConstraintConflictError(f'required overhang {oh} has {ln.at_count(oh)} A/T bases, '
                                              f'more than max_at = {self.max_at}')
            self_ligation = matrix.self_ligation(oh)
            if self.min_self_ligation is not None:
                if self_ligation < self.min_self_ligation:
                    raise ConstraintConflictError(f'required overhang {oh} has self-ligation frequency '
                                                  f'{self_ligation:g}, less than min_self_ligation = '
                                                  f'{self.min_self_ligation:g}')
            elif default_min_self_ligation is not None and self_ligation < default_min_self_ligation:
                logger.warning(f'required overhang {oh} has self-ligation frequency {self_ligation:g}, '
                               f'less than the default floor {default_min_self_ligation:g} for candidates')


@dataclass
class PoolConfig:
    """Settings of the candidate pool builder."""

    alphabet: str = 'matrix'
    """
    ``'matrix'`` to draw candidates from the overhangs in the ligation data (in their order),
    ``'kmers'`` to draw from all DNA sequences of the overhang length (lexicographic order).
    """

    allow_palindromes: bool = False
    """Whether palindromic overhangs may be candidates."""

    default_min_self_ligation: Optional[float] = None
    """Self-ligation floor used when :py:data:`Constraints.min_self_ligation` is None."""

    def __post_init__(self) -> None:
        if self.alphabet not in ('matrix', 'kmers'):
            raise ValueError(f"alphabet must be 'matrix' or 'kmers' but is '{self.alphabet}'")


@dataclass
class CandidatePool:
    """Ranked candidates that may fill the non-required positions of a set."""

    candidates: Tuple[str, ...]
    """Sorted by descending self-ligation frequency; at most one of each reverse-complement pair."""

    rejections: Dict[str, int]
    """Number of overhangs removed by each filter."""

    alphabet_size: int

    def __len__(self) -> int:
        return len(self.candidates)


def _alphabet(matrix: LigationMatrix, config: PoolConfig) -> List[str]:
    if config.alphabet == 'kmers' or len(matrix.overhangs) == 0:
        return ln.OverhangList(length=matrix.overhang_length).to_list() if matrix.overhang_length > 0 else []
    return list(matrix.overhangs)


def build_candidate_pool(matrix: LigationMatrix, constraints: Constraints,
                         config: Optional[PoolConfig] = None,
                         num_needed: Optional[int] = None) -> CandidatePool:
    """
    Filter the alphabet of `matrix` by `constraints` and rank what remains.

    An overhang is removed, for the first applicable reason, if it is palindromic, excluded (or the
    reverse complement of an excluded overhang), required (or the reverse complement of one; those are
    placed separately), has too many G/C or A/T bases, or ligates correctly less often than the
    self-ligation floor. Survivors are sorted by descending self-ligation frequency (ties keep
    alphabet order), and of each reverse-complement pair only the first is kept.

    :param matrix:
        ligation data of the enzyme
    :param constraints:
        user constraints
    :param config:
        pool settings
    :param num_needed:
        if given, the minimum number of candidates required
    :return:
        the :any:`CandidatePool`
    :raises InsufficientCandidatesError:
        if fewer than `num_needed` candidates remain
    """
    if config is None:
        config = PoolConfig()
    alphabet = _alphabet(matrix, config)
    rejections = {reason: 0 for reason in rejection_reasons}

    if len(alphabet) == 0:
        pool = CandidatePool(candidates=(), rejections=rejections, alphabet_size=0)
        if num_needed is not None and num_needed > 0:
            raise InsufficientCandidatesError(num_needed, 0, rejections)
        return pool

    seqs = ln.OverhangList(seqs=alphabet)
    excluded = constraints.excluded_with_reverse_complements()
    required = OrderedSet(constraints.required) | OrderedSet(ln.wc(oh) for oh in constraints.required)
    min_self_ligation = constraints.min_self_ligation
    if min_self_ligation is None:
        min_self_ligation = config.default_min_self_ligation

    self_ligation = np.array([matrix.self_ligation(oh) for oh in alphabet], dtype=float)
    reject_masks = [
        ('palindrome', seqs.palindrome_mask() if not config.allow_palindromes
         else np.zeros(len(alphabet), dtype=bool)),
        ('excluded', np.array([oh in excluded for oh in alphabet], dtype=bool)),
        ('required', np.array([oh in required for oh in alphabet], dtype=bool)),
        ('max_gc', seqs.gc_counts() > constraints.max_gc if constraints.max_gc is not None
         else np.zeros(len(alphabet), dtype=bool)),
        ('max_at', seqs.at_counts() > constraints.max_at if constraints.max_at is not None
         else np.zeros(len(alphabet), dtype=bool)),
        ('min_self_ligation', self_ligation < min_self_ligation if min_self_ligation is not None
         else np.zeros(len(alphabet), dtype=bool)),
    ]
    alive = np.ones(len(alphabet), dtype=bool)
    for reason, mask in reject_masks:
        removed = alive & mask
        rejections[reason] = int(np.sum(removed))
        alive &= ~removed

    survivors = np.flatnonzero(alive)
    order = survivors[np.argsort(-self_ligation[survivors], kind='stable')]

    candidates: OrderedSet[str] = OrderedSet()
    for idx in order:
        oh = alphabet[int(idx)]
        if oh in candidates or ln.wc(oh) in candidates:
            rejections['rc_duplicate'] += 1
            continue
        candidates.add(oh)

    pool = CandidatePool(candidates=tuple(candidates), rejections=rejections, alphabet_size=len(alphabet))
    logger.debug(f'candidate pool: {len(pool)} of {len(alphabet)} overhangs kept; rejections {rejections}')
    if num_needed is not None and len(pool) < num_needed:
        raise InsufficientCandidatesError(num_needed, len(pool), rejections)
    return pool


def check_junction_count(num_junctions: int) -> None:
    """:raises JunctionCountError: if `num_junctions` is outside the supported range"""
    if not min_junctions <= num_junctions <= max_junctions:
        raise JunctionCountError(num_junctions)


def check_required_fit(num_junctions: int, required: Sequence[str]) -> int:
    """
    :return:
        number of non-required positions to fill
    :raises ConstraintConflictError:
        if more overhangs are required than the set holds
    """
    residual = num_junctions - len(required)
    if residual < 0:
        raise ConstraintConflictError(f'{len(required)} overhangs are required but the set only has '
                                      f'{num_junctions} junctions')
    return residual
