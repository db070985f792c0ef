"""
Numpy representation of short DNA overhangs (sticky ends), so that composition and palindrome
rules can be evaluated over a whole alphabet of overhangs at once.

Each base is stored in one byte using the code :math:`A \\to 0, C \\to 1, G \\to 2, T \\to 3`,
so the Watson-Crick complement of a base ``b`` is ``3 - b``.
"""

from __future__ import annotations

from typing import List, Collection, Optional, Sequence, Iterable

import numpy as np

default_rng: np.random.Generator = np.random.default_rng()  # noqa

bits2base = ['A', 'C', 'G', 'T']
base2bits = {'A': 0b00, 'C': 0b01, 'G': 0b10, 'T': 0b11,
             'a': 0b00, 'c': 0b01, 'g': 0b10, 't': 0b11}

_wctable = str.maketrans('ACGTacgt', 'TGCAtgca')


def wc(seq: str) -> str:
    """Return reverse Watson-Crick complement of `seq`."""
    return seq.translate(_wctable)[::-1]


def is_palindrome(seq: str) -> bool:
    """Return whether `seq` is its own reverse complement (e.g., ``GATC``)."""
    return seq.upper() == wc(seq.upper())


def normalize_overhang(seq: str) -> str:
    """
    Return `seq` in upper case.

    :raises ValueError: if `seq` is empty or contains a character other than A, C, G, T
    """
    if len(seq) == 0:
        raise ValueError('overhang cannot be the empty string')
    upper = seq.upper()
    bad = sorted(set(upper) - set(bits2base))
    if bad:
        raise ValueError(f'overhang "{seq}" contains non-DNA character(s) {bad}; '
                         f'only A, C, G, T are allowed')
    return upper


def gc_count(seq: str) -> int:
    return sum(1 for base in seq.upper() if base in 'GC')


def at_count(seq: str) -> int:
    return sum(1 for base in seq.upper() if base in 'AT')


def seqs2arr(seqs: Sequence[str]) -> np.ndarray:
    """Return numpy 2D array converting the given DNA sequences to integers."""
    if len(seqs) == 0:
        return np.empty((0, 0), dtype=np.ubyte)
    seq_len = len(seqs[0])
    for seq in seqs:
        if len(seq) != seq_len:
            raise ValueError('All sequences in seqs must be equal length')
    arr = np.empty((len(seqs), seq_len), dtype=np.ubyte)
    for i, seq in enumerate(seqs):
        arr[i] = [base2bits[base] for base in seq]
    return arr


def arr2seq(arr: np.ndarray) -> str:
    return ''.join(bits2base[base] for base in arr)


def make_array_with_all_dna_seqs(length: int, bases: Collection[str] = ('A', 'C', 'G', 'T')) -> np.ndarray:
    """Return 2D numpy array with all DNA sequences of given length in
    lexicographic order. Each row represents a DNA sequence, one byte per base."""
    if length < 1:
        raise ValueError(f'length must be positive but is {length}')
    if len(bases) == 0:
        raise ValueError('bases cannot be empty')
    if not set(bases) <= {'A', 'C', 'G', 'T'}:
        raise ValueError(f"bases must be a subset of {'A', 'C', 'G', 'T'}; cannot be {bases}")

    digits = np.array(sorted(base2bits[base] for base in bases), dtype=np.ubyte)
    num_digits = len(digits)
    powers_num_digits = [num_digits ** k for k in range(length)]

    arr = np.zeros((num_digits ** length, length), dtype=np.ubyte)
    for i, j, c in zip(reversed(powers_num_digits), powers_num_digits, range(length)):
        arr[:, c] = np.tile(np.repeat(digits, i), j)
    return arr


def wc_arr(seqarr: np.ndarray) -> np.ndarray:
    """Return numpy array of reverse complements of sequences in `seqarr`."""
    return (3 - seqarr)[:, ::-1]


class OverhangList:
    """
    Represents a list of overhangs of identical length, stored as a 2D numpy array of bytes
    :py:data:`OverhangList.seqarr` (one row per overhang, one column per base).
    """

    seqarr: np.ndarray
    """2D array of bytes; axis 0 moves between overhangs, axis 1 between bases."""

    def __init__(self,
                 length: Optional[int] = None,
                 seqs: Optional[Sequence[str]] = None,
                 seqarr: Optional[np.ndarray] = None) -> None:
        """
        *Exactly one* of `length`, `seqs`, `seqarr` should be specified.

        :param length:
            create all overhangs of this length in lexicographic order
        :param seqs:
            sequence of strings, all of the same length
        :param seqarr:
            2D numpy array in the encoding described above
        """
        given = [arg for arg in (length, seqs, seqarr) if arg is not None]
        if len(given) != 1:
            raise ValueError('exactly one of length, seqs, or seqarr must be specified')
        if seqarr is not None:
            self.seqarr = seqarr
        elif seqs is not None:
            self.seqarr = seqs2arr([normalize_overhang(seq) for seq in seqs])
        else:
            assert length is not None
            self.seqarr = make_array_with_all_dna_seqs(length)

    @property
    def numseqs(self) -> int:
        return self.seqarr.shape[0]

    def __len__(self) -> int:
        return self.numseqs

    def __repr__(self) -> str:
        return f'OverhangList({self.to_list()})'

    def to_list(self) -> List[str]:
        return [arr2seq(row) for row in self.seqarr]

    def palindrome_mask(self) -> np.ndarray:
        """Boolean array, True where the overhang equals its own reverse complement."""
        return np.all(self.seqarr == wc_arr(self.seqarr), axis=1)

    def base_counts(self, bases: Iterable[str]) -> np.ndarray:
        """Number of positions of each overhang holding any of `bases`."""
        bits = [base2bits[base] for base in bases]
        return np.sum(np.isin(self.seqarr, bits), axis=1)

    def gc_counts(self) -> np.ndarray:
        return self.base_counts('GC')

    def at_counts(self) -> np.ndarray:
        return self.base_counts('AT')

