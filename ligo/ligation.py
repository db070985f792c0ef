"""
Empirical ligation data for Golden Gate assembly.

The key classes are :any:`LigationMatrix`, an immutable table of pairwise ligation frequencies for
one enzyme, and :any:`LigationDataset`, which holds one matrix per enzyme and is loaded from the JSON
format used for the published T4 ligase fidelity profiles (Potapov et al. 2018, Pryor et al. 2020)::

    {
      "metadata": {"source": "...", "doi": "..."},
      "enzymes": {
        "BsaI-HFv2": {
          "overhangLength": 4,
          "overhangs": ["AAAA", "AAAC", ...],
          "overhangFidelity": {"AAAA": 0.61, ...},
          "matrix": {"AAAA": {"TTTT": 612, "TTTC": 7, ...}, ...}
        }
      }
    }

``matrix[a][b]`` is the observed count (or relative frequency) with which overhang ``a`` ligated to
overhang ``b``; the correct (Watson-Crick) partner of ``a`` is its reverse complement.

Enzymes are named through the :any:`golden_gate_enzymes` registry, so that e.g. ``'BsaI'``,
``'bsai'`` and ``'BsaI-HFv2'`` all select the same data.
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union, Any
from types import MappingProxyType

import numpy as np

import ligo.np as ln

logger = logging.Logger('ligo', level=logging.DEBUG)
"""
Global logger instance used throughout ligo.

Call ``logger.removeHandler(logger.handlers[0])`` to stop screen output (assuming that you haven't added
or removed any handlers to the ligo logger instance already; by default there is one StreamHandler, and
removing it will stop screen output).

Call ``logger.addHandler(logging.FileHandler(filename))`` to direct to a file.
"""


def _configure_logger() -> None:
    screen_handler = logging.StreamHandler()
    screen_handler.setLevel(logging.INFO)
    logger.addHandler(screen_handler)


_configure_logger()

ligation_data_env_var = 'LIGO_LIGATION_DATA'
"""Environment variable naming a JSON ligation dataset to use instead of the packaged default."""

default_ligation_data_filename = os.path.join(os.path.dirname(__file__), 'data', 'ligation_data.json')

metadata_key = 'metadata'
enzymes_key = 'enzymes'
overhang_length_key = 'overhangLength'
overhangs_key = 'overhangs'
overhang_fidelity_key = 'overhangFidelity'
matrix_key = 'matrix'


class UnknownEnzymeError(ValueError):
    """Raised when an enzyme name cannot be resolved, or no ligation data exists for it."""

    def __init__(self, enzyme: str, known: Sequence[str], reason: str = 'unknown enzyme') -> None:
        self.enzyme = enzyme
        self.known = list(known)
        super().__init__(f'{reason} "{enzyme}"; choose one of {", ".join(self.known)}')


@dataclass(frozen=True)
class GoldenGateEnzyme:
    """A Type IIS restriction enzyme used for Golden Gate assembly."""

    name: str
    """Short name, e.g., ``'BsaI'``."""

    full_name: str
    """Name of the high-fidelity variant whose ligation data is used, e.g., ``'BsaI-HFv2'``."""

    recognition: str
    """Recognition site on the top strand."""

    cut_offset: int
    """Number of bases between the recognition site and the cut on the top strand."""

    overhang_length: int
    """Length of the sticky end left by the cut."""

    data_key: str
    """Key of this enzyme in a :any:`LigationDataset`."""

    aliases: Tuple[str, ...] = ()
    """Isoschizomers or alternative names, e.g., ``('BpiI',)`` for BbsI."""

    @property
    def fwd_site(self) -> str:
        """Recognition site followed by the spacer bases before the overhang."""
        return self.recognition + 'N' * self.cut_offset

    @property
    def rev_site(self) -> str:
        return ln.wc(self.recognition)

    def names(self) -> Tuple[str, ...]:
        return (self.name, self.full_name, self.data_key) + self.aliases


golden_gate_enzymes: Dict[str, GoldenGateEnzyme] = {
    enzyme.name: enzyme for enzyme in [
        GoldenGateEnzyme(name='BsaI', full_name='BsaI-HFv2', recognition='GGTCTC', cut_offset=1,
                         overhang_length=4, data_key='BsaI-HFv2'),
        GoldenGateEnzyme(name='BbsI', full_name='BbsI-HF', recognition='GAAGAC', cut_offset=2,
                         overhang_length=4, data_key='BbsI-HF', aliases=('BpiI',)),
        GoldenGateEnzyme(name='BsmBI', full_name='BsmBI-v2', recognition='CGTCTC', cut_offset=1,
                         overhang_length=4, data_key='BsmBI-v2'),
        GoldenGateEnzyme(name='Esp3I', full_name='Esp3I', recognition='CGTCTC', cut_offset=1,
                         overhang_length=4, data_key='Esp3I'),
        GoldenGateEnzyme(name='SapI', full_name='SapI', recognition='GCTCTTC', cut_offset=1,
                         overhang_length=3, data_key='SapI'),
    ]
}
"""Registry of supported Golden Gate enzymes, keyed by short name."""


def resolve_enzyme(enzyme: Union[str, GoldenGateEnzyme]) -> GoldenGateEnzyme:
    """
    :param enzyme:
        name, full name, alias, or dataset key of an enzyme (case-insensitive)
    :return:
        the registered :any:`GoldenGateEnzyme`
    :raises UnknownEnzymeError:
        if no registered enzyme has that name
    """
    if isinstance(enzyme, GoldenGateEnzyme):
        return enzyme
    wanted = enzyme.strip().lower()
    for registered in golden_gate_enzymes.values():
        if wanted in (name.lower() for name in registered.names()):
            return registered
    raise UnknownEnzymeError(enzyme, list(golden_gate_enzymes.keys()))


class LigationMatrix(Mapping[str, Mapping[str, float]]):
    """
    Immutable table of pairwise ligation frequencies for one enzyme.

    ``matrix[a][b]`` (or :py:meth:`LigationMatrix.frequency`) is the frequency with which overhang ``a``
    ligates to overhang ``b``. The table is asymmetric and sparse: missing entries read as 0.
    """

    def __init__(self, frequencies: Mapping[str, Mapping[str, float]],
                 overhangs: Optional[Sequence[str]] = None, name: str = '') -> None:
        """
        :param frequencies:
            nested mapping overhang -> partner -> frequency (nonnegative)
        :param overhangs:
            the alphabet of overhangs covered by the measurement, in order;
            defaults to the keys of `frequencies`
        :param name:
            name of the enzyme (for messages)
        """
        self.name = name
        rows: Dict[str, Mapping[str, float]] = {}
        lengths = set()
        for overhang, row in frequencies.items():
            key = ln.normalize_overhang(overhang)
            lengths.add(len(key))
            normalized_row: Dict[str, float] = {}
            for partner, frequency in row.items():
                partner_key = ln.normalize_overhang(partner)
                lengths.add(len(partner_key))
                frequency = float(frequency)
                if math.isnan(frequency) or frequency < 0:
                    raise ValueError(f'ligation frequency of {key} with {partner_key} must be '
                                     f'a nonnegative number but is {frequency}')
                normalized_row[partner_key] = frequency
            rows[key] = MappingProxyType(normalized_row)

        alphabet = [ln.normalize_overhang(oh) for oh in overhangs] if overhangs is not None else list(rows)
        lengths.update(len(oh) for oh in alphabet)
        if len(lengths) > 1:
            raise ValueError(f'all overhangs in a ligation matrix must have the same length, '
                             f'but found lengths {sorted(lengths)}')

        self._rows: Mapping[str, Mapping[str, float]] = MappingProxyType(rows)
        self._overhangs: Tuple[str, ...] = tuple(alphabet)
        self._overhang_length: int = lengths.pop() if lengths else 0

    @staticmethod
    def from_array(overhangs: Sequence[str], arr: np.ndarray, name: str = '') -> LigationMatrix:
        """Build from a dense 2D array with ``arr[i][j]`` the frequency of ``overhangs[i]`` with ``overhangs[j]``."""
        if arr.shape != (len(overhangs), len(overhangs)):
            raise ValueError(f'array shape {arr.shape} does not match {len(overhangs)} overhangs')
        frequencies = {
            oh1: {oh2: float(arr[i, j]) for j, oh2 in enumerate(overhangs) if arr[i, j] != 0}
            for i, oh1 in enumerate(overhangs)
        }
        return LigationMatrix(frequencies, overhangs=overhangs, name=name)

    def __getitem__(self, overhang: str) -> Mapping[str, float]:
        return self._rows[overhang]

    def __iter__(self) -> Iterator[str]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f'LigationMatrix(name={self.name!r}, overhangs={len(self._overhangs)})'

    @property
    def overhangs(self) -> Tuple[str, ...]:
        """Alphabet of measured overhangs, in source order."""
        return self._overhangs

    @property
    def overhang_length(self) -> int:
        return self._overhang_length

    def frequency(self, overhang: str, partner: str) -> float:
        """Frequency with which `overhang` ligates to `partner`; 0 if unmeasured."""
        row = self._rows.get(overhang)
        if row is None:
            return 0.0
        return row.get(partner, 0.0)

    def self_ligation(self, overhang: str) -> float:
        """Frequency of correct ligation of `overhang` to its reverse complement."""
        return self.frequency(overhang, ln.wc(overhang))

    def has_data(self, overhang: str) -> bool:
        return self.self_ligation(overhang) > 0

    def to_array(self, rows: Sequence[str], cols: Optional[Sequence[str]] = None) -> np.ndarray:
        """Read-only dense array with ``arr[i][j] = frequency(rows[i], cols[j])``."""
        if cols is None:
            cols = rows
        arr = np.array([[self.frequency(r, c) for c in cols] for r in rows], dtype=float)
        arr = arr.reshape((len(rows), len(cols)))
        arr.setflags(write=False)
        return arr


@dataclass(frozen=True)
class EnzymeLigationData:
    """Ligation matrix of one enzyme plus the per-overhang fidelities published with it."""

    matrix: LigationMatrix

    overhang_fidelity: Mapping[str, float] = field(default_factory=dict)
    """
    Fidelity of each overhang on its own (correct ligations divided by all ligations of the overhang).
    If missing from the dataset it is computed from :py:data:`EnzymeLigationData.matrix`.
    """

    def fidelity_of(self, overhang: str) -> Optional[float]:
        """Single-overhang fidelity, or None if the overhang has no data."""
        if overhang in self.overhang_fidelity:
            return self.overhang_fidelity[overhang]
        if overhang not in self.matrix:
            return None
        total = sum(self.matrix[overhang].values())
        return self.matrix.self_ligation(overhang) / total if total > 0 else 0.0


class LigationDataset:
    """Ligation data of several enzymes, keyed by dataset key (e.g., ``'BsaI-HFv2'``)."""

    def __init__(self, enzymes: Mapping[str, Union[EnzymeLigationData, LigationMatrix]],
                 metadata: Optional[Dict[str, Any]] = None) -> None:
        data: Dict[str, EnzymeLigationData] = {}
        for key, value in enzymes.items():
            data[key] = value if isinstance(value, EnzymeLigationData) else EnzymeLigationData(matrix=value)
        self._enzymes: Mapping[str, EnzymeLigationData] = MappingProxyType(data)
        self.metadata: Dict[str, Any] = dict(metadata) if metadata is not None else {}

    def __repr__(self) -> str:
        return f'LigationDataset(enzymes={list(self._enzymes)})'

    @staticmethod
    def from_json(json_map: Dict[str, Any]) -> LigationDataset:
        """Parse the JSON format described in the module docstring."""
        if enzymes_key not in json_map:
            raise ValueError(f'ligation data must have a top-level "{enzymes_key}" key; '
                             f'found keys {list(json_map.keys())}')
        enzymes: Dict[str, EnzymeLigationData] = {}
        for key, enzyme_json in json_map[enzymes_key].items():
            matrix = LigationMatrix(enzyme_json[matrix_key],
                                    overhangs=enzyme_json.get(overhangs_key),
                                    name=key)
            declared_length = enzyme_json.get(overhang_length_key)
            if declared_length is not None and len(matrix) > 0 and declared_length != matrix.overhang_length:
                raise ValueError(f'enzyme {key} declares {overhang_length_key} = {declared_length} '
                                 f'but its overhangs have length {matrix.overhang_length}')
            fidelities = {ln.normalize_overhang(oh): float(value)
                          for oh, value in enzyme_json.get(overhang_fidelity_key, {}).items()}
            enzymes[key] = EnzymeLigationData(matrix=matrix, overhang_fidelity=MappingProxyType(fidelities))
        return LigationDataset(enzymes, metadata=json_map.get(metadata_key))

    @staticmethod
    def from_file(filename: str) -> LigationDataset:
        with open(filename, 'r') as f:
            json_map = json.load(f)
        dataset = LigationDataset.from_json(json_map)
        logger.debug(f'loaded ligation data for {list(dataset.keys())} from {filename}')
        return dataset

    def keys(self) -> List[str]:
        return list(self._enzymes.keys())

    def _key_for(self, enzyme: Union[str, GoldenGateEnzyme]) -> str:
        if isinstance(enzyme, str) and enzyme in self._enzymes:
            return enzyme
        resolved = resolve_enzyme(enzyme)
        if resolved.data_key in self._enzymes:
            return resolved.data_key
        for name in resolved.names():
            if name in self._enzymes:
                return name
        raise UnknownEnzymeError(resolved.name, self.keys(), reason='no ligation data for enzyme')

    def has_data(self, enzyme: Union[str, GoldenGateEnzyme]) -> bool:
        try:
            self._key_for(enzyme)
        except UnknownEnzymeError:
            return False
        return True

    def data_for(self, enzyme: Union[str, GoldenGateEnzyme]) -> EnzymeLigationData:
        """
        :raises UnknownEnzymeError:
            if `enzyme` is not registered or this dataset has no data for it
        """
        return self._enzymes[self._key_for(enzyme)]

    def matrix_for(self, enzyme: Union[str, GoldenGateEnzyme]) -> LigationMatrix:
        return self.data_for(enzyme).matrix

    def enzymes_with_data(self) -> List[str]:
        """Names of registered enzymes this dataset covers."""
        return [name for name, enzyme in golden_gate_enzymes.items() if self.has_data(enzyme)]


@lru_cache(maxsize=None)
def default_ligation_dataset() -> LigationDataset:
    """
    The dataset named by the environment variable ``LIGO_LIGATION_DATA``, or else the one packaged at
    ``ligo/data/ligation_data.json``. Loaded once per process.

    :raises FileNotFoundError:
        if neither file exists
    """
    filename = os.environ.get(ligation_data_env_var, default_ligation_data_filename)
    if not os.path.isfile(filename):
        raise FileNotFoundError(f'no ligation data found at {filename}; set the environment variable '
                                f'{ligation_data_env_var} to a JSON ligation dataset, or pass a '
                                f'LigationDataset explicitly')
    logger.info(f'loading ligation data from {filename}')
    return LigationDataset.from_file(filename)


def _enzyme_data_or_none(enzyme: Union[str, GoldenGateEnzyme],
                         dataset: Optional[LigationDataset]) -> Optional[EnzymeLigationData]:
    try:
        if dataset is None:
            dataset = default_ligation_dataset()
        return dataset.data_for(enzyme)
    except (UnknownEnzymeError, FileNotFoundError) as error:
        logger.warning(f'falling back to static overhang data: {error}')
        return None


##################################################################
# static tables used when no measured data is available

standard_high_fidelity_overhangs: List[str] = ['GGAG', 'TACT', 'AATG', 'AGGT', 'TTCG',
                                               'GCTT', 'CGCT', 'TGCC', 'ACTA', 'GCAA']
"""MoClo and NEB Level 1 overhangs in the order they are conventionally assigned."""

default_static_fidelity = 0.85
"""Fidelity assumed for an overhang missing from :any:`static_overhang_fidelity`."""

static_overhang_fidelity: Mapping[str, float] = MappingProxyType({
    # MoClo core and Potapov Set 2
    'GGAG': 0.98, 'TACT': 0.97, 'AATG': 0.96, 'GCTT': 0.97, 'AGGT': 0.96,
    'AACG': 0.98, 'AAGC': 0.97, 'ACAA': 0.97, 'ACTC': 0.97, 'AGGA': 0.96,
    'ATAG': 0.97, 'CAAG': 0.96, 'CATG': 0.96, 'CCTA': 0.96, 'CGAA': 0.96,
    'CTAC': 0.97, 'CTGA': 0.96, 'GACT': 0.97, 'GCGT': 0.96, 'GGAC': 0.96,
    'GTGC': 0.96, 'TACC': 0.96, 'TCGG': 0.96, 'TGCT': 0.96, 'TTAG': 0.96,
    # NEB Level 1 and Level 2
    'CGCT': 0.94, 'TGCC': 0.94, 'GCAA': 0.93, 'ACTA': 0.93, 'TTAC': 0.93,
    'CAGA': 0.93, 'TGTG': 0.92, 'GAGC': 0.92, 'CCAT': 0.92, 'TTCG': 0.91,
    'GGGA': 0.91, 'CGTA': 0.91, 'CTTC': 0.91, 'ATCC': 0.90,
    'GGTA': 0.88, 'GAAA': 0.87, 'TCAA': 0.86, 'ATAA': 0.85, 'GCGA': 0.85,
    'CGGC': 0.84, 'GTCA': 0.84, 'AACA': 0.83, 'CCAG': 0.83, 'AATC': 0.82,
    'ACCG': 0.82,
    'AAAT': 0.78, 'GCAC': 0.77, 'CTTA': 0.76, 'TCCA': 0.75,
    # homopolymers and palindromes
    'AAAA': 0.65, 'TTTT': 0.65, 'CCCC': 0.60, 'GGGG': 0.55, 'ATAT': 0.55,
    'TATA': 0.55, 'GCGC': 0.50, 'CGCG': 0.50, 'ACGT': 0.45, 'GATC': 0.35,
})
"""Published single-overhang fidelities (NEB profiling, Potapov et al. 2018)."""


def fidelity_category(fidelity: float) -> str:
    """One of ``'excellent'``, ``'good'``, ``'medium'``, ``'low'``, ``'avoid'``."""
    if fidelity >= 0.95:
        return 'excellent'
    elif fidelity >= 0.90:
        return 'good'
    elif fidelity >= 0.80:
        return 'medium'
    elif fidelity >= 0.70:
        return 'low'
    else:
        return 'avoid'


@dataclass
class OverhangFidelity:
    """Fidelity of a single overhang and where the number came from."""

    overhang: str

    fidelity: float

    source: str
    """``'experimental'`` if read from ligation data, ``'static'`` if from the fallback table."""

    enzyme: Optional[str] = None

    error: Optional[str] = None

    @property
    def category(self) -> str:
        return fidelity_category(self.fidelity)


def get_overhang_fidelity(overhang: str, enzyme: str = 'BsaI',
                          dataset: Optional[LigationDataset] = None) -> OverhangFidelity:
    """
    Fidelity of `overhang` on its own. If there is no data for `enzyme`, degrades to the static table
    rather than raising.
    """
    overhang = ln.normalize_overhang(overhang)
    data = _enzyme_data_or_none(enzyme, dataset)
    if data is None:
        return OverhangFidelity(overhang=overhang,
                                fidelity=static_overhang_fidelity.get(overhang, default_static_fidelity),
                                source='static')
    fidelity = data.fidelity_of(overhang)
    if fidelity is None:
        return OverhangFidelity(overhang=overhang, fidelity=0.0, source='experimental', enzyme=enzyme,
                                error='overhang not found in experimental data')
    return OverhangFidelity(overhang=overhang, fidelity=fidelity, source='experimental', enzyme=enzyme)


def get_ligation_frequency(overhang1: str, overhang2: str, enzyme: str = 'BsaI',
                           dataset: Optional[LigationDataset] = None) -> float:
    """Raw frequency of `overhang1` ligating to `overhang2`; 0 if there is no data for `enzyme`."""
    data = _enzyme_data_or_none(enzyme, dataset)
    if data is None:
        return 0.0
    return data.matrix.frequency(ln.normalize_overhang(overhang1), ln.normalize_overhang(overhang2))


def recommended_overhang_set(num_junctions: int) -> List[str]:
    """
    Conservative static choice of `num_junctions` overhangs (at most
    ``len(standard_high_fidelity_overhangs)``), for use when no ligation data is available.
    """
    if num_junctions < 1:
        raise ValueError(f'num_junctions must be positive but is {num_junctions}')
    if num_junctions > len(standard_high_fidelity_overhangs):
        logger.warning(f'only {len(standard_high_fidelity_overhangs)} standard overhangs are available; '
                       f'{num_junctions} were requested')
    return standard_high_fidelity_overhangs[:num_junctions]
