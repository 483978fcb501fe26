"""Run-wide identity tables: samples and contigs.

A single :class:`RunContext` is created per merge run and passed to every
extraction, contig lookup and output step. Each new input is checked
against it instead of against module-level state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import pysam

from .errors import (
    ContigNotFoundError,
    DuplicateSampleError,
    SequenceDictionaryMismatchError,
    SequenceDictionaryMissingError,
)

logger = logging.getLogger(__name__)


class SampleTable:
    """Bijective sample name <-> dense integer id mapping."""

    def __init__(self) -> None:
        self._ids: Dict[str, int] = {}
        self._names: List[str] = []

    def register(self, name: str, source: str) -> int:
        if name in self._ids:
            raise DuplicateSampleError(name, source)
        sample_id = len(self._names)
        self._names.append(name)
        self._ids[name] = sample_id
        return sample_id

    def id_of(self, name: str) -> int:
        return self._ids[name]

    def name(self, sample_id: int) -> str:
        return self._names[sample_id]

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._ids


@dataclass(frozen=True)
class SequenceDictionary:
    """Ordered contig names and lengths taken from a VCF header."""

    contigs: Tuple[Tuple[str, Optional[int]], ...]
    _index: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_index", {name: i for i, (name, _) in enumerate(self.contigs)}
        )

    @classmethod
    def from_header(cls, header: pysam.VariantHeader, source: str) -> "SequenceDictionary":
        contigs = tuple((str(name), header.contigs[name].length) for name in header.contigs)
        if not contigs:
            raise SequenceDictionaryMissingError(
                f"No ##contig lines in the header of {source}; a sequence dictionary is required."
            )
        return cls(contigs=contigs)

    def index(self, name: str) -> int:
        tid = self._index.get(name)
        if tid is None:
            raise ContigNotFoundError(name, len(self.contigs))
        return tid

    def name(self, contig_id: int) -> str:
        return self.contigs[contig_id][0]

    def __len__(self) -> int:
        return len(self.contigs)

    def assert_same(self, other: "SequenceDictionary", source: str) -> None:
        """Raise if ``other`` differs in contig count, order, names or lengths."""
        if len(self.contigs) != len(other.contigs):
            raise SequenceDictionaryMismatchError(
                f"Sequence dictionary of {source} has {len(other.contigs)} contigs, "
                f"expected {len(self.contigs)}"
            )
        for i, ((name1, len1), (name2, len2)) in enumerate(zip(self.contigs, other.contigs)):
            if name1 != name2:
                raise SequenceDictionaryMismatchError(
                    f"Sequence dictionary of {source} differs at contig #{i}: "
                    f"'{name2}' != '{name1}'"
                )
            if len1 != len2:
                raise SequenceDictionaryMismatchError(
                    f"Sequence dictionary of {source}: length of '{name1}' is {len2}, "
                    f"expected {len1}"
                )


class RunContext:
    """Samples and sequence dictionary shared by every stage of one run."""

    def __init__(self) -> None:
        self.samples = SampleTable()
        self._dictionary: Optional[SequenceDictionary] = None

    @property
    def dictionary(self) -> SequenceDictionary:
        if self._dictionary is None:
            raise RuntimeError("No sequence dictionary has been established yet")
        return self._dictionary

    @property
    def has_dictionary(self) -> bool:
        return self._dictionary is not None

    def accept_dictionary(self, dictionary: SequenceDictionary, source: str) -> None:
        """Establish the run dictionary from the first source, check it against later ones."""
        if self._dictionary is None:
            logger.debug("Sequence dictionary (%d contigs) taken from %s", len(dictionary), source)
            self._dictionary = dictionary
        else:
            self._dictionary.assert_same(dictionary, source)

    def register_samples(self, names: Iterable[str], source: str) -> List[int]:
        return [self.samples.register(n, source) for n in names]

    @property
    def allele_number(self) -> int:
        return 2 * len(self.samples)
