from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class BreakPoint:
    """One breakpoint interval reported by one sample.

    Coordinates are 1-based and inclusive, already widened by the
    confidence interval of the source record.

    Attributes
    ----------
    contig_id:
        Index of the contig in the run's sequence dictionary.
    start, end:
        Interval bounds, ``end >= start``.
    sample_id:
        Index of the reporting sample in the run's sample table.
    """

    contig_id: int
    start: int
    end: int
    sample_id: int

    def sort_key(self) -> Tuple[int, int]:
        return (self.contig_id, self.start)


@dataclass(frozen=True)
class ConsensusRecord:
    """One merged cluster of breakpoints, ready to be written as a VCF record.

    ``members`` holds one ``(sample_name, genotype_present)`` pair per
    clustered breakpoint, so a sample contributing several breakpoints
    appears several times even though ``support`` counts it once.
    """

    contig: str
    start: int
    end: int
    support: int
    allele_number: int
    frequency: float
    members: Tuple[Tuple[str, bool], ...]

    @property
    def has_end(self) -> bool:
        return self.end != self.start
