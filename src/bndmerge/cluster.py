"""Single-pass clustering of sorted breakpoints.

The sweep reads the globally sorted stream once with one record of
lookahead. A peeked record joins the open cluster when it is linked to at
least one record already admitted; otherwise it seeds the next cluster.
Linkage is only tested against admitted members, so this is forward
chaining, not the transitive closure over the whole stream.
"""

from __future__ import annotations

import logging
from typing import Generic, Iterable, Iterator, List, TypeVar

from .models import BreakPoint, ConsensusRecord
from .registry import RunContext

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SENTINEL = object()


class PeekableIterator(Generic[T]):
    """Iterator with one element of lookahead."""

    def __init__(self, iterable: Iterable[T]) -> None:
        self._it = iter(iterable)
        self._peeked: object = _SENTINEL

    def __iter__(self) -> "PeekableIterator[T]":
        return self

    def has_next(self) -> bool:
        if self._peeked is _SENTINEL:
            self._peeked = next(self._it, _SENTINEL)
        return self._peeked is not _SENTINEL

    def peek(self) -> T:
        if not self.has_next():
            raise StopIteration
        return self._peeked  # type: ignore[return-value]

    def __next__(self) -> T:
        if not self.has_next():
            raise StopIteration
        item, self._peeked = self._peeked, _SENTINEL
        return item  # type: ignore[return-value]


def is_linked(a: BreakPoint, b: BreakPoint, distance: int) -> bool:
    """True if both intervals, widened by ``distance`` on each side, overlap on the same contig."""
    if a.contig_id != b.contig_id:
        return False
    return max(a.start, b.start) <= min(a.end, b.end) + distance


def iter_clusters(records: Iterable[BreakPoint], distance: int = 0) -> Iterator[List[BreakPoint]]:
    """Group a ``(contig_id, start)``-sorted stream into clusters.

    Each admission compares the candidate against every member of the open
    cluster, so one very dense region costs O(n^2).
    """
    if distance < 0:
        raise ValueError("distance must be >= 0")
    peek: PeekableIterator[BreakPoint] = PeekableIterator(records)
    while peek.has_next():
        cluster = [next(peek)]
        while peek.has_next():
            candidate = peek.peek()
            if not any(is_linked(member, candidate, distance) for member in cluster):
                break
            cluster.append(next(peek))
        yield cluster


def aggregate(cluster: List[BreakPoint], ctx: RunContext) -> ConsensusRecord:
    """Collapse one cluster into a :class:`ConsensusRecord`.

    ``support`` counts distinct samples while ``members`` keeps one entry per
    breakpoint. The allele number covers the whole cohort, not only the
    samples in this cluster.
    """
    first = cluster[0]
    end = max(bp.end for bp in cluster)
    support = len({bp.sample_id for bp in cluster})
    allele_number = ctx.allele_number
    return ConsensusRecord(
        contig=ctx.dictionary.name(first.contig_id),
        start=first.start,
        end=end,
        support=support,
        allele_number=allele_number,
        frequency=support / allele_number,
        members=tuple((ctx.samples.name(bp.sample_id), True) for bp in cluster),
    )


def consensus_records(
    records: Iterable[BreakPoint],
    ctx: RunContext,
    *,
    distance: int = 0,
) -> Iterator[ConsensusRecord]:
    """Sweep ``records`` and yield one consensus record per cluster, in input order."""
    n = 0
    for cluster in iter_clusters(records, distance):
        n += 1
        yield aggregate(cluster, ctx)
    logger.info("Formed %d clusters", n)
