"""Exceptions raised by bndmerge.

Every condition listed here aborts the run; nothing is retried.
"""

from __future__ import annotations


class BndMergeError(Exception):
    """Base class for all run-aborting bndmerge errors."""


class DuplicateSampleError(BndMergeError, ValueError):
    """A sample name was registered by more than one input source."""

    def __init__(self, sample: str, source: str) -> None:
        super().__init__(f"Duplicate sample '{sample}' from {source}")
        self.sample = sample
        self.source = source


class SequenceDictionaryMissingError(BndMergeError, ValueError):
    """An input VCF header declares no ##contig lines."""


class SequenceDictionaryMismatchError(BndMergeError, ValueError):
    """An input's contigs differ from the dictionary established by the first input."""


class ContigNotFoundError(BndMergeError, ValueError):
    """A record refers to a contig absent from the run's sequence dictionary."""

    def __init__(self, contig: str, known: int) -> None:
        super().__init__(
            f"Contig '{contig}' not found in the sequence dictionary ({known} contigs)"
        )
        self.contig = contig


class SpillFileError(BndMergeError, OSError):
    """Writing or reading a temporary sort chunk failed."""
