"""Disk-backed sorting for fixed-width records.

Records are buffered in memory up to ``max_records_in_ram``; a full buffer is
sorted and spilled to a temporary file as one chunk. Once input is closed the
chunks and the residual buffer are combined by a stable k-way merge.

Chunk files are flat sequences of fixed-width records with no header or
trailer. They are process-local and deleted as soon as the merge has read
them to the end, or by :meth:`ExternalSorter.cleanup` on any other path.
"""

from __future__ import annotations

import heapq
import logging
import os
import struct
import tempfile
from operator import attrgetter
from pathlib import Path
from typing import (
    BinaryIO,
    Callable,
    Generic,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from .errors import SpillFileError
from .models import BreakPoint

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RECORDS_IN_RAM = 50_000

_READ_BUFFER = 64 * 1024


class RecordCodec(Protocol[T]):
    """Fixed-width binary encoding of one record type."""

    record_size: int

    def encode(self, record: T) -> bytes:
        ...

    def decode(self, data: bytes) -> T:
        ...


class StructCodec(Generic[T]):
    """:class:`RecordCodec` built from a :mod:`struct` format and a list of attribute names."""

    def __init__(self, fmt: str, factory: Callable[..., T], fields: Sequence[str]) -> None:
        self._struct = struct.Struct(fmt)
        self._factory = factory
        self._getter = attrgetter(*fields)
        self.record_size = self._struct.size

    def encode(self, record: T) -> bytes:
        return self._struct.pack(*self._getter(record))

    def decode(self, data: bytes) -> T:
        return self._factory(*self._struct.unpack(data))


# four big-endian signed 32-bit integers: 16 bytes per breakpoint
BREAKPOINT_CODEC: StructCodec[BreakPoint] = StructCodec(
    ">iiii", BreakPoint, ("contig_id", "start", "end", "sample_id")
)


def read_chunk(handle: BinaryIO, codec: RecordCodec[T]) -> Iterator[T]:
    """Decode records from ``handle`` until end of file.

    End of file on a record boundary ends the chunk. A truncated trailing
    record means the chunk is corrupt and raises :class:`SpillFileError`.
    """
    size = codec.record_size
    while True:
        data = handle.read(size)
        if not data:
            return
        if len(data) != size:
            raise SpillFileError(
                f"Truncated record in sort chunk {getattr(handle, 'name', '?')}: "
                f"got {len(data)} of {size} bytes"
            )
        yield codec.decode(data)


class ExternalSorter(Generic[T]):
    """Sort an unbounded stream of records using bounded memory.

    Usage::

        with ExternalSorter(BREAKPOINT_CODEC, BreakPoint.sort_key) as sorter:
            for bp in breakpoints:
                sorter.add(bp)
            sorter.done_adding()
            for bp in sorter.iterator():
                ...

    Iteration is destructive: every chunk file is removed once the merge has
    consumed it, and the sorter can be iterated only once.
    """

    def __init__(
        self,
        codec: RecordCodec[T],
        key: Callable[[T], object],
        *,
        max_records_in_ram: int = DEFAULT_MAX_RECORDS_IN_RAM,
        tmp_dirs: Optional[Sequence[str | Path]] = None,
    ) -> None:
        if max_records_in_ram < 1:
            raise ValueError("max_records_in_ram must be >= 1")
        self.codec = codec
        self.key = key
        self.max_records_in_ram = int(max_records_in_ram)
        dirs = list(tmp_dirs) if tmp_dirs else [tempfile.gettempdir()]
        self.tmp_dirs: List[Path] = [Path(d) for d in dirs]

        self._buffer: List[T] = []
        self._chunks: List[Path] = []
        self._n_added = 0
        self.chunks_written = 0
        self._done = False
        self._iterated = False

    def __enter__(self) -> "ExternalSorter[T]":
        return self

    def __exit__(self, *exc: object) -> None:
        self.cleanup()

    def __len__(self) -> int:
        return self._n_added

    @property
    def chunk_count(self) -> int:
        """Number of chunk files still on disk."""
        return len(self._chunks)

    @property
    def chunk_paths(self) -> List[Path]:
        return list(self._chunks)

    def add(self, record: T) -> None:
        if self._done:
            raise RuntimeError("Cannot add records after done_adding()")
        self._buffer.append(record)
        self._n_added += 1
        if len(self._buffer) >= self.max_records_in_ram:
            self._spill()

    def done_adding(self) -> None:
        """Close input. Only the in-memory residual is sorted; nothing more is spilled."""
        if self._done:
            return
        self._done = True
        self._buffer.sort(key=self.key)
        logger.debug(
            "Done adding %d records (%d chunks on disk, %d in memory)",
            self._n_added,
            len(self._chunks),
            len(self._buffer),
        )

    def _spill(self) -> None:
        self._buffer.sort(key=self.key)
        tmp_dir = self.tmp_dirs[self.chunks_written % len(self.tmp_dirs)]
        try:
            fd, name = tempfile.mkstemp(prefix="bndmerge.", suffix=".chunk", dir=str(tmp_dir))
        except OSError as e:
            raise SpillFileError(f"Cannot create sort chunk in {tmp_dir}: {e}") from e
        path = Path(name)
        self._chunks.append(path)
        self.chunks_written += 1
        encode = self.codec.encode
        try:
            with os.fdopen(fd, "wb", buffering=_READ_BUFFER) as fh:
                for record in self._buffer:
                    fh.write(encode(record))
        except OSError as e:
            raise SpillFileError(f"Cannot write sort chunk {path}: {e}") from e
        logger.debug("Spilled %d records to %s", len(self._buffer), path)
        self._buffer = []

    def _iter_chunk(self, path: Path) -> Iterator[T]:
        try:
            with open(path, "rb", buffering=_READ_BUFFER) as fh:
                yield from read_chunk(fh, self.codec)
        except SpillFileError:
            raise
        except OSError as e:
            raise SpillFileError(f"Cannot read sort chunk {path}: {e}") from e
        self._remove_chunk(path)

    def _remove_chunk(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        if path in self._chunks:
            self._chunks.remove(path)

    def iterator(self) -> Iterator[T]:
        """Return the records in ascending key order.

        Ties keep insertion order: chunks are merged in the order they were
        spilled, followed by the residual buffer.
        """
        if not self._done:
            raise RuntimeError("done_adding() must be called before iterating")
        if self._iterated:
            raise RuntimeError("ExternalSorter can only be iterated once")
        self._iterated = True

        residual, self._buffer = self._buffer, []
        sources: List[Iterator[T]] = [self._iter_chunk(p) for p in list(self._chunks)]
        sources.append(iter(residual))
        if len(sources) == 1:
            return iter(residual)
        return heapq.merge(*sources, key=self.key)

    def cleanup(self) -> None:
        """Delete every chunk file still on disk. Safe to call more than once."""
        for path in list(self._chunks):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not remove sort chunk %s: %s", path, e)
        self._chunks = []
        self._buffer = []
