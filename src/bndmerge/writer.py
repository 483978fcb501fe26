"""Write consensus records as VCF (and optionally as a members TSV).

File outputs are written to a hidden ``.partial.<name>`` sibling and renamed into
place only when the run completes, so a failed run leaves no result file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from types import TracebackType
from typing import Optional, TextIO, Type

import pysam

from . import __version__
from .models import ConsensusRecord
from .registry import RunContext
from .utils import open_textmaybe_gzip, partial_path

logger = logging.getLogger(__name__)

STDOUT = "-"
REF_ALLELE = "N"
ALT_ALLELE = "<BND>"
_CARRIER_GT = (0, 1)
_NON_CARRIER_GT = (0, 0)

_MEMBERS_TSV_COLUMNS = [
    "contig",
    "start",
    "end",
    "support",
    "allele_number",
    "frequency",
    "n_members",
    "members",
]


def vcf_write_mode(output: str) -> str:
    """pysam write mode for an output path: BCF, bgzipped VCF or plain VCF."""
    if output.endswith(".bcf"):
        return "wb"
    if output.endswith(".vcf.gz") or output.endswith(".vcf.bgz"):
        return "wz"
    return "w"


def build_header(ctx: RunContext) -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.add_meta("source", f"bndmerge {__version__}")
    for name, length in ctx.dictionary.contigs:
        if length is None:
            header.contigs.add(name)
        else:
            header.contigs.add(name, length=length)
    header.info.add("END", number=1, type="Integer", description="Stop position of the interval")
    header.info.add(
        "AC",
        number="A",
        type="Integer",
        description="Number of distinct samples supporting the merged breakpoint",
    )
    header.info.add("AN", number=1, type="Integer", description="Total number of alleles in called genotypes")
    header.info.add("AF", number="A", type="Float", description="Allele Frequency, AC/AN")
    header.formats.add("GT", number=1, type="String", description="Genotype")
    for sample in sorted(ctx.samples.names):
        header.add_sample(sample)
    return header


class VcfResultWriter:
    """Context manager writing one ``<BND>`` VCF record per :class:`ConsensusRecord`."""

    def __init__(self, output: str | Path, ctx: RunContext, *, index: bool = True) -> None:
        self.output = str(output)
        self.ctx = ctx
        self.index = index
        self.records_written = 0
        self._vcf: Optional[pysam.VariantFile] = None
        self._tmp: Optional[Path] = None

    def __enter__(self) -> "VcfResultWriter":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close(success=exc_type is None)

    def open(self) -> None:
        header = build_header(self.ctx)
        mode = vcf_write_mode(self.output)
        if self.output == STDOUT:
            self._vcf = pysam.VariantFile(STDOUT, mode, header=header)
            return
        self._tmp = partial_path(self.output)
        self._tmp.parent.mkdir(parents=True, exist_ok=True)
        self._vcf = pysam.VariantFile(str(self._tmp), mode, header=header)

    def write(self, record: ConsensusRecord) -> None:
        if self._vcf is None:
            raise RuntimeError("VcfResultWriter is not open")
        # END is always emitted by htslib for symbolic alleles, even when end == start
        rec = self._vcf.new_record(
            contig=record.contig,
            start=record.start - 1,
            stop=record.end,
            alleles=(REF_ALLELE, ALT_ALLELE),
        )
        rec.info["AC"] = (record.support,)
        rec.info["AN"] = record.allele_number
        rec.info["AF"] = (record.frequency,)
        for sample, present in record.members:
            rec.samples[sample]["GT"] = _CARRIER_GT if present else _NON_CARRIER_GT
        self._vcf.write(rec)
        self.records_written += 1

    def close(self, *, success: bool = True) -> None:
        if self._vcf is not None:
            self._vcf.close()
            self._vcf = None
        if self._tmp is None:
            return
        tmp, self._tmp = self._tmp, None
        if not success:
            logger.debug("Discarding partial output %s", tmp)
            tmp.unlink(missing_ok=True)
            return
        os.replace(tmp, self.output)
        if self.index and vcf_write_mode(self.output) == "wz":
            pysam.tabix_index(self.output, preset="vcf", force=True)
        logger.info("Wrote %d records to %s", self.records_written, self.output)


class MembersTsvWriter:
    """One TSV row per consensus record listing every member sample, duplicates included."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._tmp = partial_path(self.path)
        self._fh: Optional[TextIO] = None

    def __enter__(self) -> "MembersTsvWriter":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open_textmaybe_gzip(self._tmp, "wt")
        self._fh.write("\t".join(_MEMBERS_TSV_COLUMNS) + "\n")
        return self

    def write(self, record: ConsensusRecord) -> None:
        if self._fh is None:
            raise RuntimeError("MembersTsvWriter is not open")
        members = ",".join(name for name, _ in record.members)
        self._fh.write(
            f"{record.contig}\t{record.start}\t{record.end}\t{record.support}\t"
            f"{record.allele_number}\t{record.frequency:.6f}\t{len(record.members)}\t{members}\n"
        )

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if exc_type is None:
            os.replace(self._tmp, self.path)
        else:
            self._tmp.unlink(missing_ok=True)
