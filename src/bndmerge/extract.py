"""Turn structural-variant VCF records into breakpoints.

Each record contributes its start position, widened by ``CIPOS``. Records
that are not ``SVTYPE=BND`` and span more than the merge distance also
contribute their end position, widened by ``CIEND``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pysam
from tqdm import tqdm

from .models import BreakPoint
from .registry import RunContext, SequenceDictionary
from .sorting import ExternalSorter

logger = logging.getLogger(__name__)

LIST_SUFFIX = ".list"


def iter_input_paths(args: Iterable[str | Path]) -> List[str]:
    """Expand command-line inputs.

    A path ending in ``.list`` is read as a file of paths, one per line;
    blank lines and lines starting with ``#`` are skipped.
    """
    paths: List[str] = []
    for arg in args:
        p = Path(arg)
        if p.suffix == LIST_SUFFIX:
            for line in p.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                paths.append(line)
        else:
            paths.append(str(p))
    return paths


def _widen(pos: int, ci: Optional[Sequence[Optional[int]]]) -> Tuple[int, int]:
    start = pos
    end = pos
    if ci:
        if len(ci) > 0 and ci[0] is not None:
            start += int(ci[0])
        if len(ci) > 1 and ci[1] is not None:
            end += int(ci[1])
        if start > end:
            start, end = end, start
    # coordinates are 1-based; widening cannot reach before the contig start
    start = max(start, 1)
    end = max(end, start)
    return start, end


def _info(rec: pysam.VariantRecord, key: str) -> object:
    if key not in rec.info:
        return None
    return rec.info[key]


def breakpoint_intervals(rec: pysam.VariantRecord, distance: int) -> List[Tuple[int, int]]:
    """Return the 1-based ``(start, end)`` intervals contributed by one record."""
    intervals = [_widen(int(rec.pos), _info(rec, "CIPOS"))]  # type: ignore[arg-type]

    svtype = _info(rec, "SVTYPE")
    if isinstance(svtype, (list, tuple)):
        svtype = svtype[0] if svtype else None
    ref_length = int(rec.stop) - int(rec.pos) + 1
    if svtype != "BND" and ref_length > distance:
        intervals.append(_widen(int(rec.stop), _info(rec, "CIEND")))  # type: ignore[arg-type]
    return intervals


def is_carrier(sample: pysam.libcbcf.VariantRecordSample) -> bool:
    """False for hom-ref and no-call genotypes; mixed calls such as ``0/.`` count as carriers."""
    if "GT" not in sample:
        return False
    gt = sample["GT"]
    if not gt:
        return False
    called = [a for a in gt if a is not None]
    if not called:
        return False
    return any(a != 0 for a in called) or len(called) < len(gt)


def register_source(
    vcf: pysam.VariantFile, source: str, ctx: RunContext
) -> Dict[str, int]:
    """Register the samples of one input and check its sequence dictionary.

    A VCF without genotype columns is registered as one sample named after
    its path. Returns ``{vcf_sample_name: sample_id}``; the key is ``""`` for
    a sample-less VCF.
    """
    header = vcf.header
    names = list(header.samples)
    if names:
        ids = ctx.register_samples(names, source)
        mapping = dict(zip(names, ids))
    else:
        mapping = {"": ctx.samples.register(source, source)}

    ctx.accept_dictionary(SequenceDictionary.from_header(header, source), source)
    return mapping


def extract_breakpoints(
    rec: pysam.VariantRecord,
    ctx: RunContext,
    sample_ids: Dict[str, int],
    *,
    distance: int = 0,
) -> Iterator[BreakPoint]:
    tid = ctx.dictionary.index(str(rec.contig))

    if "" in sample_ids:
        carriers = [sample_ids[""]]
    else:
        carriers = [sample_ids[name] for name in rec.samples if is_carrier(rec.samples[name])]
    if not carriers:
        return

    intervals = breakpoint_intervals(rec, distance)
    for sample_id in carriers:
        for start, end in intervals:
            yield BreakPoint(tid, start, end, sample_id)


def register_inputs(paths: Sequence[str], ctx: RunContext) -> List[Dict[str, int]]:
    """Register the samples and check the sequence dictionary of every input.

    Only headers are read, so a duplicate sample or a mismatching dictionary
    aborts the run before any breakpoint is extracted.
    """
    mappings = []
    for path in paths:
        with pysam.VariantFile(path) as vcf:
            mappings.append(register_source(vcf, path, ctx))
    logger.info("Registered %d samples from %d inputs", len(ctx.samples), len(paths))
    return mappings


def read_source(
    path: str,
    ctx: RunContext,
    sorter: ExternalSorter[BreakPoint],
    *,
    sample_ids: Optional[Dict[str, int]] = None,
    distance: int = 0,
    progress: bool = True,
) -> Dict[str, int]:
    """Feed every breakpoint of one VCF into ``sorter``; return per-source counters.

    ``sample_ids`` is the mapping returned by :func:`register_inputs` for this
    path. Without it the source is registered here.
    """
    logger.info("Reading %s", path)
    counts = {
        "records": 0,
        "records_without_carrier": 0,
        "breakpoints": 0,
    }
    with pysam.VariantFile(path) as vcf:
        if sample_ids is None:
            sample_ids = register_source(vcf, path, ctx)

        # sequential iteration: works with or without a tabix/csi index
        it: Iterable[pysam.VariantRecord] = vcf
        if progress:
            it = tqdm(it, unit="rec", desc=Path(path).name)

        for rec in it:
            counts["records"] += 1
            n = 0
            for bp in extract_breakpoints(rec, ctx, sample_ids, distance=distance):
                sorter.add(bp)
                n += 1
            if n == 0:
                counts["records_without_carrier"] += 1
            counts["breakpoints"] += n

    logger.info(
        "%s: %d records, %d breakpoints", path, counts["records"], counts["breakpoints"]
    )
    return counts
