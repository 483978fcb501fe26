"""Merge pipeline: extract -> external sort -> cluster sweep -> write.

The phases are separated by hard barriers. Samples and sequence dictionaries
of all inputs are registered from their headers before the sorter is created.
The sweep only starts once the sorter has committed to a global order.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence

import numpy as np

from .cluster import consensus_records
from .extract import iter_input_paths, read_source, register_inputs
from .models import BreakPoint
from .registry import RunContext
from .sorting import BREAKPOINT_CODEC, DEFAULT_MAX_RECORDS_IN_RAM, ExternalSorter
from .writer import MembersTsvWriter, VcfResultWriter

logger = logging.getLogger(__name__)

DEFAULT_DISTANCE = 0


def merge_vcfs(
    inputs: Iterable[str | Path],
    output: str | Path,
    *,
    distance: int = DEFAULT_DISTANCE,
    max_records_in_ram: int = DEFAULT_MAX_RECORDS_IN_RAM,
    tmp_dirs: Optional[Sequence[str | Path]] = None,
    members_tsv: Optional[str | Path] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Merge the breakpoints of every input VCF into ``output``.

    Parameters
    ----------
    inputs:
        VCF/BCF paths; a path ending in ``.list`` holds one path per line.
    output:
        Result path (``.vcf``, ``.vcf.gz`` or ``.bcf``) or ``-`` for stdout.
    distance:
        Two breakpoints are merged when their intervals, widened by this many
        bases on each side, overlap.
    max_records_in_ram:
        Breakpoints held in memory before a sorted chunk is spilled to disk.
    tmp_dirs:
        Directories for spill chunks (default: the system temporary directory).
    members_tsv:
        Optional TSV(.gz) listing every member sample of every merged record.

    Returns
    -------
    dict
        JSON-serialisable run summary.
    """
    t0 = time.time()
    if distance < 0:
        raise ValueError("distance must be >= 0")
    if max_records_in_ram < 1:
        raise ValueError("max_records_in_ram must be >= 1")
    paths = iter_input_paths(inputs)
    if not paths:
        raise ValueError("No input VCF was given.")

    ctx = RunContext()
    counts = {
        "records": 0,
        "records_without_carrier": 0,
        "breakpoints": 0,
    }
    cluster_size_hist: Dict[int, int] = {}

    sample_maps = register_inputs(paths, ctx)

    with ExternalSorter(
        BREAKPOINT_CODEC,
        BreakPoint.sort_key,
        max_records_in_ram=max_records_in_ram,
        tmp_dirs=tmp_dirs,
    ) as sorter:
        for path, sample_ids in zip(paths, sample_maps):
            src_counts = read_source(
                path, ctx, sorter, sample_ids=sample_ids, distance=distance, progress=progress
            )
            for k, v in src_counts.items():
                counts[k] += v

        sorter.done_adding()
        logger.info(
            "Done sorting: %d breakpoints from %d samples (%d chunks spilled)",
            len(sorter),
            len(ctx.samples),
            sorter.chunks_written,
        )

        # support is bounded by the cohort size
        support_counts = np.zeros(len(ctx.samples) + 1, dtype=np.int64)

        with ExitStack() as stack:
            vcf_out = stack.enter_context(VcfResultWriter(output, ctx))
            tsv_out = (
                stack.enter_context(MembersTsvWriter(members_tsv))
                if members_tsv is not None
                else None
            )
            for rec in consensus_records(sorter.iterator(), ctx, distance=distance):
                vcf_out.write(rec)
                if tsv_out is not None:
                    tsv_out.write(rec)
                support_counts[rec.support] += 1
                size = len(rec.members)
                cluster_size_hist[size] = cluster_size_hist.get(size, 0) + 1

        chunks_written = sorter.chunks_written
        n_breakpoints = len(sorter)

    dt = time.time() - t0
    summary: Dict[str, object] = {
        "inputs": paths,
        "output": str(output),
        "members_tsv": str(members_tsv) if members_tsv is not None else None,
        "distance": int(distance),
        "max_records_in_ram": int(max_records_in_ram),
        "samples": ctx.samples.names,
        "cohort_size": len(ctx.samples),
        "allele_number": ctx.allele_number,
        "contigs": len(ctx.dictionary),
        "counts": counts,
        "chunks_spilled": int(chunks_written),
        "clusters": int(support_counts.sum()),
        "support_hist": {int(k): int(v) for k, v in enumerate(support_counts) if v > 0},
        "cluster_size_hist": dict(sorted(cluster_size_hist.items())),
        "runtime_seconds": float(dt),
    }
    logger.info("Merged %d breakpoints into %d records", n_breakpoints, summary["clusters"])
    return summary
