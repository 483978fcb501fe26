from pathlib import Path

import pysam
import pytest

from bndmerge.errors import ContigNotFoundError, SequenceDictionaryMismatchError
from bndmerge.extract import (
    _widen,
    breakpoint_intervals,
    extract_breakpoints,
    iter_input_paths,
    read_source,
    register_source,
)
from bndmerge.models import BreakPoint
from bndmerge.registry import RunContext, SequenceDictionary
from bndmerge.sorting import BREAKPOINT_CODEC, ExternalSorter
from bndmerge.toy_data import write_sv_vcf


def _records(path: Path) -> list:
    with pysam.VariantFile(str(path)) as vcf:
        return list(vcf)


def _collect(paths, distance=0, tmp_path=None):
    ctx = RunContext()
    counts = []
    with ExternalSorter(BREAKPOINT_CODEC, BreakPoint.sort_key, tmp_dirs=[tmp_path]) as sorter:
        for p in paths:
            counts.append(read_source(str(p), ctx, sorter, distance=distance, progress=False))
        sorter.done_adding()
        return ctx, counts, list(sorter.iterator())


def test_widen_swaps_reversed_interval():
    assert _widen(100, None) == (100, 100)
    assert _widen(100, (-10, 5)) == (90, 105)
    assert _widen(100, (10, -10)) == (90, 110)
    assert _widen(100, (-3,)) == (97, 100)


def test_widen_clamps_at_contig_start():
    assert _widen(5, (-10, 10)) == (1, 15)
    assert _widen(3, (-10, -8)) == (1, 1)


def test_intervals_for_deletion_and_bnd(tmp_path: Path):
    vcf = write_sv_vcf(
        tmp_path / "a.vcf",
        records=[
            {"contig": "chr1", "pos": 1000, "end": 3000, "cipos": (-10, 10), "ciend": (-5, 5)},
            {"contig": "chr1", "pos": 4000, "svtype": "BND", "alt": "N[chr2:10["},
            {"contig": "chr1", "pos": 5000, "end": 5003, "svtype": "DEL"},
        ],
    )
    deletion, bnd, small = _records(vcf)

    assert breakpoint_intervals(deletion, 0) == [(990, 1010), (2995, 3005)]
    # the event spans 2001 bases, not more than the distance: start only
    assert breakpoint_intervals(deletion, 2001) == [(990, 1010)]
    assert breakpoint_intervals(bnd, 0) == [(4000, 4000)]
    assert breakpoint_intervals(small, 3) == [(5000, 5000), (5003, 5003)]
    assert breakpoint_intervals(small, 4) == [(5000, 5000)]


def test_genotype_filter(tmp_path: Path):
    vcf = write_sv_vcf(
        tmp_path / "gt.vcf",
        samples=["A", "B", "C", "D"],
        records=[
            {
                "contig": "chr1",
                "pos": 100,
                "svtype": "BND",
                "gts": {"A": (0, 1), "B": (0, 0), "C": (None, None), "D": (0, None)},
            },
            {
                "contig": "chr1",
                "pos": 200,
                "svtype": "BND",
                "gts": {"A": (0, 0), "B": (0, 0), "C": (0, 0), "D": (0, 0)},
            },
        ],
    )
    ctx, counts, bps = _collect([vcf], tmp_path=tmp_path)
    assert [(bp.start, ctx.samples.name(bp.sample_id)) for bp in bps] == [(100, "A"), (100, "D")]
    assert counts[0] == {"records": 2, "records_without_carrier": 1, "breakpoints": 2}


def test_sampleless_vcf_named_after_path(tmp_path: Path):
    vcf = write_sv_vcf(
        tmp_path / "calls.vcf",
        records=[{"contig": "chr2", "pos": 50, "svtype": "BND"}],
    )
    ctx, _, bps = _collect([vcf], tmp_path=tmp_path)
    assert ctx.samples.names == [str(vcf)]
    assert bps == [BreakPoint(1, 50, 50, 0)]


def test_dictionary_mismatch_between_sources(tmp_path: Path):
    a = write_sv_vcf(tmp_path / "a.vcf", samples=["A"], records=[])
    b = write_sv_vcf(
        tmp_path / "b.vcf",
        samples=["B"],
        contigs=[("chr1", 10_000), ("chr3", 100)],
        records=[],
    )
    with pytest.raises(SequenceDictionaryMismatchError):
        _collect([a, b], tmp_path=tmp_path)


def test_unknown_contig(tmp_path: Path):
    vcf = write_sv_vcf(
        tmp_path / "a.vcf",
        samples=["A"],
        records=[{"contig": "chr2", "pos": 10, "svtype": "BND", "gts": {"A": (0, 1)}}],
    )
    ctx = RunContext()
    ctx.accept_dictionary(SequenceDictionary(contigs=(("chr1", 10_000),)), "ref")
    ids = {"A": ctx.samples.register("A", str(vcf))}
    (rec,) = _records(vcf)
    with pytest.raises(ContigNotFoundError, match="chr2"):
        list(extract_breakpoints(rec, ctx, ids))


def test_register_source_checks_dictionary(tmp_path: Path):
    vcf = write_sv_vcf(tmp_path / "a.vcf", samples=["X", "Y"], records=[])
    ctx = RunContext()
    with pysam.VariantFile(str(vcf)) as fh:
        ids = register_source(fh, str(vcf), ctx)
    assert ids == {"X": 0, "Y": 1}
    assert ctx.dictionary.contigs == (("chr1", 10_000), ("chr2", 5_000))


def test_iter_input_paths(tmp_path: Path):
    lst = tmp_path / "inputs.list"
    lst.write_text("# callers\na.vcf\n\n  b.vcf.gz  \n", encoding="utf-8")
    assert iter_input_paths([str(lst), "c.bcf"]) == ["a.vcf", "b.vcf.gz", "c.bcf"]
