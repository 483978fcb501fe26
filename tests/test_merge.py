import gzip
from pathlib import Path

import pysam
import pytest

from bndmerge.errors import DuplicateSampleError, SequenceDictionaryMismatchError
from bndmerge.merge import merge_vcfs
from bndmerge.models import ConsensusRecord
from bndmerge.registry import RunContext, SequenceDictionary
from bndmerge.sorting import ExternalSorter
from bndmerge.toy_data import make_toy_data, write_sv_vcf
from bndmerge.writer import MembersTsvWriter, VcfResultWriter


def _read_out(path: Path) -> list[tuple]:
    out = []
    with pysam.VariantFile(str(path)) as vcf:
        for rec in vcf:
            carriers = sorted(s for s in rec.samples if rec.samples[s]["GT"] == (0, 1))
            out.append(
                (
                    rec.contig,
                    rec.pos,
                    rec.stop,
                    rec.info["AC"][0],
                    rec.info["AN"],
                    tuple(carriers),
                )
            )
    return out


@pytest.fixture
def toy(tmp_path: Path) -> dict:
    return make_toy_data(outdir=tmp_path / "toy")


def test_merge_toy_data_exact(tmp_path: Path, toy: dict) -> None:
    out = tmp_path / "merged.vcf.gz"
    summary = merge_vcfs([toy["inputs_list"]], out, tmp_dirs=[tmp_path], progress=False)

    assert out.exists()
    assert Path(str(out) + ".tbi").exists()
    records = _read_out(out)
    c = toy["caller_c_vcf"]
    assert records == [
        ("chr1", 990, 1010, 2, 8, ("TUMOR_1", "TUMOR_3")),
        ("chr1", 2990, 3010, 2, 8, ("TUMOR_1", "TUMOR_3")),
        ("chr1", 8000, 8000, 1, 8, (c,)),
        ("chr2", 500, 500, 2, 8, ("TUMOR_1", "TUMOR_2")),
        ("chr2", 502, 502, 1, 8, (c,)),
    ]
    assert summary["clusters"] == 5
    assert summary["cohort_size"] == 4
    assert summary["support_hist"] == {1: 2, 2: 3}
    assert summary["counts"]["records"] == 6
    assert summary["counts"]["records_without_carrier"] == 1


def test_merge_toy_data_with_distance(tmp_path: Path, toy: dict) -> None:
    out = tmp_path / "merged.vcf"
    summary = merge_vcfs([toy["inputs_list"]], out, distance=5, tmp_dirs=[tmp_path], progress=False)
    records = _read_out(out)
    assert len(records) == 4
    assert records[-1][:4] == ("chr2", 500, 502, 3)
    assert summary["support_hist"] == {1: 1, 2: 2, 3: 1}


def test_output_independent_of_chunk_size(tmp_path: Path, toy: dict) -> None:
    inputs = [toy["caller_a_vcf"], toy["caller_b_vcf"], toy["caller_c_vcf"]]
    small = tmp_path / "small.vcf"
    large = tmp_path / "large.vcf"
    s1 = merge_vcfs(inputs, small, max_records_in_ram=1, tmp_dirs=[tmp_path], progress=False)
    s2 = merge_vcfs(inputs, large, max_records_in_ram=1000, tmp_dirs=[tmp_path], progress=False)
    assert s1["chunks_spilled"] > 0
    assert s2["chunks_spilled"] == 0
    assert _read_out(small) == _read_out(large)
    assert list(tmp_path.glob("bndmerge.*.chunk")) == []


def test_duplicate_sample_aborts_without_output(
    tmp_path: Path, toy: dict, monkeypatch: pytest.MonkeyPatch
) -> None:
    spills = []
    original_spill = ExternalSorter._spill

    def counting_spill(self):
        spills.append(len(self._buffer))
        original_spill(self)

    monkeypatch.setattr(ExternalSorter, "_spill", counting_spill)
    out = tmp_path / "merged.vcf"
    with pytest.raises(DuplicateSampleError):
        merge_vcfs(
            [toy["caller_a_vcf"], toy["caller_a_vcf"]],
            out,
            max_records_in_ram=1,
            tmp_dirs=[tmp_path],
            progress=False,
        )
    assert spills == []
    assert not out.exists()
    assert list(tmp_path.glob("bndmerge.*.chunk")) == []
    assert list(tmp_path.glob(".partial.*")) == []


def test_members_tsv_keeps_duplicates(tmp_path: Path) -> None:
    vcf = write_sv_vcf(
        tmp_path / "one.vcf",
        samples=["S1", "S2"],
        records=[
            {"contig": "chr1", "pos": 100, "end": 500, "gts": {"S1": (0, 1), "S2": (0, 0)}},
            {"contig": "chr1", "pos": 100, "end": 600, "gts": {"S1": (0, 1), "S2": (0, 0)}},
        ],
    )
    tsv = tmp_path / "members.tsv.gz"
    summary = merge_vcfs(
        [vcf], tmp_path / "out.vcf", members_tsv=tsv, tmp_dirs=[tmp_path], progress=False
    )
    assert summary["allele_number"] == 4

    with gzip.open(tsv, "rt") as fh:
        header = fh.readline().rstrip("\n").split("\t")
        rows = [dict(zip(header, line.rstrip("\n").split("\t"))) for line in fh]
    first = rows[0]
    assert (first["start"], first["end"]) == ("100", "100")
    assert first["support"] == "1"
    assert first["n_members"] == "2"
    assert first["members"] == "S1,S1"
    assert len(rows) == 3


def test_invalid_arguments(tmp_path: Path, toy: dict) -> None:
    with pytest.raises(ValueError):
        merge_vcfs([toy["caller_a_vcf"]], tmp_path / "o.vcf", distance=-1)
    with pytest.raises(ValueError):
        merge_vcfs([toy["caller_a_vcf"]], tmp_path / "o.vcf", max_records_in_ram=0)
    empty = tmp_path / "empty.list"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(ValueError):
        merge_vcfs([empty], tmp_path / "o.vcf")


def test_writer_discards_partial_output(tmp_path: Path) -> None:
    ctx = RunContext()
    ctx.accept_dictionary(SequenceDictionary(contigs=(("chr1", 1000),)), "test")
    ctx.register_samples(["A"], "test")
    out = tmp_path / "out.vcf.gz"
    rec = ConsensusRecord("chr1", 10, 12, 1, 2, 0.5, (("A", True),))

    with pytest.raises(RuntimeError):
        with VcfResultWriter(out, ctx) as writer:
            writer.write(rec)
            raise RuntimeError("sweep failed")
    assert not out.exists()
    assert list(tmp_path.iterdir()) == []


def test_dictionary_mismatch_detected_before_sorting(
    tmp_path: Path, toy: dict, monkeypatch: pytest.MonkeyPatch
) -> None:
    other = write_sv_vcf(
        tmp_path / "other.vcf",
        samples=["OTHER"],
        contigs=[("chr1", 10_000)],
        records=[{"contig": "chr1", "pos": 10, "svtype": "BND", "gts": {"OTHER": (0, 1)}}],
    )

    def no_sorter(*args, **kwargs):
        raise AssertionError("sorter created before all inputs were registered")

    monkeypatch.setattr("bndmerge.merge.ExternalSorter", no_sorter)
    with pytest.raises(SequenceDictionaryMismatchError):
        merge_vcfs([toy["caller_a_vcf"], other], tmp_path / "o.vcf", progress=False)


def test_confidence_interval_clamped_at_contig_start(tmp_path: Path) -> None:
    vcf = write_sv_vcf(
        tmp_path / "edge.vcf",
        samples=["S1"],
        records=[
            {
                "contig": "chr1",
                "pos": 5,
                "svtype": "BND",
                "cipos": (-10, 10),
                "gts": {"S1": (0, 1)},
            }
        ],
    )
    out = tmp_path / "edge.out.vcf"
    merge_vcfs([vcf], out, tmp_dirs=[tmp_path], progress=False)
    assert _read_out(out) == [("chr1", 1, 15, 1, 2, ("S1",))]


def test_members_writer_requires_open(tmp_path: Path) -> None:
    rec = ConsensusRecord("chr1", 10, 12, 1, 2, 0.5, (("A", True),))
    with pytest.raises(RuntimeError, match="not open"):
        MembersTsvWriter(tmp_path / "m.tsv").write(rec)
