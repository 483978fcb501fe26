from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pysam

from .utils import ensure_outdir, write_json

TOY_CONTIGS: Tuple[Tuple[str, int], ...] = (("chr1", 10_000), ("chr2", 5_000))


def write_sv_vcf(
    path: str | Path,
    *,
    records: Iterable[Mapping[str, object]],
    samples: Sequence[str] = (),
    contigs: Sequence[Tuple[str, int]] = TOY_CONTIGS,
    compress: Optional[bool] = None,
) -> Path:
    """Write a small structural-variant VCF.

    Each record is a mapping with ``contig`` and 1-based ``pos``, and
    optionally ``end``, ``svtype`` (default ``DEL``), ``cipos``, ``ciend`` and
    ``gts`` (sample name -> GT tuple). A ``.vcf.gz`` path is bgzipped and
    tabix-indexed unless ``compress`` says otherwise.
    """
    path = Path(path)
    if compress is None:
        compress = path.name.endswith(".vcf.gz")

    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for name, length in contigs:
        header.contigs.add(name, length=length)
    header.info.add("SVTYPE", number=1, type="String", description="Type of structural variant")
    header.info.add("END", number=1, type="Integer", description="End position of the variant")
    header.info.add("CIPOS", number=2, type="Integer", description="Confidence interval around POS")
    header.info.add("CIEND", number=2, type="Integer", description="Confidence interval around END")
    header.formats.add("GT", number=1, type="String", description="Genotype")
    for s in samples:
        header.add_sample(s)

    plain = path.with_name(path.name[: -len(".gz")]) if compress else path
    with pysam.VariantFile(str(plain), "w", header=header) as vcf:
        for r in records:
            svtype = str(r.get("svtype", "DEL"))
            pos = int(r["pos"])  # type: ignore[arg-type]
            if svtype == "BND":
                alleles = ("N", str(r.get("alt", "N[chr2:100[")))
                stop = pos
            else:
                alleles = ("N", f"<{svtype}>")
                stop = int(r.get("end", pos))  # type: ignore[arg-type]
            rec = vcf.new_record(contig=str(r["contig"]), start=pos - 1, stop=stop, alleles=alleles)
            rec.info["SVTYPE"] = svtype
            if r.get("cipos") is not None:
                rec.info["CIPOS"] = tuple(r["cipos"])  # type: ignore[arg-type]
            if r.get("ciend") is not None:
                rec.info["CIEND"] = tuple(r["ciend"])  # type: ignore[arg-type]
            gts = r.get("gts") or {}
            for sample, gt in gts.items():  # type: ignore[union-attr]
                rec.samples[sample]["GT"] = gt
            vcf.write(rec)

    if compress:
        pysam.tabix_compress(str(plain), str(path), force=True)
        pysam.tabix_index(str(path), preset="vcf", force=True)
        plain.unlink()
    return path


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create three tiny SV call sets suitable for quick demos/tests.

    The outputs include:
    - caller_a.vcf.gz (+ .tbi): samples TUMOR_1, TUMOR_2
    - caller_b.vcf.gz (+ .tbi): sample TUMOR_3
    - caller_c.vcf: no genotype columns (its path is the sample name)
    - inputs.list: the three paths, one per line

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    caller_a = write_sv_vcf(
        outdir_p / "caller_a.vcf.gz",
        samples=["TUMOR_1", "TUMOR_2"],
        records=[
            {
                "contig": "chr1",
                "pos": 1000,
                "end": 3000,
                "svtype": "DEL",
                "cipos": (-10, 10),
                "ciend": (-10, 10),
                "gts": {"TUMOR_1": (0, 1), "TUMOR_2": (0, 0)},
            },
            {
                "contig": "chr2",
                "pos": 500,
                "svtype": "BND",
                "alt": "N[chr1:8000[",
                "gts": {"TUMOR_1": (1, 1), "TUMOR_2": (0, 1)},
            },
        ],
    )
    caller_b = write_sv_vcf(
        outdir_p / "caller_b.vcf.gz",
        samples=["TUMOR_3"],
        records=[
            {
                "contig": "chr1",
                "pos": 1005,
                "end": 2995,
                "svtype": "DEL",
                "cipos": (-5, 5),
                "ciend": (-5, 5),
                "gts": {"TUMOR_3": (0, 1)},
            },
            {
                "contig": "chr1",
                "pos": 6000,
                "end": 6400,
                "svtype": "INV",
                "gts": {"TUMOR_3": (None, None)},
            },
        ],
    )
    caller_c = write_sv_vcf(
        outdir_p / "caller_c.vcf",
        records=[
            {"contig": "chr2", "pos": 502, "svtype": "BND", "alt": "N[chr1:8001["},
            {"contig": "chr1", "pos": 8000, "svtype": "BND", "alt": "]chr2:500]N"},
        ],
    )

    list_path = outdir_p / "inputs.list"
    list_path.write_text(
        "\n".join(str(p) for p in (caller_a, caller_b, caller_c)) + "\n", encoding="utf-8"
    )

    summary = {
        "caller_a_vcf": str(caller_a),
        "caller_b_vcf": str(caller_b),
        "caller_c_vcf": str(caller_c),
        "inputs_list": str(list_path),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
