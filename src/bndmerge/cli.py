from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .errors import BndMergeError
from .merge import DEFAULT_DISTANCE, merge_vcfs
from .plotting import plot_cluster_size_hist, plot_support_hist
from .report import render_report
from .sorting import DEFAULT_MAX_RECORDS_IN_RAM
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .writer import STDOUT


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _non_negative_int(s: str) -> int:
    try:
        v = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an integer: {s}") from None
    if v < 0:
        raise argparse.ArgumentTypeError(f"Must be >= 0: {s}")
    return v


def _positive_int(s: str) -> int:
    v = _non_negative_int(s)
    if v == 0:
        raise argparse.ArgumentTypeError(f"Must be >= 1: {s}")
    return v


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    if not isinstance(err, BndMergeError):
        logging.getLogger("bndmerge").debug("Unexpected error", exc_info=err)

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bndmerge",
        description=(
            "bndmerge: merge breakpoints from many structural-variant VCFs into one VCF of "
            "consensus <BND> records annotated with the number of supporting samples."
        ),
    )
    p.add_argument("--version", action="version", version=f"bndmerge {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate three tiny SV VCFs and an inputs.list for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # merge
    # -----------------
    m = sub.add_parser(
        "merge",
        help="Merge breakpoints from SV VCFs (or .list files of VCF paths).",
    )
    m.add_argument(
        "inputs",
        nargs="+",
        type=_path_exists,
        help="Input VCF/BCF files, or files with the '.list' suffix containing one path per line.",
    )
    m.add_argument(
        "-o",
        "--out",
        default=STDOUT,
        help="Output VCF (.vcf, .vcf.gz, .bcf) or '-' for stdout (default: stdout).",
    )
    m.add_argument(
        "-d",
        "--distance",
        type=_non_negative_int,
        default=DEFAULT_DISTANCE,
        help="Two breakpoints are merged when they lie within this distance (default: 0).",
    )
    m.add_argument(
        "--max-records-in-ram",
        type=_positive_int,
        default=DEFAULT_MAX_RECORDS_IN_RAM,
        help="Breakpoints kept in memory before spilling a sorted chunk to disk.",
    )
    m.add_argument(
        "--tmp-dir",
        action="append",
        default=None,
        help="Directory for temporary sort chunks (repeatable; default: system temp dir).",
    )
    m.add_argument(
        "--members-tsv",
        default=None,
        help="Optional TSV(.gz) listing every member sample of every merged record.",
    )
    m.add_argument(
        "--report-dir",
        default=None,
        help="Optional directory for summary.json, plots and report.html.",
    )
    m.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    m.add_argument("--log-file", default=None, help="Also write the log to this file.")
    m.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "bndmerge quickstart (copy/paste):",
        "",
        "1) Merge exact breakpoints from several callers into a bgzipped VCF:",
        "   bndmerge merge \\",
        "     -o merged.vcf.gz \\",
        "     caller1.vcf.gz caller2.vcf.gz",
        "",
        "2) Merge breakpoints within 50 bp, reading inputs from a list file:",
        "   bndmerge merge \\",
        "     -d 50 \\",
        "     -o merged.vcf.gz \\",
        "     --report-dir merge_report/ \\",
        "     inputs.list",
        "   Outputs: merged.vcf.gz (+ .tbi), merge_report/report.html, merge_report/summary.json",
        "",
        "3) Large cohorts: keep fewer records in memory and spill to a fast disk:",
        "   bndmerge merge \\",
        "     --max-records-in-ram 10000 \\",
        "     --tmp-dir /scratch/tmp \\",
        "     -o merged.bcf \\",
        "     inputs.list",
        "",
        "Tip: try it on generated data first: bndmerge make-toy-data --outdir toy/",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _write_report(report_dir: Path, summary: Dict[str, Any]) -> Path:
    report_dir = ensure_outdir(report_dir)
    write_json(report_dir / "summary.json", summary)

    plots_dir = report_dir / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)
    support_png = plots_dir / "support_hist.png"
    cluster_size_png = plots_dir / "cluster_size_hist.png"

    plot_support_hist(
        support_hist=summary["support_hist"],
        cohort_size=int(summary["cohort_size"]),
        out_png=support_png,
    )
    plot_cluster_size_hist(cluster_size_hist=summary["cluster_size_hist"], out_png=cluster_size_png)

    plots_rel = {
        "support_hist": str(Path("plots") / support_png.name),
        "cluster_size_hist": str(Path("plots") / cluster_size_png.name),
    }
    return render_report(outdir=report_dir, version=__version__, summary=summary, plots=plots_rel)


def cmd_merge(args: argparse.Namespace) -> int:
    log_path = Path(args.log_file).expanduser().resolve() if args.log_file else None
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("bndmerge")
    logger.info("bndmerge %s", __version__)

    try:
        summary = merge_vcfs(
            args.inputs,
            args.out,
            distance=int(args.distance),
            max_records_in_ram=int(args.max_records_in_ram),
            tmp_dirs=args.tmp_dir,
            members_tsv=args.members_tsv,
            progress=not bool(args.no_progress),
        )

        if args.report_dir is not None:
            report_path = _write_report(Path(args.report_dir), summary)
            logger.info("Report written: %s", report_path)

        if args.out != STDOUT:
            print(str(args.out))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "merge":
        return cmd_merge(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
