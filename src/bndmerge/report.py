from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>bndmerge Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>bndmerge Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Input files</th><td>{{ inputs | length }}</td></tr>
      <tr><th>Samples (cohort)</th><td>{{ cohort_size }}</td></tr>
      <tr><th>Contigs</th><td>{{ contigs }}</td></tr>
      <tr><th>Output</th><td><code>{{ output }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Parameters</h3>
    <table>
      <tr><th>Distance</th><td>{{ distance }}</td></tr>
      <tr><th>Max records in RAM</th><td>{{ max_records_in_ram }}</td></tr>
      <tr><th>Chunks spilled</th><td>{{ chunks_spilled }}</td></tr>
      <tr><th>Runtime (s)</th><td>{{ "%.1f" | format(runtime_seconds) }}</td></tr>
    </table>
  </div>
</div>

<h2>Breakpoints</h2>
<table>
  <tr><th>VCF records read</th><td>{{ counts.records }}</td></tr>
  <tr><th>Records without carrier</th><td>{{ counts.records_without_carrier }}</td></tr>
  <tr><th>Breakpoints extracted</th><td>{{ counts.breakpoints }}</td></tr>
  <tr><th>Merged records</th><td>{{ clusters }}</td></tr>
  <tr><th>Allele number (AN)</th><td>{{ allele_number }}</td></tr>
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Support</h3>
    <img src="{{ plots.support_hist }}" alt="support histogram">
  </div>
  <div class="card">
    <h3>Cluster size</h3>
    <img src="{{ plots.cluster_size_hist }}" alt="cluster size histogram">
  </div>
</div>

<h2>Samples</h2>
<ul>
{% for s in samples %}  <li><code>{{ s }}</code></li>
{% endfor %}</ul>

<hr>
<p class="small">bndmerge {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    summary: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        inputs=summary.get("inputs", []),
        output=summary.get("output"),
        samples=summary.get("samples", []),
        cohort_size=summary.get("cohort_size", 0),
        contigs=summary.get("contigs", 0),
        distance=summary.get("distance"),
        max_records_in_ram=summary.get("max_records_in_ram"),
        chunks_spilled=summary.get("chunks_spilled", 0),
        runtime_seconds=float(summary.get("runtime_seconds", 0.0)),
        counts=summary.get("counts", {}),
        clusters=summary.get("clusters", 0),
        allele_number=summary.get("allele_number", 0),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
