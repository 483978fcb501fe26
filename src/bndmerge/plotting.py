from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_support_hist(
    *,
    support_hist: Dict[int, int],
    cohort_size: int,
    out_png: str | Path,
    title: str = "Supporting samples per merged breakpoint",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    xs = list(range(1, max(1, cohort_size) + 1))
    ys = [int(support_hist.get(x, 0)) for x in xs]

    plt.figure()
    plt.bar(xs, ys)
    plt.xlabel("Number of supporting samples (AC)")
    plt.ylabel("Merged records")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_cluster_size_hist(
    *,
    cluster_size_hist: Dict[int, int],
    out_png: str | Path,
    title: str = "Breakpoints per merged record",
    max_bin: int = 20,
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    # Collapse tail into max_bin+
    xs = list(range(1, max_bin + 1))
    ys = [0] * len(xs)
    tail = 0
    for k, v in cluster_size_hist.items():
        k = int(k)
        if 1 <= k <= max_bin:
            ys[k - 1] += int(v)
        elif k > max_bin:
            tail += int(v)

    xticklabels = [str(x) for x in xs]
    if tail > 0:
        ys.append(tail)
        xticklabels.append(f"{max_bin + 1}+")

    plt.figure()
    plt.bar(range(len(ys)), ys)
    plt.xlabel("Breakpoints in cluster")
    plt.ylabel("Merged records")
    plt.title(title)
    plt.xticks(range(len(ys)), xticklabels, rotation=0)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
