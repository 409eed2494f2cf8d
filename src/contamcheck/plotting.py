from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt

from .models import FragmentClass

logger = logging.getLogger(__name__)


def plot_class_counts(
    *,
    counts_strong: Dict[str, int],
    counts_all: Dict[str, int],
    out_png: str | Path,
    title: str = "Fragment classes",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = [klass.label for klass in FragmentClass]
    xs = list(range(len(labels)))
    strong = [int(counts_strong.get(label, 0)) for label in labels]
    everything = [int(counts_all.get(label, 0)) for label in labels]

    plt.figure()
    plt.bar([x - 0.2 for x in xs], strong, width=0.4, label="strong positions")
    plt.bar([x + 0.2 for x in xs], everything, width=0.4, label="all positions")
    plt.ylabel("Fragment count")
    plt.title(title)
    plt.xticks(xs, labels, rotation=15, ha="right")
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_vote_hist(
    *,
    vote_hist: Dict[str, int],
    out_png: str | Path,
    title: str = "Informative positions per fragment",
    max_bin: int = 20,
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    # Collapse tail into max_bin+
    xs = list(range(0, max_bin + 1))
    ys = [0] * len(xs)
    tail = 0
    for k, v in vote_hist.items():
        k = int(k)
        if k <= max_bin:
            ys[k] += int(v)
        else:
            tail += int(v)

    xticklabels: List[str] = [str(x) for x in xs]
    if tail > 0:
        xs.append(max_bin + 1)
        ys.append(tail)
        xticklabels.append(f"{max_bin + 1}+")

    plt.figure()
    plt.bar(range(len(xs)), ys)
    plt.xlabel("Votes (all positions)")
    plt.ylabel("Fragment count")
    plt.title(title)
    plt.xticks(range(len(xs)), xticklabels, rotation=0)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
