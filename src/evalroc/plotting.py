from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np

from .rocfile import FALSE_POSITIVES, PRECISION, SENSITIVITY, TRUE_POSITIVES_BASELINE, RocTable

logger = logging.getLogger(__name__)


def _label(table: RocTable) -> str:
    label = table.selection or table.path.name
    if table.rescaled:
        label += " (rescaled)"
    return label


def plot_precision_sensitivity(
    *,
    tables: Sequence[RocTable],
    out_png: str | Path,
    title: str = "Precision / Sensitivity",
    cutpoint: Optional[Tuple[float, float]] = None,
) -> None:
    """Precision against sensitivity, one line per ROC table.

    Tables without extended metrics are skipped with a warning. ``cutpoint``
    is an optional ``(sensitivity, precision)`` pair marked on the plot.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    for table in tables:
        if not table.has_metrics:
            logger.warning("ROC file %s has no precision/sensitivity columns, not plotted", table.path)
            continue
        sens = table.data[SENSITIVITY]
        prec = table.data[PRECISION]
        keep = ~(np.isnan(sens) | np.isnan(prec))
        plt.plot(sens[keep], prec[keep], marker=".", markersize=3, label=_label(table))
    if cutpoint is not None:
        plt.scatter([cutpoint[0]], [cutpoint[1]], color="black", zorder=3, label="selected threshold")
    plt.xlabel("Sensitivity")
    plt.ylabel("Precision")
    plt.xlim(0.0, 1.0)
    plt.ylim(0.0, 1.02)
    plt.title(title)
    plt.legend(loc="lower left", fontsize="small")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_roc_curve(
    *,
    tables: Sequence[RocTable],
    out_png: str | Path,
    title: str = "ROC",
) -> None:
    """Cumulative true positives against false positives, starting at the origin."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    for table in tables:
        fp = np.concatenate([[0.0], table.data[FALSE_POSITIVES]])
        tp = np.concatenate([[0.0], table.data[TRUE_POSITIVES_BASELINE]])
        plt.plot(fp, tp, label=_label(table))
        if table.total_baseline > 0:
            plt.axhline(table.total_baseline, linestyle=":", linewidth=0.8, color="grey")
    plt.xlabel("False positives")
    plt.ylabel("True positives (baseline)")
    plt.title(title)
    plt.legend(loc="lower right", fontsize="small")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
