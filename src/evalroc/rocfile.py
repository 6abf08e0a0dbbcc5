from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from .utils import open_textmaybe_gzip, real_format

logger = logging.getLogger(__name__)

ROC_EXT = "_roc.tsv"
SLOPE_EXT = "_slope.tsv"
ROC_FORMAT_VERSION = "ROC output 1.2"
RESCALED_SUFFIX = " (baseline rescaled)"

SCORE = "score"
TRUE_POSITIVES_BASELINE = "true_positives_baseline"
FALSE_POSITIVES = "false_positives"
TRUE_POSITIVES_CALL = "true_positives_call"
FALSE_NEGATIVES = "false_negatives"
PRECISION = "precision"
SENSITIVITY = "sensitivity"
F_MEASURE = "f_measure"

BASE_COLUMNS = [SCORE, TRUE_POSITIVES_BASELINE, FALSE_POSITIVES, TRUE_POSITIVES_CALL]
EXTRA_COLUMNS = [FALSE_NEGATIVES, PRECISION, SENSITIVITY, F_MEASURE]

SLOPE_COLUMNS = [SCORE, "delta_true_positives", "delta_false_positives", "slope", "log10_slope"]

_VERSION_RE = re.compile(r"^#Version (.*), " + re.escape(ROC_FORMAT_VERSION) + r"$")


@dataclass
class RocTable:
    """A parsed ROC table: header metadata plus one numpy array per column.

    ``None`` scores are read as NaN.
    """

    path: Path
    version: Optional[str] = None
    command_line: Optional[str] = None
    selection: str = ""
    rescaled: bool = False
    total_baseline: int = 0
    total_call: int = 0
    score_field: str = ""
    columns: List[str] = field(default_factory=list)
    data: Dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def n_rows(self) -> int:
        if not self.columns:
            return 0
        return int(self.data[self.columns[0]].shape[0])

    @property
    def has_metrics(self) -> bool:
        return PRECISION in self.data


def _parse_cell(cell: str) -> float:
    if cell == "None":
        return float("nan")
    return float(cell)


def read_roc(path: str | Path) -> RocTable:
    """Parse a ROC table written by the accumulator (plain or gzipped)."""
    path = Path(path)
    table = RocTable(path=path)
    rows: List[List[float]] = []
    with open_textmaybe_gzip(path, "rt") as f:
        for line in f:
            line = line.rstrip("\n")
            if not line:
                continue
            if not line.startswith("#"):
                rows.append([_parse_cell(c) for c in line.split("\t")])
                continue
            m = _VERSION_RE.match(line)
            if m:
                table.version = m.group(1)
            elif line.startswith("#CL "):
                table.command_line = line[len("#CL ") :]
            elif line.startswith("#selection: "):
                selection = line[len("#selection: ") :]
                table.rescaled = selection.endswith(RESCALED_SUFFIX)
                if table.rescaled:
                    selection = selection[: -len(RESCALED_SUFFIX)]
                table.selection = selection
            elif line.startswith("#total baseline variants: "):
                table.total_baseline = int(line.rsplit(":", 1)[1])
            elif line.startswith("#total call variants: "):
                table.total_call = int(line.rsplit(":", 1)[1])
            elif line.startswith("#score field: "):
                table.score_field = line[len("#score field: ") :]
            elif line.startswith("#" + SCORE + "\t"):
                table.columns = line[1:].split("\t")
    if not table.columns:
        raise ValueError(f"No column header found in ROC file: {path}")
    arr = np.array(rows, dtype=float).reshape(len(rows), len(table.columns))
    table.data = {name: arr[:, i] for i, name in enumerate(table.columns)}
    return table


def slope_path(roc_path: str | Path) -> Path:
    p = Path(roc_path)
    return p.with_name(p.name.replace(ROC_EXT, SLOPE_EXT))


def compute_slope(tp: np.ndarray, fp: np.ndarray) -> Dict[str, np.ndarray]:
    """Local slope between consecutive cumulative ROC points, starting at the origin."""
    d_tp = np.diff(np.concatenate([[0.0], tp]))
    d_fp = np.diff(np.concatenate([[0.0], fp]))
    with np.errstate(divide="ignore", invalid="ignore"):
        slope = d_tp / d_fp
        log_slope = np.log10(slope)
    return {"delta_true_positives": d_tp, "delta_false_positives": d_fp, "slope": slope, "log10_slope": log_slope}


def write_slope(roc_path: str | Path) -> Optional[Path]:
    """Write the slope file next to a non-empty ROC table; returns its path."""
    roc_path = Path(roc_path)
    if not roc_path.exists() or roc_path.stat().st_size == 0:
        return None
    table = read_roc(roc_path)
    out_path = slope_path(roc_path)
    slope = compute_slope(table.data[TRUE_POSITIVES_BASELINE], table.data[FALSE_POSITIVES])
    scores = table.data[SCORE]
    with open_textmaybe_gzip(out_path, "wt") as out:
        out.write(f"#selection: {table.selection}\n")
        out.write("#" + "\t".join(SLOPE_COLUMNS) + "\n")
        for i in range(table.n_rows):
            score = "None" if np.isnan(scores[i]) else real_format(float(scores[i]), 3)
            out.write(
                "\t".join(
                    [
                        score,
                        real_format(float(slope["delta_true_positives"][i]), 2),
                        real_format(float(slope["delta_false_positives"][i]), 2),
                        real_format(float(slope["slope"][i]), 4),
                        real_format(float(slope["log10_slope"][i]), 4),
                    ]
                )
                + "\n"
            )
    logger.debug("Slope file written: %s", out_path)
    return out_path
