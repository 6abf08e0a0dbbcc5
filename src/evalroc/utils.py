from __future__ import annotations

import gzip
import json
import math
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, TextIO

GZ_SUFFIX = ".gz"


def real_format(x: float, dp: int) -> str:
    """Format ``x`` with ``dp`` decimal places, rounding halves away from zero.

    Rounding is applied to the exact binary value of ``x`` (so 0.125 rounds up
    but 0.1 + 0.2 keeps its representation error), which keeps output tables
    stable across platforms. Non-finite values render as ``NaN``, ``Infinity``
    and ``-Infinity``.
    """
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    q = Decimal(x).quantize(Decimal(1).scaleb(-dp), rounding=ROUND_HALF_UP)
    if q == 0:
        q = abs(q)
    return f"{q:.{dp}f}"


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def precision(tp: float, fp: float) -> float:
    denom = tp + fp
    return tp / denom if denom != 0 else math.nan


def recall(tp: float, fn: float) -> float:
    denom = tp + fn
    return tp / denom if denom != 0 else math.nan


def f_measure(p: float, r: float) -> float:
    denom = p + r
    if math.isnan(denom) or denom == 0:
        return math.nan
    return 2 * p * r / denom


def longest_prefix(a: str, b: str, skip: int = 0) -> int:
    """Length of the common prefix of ``a`` and ``b``, leaving ``skip`` bases spare."""
    limit = min(len(a), len(b)) - skip
    n = 0
    while n < limit and a[n] == b[n]:
        n += 1
    return n


def longest_suffix(a: str, b: str, skip: int = 0) -> int:
    """Length of the common suffix of ``a`` and ``b``, leaving ``skip`` bases spare."""
    limit = min(len(a), len(b)) - skip
    n = 0
    while n < limit and a[len(a) - 1 - n] == b[len(b) - 1 - n]:
        n += 1
    return n


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def zipped_name(path: str | Path, compress: bool) -> Path:
    p = Path(path)
    if compress and not p.name.endswith(GZ_SUFFIX):
        return p.with_name(p.name + GZ_SUFFIX)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(GZ_SUFFIX):
        return gzip.open(p, mode, encoding="utf-8")  # type: ignore[return-value]
    return open(p, mode, encoding="utf-8")


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)
