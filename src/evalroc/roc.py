"""Stratified ROC accumulation.

Each registered filter owns a bucket per distinct score. Buckets are swept best
score first when written, producing cumulative true/false positive counts per
threshold. Records without a usable score share one bucket that always sorts
last.

The accumulator is single-writer: feed it from one thread.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, TextIO, Tuple

from . import __version__
from .criteria import FMeasureCriteria, OperatingPointCriteria
from .filters import ALL, Filter
from .models import EvalRecord, RecordHeader, RocPoint, valid_gt
from .rocfile import BASE_COLUMNS, EXTRA_COLUMNS, RESCALED_SUFFIX, ROC_FORMAT_VERSION, write_slope
from .scoring import NullExtractor, ScoreExtractor
from .text_table import TextTable
from .utils import (
    ensure_outdir,
    f_measure,
    open_textmaybe_gzip,
    precision,
    real_format,
    recall,
    round_half_up,
    zipped_name,
)

logger = logging.getLogger(__name__)

SCORE_DP = 3
COUNT_DP = 2
METRICS_DP = 4

SUMMARY_FILE = "summary.txt"
SUMMARY_HEADER = (
    "Threshold",
    "True-pos-baseline",
    "True-pos-call",
    "False-pos",
    "False-neg",
    "Precision",
    "Sensitivity",
    "F-measure",
)

# Bucket key for records without a usable score.
NO_SCORE = None


@dataclass(frozen=True)
class SummaryRow:
    threshold: str
    tp_baseline: float
    tp_call: float
    fp: float
    fn: float
    precision: float
    sensitivity: float
    f_measure: float

    def cells(self) -> Tuple[str, ...]:
        return (
            self.threshold,
            str(round_half_up(self.tp_baseline)),
            str(round_half_up(self.tp_call)),
            str(round_half_up(self.fp)),
            str(round_half_up(self.fn)),
            real_format(self.precision, METRICS_DP),
            real_format(self.sensitivity, METRICS_DP),
            real_format(self.f_measure, METRICS_DP),
        )


def _summary_row(threshold: str, tp: float, fn: float, raw_tp: float, fp: float) -> SummaryRow:
    p = precision(raw_tp, fp)
    r = recall(tp, fn)
    return SummaryRow(threshold, tp, raw_tp, fp, fn, p, r, f_measure(p, r))


class RocAccumulator:
    """Collects baseline totals and scored call points per filter.

    Parameters
    ----------
    extractor:
        Where call scores come from; its sort order decides which end of the
        curve is written first.
    file_prefix:
        Prepended to every output file name (e.g. ``allele_``).
    default_filter:
        The filter whose rows feed the operating point and the summary.
    criteria:
        Operating point selection, maximum F-measure when omitted.
    rescale_default:
        Rescale decision for filters whose policy defers to the global default.
    """

    def __init__(
        self,
        extractor: ScoreExtractor,
        file_prefix: str = "",
        default_filter: Filter = ALL,
        criteria: Optional[OperatingPointCriteria] = None,
        rescale_default: bool = True,
    ) -> None:
        self.extractor = extractor
        self.file_prefix = file_prefix
        self.default_filter = default_filter
        self.criteria = criteria if criteria is not None else FMeasureCriteria()
        self.rescale_default = rescale_default
        self.ignored_variants = 0
        self._rocs: Dict[Filter, Dict[Optional[float], RocPoint]] = {}
        self._baseline_totals: Dict[Filter, float] = {}
        self._baseline_correct: Dict[Filter, float] = {}
        self._emitted: Set[Filter] = set()
        self._requires_gt = False

    @property
    def field_label(self) -> str:
        return self.extractor.label

    @property
    def roc_enabled(self) -> bool:
        return not isinstance(self.extractor, NullExtractor)

    @property
    def filters(self) -> List[Filter]:
        return list(self._rocs)

    def add_filter(self, f: Filter) -> None:
        self._rocs[f] = {}
        self._requires_gt |= f.requires_genotype

    def add_filters(self, filters: List[Filter]) -> None:
        for f in filters:
            self.add_filter(f)

    def check_header(self, header: RecordHeader) -> None:
        for f in self._rocs:
            f.check_header(header)
        self.extractor.check_header(header)

    def _check_open(self, f: Filter) -> None:
        if f in self._emitted:
            raise RuntimeError(f"ROC data for {f} has already been written")

    # -----------------
    # Accumulation
    # -----------------

    def note_baseline(self, record: EvalRecord, sample: int, correct: bool, weight: int = 1) -> None:
        """Count a baseline variant against every filter that accepts it."""
        gt = valid_gt(record, sample) if self._requires_gt else None
        for f in self._rocs:
            if f.accept(record, gt):
                self._check_open(f)
                self._baseline_totals[f] = self._baseline_totals.get(f, 0) + weight
                if correct:
                    self._baseline_correct[f] = self._baseline_correct.get(f, 0) + weight

    def note_call(
        self,
        record: EvalRecord,
        sample: int,
        tp_weight: float,
        fp_weight: float,
        raw_tp_weight: float,
    ) -> None:
        """Add a call's weights at its score to every filter that accepts it."""
        try:
            score = self.extractor.score(record, sample)
        except (IndexError, ValueError):
            score = math.nan
        if math.isnan(score) or math.isinf(score):
            self.ignored_variants += 1
            key = NO_SCORE
        else:
            key = score
        point = RocPoint(math.nan if key is NO_SCORE else key, tp_weight, fp_weight, raw_tp_weight)
        gt = valid_gt(record, sample) if self._requires_gt else None
        for f, points in self._rocs.items():
            if f.accept(record, gt):
                self._check_open(f)
                bucket = points.get(key)
                if bucket is None:
                    points[key] = point.copy()
                else:
                    bucket.add(point)

    # -----------------
    # Totals
    # -----------------

    def buckets(self, f: Filter) -> List[RocPoint]:
        """The filter's points, best score first, no-score bucket last."""
        points = self._rocs[f]
        return [points[k] for k in sorted(points, key=self.extractor.order.key)]

    def total(self, f: Filter) -> RocPoint:
        total = RocPoint()
        for point in self._rocs.get(f, {}).values():
            total.add(point)
        return total

    def baseline_total(self, f: Filter) -> float:
        return self._baseline_totals.get(f, 0)

    def baseline_correct_total(self, f: Filter) -> float:
        return self._baseline_correct.get(f, 0)

    def is_rescaled(self, f: Filter) -> bool:
        return f is not self.default_filter and f.rescale(self.rescale_default)

    def rescale_factor(self, f: Filter) -> float:
        """Scale applied to a filter's baseline true positives.

        For a rescaled filter this maps the call-side true positive total onto
        the baseline-side correct count, compensating for baseline and calls
        splitting the same event into different numbers of records.
        """
        if not self.is_rescaled(f):
            return 1.0
        tp = self.total(f).tp
        return self.baseline_correct_total(f) / tp if tp > 0 else 1.0

    # -----------------
    # Output
    # -----------------

    def _rows(self, f: Filter, total_baseline: float, extra: bool, scale: float) -> Iterator[List[str]]:
        cumulative = RocPoint()
        prev: Optional[str] = None
        score = "None"
        for point in self.buckets(f):
            score = "None" if math.isnan(point.threshold) else real_format(point.threshold, SCORE_DP)
            if prev is not None and score != prev:
                yield self._row(f, prev, total_baseline, cumulative, extra, scale)
            prev = score
            cumulative.add(point)
            cumulative.threshold = point.threshold
        if prev is not None or total_baseline > 0:
            yield self._row(f, score, total_baseline, cumulative, extra, scale)

    def _row(
        self,
        f: Filter,
        score: str,
        total_baseline: float,
        point: RocPoint,
        extra: bool,
        scale: float,
    ) -> List[str]:
        tp = point.tp * scale
        cells = [
            score,
            real_format(tp, COUNT_DP),
            real_format(point.fp, COUNT_DP),
            real_format(point.raw_tp, COUNT_DP),
        ]
        if extra:
            fn = total_baseline - tp
            p = precision(point.raw_tp, point.fp)
            r = recall(tp, fn)
            fm = f_measure(p, r)
            cells += [
                real_format(fn, COUNT_DP),
                real_format(p, METRICS_DP),
                real_format(r, METRICS_DP),
                real_format(fm, METRICS_DP),
            ]
            if f is self.default_filter and not math.isnan(point.threshold):
                self.criteria.consider(point, p, r, fm)
        return cells

    def _write_header(
        self,
        out: TextIO,
        f: Filter,
        total_baseline: float,
        total_call: int,
        extra: bool,
        rescaled: bool,
        version: str,
        command_line: Optional[str],
    ) -> None:
        out.write(f"#Version {version}, {ROC_FORMAT_VERSION}\n")
        if command_line is not None:
            out.write(f"#CL {command_line}\n")
        out.write(f"#selection: {f.name}{RESCALED_SUFFIX if rescaled else ''}\n")
        out.write(f"#total baseline variants: {round_half_up(total_baseline)}\n")
        out.write(f"#total call variants: {total_call}\n")
        out.write(f"#score field: {self.field_label}\n")
        columns = BASE_COLUMNS + (EXTRA_COLUMNS if extra else [])
        out.write("#" + "\t".join(columns) + "\n")

    def _curve_setup(self, f: Filter) -> Tuple[bool, float, int, bool, float]:
        rescale = self.is_rescaled(f)
        basis = f if rescale else self.default_filter
        total_baseline = self.baseline_total(basis)
        total = self.total(basis)
        total_call = round_half_up(total.raw_tp + total.fp)
        if rescale:
            extra = total_baseline > 0
            scale = self.rescale_factor(f)
        else:
            extra = f is self.default_filter and total_baseline > 0
            scale = 1.0
        return rescale, total_baseline, total_call, extra, scale

    def emit(
        self,
        out_dir: str | Path,
        compress: bool = False,
        emit_slope: bool = False,
        *,
        version: str = __version__,
        command_line: Optional[str] = None,
    ) -> List[Path]:
        """Write one ROC table per filter and return their paths.

        Each file is complete before the next is started. The default filter's
        rows are offered to the operating point criteria as they are written.
        """
        out_dir = ensure_outdir(out_dir)
        self.criteria.init()
        written: List[Path] = []
        for f in self._rocs:
            self._emitted.add(f)
            rescale, total_baseline, total_call, extra, scale = self._curve_setup(f)
            if rescale:
                logger.info(
                    "Representation bias correction factor for %s %s/%s = %s",
                    f,
                    round_half_up(self.baseline_correct_total(f)),
                    self.total(f).tp,
                    scale,
                )
            path = zipped_name(out_dir / (self.file_prefix + f.output_file_name), compress)
            with open_textmaybe_gzip(path, "wt") as out:
                self._write_header(out, f, total_baseline, total_call, extra, rescale, version, command_line)
                for cells in self._rows(f, total_baseline, extra, scale):
                    out.write("\t".join(cells) + "\n")
            written.append(path)
            if emit_slope:
                write_slope(path)
        return written

    def summary_rows(self) -> List[SummaryRow]:
        """Rows of the summary table: the selected threshold (if any), then totals.

        Empty when the default filter saw no baseline variants.
        """
        total_positives = self.baseline_total(self.default_filter)
        if total_positives <= 0:
            return []
        rows: List[SummaryRow] = []
        if self.roc_enabled:
            if self.default_filter not in self._emitted:
                self.criteria.init()
                _, total_baseline, _, extra, scale = self._curve_setup(self.default_filter)
                for _ in self._rows(self.default_filter, total_baseline, extra, scale):
                    pass
            best = self.criteria.cutpoint()
            if best is None:
                logger.warning(
                    "Could not select %s threshold from ROC data, only un-thresholded statistics will be "
                    "shown. Consider selecting a different scoring attribute.",
                    self.criteria.name,
                )
            else:
                logger.info("Selected score threshold using: %s", self.criteria.name)
                rows.append(
                    _summary_row(
                        real_format(best.threshold, SCORE_DP),
                        best.tp,
                        total_positives - best.tp,
                        best.raw_tp,
                        best.fp,
                    )
                )
        total = self.total(self.default_filter)
        rows.append(_summary_row("None", total.tp, total_positives - total.tp, total.raw_tp, total.fp))
        return rows

    def summarize(self, out_dir: str | Path, rows: Optional[List[SummaryRow]] = None) -> str:
        """Write ``summary.txt`` (with the file prefix), log it and return its text."""
        if rows is None:
            rows = self.summary_rows()
        if rows:
            table = TextTable()
            table.add_row(*SUMMARY_HEADER)
            table.add_separator()
            for row in rows:
                table.add_row(*row.cells())
            summary = str(table)
        else:
            summary = "0 total baseline variants, no summary statistics available\n"
        logger.info("\n%s", summary.rstrip("\n"))
        out_path = ensure_outdir(out_dir) / (self.file_prefix + SUMMARY_FILE)
        out_path.write_text(summary, encoding="utf-8")
        return summary

    def missing_score_warning(self) -> None:
        if self.roc_enabled and self.ignored_variants > 0:
            logger.warning(
                "There were %d variants not thresholded in ROC data files due to missing or invalid %s values.",
                self.ignored_variants,
                self.field_label,
            )
