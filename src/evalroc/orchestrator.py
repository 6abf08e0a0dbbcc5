from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import __version__
from .criteria import OperatingPointCriteria
from .filters import ALL, Filter
from .models import EvalRecord, RecordHeader
from .roc import RocAccumulator
from .scoring import NullExtractor, ScoreExtractor
from .utils import ensure_outdir, real_format, round_half_up

logger = logging.getLogger(__name__)

ALLELE_PREFIX = "allele_"
PHASING_FILE = "phasing.txt"


class RocEvaluator:
    """Routes classified baseline and call records into the ROC accumulators.

    A default (genotype-level) accumulator is always present. With
    ``dual_rocs`` a second accumulator counts allele-level matches as correct
    and writes its tables with the ``allele_`` prefix.

    When the baseline or call sample is absent (``-1``) filters that need a
    genotype are dropped. When the score needs a call sample and there is none,
    the default accumulator falls back to unscored ``ALL`` statistics and no
    ROC tables are written.
    """

    def __init__(
        self,
        extractor: ScoreExtractor,
        out_dir: str | Path,
        filters: Sequence[Filter] = (ALL,),
        criteria: Optional[OperatingPointCriteria] = None,
        baseline_sample: int = 0,
        call_sample: int = 0,
        compress: bool = False,
        emit_slope: bool = False,
        dual_rocs: bool = False,
        rescale_default: bool = True,
    ) -> None:
        self.out_dir = Path(out_dir)
        self.baseline_sample = baseline_sample
        self.call_sample = call_sample
        self.compress = compress
        self.emit_slope = emit_slope
        self.calls_outside = 0
        self.misphasings = 0
        self.correct_phasings = 0
        self.unphasable = 0

        requested = list(dict.fromkeys([ALL, *filters]))
        active = list(requested)
        no_sample_scores = call_sample == -1 and extractor.requires_sample
        if no_sample_scores:
            logger.warning(
                "During ALT comparison no ROC data will be produced, as a sample is required by the "
                "selected ROC score field: %s",
                extractor.label,
            )
        elif call_sample == -1 or baseline_sample == -1:
            active = [f for f in requested if not f.requires_genotype]
            if not isinstance(extractor, NullExtractor) and len(active) != len(requested):
                excluded = [f.name for f in requested if f.requires_genotype]
                logger.warning(
                    "During ALT comparison some ROC data files will not be produced: [%s], "
                    "producing ROC data for: [%s]",
                    ", ".join(excluded),
                    ", ".join(f.name for f in active),
                )

        self.allele_roc: Optional[RocAccumulator] = None
        if no_sample_scores:
            self.default_roc = RocAccumulator(NullExtractor(), criteria=criteria, rescale_default=rescale_default)
            self.default_roc.add_filter(ALL)
        else:
            self.default_roc = RocAccumulator(extractor, criteria=criteria, rescale_default=rescale_default)
            self.default_roc.add_filters(active)
            if dual_rocs:
                self.allele_roc = RocAccumulator(
                    extractor,
                    file_prefix=ALLELE_PREFIX,
                    criteria=criteria,
                    rescale_default=rescale_default,
                )
                self.allele_roc.add_filters(active)

    def check_header(self, header: RecordHeader) -> None:
        """Inspect the calls header once, before the first record."""
        self.default_roc.check_header(header)

    def note_baseline(self, record: EvalRecord, tp: bool, allele_match: bool, fn: bool) -> None:
        if not (tp or allele_match or fn):
            raise ValueError(f"Baseline record has no classification: {record}")
        self.default_roc.note_baseline(record, self.baseline_sample, tp)
        if self.allele_roc is not None:
            self.allele_roc.note_baseline(record, self.baseline_sample, tp or allele_match)

    def note_call(
        self,
        record: EvalRecord,
        tp_weight: float,
        fp_weight: float,
        raw_tp_weight: float,
        allele_match: bool = False,
    ) -> None:
        if allele_match:
            # Allele-level matches are genotype mismatches.
            self.default_roc.note_call(record, self.call_sample, 0, 1, 0)
        else:
            self.default_roc.note_call(record, self.call_sample, tp_weight, fp_weight, raw_tp_weight)
        if self.allele_roc is not None:
            self.allele_roc.note_call(record, self.call_sample, tp_weight, fp_weight, raw_tp_weight)

    def note_outside_call(self) -> None:
        self.calls_outside += 1

    def add_phasing(self, misphasings: int, correct: int, unphasable: int) -> None:
        self.misphasings += misphasings
        self.correct_phasings += correct
        self.unphasable += unphasable

    def write_phasing(self) -> Path:
        path = ensure_outdir(self.out_dir) / PHASING_FILE
        path.write_text(
            f"Correct phasings: {self.correct_phasings}\n"
            f"Incorrect phasings: {self.misphasings}\n"
            f"Unresolvable phasings: {self.unphasable}\n",
            encoding="utf-8",
        )
        return path

    def finish(self, version: str = __version__, command_line: Optional[str] = None) -> Dict[str, Any]:
        """Write every output and return a JSON-friendly summary of the run."""
        self.default_roc.missing_score_warning()
        if self.calls_outside > 0:
            total = self.default_roc.total(ALL)
            call_total = round_half_up(total.raw_tp + total.fp + self.calls_outside)
            logger.info(
                "Fraction of calls outside evaluation regions: %s (%d/%d)",
                real_format(self.calls_outside / call_total, 4),
                self.calls_outside,
                call_total,
            )
        phasing_path = self.write_phasing()
        roc_files: List[Path] = []
        if self.allele_roc is not None:
            roc_files += self.allele_roc.emit(
                self.out_dir, self.compress, self.emit_slope, version=version, command_line=command_line
            )
        if self.default_roc.roc_enabled:
            roc_files += self.default_roc.emit(
                self.out_dir, self.compress, self.emit_slope, version=version, command_line=command_line
            )
        summary_rows = self.default_roc.summary_rows()
        summary_text = self.default_roc.summarize(self.out_dir, summary_rows)

        rows = [
            {
                "threshold": r.threshold,
                "true_positives_baseline": r.tp_baseline,
                "true_positives_call": r.tp_call,
                "false_positives": r.fp,
                "false_negatives": r.fn,
                "precision": r.precision,
                "sensitivity": r.sensitivity,
                "f_measure": r.f_measure,
            }
            for r in summary_rows
        ]
        return {
            "version": version,
            "score_field": self.default_roc.field_label,
            "roc_enabled": self.default_roc.roc_enabled,
            "criteria": self.default_roc.criteria.name,
            "filters": [f.name for f in self.default_roc.filters],
            "summary": rows,
            "summary_text": summary_text,
            "ignored_variants": self.default_roc.ignored_variants,
            "calls_outside": self.calls_outside,
            "phasing": {
                "correct": self.correct_phasings,
                "incorrect": self.misphasings,
                "unresolvable": self.unphasable,
            },
            "files": {
                "roc": [str(p) for p in roc_files],
                "phasing": str(phasing_path),
            },
        }
