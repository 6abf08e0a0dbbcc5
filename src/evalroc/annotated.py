"""Replay of already-annotated evaluation VCFs.

Two annotation layouts are recognised: the vcfeval combined layout (INFO
``BASE`` and ``CALL`` statuses, optionally ``CALL_WEIGHT``, with ``BASELINE``
and ``CALLS`` samples) and the GA4GH layout (FORMAT ``BD`` decisions on a
truth and a query sample).
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Union

import pysam
from tqdm import tqdm

from .allele_accumulator import AlleleAccumulator, Classified
from .models import EvalRecord, RecordHeader, VcfFormatError
from .orchestrator import RocEvaluator
from .phasing import MatchedPath, count_misphasings
from .variant import PHASED, GtIdVariant, OrientedVariant, VariantStatus, orientations, trim_overlapping
from .vcfio import header_from_pysam, record_from_pysam

logger = logging.getLogger(__name__)

INFO_BASE = "BASE"
INFO_CALL = "CALL"
INFO_CALL_WEIGHT = "CALL_WEIGHT"
SAMPLE_BASELINE = "BASELINE"
SAMPLE_CALLS = "CALLS"

STATUS_TP = "TP"
STATUS_FN = "FN"
STATUS_FN_CA = "FN_CA"
STATUS_FP = "FP"
STATUS_FP_CA = "FP_CA"
STATUS_OUTSIDE = "OUT"
STATUS_HARD = "HARD"
STATUS_IGNORED = "IGN"

FORMAT_DECISION = "BD"
TRUTH_SAMPLE_INDEX = 0
QUERY_SAMPLE_INDEX = 1
DECISION_TP = "TP"
DECISION_FN = "FN"
DECISION_FP = "FP"
DECISION_NONE = "N"
DECISION_UNKNOWN = "UNK"

LAYOUT_VCFEVAL = "vcfeval"
LAYOUT_GA4GH = "ga4gh"

_BASE_STATUSES = {STATUS_TP, STATUS_FN, STATUS_FN_CA, STATUS_OUTSIDE, STATUS_HARD, STATUS_IGNORED}
_CALL_STATUSES = {STATUS_TP, STATUS_FP, STATUS_FP_CA, STATUS_OUTSIDE, STATUS_HARD, STATUS_IGNORED}
_DECISIONS = {DECISION_TP, DECISION_FN, DECISION_FP, DECISION_NONE, DECISION_UNKNOWN}


@dataclass(frozen=True)
class AnnotationLayout:
    """Where the evaluation annotations of a VCF live."""

    kind: str
    baseline_sample: int
    call_sample: int


@dataclass
class ReplayStats:
    """Counts of the annotations seen while replaying one VCF."""

    path: str
    kind: str
    records: int = 0
    baseline: Dict[str, int] = field(default_factory=dict)
    calls: Dict[str, int] = field(default_factory=dict)


def _sample_or_first(header: RecordHeader, name: str) -> int:
    index = header.sample_index(name)
    return 0 if index == -1 else index


def detect_layout(header: RecordHeader) -> AnnotationLayout:
    """Recognise vcfeval INFO annotations or GA4GH ``BD`` decisions.

    Raises
    ------
    VcfFormatError
        If the header declares neither.
    """
    if INFO_BASE in header.info or INFO_CALL in header.info:
        return AnnotationLayout(
            LAYOUT_VCFEVAL,
            _sample_or_first(header, SAMPLE_BASELINE),
            _sample_or_first(header, SAMPLE_CALLS),
        )
    if FORMAT_DECISION in header.formats:
        return AnnotationLayout(LAYOUT_GA4GH, TRUTH_SAMPLE_INDEX, QUERY_SAMPLE_INDEX)
    raise VcfFormatError(
        f"VCF header declares no evaluation annotations (INFO {INFO_BASE}/{INFO_CALL} or FORMAT {FORMAT_DECISION})"
    )


def _first(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else None
    return None if value is None else str(value)


def _call_weight(record: EvalRecord) -> float:
    value = record.info.get(INFO_CALL_WEIGHT)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return 1.0
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return 1.0
    return 1.0 if weight != weight else weight


class _Replayer:
    def __init__(self, evaluator: RocEvaluator) -> None:
        self.evaluator = evaluator
        self.warned: Set[str] = set()

    def _unknown(self, field_name: str, status: str) -> None:
        key = f"{field_name}={status}"
        if key not in self.warned:
            self.warned.add(key)
            logger.warning("Ignoring unrecognized %s status: %s", field_name, status)

    def baseline(self, record: EvalRecord, status: str) -> None:
        if status == STATUS_TP:
            self.evaluator.note_baseline(record, True, False, False)
        elif status == STATUS_FN:
            self.evaluator.note_baseline(record, False, False, True)
        elif status == STATUS_FN_CA:
            self.evaluator.note_baseline(record, False, True, False)
        elif status not in _BASE_STATUSES:
            self._unknown(INFO_BASE, status)

    def call(self, record: EvalRecord, status: str) -> None:
        if status == STATUS_TP:
            self.evaluator.note_call(record, _call_weight(record), 0, 1)
        elif status == STATUS_FP:
            self.evaluator.note_call(record, 0, 1, 0)
        elif status == STATUS_FP_CA:
            self.evaluator.note_call(record, _call_weight(record), 0, 1, allele_match=True)
        elif status == STATUS_OUTSIDE:
            self.evaluator.note_outside_call()
        elif status not in _CALL_STATUSES:
            self._unknown(INFO_CALL, status)

    def decision(self, record: EvalRecord, sample: int, is_truth: bool) -> Optional[str]:
        if sample >= len(record.samples):
            return None
        decision = _first(record.samples[sample].get(FORMAT_DECISION))
        if decision is None:
            return None
        if is_truth and decision == DECISION_TP:
            self.evaluator.note_baseline(record, True, False, False)
        elif is_truth and decision == DECISION_FN:
            self.evaluator.note_baseline(record, False, False, True)
        elif not is_truth and decision == DECISION_TP:
            self.evaluator.note_call(record, 1, 0, 1)
        elif not is_truth and decision == DECISION_FP:
            self.evaluator.note_call(record, 0, 1, 0)
        elif decision not in _DECISIONS:
            self._unknown(FORMAT_DECISION, decision)
        return decision


def load_annotated(
    path: str | Path,
    evaluator: RocEvaluator,
    *,
    layout: Optional[AnnotationLayout] = None,
    progress: bool = False,
) -> ReplayStats:
    """Replay the annotations of an evaluated VCF into ``evaluator``.

    The evaluator's baseline and call sample indices are set from the layout
    (detected from the header when not given) before any record is fed.

    Returns
    -------
    ReplayStats
        Per-status counts for the file.
    """
    path = Path(path)
    replayer = _Replayer(evaluator)
    phasing = _PhasingCollector(evaluator)
    base_counts: Counter = Counter()
    call_counts: Counter = Counter()
    n = 0
    with pysam.VariantFile(str(path)) as vcf:
        header = header_from_pysam(vcf.header)
        if layout is None:
            layout = detect_layout(header)
        logger.info("VCF file %s looks to contain %s annotations", path, layout.kind)
        if (
            layout.kind == LAYOUT_VCFEVAL
            and evaluator.default_roc.extractor.requires_sample
            and layout.baseline_sample == 0
            and layout.call_sample == 0
            and len(header.samples) > 1
        ):
            logger.warning("VCF file %s contains multiple samples, assuming first", path)
        evaluator.baseline_sample = layout.baseline_sample
        evaluator.call_sample = layout.call_sample

        it: Iterable[pysam.VariantRecord] = vcf
        if progress:
            it = tqdm(it, unit="record", desc=f"Replaying {path.name}")
        for rec in it:
            n += 1
            record = record_from_pysam(rec)
            if layout.kind == LAYOUT_GA4GH:
                for sample, is_truth, counts in (
                    (TRUTH_SAMPLE_INDEX, True, base_counts),
                    (QUERY_SAMPLE_INDEX, False, call_counts),
                ):
                    decision = replayer.decision(record, sample, is_truth)
                    if decision is not None:
                        counts[decision] += 1
                continue
            base = _first(record.info.get(INFO_BASE))
            if base is not None:
                base_counts[base] += 1
                replayer.baseline(record, base)
            call = _first(record.info.get(INFO_CALL))
            if call is not None:
                call_counts[call] += 1
                replayer.call(record, call)
            phasing.add(record, base, call)
        phasing.flush()

    return ReplayStats(
        path=str(path),
        kind=layout.kind,
        records=n,
        baseline=dict(base_counts),
        calls=dict(call_counts),
    )


# -----------------
# Phasing from annotated output
# -----------------


class _PhasingCollector:
    """Builds one matched path per contig from records where baseline and call both match.

    The baseline defines the haplotypes: every baseline variant is oriented
    allele-A first, and a matched call is allele-A oriented when its genotype
    lists the alleles in the baseline's order. Each record closes its own sync
    region.
    """

    def __init__(self, evaluator: RocEvaluator) -> None:
        self.evaluator = evaluator
        self.contig: Optional[str] = None
        self.path = MatchedPath()
        self._next_id = 0

    def _variant(self, record: EvalRecord, sample: int) -> Optional[GtIdVariant]:
        self._next_id += 1
        try:
            return GtIdVariant.from_record(record, sample, self._next_id)
        except VcfFormatError as e:
            logger.debug("Record not used for phasing: %s", e)
            return None

    def add(self, record: EvalRecord, base: Optional[str], call: Optional[str]) -> None:
        if record.chrom != self.contig:
            self.flush()
            self.contig = record.chrom
        if base != STATUS_TP or call != STATUS_TP:
            return
        bv = self._variant(record, self.evaluator.baseline_sample)
        cv = self._variant(record, self.evaluator.call_sample)
        if bv is None or cv is None:
            return
        same_order = cv.gt == bv.gt
        self.path.baseline_included.append(OrientedVariant(bv, True, bv.allele_a, bv.allele_b))
        self.path.called_included.append(
            OrientedVariant(cv, same_order, cv.allele_a if same_order else cv.allele_b)
        )
        self.path.sync_points.append(record.end)

    def flush(self) -> None:
        if self.path.sync_points:
            result = count_misphasings(self.path)
            self.evaluator.add_phasing(result.misphasings, result.correct, result.unphasable)
        self.path = MatchedPath()


# -----------------
# Population alleles from annotated output
# -----------------


def _loaded_variant(
    record: EvalRecord, sample: int, status: Optional[str], included: str, variant_id: int
) -> Union[OrientedVariant, GtIdVariant, None]:
    if status is None or status in (STATUS_OUTSIDE, STATUS_IGNORED):
        return None
    try:
        variant = GtIdVariant.from_record(record, sample, variant_id)
    except VcfFormatError as e:
        logger.debug("Record not loaded: %s", e)
        return None
    if variant is None:
        return None
    if status == STATUS_HARD:
        variant.set_status(VariantStatus.SKIPPED)
    elif status == included:
        return orientations(variant, PHASED)[0]
    return variant


def replay_alleles(
    path: str | Path,
    accumulator: AlleleAccumulator,
    *,
    progress: bool = False,
) -> ReplayStats:
    """Feed the baseline and call streams of a combined annotated VCF into ``accumulator``.

    Loaded variants are trimmed per contig before they are classified, so the
    reported statuses describe the trimmed loci.
    """
    path = Path(path)
    baseline: List[Classified] = []
    calls: List[Classified] = []
    pending_b: List[GtIdVariant] = []
    pending_c: List[GtIdVariant] = []
    base_counts: Counter = Counter()
    call_counts: Counter = Counter()
    n = 0

    def _trim_pending() -> None:
        trim_overlapping(sorted(pending_b))
        trim_overlapping(sorted(pending_c))
        pending_b.clear()
        pending_c.clear()

    with pysam.VariantFile(str(path)) as vcf:
        header = header_from_pysam(vcf.header)
        layout = detect_layout(header)
        if layout.kind != LAYOUT_VCFEVAL:
            raise VcfFormatError(f"Allele accumulation needs INFO {INFO_BASE}/{INFO_CALL} annotations: {path}")
        it: Iterable[pysam.VariantRecord] = vcf
        if progress:
            it = tqdm(it, unit="record", desc=f"Loading {path.name}")
        contig: Optional[str] = None
        for rec in it:
            n += 1
            record = record_from_pysam(rec)
            if record.chrom != contig:
                _trim_pending()
                contig = record.chrom
            base = _first(record.info.get(INFO_BASE))
            call = _first(record.info.get(INFO_CALL))
            if base is not None:
                base_counts[base] += 1
                bv = _loaded_variant(record, layout.baseline_sample, base, STATUS_TP, n)
                baseline.append((record, bv))
                if bv is not None:
                    pending_b.append(bv.variant if isinstance(bv, OrientedVariant) else bv)
            if call is not None:
                call_counts[call] += 1
                cv = _loaded_variant(record, layout.call_sample, call, STATUS_TP, n)
                calls.append((record, cv))
                if cv is not None:
                    pending_c.append(cv.variant if isinstance(cv, OrientedVariant) else cv)
        _trim_pending()

    accumulator.process(baseline, calls)
    return ReplayStats(
        path=str(path),
        kind=layout.kind,
        records=n,
        baseline=dict(base_counts),
        calls=dict(call_counts),
    )
