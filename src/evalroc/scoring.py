"""Score extraction: turn a record into the number ROC curves are swept over.

A score field is written as ``QUAL``, ``INFO.<name>``, ``FORMAT.<name>`` or
``DERIVED.<name>`` (type prefix case-insensitive). Any other bare name is read
as a FORMAT field, so ``GQ`` and ``FORMAT.GQ`` are equivalent.

Extraction never fails for an absent or unparsable value; it yields NaN and the
accumulator counts the record as unscored.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .models import FORMAT_GENOTYPE, MISSING_FIELD, EvalRecord, RecordHeader

logger = logging.getLogger(__name__)

DEFAULT_SCORE_FIELD = "GQ"
QUAL_FIELD = "QUAL"

_ZERO_SNAP = 1e-8


class ScoreFieldError(ValueError):
    """Raised for a score field that can never yield numbers."""


class SortOrder(Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"

    def key(self, score: Optional[float]) -> Tuple[bool, float]:
        """Sort key placing the best score first and missing scores last."""
        if score is None or math.isnan(score):
            return True, 0.0
        return False, (score if self is SortOrder.ASCENDING else -score)

    def at_least_as_good(self, score: float, target: float) -> bool:
        if self is SortOrder.ASCENDING:
            return score <= target
        return score >= target


def _to_float(value: Any) -> float:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or value == MISSING_FIELD:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _snap_zero(v: float) -> float:
    return 0.0 if abs(v) < _ZERO_SNAP else v


class ScoreExtractor(ABC):
    """Base strategy: where the score comes from and which end of it is best."""

    requires_sample = False

    def __init__(self, order: SortOrder = SortOrder.DESCENDING) -> None:
        self.order = order

    @property
    @abstractmethod
    def label(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def score(self, record: EvalRecord, sample: int) -> float:
        raise NotImplementedError

    def check_header(self, header: RecordHeader) -> None:
        pass

    def __str__(self) -> str:
        return self.label


class NullExtractor(ScoreExtractor):
    """Produces no scores; used when ROC output is disabled."""

    @property
    def label(self) -> str:
        return "NONE"

    def score(self, record: EvalRecord, sample: int) -> float:
        return math.nan


class QualExtractor(ScoreExtractor):
    @property
    def label(self) -> str:
        return QUAL_FIELD

    def score(self, record: EvalRecord, sample: int) -> float:
        return _to_float(record.qual)


class InfoExtractor(ScoreExtractor):
    def __init__(self, name: str, order: SortOrder = SortOrder.DESCENDING) -> None:
        super().__init__(order)
        self.name = name

    @property
    def label(self) -> str:
        return f"{self.name} (INFO)"

    def score(self, record: EvalRecord, sample: int) -> float:
        return _snap_zero(_to_float(record.info.get(self.name)))

    def check_header(self, header: RecordHeader) -> None:
        if self.name not in header.info:
            hint = f" (did you mean FORMAT.{self.name}?)" if self.name in header.formats else ""
            logger.warning("VCF header does not contain an INFO field named %s%s", self.name, hint)


class FormatExtractor(ScoreExtractor):
    requires_sample = True

    def __init__(self, name: str, order: SortOrder = SortOrder.DESCENDING) -> None:
        super().__init__(order)
        self.name = name

    @property
    def label(self) -> str:
        return f"{self.name} (FORMAT)"

    def score(self, record: EvalRecord, sample: int) -> float:
        return _snap_zero(_to_float(record.format_value(sample, self.name)))

    def check_header(self, header: RecordHeader) -> None:
        if self.name not in header.formats:
            hint = f" (did you mean INFO.{self.name}?)" if self.name in header.info else ""
            logger.warning("VCF header does not contain a FORMAT field named %s%s", self.name, hint)


# -----------------
# Derived annotations
# -----------------


@dataclass(frozen=True)
class DerivedAnnotation:
    """An annotation computed from a record rather than read from it."""

    name: str
    type: str
    is_format: bool
    description: str
    compute: Callable[[EvalRecord, int], Any]

    @property
    def numeric(self) -> bool:
        return self.type in ("Integer", "Float")


def _called_alleles(record: EvalRecord, sample: int) -> Optional[Tuple[int, ...]]:
    gt = record.format_value(sample, FORMAT_GENOTYPE)
    if gt is None:
        return None
    called = tuple(a for a in gt if a is not None)
    return called or None


def _an(record: EvalRecord, sample: int) -> Optional[int]:
    total = 0
    seen = False
    for s in range(len(record.samples)):
        called = _called_alleles(record, s)
        if called is not None:
            seen = True
            total += len(called)
    return total if seen else None


def _naa(record: EvalRecord, sample: int) -> Optional[int]:
    alts = [a for a in record.alts if a != MISSING_FIELD]
    return len(alts)


def _lal(record: EvalRecord, sample: int) -> Optional[int]:
    return max(len(a) for a in record.alleles if a != MISSING_FIELD)


def _depth(record: EvalRecord) -> Optional[float]:
    dp = record.info.get("DP")
    if dp is not None:
        return _to_float(dp)
    total = 0.0
    seen = False
    for s in record.samples:
        v = _to_float(s.get("DP"))
        if not math.isnan(v):
            seen = True
            total += v
    return total if seen else None


def _qd(record: EvalRecord, sample: int) -> Optional[float]:
    if record.qual is None:
        return None
    dp = _depth(record)
    if not dp or math.isnan(dp):
        return None
    return record.qual / dp


def _vaf(record: EvalRecord, sample: int) -> Optional[float]:
    ad = record.format_value(sample, "AD")
    if not isinstance(ad, (list, tuple)) or len(ad) < 2 or any(v is None for v in ad):
        return None
    total = sum(ad)
    if total == 0:
        return None
    return sum(ad[1:]) / total


def _gqd(record: EvalRecord, sample: int) -> Optional[float]:
    gq = _to_float(record.format_value(sample, "GQ"))
    dp = _to_float(record.format_value(sample, "DP"))
    if math.isnan(gq) or math.isnan(dp) or dp == 0:
        return None
    return gq / dp


def _zy(record: EvalRecord, sample: int) -> Optional[str]:
    called = _called_alleles(record, sample)
    if called is None:
        return None
    return "e" if len(set(called)) == 1 else "o"


def _pd(record: EvalRecord, sample: int) -> Optional[str]:
    gt = record.format_value(sample, FORMAT_GENOTYPE)
    if gt is None:
        return None
    return {1: "h", 2: "d"}.get(len(gt), "p")


DERIVED_ANNOTATIONS: Dict[str, DerivedAnnotation] = {
    a.name: a
    for a in (
        DerivedAnnotation("AN", "Integer", False, "Total number of alleles in called genotypes", _an),
        DerivedAnnotation("NAA", "Integer", False, "Number of alternative alleles", _naa),
        DerivedAnnotation("LAL", "Integer", False, "Length of the longest allele", _lal),
        DerivedAnnotation("QD", "Float", False, "QUAL divided by DP", _qd),
        DerivedAnnotation("VAF", "Float", True, "Variant allele fraction", _vaf),
        DerivedAnnotation("GQD", "Float", True, "GQ divided by DP", _gqd),
        DerivedAnnotation("ZY", "String", True, "Zygosity of sample (e = homozygous, o = heterozygous)", _zy),
        DerivedAnnotation("PD", "String", True, "Ploidy of sample (h = haploid, d = diploid, p = polyploid)", _pd),
    )
}


class DerivedExtractor(ScoreExtractor):
    def __init__(self, name: str, order: SortOrder = SortOrder.DESCENDING) -> None:
        super().__init__(order)
        key = name.upper()
        anno = DERIVED_ANNOTATIONS.get(key)
        if anno is None:
            raise ScoreFieldError(
                f'Unrecognized derived annotation "{key}", must be one of {list(DERIVED_ANNOTATIONS)}'
            )
        if not anno.numeric:
            raise ScoreFieldError(f"Cannot use derived annotation {key}, must be numeric")
        self.annotation = anno
        self.requires_sample = anno.is_format

    @property
    def label(self) -> str:
        return f"{self.annotation.name} (derived)"

    def score(self, record: EvalRecord, sample: int) -> float:
        return _to_float(self.annotation.compute(record, sample))


_FIELD_TYPES: Dict[str, Callable[[str, SortOrder], ScoreExtractor]] = {
    "INFO": InfoExtractor,
    "FORMAT": FormatExtractor,
    "DERIVED": DerivedExtractor,
}


def parse_score_field(spec: str, order: SortOrder = SortOrder.DESCENDING) -> ScoreExtractor:
    """Build the extractor for a score field specification.

    Raises
    ------
    ScoreFieldError
        For an unknown type prefix, an empty field name, or a derived
        annotation that is unknown or not numeric.
    """
    text = spec.strip()
    if not text:
        raise ScoreFieldError("Score field must not be empty")
    if text.upper() == QUAL_FIELD:
        return QualExtractor(order)
    if "." in text:
        prefix, name = text.split(".", 1)
        factory = _FIELD_TYPES.get(prefix.upper())
        if factory is None:
            raise ScoreFieldError(
                f"Unrecognized score field type {prefix!r}, must be one of {list(_FIELD_TYPES)}"
            )
        if not name:
            raise ScoreFieldError(f"Score field {spec!r} does not name a field")
        return factory(name, order)
    return FormatExtractor(text, order)
