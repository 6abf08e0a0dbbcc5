from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

MISSING_FIELD = "."
FORMAT_GENOTYPE = "GT"


class VcfFormatError(ValueError):
    """A record is missing data the evaluation requires (GT, sample)."""


@dataclass(frozen=True)
class RecordHeader:
    """The parts of a VCF header the evaluation consults.

    Attributes
    ----------
    info:
        INFO id -> declared type (``Integer``, ``Float``, ``String``, ``Flag``...).
    formats:
        FORMAT id -> declared type.
    samples:
        Sample names in column order.
    contigs:
        Contig name -> length (``None`` when unknown).
    """

    info: Dict[str, str] = field(default_factory=dict)
    formats: Dict[str, str] = field(default_factory=dict)
    samples: Tuple[str, ...] = ()
    contigs: Dict[str, Optional[int]] = field(default_factory=dict)

    def sample_index(self, name: Optional[str]) -> int:
        """Column index of ``name``, or -1 when absent."""
        if name is None or name not in self.samples:
            return -1
        return self.samples.index(name)


@dataclass
class EvalRecord:
    """One VCF record as seen by the scoring engine.

    Coordinates are 0-based half-open. ``samples`` holds per-sample FORMAT values;
    ``GT`` is a tuple of allele indices with ``None`` for a missing allele.
    Records are mutable so population-allele rewriting can edit ALTs and INFO.
    """

    chrom: str
    pos: int
    ref: str
    alts: List[str] = field(default_factory=list)
    qual: Optional[float] = None
    id: Optional[str] = None
    filters: List[str] = field(default_factory=list)
    info: Dict[str, Any] = field(default_factory=dict)
    samples: List[Dict[str, Any]] = field(default_factory=list)
    phased: List[bool] = field(default_factory=list)
    sample_names: List[str] = field(default_factory=list)

    @property
    def end(self) -> int:
        return self.pos + len(self.ref)

    @property
    def alleles(self) -> List[str]:
        return [self.ref] + list(self.alts)

    def format_value(self, sample: int, key: str) -> Any:
        """FORMAT value for ``sample``; raises IndexError for a bad sample index."""
        if sample < 0:
            raise IndexError(f"Invalid sample index {sample}")
        return self.samples[sample].get(key)

    def add_info(self, key: str, value: str) -> None:
        """Append ``value`` to a multi-valued INFO field."""
        current = self.info.get(key)
        if isinstance(current, list):
            current.append(value)
        elif current is None or current is True:
            self.info[key] = [value]
        else:
            values = list(current) if isinstance(current, tuple) else [current]
            self.info[key] = values + [value]

    def __str__(self) -> str:
        alts = ",".join(self.alts) if self.alts else MISSING_FIELD
        return f"{self.chrom}\t{self.pos + 1}\t{self.id or MISSING_FIELD}\t{self.ref}\t{alts}"


def valid_gt(record: EvalRecord, sample: int) -> Tuple[int, ...]:
    """Return the GT of ``sample`` as allele ids, with -1 for a missing allele."""
    if sample < 0 or sample >= len(record.samples):
        raise VcfFormatError(f"Invalid sample number {sample}, record: {record}")
    gt = record.samples[sample].get(FORMAT_GENOTYPE)
    if gt is None:
        raise VcfFormatError(f"VCF record does not contain GT field, record: {record}")
    ids = tuple(-1 if a is None else int(a) for a in gt)
    n_alleles = len(record.alts) + 1
    if not ids or any(a < -1 or a >= n_alleles for a in ids):
        raise VcfFormatError(f"VCF record GT contains allele ID out of range, record: {record}")
    return ids


def is_homozygous(gt: Tuple[int, ...]) -> bool:
    return len(gt) == 1 or gt[0] == gt[1]


def is_hom_ref(gt: Tuple[int, ...]) -> bool:
    return all(a == 0 for a in gt)


def is_hom_alt(gt: Tuple[int, ...]) -> bool:
    return is_homozygous(gt) and not is_hom_ref(gt)


def is_het(gt: Tuple[int, ...]) -> bool:
    return len(gt) == 2 and gt[0] != gt[1]


@dataclass
class RocPoint:
    """Weighted counts at one score threshold (NaN = no score)."""

    threshold: float = math.nan
    tp: float = 0.0
    fp: float = 0.0
    raw_tp: float = 0.0

    def add(self, other: "RocPoint") -> None:
        self.tp += other.tp
        self.fp += other.fp
        self.raw_tp += other.raw_tp

    def copy(self) -> "RocPoint":
        return RocPoint(self.threshold, self.tp, self.fp, self.raw_tp)
