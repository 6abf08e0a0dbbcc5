from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Flag, auto
from typing import List, Optional, Sequence, Tuple

from .models import MISSING_FIELD, EvalRecord, valid_gt
from .utils import longest_prefix, longest_suffix
from .variant_type import symbolic_type

logger = logging.getLogger(__name__)


class VariantStatus(Flag):
    """Classification flags accumulated on a variant while it is evaluated."""

    NONE = 0
    SKIPPED = auto()
    GT_MATCH = auto()
    ALLELE_MATCH = auto()
    NO_MATCH = auto()
    OUTSIDE_EVAL = auto()
    ANY_MATCH = auto()


@dataclass(frozen=True)
class Allele:
    """One allele placed on the reference.

    ``nt`` is ``None`` for an unknown (no-call) allele and ``""`` for a deletion.
    """

    chrom: str
    start: int
    end: int
    nt: Optional[str]

    @property
    def unknown(self) -> bool:
        return self.nt is None

    def clip(self, lead: int, trail: int) -> "Allele":
        if self.nt is None or (lead == 0 and trail == 0):
            return self
        return Allele(self.chrom, self.start + lead, self.end - trail, self.nt[lead : len(self.nt) - trail])


def allele_bounds(alleles: Sequence[Optional[Allele]]) -> Optional[Tuple[int, int]]:
    """Union of the intervals of the non-null alleles."""
    present = [a for a in alleles if a is not None]
    if not present:
        return None
    return min(a.start for a in present), max(a.end for a in present)


@functools.total_ordering
class Variant:
    """A locus plus the alleles it can replay, indexed by GT allele id + 1.

    Slot 0 is reserved for the missing allele (GT ``.``) and is always ``None``;
    slot 1 is the reference. A ``None`` allele elsewhere has been removed from
    the variant and takes no part in replay.
    """

    def __init__(
        self,
        variant_id: int,
        chrom: str,
        alleles: Sequence[Optional[Allele]],
        phased: bool = False,
    ) -> None:
        alleles = list(alleles)
        if len(alleles) < 2 or alleles[0] is not None:
            raise ValueError("Variant alleles must start with the missing-allele slot followed by REF")
        bounds = allele_bounds(alleles)
        if bounds is None:
            raise ValueError("Variant must have at least one allele")
        self.id = variant_id
        self.chrom = chrom
        self.start, self.end = bounds
        self.phased = phased
        self._alleles: List[Optional[Allele]] = alleles
        self._status = VariantStatus.NONE
        self._trimmed = False

    @property
    def num_alleles(self) -> int:
        return len(self._alleles) - 1

    @property
    def status(self) -> VariantStatus:
        return self._status

    def allele(self, allele_id: int) -> Optional[Allele]:
        return None if allele_id < -1 else self._alleles[allele_id + 1]

    def nt(self, allele_id: int) -> Optional[str]:
        a = self.allele(allele_id)
        return None if a is None else a.nt

    def set_status(self, status: VariantStatus) -> None:
        self._status |= status

    def has_status(self, status: VariantStatus) -> bool:
        return bool(self._status & status)

    def overlaps(self, other: "Variant") -> bool:
        return self.chrom == other.chrom and self.start < other.end and other.start < self.end

    def allele_str(self, allele_id: int) -> str:
        if allele_id < 0:
            return MISSING_FIELD
        a = self.allele(allele_id)
        if a is None:
            return "*"
        pos = ""
        if a.start != self.start or a.end != self.end:
            pos = f"<{a.start + 1}-{a.end + 1}>"
        return pos + ("?" if a.unknown else a.nt)

    def _replayable_alts(self) -> List[Tuple[int, Allele]]:
        out = []
        for i in range(2, len(self._alleles)):
            a = self._alleles[i]
            if a is not None and not a.unknown:
                out.append((i, a))
        return out

    def trim(self, left_first: bool = True) -> None:
        """Strip reference context shared between REF and each ALT.

        Each ALT loses its own common prefix/suffix with REF (prefix first when
        ``left_first``). REF loses the context common to every ALT, so the locus
        shrinks to the union of the trimmed alleles.
        """
        if self._trimmed:
            raise RuntimeError(f"Variant {self} has already been trimmed")
        self._trimmed = True
        ref = self._alleles[1]
        leads: List[int] = []
        trails: List[int] = []
        for i, a in self._replayable_alts():
            if left_first:
                lead = longest_prefix(ref.nt, a.nt)
                trail = longest_suffix(ref.nt, a.nt, lead)
            else:
                trail = longest_suffix(ref.nt, a.nt)
                lead = longest_prefix(ref.nt, a.nt, trail)
            self._alleles[i] = a.clip(lead, trail)
            leads.append(lead)
            trails.append(trail)
        if leads:
            self._alleles[1] = ref.clip(min(leads), min(trails))
        self.start, self.end = allele_bounds(self._alleles)

    def available_trim(self) -> Tuple[int, int]:
        """Largest prefix and suffix any ALT shares with REF."""
        ref = self._alleles[1].nt
        lead = 0
        trail = 0
        for _, a in self._replayable_alts():
            lead = max(lead, longest_prefix(ref, a.nt))
            trail = max(trail, longest_suffix(ref, a.nt))
        return lead, trail

    def _key(self) -> Tuple[str, int, int]:
        return self.chrom, self.start, self.end

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Variant):
            return NotImplemented
        return self is other or self._key() == other._key()

    def __lt__(self, other: "Variant") -> bool:
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash((self.chrom, self.start))

    def __str__(self) -> str:
        alleles = ":".join(self.allele_str(i) for i in range(self.num_alleles))
        return f"{self.chrom}:{self.start + 1}-{self.end + 1} ({alleles})"

    __repr__ = __str__


class GtIdVariant(Variant):
    """A variant carrying the allele ids of one sample's genotype."""

    def __init__(
        self,
        variant_id: int,
        chrom: str,
        alleles: Sequence[Optional[Allele]],
        gt: Sequence[int],
        phased: bool = False,
    ) -> None:
        super().__init__(variant_id, chrom, alleles, phased)
        if not gt:
            raise ValueError("Genotype must contain at least one allele id")
        self.gt: Tuple[int, ...] = tuple(gt)

    @property
    def allele_a(self) -> int:
        return self.gt[0]

    @property
    def allele_b(self) -> int:
        return self.gt[1] if len(self.gt) > 1 else self.gt[0]

    @classmethod
    def from_record(cls, record: EvalRecord, sample: int, variant_id: int) -> Optional["GtIdVariant"]:
        """Build the variant for ``sample``, keeping only REF and the called ALTs.

        Returns ``None`` when the sample calls no ALT allele.
        """
        gt = valid_gt(record, sample)
        used = {a for a in gt if a > 0}
        if not used:
            return None
        alleles: List[Optional[Allele]] = [None, Allele(record.chrom, record.pos, record.end, record.ref)]
        for i, alt in enumerate(record.alts, start=1):
            if i not in used or alt == MISSING_FIELD:
                alleles.append(None)
            elif symbolic_type(alt) is not None:
                alleles.append(Allele(record.chrom, record.pos, record.end, None))
            else:
                alleles.append(Allele(record.chrom, record.pos, record.end, alt))
        phased = bool(record.phased[sample]) if sample < len(record.phased) else False
        return cls(variant_id, record.chrom, alleles, gt, phased=phased)


class OrientedVariant:
    """A genotype variant with its alleles assigned to specific haplotypes."""

    def __init__(
        self,
        variant: GtIdVariant,
        is_allele_a: bool,
        allele_id: int,
        other_allele_id: Optional[int] = None,
        weight: float = 1.0,
    ) -> None:
        self.variant = variant
        self.is_allele_a = is_allele_a
        self.allele_id = allele_id
        self.other_allele_id = allele_id if other_allele_id is None else other_allele_id
        self.weight = weight

    @classmethod
    def haploid(cls, variant: GtIdVariant, allele_id: int) -> "OrientedVariant":
        return cls(variant, True, allele_id)

    @property
    def id(self) -> int:
        return self.variant.id

    @property
    def chrom(self) -> str:
        return self.variant.chrom

    @property
    def start(self) -> int:
        return self.variant.start

    @property
    def end(self) -> int:
        return self.variant.end

    @property
    def phased(self) -> bool:
        return self.variant.phased

    def set_status(self, status: VariantStatus) -> None:
        self.variant.set_status(status)

    def has_status(self, status: VariantStatus) -> bool:
        return self.variant.has_status(status)

    def __str__(self) -> str:
        sign = "+" if self.is_allele_a else "-"
        alleles = str(self.allele_id)
        if self.other_allele_id != self.allele_id:
            alleles += f":{self.other_allele_id}"
        return f"{self.variant}{sign}{alleles}"

    __repr__ = __str__


UNPHASED = "unphased"
PHASED = "phase-obeying"
PHASE_INVERTED = "phase-inverting"
SQUASH = "squash"
ALLELE_GT = "allele-gt"


def orientations(variant: GtIdVariant, mode: str = UNPHASED) -> List[OrientedVariant]:
    """Haplotype orientations of ``variant`` a path search would try."""
    a, b = variant.allele_a, variant.allele_b
    if mode in (UNPHASED, PHASED, PHASE_INVERTED):
        if a == b:
            return [OrientedVariant.haploid(variant, a)]
        if mode != UNPHASED and variant.phased:
            if mode == PHASE_INVERTED:
                return [OrientedVariant(variant, False, b, a)]
            return [OrientedVariant(variant, True, a, b)]
        return [OrientedVariant(variant, True, a, b), OrientedVariant(variant, False, b, a)]

    if mode not in (SQUASH, ALLELE_GT):
        raise ValueError(f"Unknown orientation mode: {mode}")
    a_var = a > 0 and variant.allele(a) is not None
    b_var = b > 0 and variant.allele(b) is not None
    if not (a_var or b_var):
        raise ValueError(f"Variant {variant} has no replayable ALT allele")
    la = a if a_var else b
    lb = b if b_var else a
    if mode == SQUASH:
        if la == lb:
            return [OrientedVariant.haploid(variant, la)]
        return [OrientedVariant.haploid(variant, la), OrientedVariant.haploid(variant, lb)]
    if la == lb:
        return [
            OrientedVariant(variant, True, 0, la),
            OrientedVariant(variant, True, la, 0),
            OrientedVariant.haploid(variant, la),
        ]
    return [
        OrientedVariant(variant, True, 0, la),
        OrientedVariant(variant, True, 0, lb),
        OrientedVariant(variant, True, la, 0),
        OrientedVariant(variant, True, lb, 0),
        OrientedVariant(variant, True, la, lb),
        OrientedVariant(variant, True, lb, la),
    ]


def trim_overlapping(variants: Sequence[Variant]) -> None:
    """Trim a position-sorted list of variants, choosing the trim side per variant.

    An isolated variant loses both shared prefix and suffix. A variant that
    overlaps neighbours, and could trim on either side, trims first on the side
    that removes more of its pairwise overlaps (suffix first on a tie).

    The neighbourhood is a window advanced monotonically over the sorted list,
    so cost is linear for local overlaps but degrades towards quadratic when
    many variants all overlap each other.
    """
    n = len(variants)
    first = 0
    last = 0
    for v, current in enumerate(variants):
        while last < n and (last <= v or current.overlaps(variants[last])):
            last += 1
        while first < v and not current.overlaps(variants[first]):
            first += 1
        if first == v and last == v + 1:
            current.trim()
            continue

        lead, trail = current.available_trim()
        if lead == 0 or trail == 0:
            current.trim()
            continue

        l_count = 0
        r_count = 0
        overlapped = 0
        for i in range(first, last):
            if i == v:
                continue
            other = variants[i]
            left_overlap = other.end - current.start
            right_overlap = current.end - other.start
            if left_overlap <= 0 and right_overlap <= 0:
                continue
            overlapped += 1
            if 0 < left_overlap <= lead:
                l_count += 1
            if 0 < right_overlap < trail:
                r_count += 1
        current.trim(l_count > r_count)
        remaining = overlapped - max(l_count, r_count)
        if remaining > 0:
            logger.debug(
                "After overlap trimming %s, %d overlaps remain (%d resolved)",
                current,
                remaining,
                max(l_count, r_count),
            )
