from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

from .models import EvalRecord

SPANNING_DELETION = "*"


class VariantType(Enum):
    """Variant classes, declared from lowest to highest precedence."""

    NO_CALL = 0
    UNCHANGED = 1
    SNP = 2
    MNP = 3
    DELETION = 4
    INSERTION = 5
    INDEL = 6
    SV_BREAKEND = 7
    SV_SYMBOLIC = 8
    SV_MISSING = 9

    @property
    def is_indel_type(self) -> bool:
        return self in (VariantType.DELETION, VariantType.INSERTION, VariantType.INDEL)


def precedence(*types: VariantType) -> VariantType:
    """Combine the types of several called alleles into one."""
    a = types[0]
    for b in types[1:]:
        if a != b and a.is_indel_type and b.is_indel_type:
            a = VariantType.INDEL
        else:
            a = a if a.value > b.value else b
    return a


def symbolic_type(allele: str) -> Optional[VariantType]:
    if not allele:
        return None
    first, last = allele[0], allele[-1]
    if first == "<" or last == ">":
        return VariantType.SV_SYMBOLIC
    if first == SPANNING_DELETION or last == SPANNING_DELETION:
        return VariantType.SV_MISSING
    if first in "[]" or last in "[]":
        return VariantType.SV_BREAKEND
    return None


def _is_insertion_or_deletion(ref: str, alt: str) -> bool:
    # Only meaningful once unchanged, SNP and MNP have been ruled out.
    if not ref or not alt:
        return True
    short, long_ = (ref, alt) if len(ref) < len(alt) else (alt, ref)
    n = len(short)
    left = 0
    while left < n and short[left] == long_[left]:
        left += 1
    if left == n:
        return True
    right = 0
    while right < n and short[n - right - 1] == long_[len(long_) - right - 1]:
        right += 1
    return left + right >= n


def classify_alleles(ref: str, alt: str) -> VariantType:
    if ref == alt:
        return VariantType.UNCHANGED
    if len(ref) == 1 and len(alt) == 1 and alt != SPANNING_DELETION:
        return VariantType.SNP
    sv = symbolic_type(alt)
    if sv is not None:
        return sv
    if len(ref) == len(alt):
        return VariantType.MNP
    if _is_insertion_or_deletion(ref, alt):
        return VariantType.INSERTION if len(ref) < len(alt) else VariantType.DELETION
    return VariantType.INDEL


def classify_record(record: EvalRecord, gt: Sequence[int]) -> VariantType:
    """Type of the alleles called in ``gt`` relative to the record's REF."""
    called = [a for a in gt if a != -1]
    if not called:
        return VariantType.NO_CALL
    alts = [a for a in called if a != 0]
    if not alts:
        return VariantType.UNCHANGED
    alleles = record.alleles
    first = alts[0]
    result = classify_alleles(alleles[0], alleles[first])
    for a in alts[1:]:
        if a != first:
            result = precedence(result, classify_alleles(alleles[0], alleles[a]))
    return result
