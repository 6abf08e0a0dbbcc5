"""Phasing correctness over a matched path.

Calls are walked sync region by sync region. Within a run of phased calls, a
change of call orientation must coincide with a change of baseline orientation
(and vice versa); each included phased call continuing a run is scored as a
correct phasing or a misphasing. Regions whose baseline section is not
consistently phased cannot be judged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from .variant import OrientedVariant, Variant


@dataclass
class MatchedPath:
    """The variants selected by a haplotype match, in start order.

    ``sync_points`` are the 0-based positions where baseline and call
    haplotypes were in agreement; each marks the end of a sync region.
    """

    baseline_included: List[OrientedVariant] = field(default_factory=list)
    baseline_excluded: List[Variant] = field(default_factory=list)
    called_included: List[OrientedVariant] = field(default_factory=list)
    called_excluded: List[Variant] = field(default_factory=list)
    sync_points: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class PhasingResult:
    misphasings: int = 0
    correct: int = 0
    unphasable: int = 0


@dataclass(frozen=True)
class _Summary:
    start: int
    phased: bool
    included: bool
    orientation: bool

    @property
    def phase(self) -> bool:
        if not self.phased:
            raise ValueError("Unphased variant has no phase")
        return self.orientation


def _merge_by_start(
    included: Sequence[OrientedVariant], excluded: Sequence[Variant]
) -> Iterator[_Summary]:
    """Interleave included and excluded variants by start; included wins ties."""
    i = j = 0
    while i < len(included) or j < len(excluded):
        if i >= len(included) or (j < len(excluded) and excluded[j].start < included[i].start):
            v = excluded[j]
            j += 1
            yield _Summary(v.start, v.phased, False, False)
        else:
            ov = included[i]
            i += 1
            yield _Summary(ov.start, ov.phased, True, ov.is_allele_a)


def _group_in_phase(group: Sequence[_Summary]) -> bool:
    """True when every member is phased with the same orientation (or the group is empty)."""
    if not group:
        return True
    if not all(v.phased for v in group):
        return False
    return len({v.phase for v in group}) == 1


def count_misphasings(path: MatchedPath) -> PhasingResult:
    baseline = _merge_by_start(path.baseline_included, path.baseline_excluded)
    calls = _merge_by_start(path.called_included, path.called_excluded)

    misphasings = correct = unphasable = 0
    base_is_phased = False
    base_phase = False
    call_is_phased = False
    call_phase = False
    base: Optional[_Summary] = None
    call: Optional[_Summary] = None

    for pos in path.sync_points:
        baseline_section: List[_Summary] = []
        while True:
            if base is not None and base.start < pos:
                baseline_section.append(base)
                base = next(baseline, None)
            if base is None:
                base = next(baseline, None)
            if base is None or base.start >= pos:
                break

        # The call carried over from the previous region always opens this one.
        call_section: List[_Summary] = []
        while True:
            if call is not None:
                call_section.append(call)
            call = next(calls, None)
            if call is None or call.start >= pos:
                break

        if not _group_in_phase(baseline_section):
            unphasable += sum(1 for c in call_section if c.phased)
            base_is_phased = False
            call_is_phased = False
            continue

        transition = False
        if not base_is_phased:
            call_is_phased = False
        for b in baseline_section:
            if b.phased:
                if base_phase != b.phase:
                    transition = True
                base_is_phased = True
            base_phase = b.phase

        for c in call_section:
            if not c.phased:
                call_is_phased = False
            elif not call_is_phased:
                call_is_phased = True
                call_phase = c.phase
            elif c.included:
                if (c.phase != call_phase) != transition:
                    misphasings += 1
                else:
                    correct += 1
                call_phase = c.phase
            transition = False

    return PhasingResult(misphasings, correct, unphasable)
