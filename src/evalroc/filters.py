from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import EvalRecord, RecordHeader, is_het, is_hom_alt
from .variant_type import VariantType, classify_record

ROC_EXT = "_roc.tsv"
COMPLEX_FLAG = "XRX"

Genotype = Optional[Tuple[int, ...]]


class RescalePolicy(Enum):
    YES = "yes"
    NO = "no"
    USE_GLOBAL_DEFAULT = "default"


class Filter(ABC):
    """A named subset of records that gets its own ROC table.

    ``accept`` receives the decoded genotype of the relevant sample, or ``None``
    when no active filter needs it.
    """

    requires_genotype = True

    def __init__(
        self,
        name: str,
        base_filename: Optional[str] = None,
        rescale_policy: RescalePolicy = RescalePolicy.USE_GLOBAL_DEFAULT,
    ) -> None:
        self.name = name.strip()
        self._base_filename = base_filename
        self.rescale_policy = rescale_policy

    @property
    def output_file_name(self) -> str:
        if self._base_filename is not None:
            return self._base_filename + ROC_EXT
        return self.name.lower() + ROC_EXT

    def rescale(self, global_default: bool) -> bool:
        if self.rescale_policy is RescalePolicy.USE_GLOBAL_DEFAULT:
            return global_default
        return self.rescale_policy is RescalePolicy.YES

    def check_header(self, header: RecordHeader) -> None:
        pass

    @abstractmethod
    def accept(self, record: EvalRecord, gt: Genotype) -> bool:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.name

    __repr__ = __str__


class _PredicateFilter(Filter):
    def __init__(
        self,
        name: str,
        predicate: Callable[[EvalRecord, Genotype], bool],
        *,
        base_filename: Optional[str] = None,
        rescale_policy: RescalePolicy = RescalePolicy.USE_GLOBAL_DEFAULT,
        requires_genotype: bool = True,
    ) -> None:
        super().__init__(name, base_filename, rescale_policy)
        self._predicate = predicate
        self.requires_genotype = requires_genotype

    def accept(self, record: EvalRecord, gt: Genotype) -> bool:
        return self._predicate(record, gt)


def _is_complex(record: EvalRecord) -> bool:
    return COMPLEX_FLAG in record.info


ALL = _PredicateFilter(
    "ALL",
    lambda rec, gt: True,
    base_filename="weighted",
    rescale_policy=RescalePolicy.NO,
    requires_genotype=False,
)
HOM = _PredicateFilter("HOM", lambda rec, gt: is_hom_alt(gt), base_filename="homozygous", rescale_policy=RescalePolicy.YES)
HET = _PredicateFilter("HET", lambda rec, gt: is_het(gt), base_filename="heterozygous", rescale_policy=RescalePolicy.YES)
SNP = _PredicateFilter(
    "SNP", lambda rec, gt: classify_record(rec, gt) is VariantType.SNP, rescale_policy=RescalePolicy.YES
)
NON_SNP = _PredicateFilter(
    "NON_SNP", lambda rec, gt: classify_record(rec, gt) is not VariantType.SNP, rescale_policy=RescalePolicy.YES
)
MNP = _PredicateFilter(
    "MNP", lambda rec, gt: classify_record(rec, gt) is VariantType.MNP, rescale_policy=RescalePolicy.YES
)
INDEL = _PredicateFilter(
    "INDEL", lambda rec, gt: classify_record(rec, gt).is_indel_type, rescale_policy=RescalePolicy.YES
)
XRX = _PredicateFilter("XRX", lambda rec, gt: _is_complex(rec), requires_genotype=False)
NON_XRX = _PredicateFilter("NON_XRX", lambda rec, gt: not _is_complex(rec), requires_genotype=False)


class CombinedFilter(Filter):
    """Accepts a record only when every component filter accepts it."""

    def __init__(
        self,
        components: Sequence[Filter],
        name: Optional[str] = None,
        rescale_policy: RescalePolicy = RescalePolicy.USE_GLOBAL_DEFAULT,
    ) -> None:
        if not components:
            raise ValueError("A combined filter needs at least one component")
        super().__init__(name or "+".join(c.name for c in components), rescale_policy=rescale_policy)
        self.components = list(components)
        self._active = [c for c in self.components if c is not ALL]
        self.requires_genotype = any(c.requires_genotype for c in self.components)

    def check_header(self, header: RecordHeader) -> None:
        for c in self.components:
            c.check_header(header)

    def accept(self, record: EvalRecord, gt: Genotype) -> bool:
        return all(c.accept(record, gt) for c in self._active)


class ExpressionFilter(Filter):
    """Delegates acceptance to a caller-supplied predicate over the record.

    The predicate decodes whatever it needs itself, so no genotype is passed.
    """

    requires_genotype = False

    def __init__(
        self,
        name: str,
        predicate: Callable[[EvalRecord], bool],
        rescale_policy: RescalePolicy = RescalePolicy.USE_GLOBAL_DEFAULT,
    ) -> None:
        super().__init__(name, rescale_policy=rescale_policy)
        self._predicate = predicate

    def accept(self, record: EvalRecord, gt: Genotype) -> bool:
        return bool(self._predicate(record))


HOM_XRX = CombinedFilter([HOM, XRX], name="HOM_XRX")
HOM_NON_XRX = CombinedFilter([HOM, NON_XRX], name="HOM_NON_XRX")
HET_XRX = CombinedFilter([HET, XRX], name="HET_XRX")
HET_NON_XRX = CombinedFilter([HET, NON_XRX], name="HET_NON_XRX")

BUILTIN_FILTERS: Dict[str, Filter] = {
    f.name: f
    for f in (ALL, HOM, HET, SNP, NON_SNP, MNP, INDEL, XRX, NON_XRX, HOM_XRX, HOM_NON_XRX, HET_XRX, HET_NON_XRX)
}


def filter_by_name(name: str) -> Filter:
    """Resolve a filter name; ``a+b`` builds the combination of ``a`` and ``b``."""
    parts = [p.strip().upper() for p in name.split("+")]
    resolved = []
    for p in parts:
        f = BUILTIN_FILTERS.get(p)
        if f is None:
            raise ValueError(f"Unknown ROC filter {p!r}, must be one of {sorted(BUILTIN_FILTERS)}")
        resolved.append(f)
    if len(resolved) == 1:
        return resolved[0]
    return CombinedFilter(resolved)


def default_filters(requested: Iterable[str] = ()) -> List[Filter]:
    """Filters for an evaluation run: ALL plus the requested subsets.

    With no request the SNP / non-SNP breakdown is produced.
    """
    filters: List[Filter] = [ALL]
    names = list(requested)
    if not names:
        names = [SNP.name, NON_SNP.name]
    for n in names:
        f = filter_by_name(n)
        if all(existing.name != f.name for existing in filters):
            filters.append(f)
    return filters
