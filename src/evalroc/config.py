from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .criteria import OperatingPointCriteria, make_criteria
from .filters import Filter, default_filters
from .scoring import DEFAULT_SCORE_FIELD, ScoreExtractor, SortOrder, parse_score_field


@dataclass(frozen=True)
class RocConfig:
    """Settings for one ROC run.

    Built once from the command line and recorded in ``summary.json``.
    """

    score_field: str = DEFAULT_SCORE_FIELD
    sort_order: str = SortOrder.DESCENDING.value
    filters: Tuple[str, ...] = ()
    precision: Optional[float] = None
    sensitivity: Optional[float] = None
    score_threshold: Optional[float] = None
    dual_rocs: bool = False
    compress: bool = True
    slope: bool = False
    rescale_default: bool = True

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "RocConfig":
        return cls(
            score_field=args.score_field,
            sort_order=args.sort_order,
            filters=tuple(args.roc_filter or ()),
            precision=args.at_precision,
            sensitivity=args.at_sensitivity,
            score_threshold=args.at_score,
            dual_rocs=bool(args.dual_rocs),
            compress=not bool(args.no_gzip),
            slope=bool(args.slope),
            rescale_default=not bool(args.no_rescale),
        )

    @property
    def order(self) -> SortOrder:
        return SortOrder(self.sort_order)

    def make_extractor(self) -> ScoreExtractor:
        return parse_score_field(self.score_field, self.order)

    def make_criteria(self) -> OperatingPointCriteria:
        return make_criteria(
            precision=self.precision,
            sensitivity=self.sensitivity,
            score=self.score_threshold,
            order=self.order,
        )

    def make_filters(self) -> List[Filter]:
        return default_filters(self.filters)

    def validate(self) -> None:
        """Fail fast on settings that would only break after records are read."""
        self.make_extractor()
        self.make_criteria()
        self.make_filters()
        for name, value in (("precision", self.precision), ("sensitivity", self.sensitivity)):
            if value is not None and not 0.0 <= value <= 1.0:
                raise ValueError(f"Target {name} must be between 0 and 1, got {value}")
