from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional

from .models import RocPoint
from .scoring import SortOrder


class OperatingPointCriteria(ABC):
    """Streaming selector for the single threshold reported in the summary.

    Points arrive best score first, once each, as the default ROC table is
    written. Implementations keep O(1) state.
    """

    name = "threshold"

    def __init__(self) -> None:
        self._best: Optional[RocPoint] = None
        self.init()

    def init(self) -> None:
        self._best = None

    @abstractmethod
    def consider(self, point: RocPoint, precision: float, recall: float, f_measure: float) -> None:
        raise NotImplementedError

    def cutpoint(self) -> Optional[RocPoint]:
        return self._best

    def __str__(self) -> str:
        return self.name


class FMeasureCriteria(OperatingPointCriteria):
    """Maximum F-measure; the first point reaching the maximum wins."""

    name = "F-measure"

    def init(self) -> None:
        super().init()
        self._best_f = -math.inf

    def consider(self, point: RocPoint, precision: float, recall: float, f_measure: float) -> None:
        if f_measure > self._best_f:
            self._best_f = f_measure
            self._best = point.copy()


class PrecisionCriteria(OperatingPointCriteria):
    """Last point whose precision is still at least ``target``."""

    def __init__(self, target: float) -> None:
        self.target = target
        self.name = f"precision >= {target}"
        super().__init__()

    def consider(self, point: RocPoint, precision: float, recall: float, f_measure: float) -> None:
        if precision >= self.target:
            self._best = point.copy()


class SensitivityCriteria(OperatingPointCriteria):
    """Last point whose sensitivity is still at least ``target``."""

    def __init__(self, target: float) -> None:
        self.target = target
        self.name = f"sensitivity >= {target}"
        super().__init__()

    def consider(self, point: RocPoint, precision: float, recall: float, f_measure: float) -> None:
        if recall >= self.target:
            self._best = point.copy()


class FixedScoreCriteria(OperatingPointCriteria):
    """The point at the boundary of scores at least as good as ``score``."""

    def __init__(self, score: float, order: SortOrder = SortOrder.DESCENDING) -> None:
        self.score = score
        self.order = order
        self.name = f"score {'<=' if order is SortOrder.ASCENDING else '>='} {score}"
        super().__init__()

    def consider(self, point: RocPoint, precision: float, recall: float, f_measure: float) -> None:
        if self.order.at_least_as_good(point.threshold, self.score):
            self._best = point.copy()


def make_criteria(
    *,
    precision: Optional[float] = None,
    sensitivity: Optional[float] = None,
    score: Optional[float] = None,
    order: SortOrder = SortOrder.DESCENDING,
) -> OperatingPointCriteria:
    """Pick the criteria for the given options; maximum F-measure by default."""
    given = [v for v in (precision, sensitivity, score) if v is not None]
    if len(given) > 1:
        raise ValueError("Only one of precision, sensitivity or score thresholds may be given")
    if precision is not None:
        return PrecisionCriteria(precision)
    if sensitivity is not None:
        return SensitivityCriteria(sensitivity)
    if score is not None:
        return FixedScoreCriteria(score, order)
    return FMeasureCriteria()
