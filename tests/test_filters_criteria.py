import pytest

from evalroc.criteria import (
    FixedScoreCriteria,
    FMeasureCriteria,
    PrecisionCriteria,
    SensitivityCriteria,
    make_criteria,
)
from evalroc.filters import (
    ALL,
    HET,
    NON_SNP,
    SNP,
    XRX,
    CombinedFilter,
    ExpressionFilter,
    default_filters,
    filter_by_name,
)
from evalroc.models import EvalRecord, RocPoint
from evalroc.scoring import SortOrder


def _rec(ref: str = "A", alt: str = "G", info=None) -> EvalRecord:
    return EvalRecord(chrom="chr1", pos=10, ref=ref, alts=[alt], info=info or {})


def test_builtin_filters_accept():
    snp = _rec()
    indel = _rec("AC", "A")
    assert SNP.accept(snp, (0, 1))
    assert not SNP.accept(indel, (0, 1))
    assert NON_SNP.accept(indel, (1, 1))
    assert HET.accept(snp, (0, 1))
    assert not HET.accept(snp, (1, 1))
    assert ALL.accept(indel, None)


def test_combined_filter_by_name():
    f = filter_by_name("het+xrx")
    assert isinstance(f, CombinedFilter)
    assert f.name == "HET+XRX"
    assert f.requires_genotype
    assert f.accept(_rec(info={"XRX": True}), (0, 1))
    assert not f.accept(_rec(), (0, 1))
    assert not f.accept(_rec(info={"XRX": True}), (1, 1))


def test_filter_by_name_unknown():
    with pytest.raises(ValueError, match="Unknown ROC filter"):
        filter_by_name("bogus")


def test_default_filters():
    assert [f.name for f in default_filters()] == ["ALL", "SNP", "NON_SNP"]
    assert [f.name for f in default_filters(["HOM", "hom", "ALL"])] == ["ALL", "HOM"]


def test_output_file_names():
    assert ALL.output_file_name == "weighted_roc.tsv"
    assert HET.output_file_name == "heterozygous_roc.tsv"
    assert NON_SNP.output_file_name == "non_snp_roc.tsv"


def test_rescale_policies():
    assert not ALL.rescale(True)
    assert SNP.rescale(False)
    assert XRX.rescale(True)
    assert not XRX.rescale(False)


def test_expression_filter():
    f = ExpressionFilter("deep", lambda rec: rec.info.get("DP", 0) > 20)
    assert not f.requires_genotype
    assert f.accept(_rec(info={"DP": 30}), None)
    assert not f.accept(_rec(info={"DP": 3}), None)


def _feed(criteria, points):
    criteria.init()
    for threshold, p, r, fm in points:
        criteria.consider(RocPoint(threshold, tp=1.0), p, r, fm)
    best = criteria.cutpoint()
    return None if best is None else best.threshold


def test_fmeasure_keeps_first_maximum():
    points = [(50.0, 1.0, 0.3, 0.5), (40.0, 0.9, 0.7, 0.8), (30.0, 0.8, 0.8, 0.8), (20.0, 0.5, 0.9, 0.6)]
    assert _feed(FMeasureCriteria(), points) == 40.0


def test_fmeasure_ignores_nan():
    assert _feed(FMeasureCriteria(), [(10.0, float("nan"), 0.0, float("nan"))]) is None


def test_precision_keeps_last_point_meeting_target():
    points = [(50.0, 1.0, 0.1, 0.0), (40.0, 0.95, 0.2, 0.0), (30.0, 0.85, 0.3, 0.0), (20.0, 0.92, 0.4, 0.0)]
    assert _feed(PrecisionCriteria(0.9), points) == 20.0


def test_sensitivity_keeps_last_point_meeting_target():
    points = [(50.0, 1.0, 0.5, 0.0), (40.0, 0.9, 0.9, 0.0), (30.0, 0.8, 0.95, 0.0)]
    assert _feed(SensitivityCriteria(0.9), points) == 30.0
    assert _feed(SensitivityCriteria(0.99), points) is None


def test_fixed_score_respects_sort_order():
    desc = [(50.0, 0, 0, 0), (30.0, 0, 0, 0), (20.0, 0, 0, 0), (10.0, 0, 0, 0)]
    assert _feed(FixedScoreCriteria(25.0), desc) == 30.0
    asc = [(1.0, 0, 0, 0), (2.0, 0, 0, 0), (3.0, 0, 0, 0)]
    assert _feed(FixedScoreCriteria(2.0, SortOrder.ASCENDING), asc) == 2.0


def test_make_criteria():
    assert isinstance(make_criteria(), FMeasureCriteria)
    assert isinstance(make_criteria(precision=0.9), PrecisionCriteria)
    assert make_criteria(score=5.0).name == "score >= 5.0"
    with pytest.raises(ValueError):
        make_criteria(precision=0.9, sensitivity=0.9)
