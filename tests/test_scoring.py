import logging
import math

import pytest

from evalroc.models import EvalRecord, RecordHeader
from evalroc.scoring import (
    DerivedExtractor,
    FormatExtractor,
    InfoExtractor,
    QualExtractor,
    ScoreFieldError,
    SortOrder,
    parse_score_field,
)


def _rec(**kwargs) -> EvalRecord:
    base = dict(chrom="chr1", pos=99, ref="A", alts=["G"], samples=[{"GT": (0, 1)}])
    base.update(kwargs)
    return EvalRecord(**base)


def test_parse_score_field_types():
    assert isinstance(parse_score_field("QUAL"), QualExtractor)
    assert isinstance(parse_score_field("qual"), QualExtractor)
    assert isinstance(parse_score_field("INFO.DP"), InfoExtractor)
    assert isinstance(parse_score_field("format.GQ"), FormatExtractor)
    assert isinstance(parse_score_field("GQ"), FormatExtractor)
    assert isinstance(parse_score_field("DERIVED.qd"), DerivedExtractor)
    assert parse_score_field("INFO.DP").label == "DP (INFO)"
    assert parse_score_field("GQ").label == "GQ (FORMAT)"


@pytest.mark.parametrize("spec", ["", "BOGUS.X", "INFO.", "DERIVED.NOPE", "DERIVED.ZY"])
def test_parse_score_field_rejects(spec):
    with pytest.raises(ScoreFieldError):
        parse_score_field(spec)


def test_format_score_missing_values_are_nan():
    ex = FormatExtractor("GQ")
    assert math.isnan(ex.score(_rec(), 0))
    assert math.isnan(ex.score(_rec(samples=[{"GT": (0, 1), "GQ": "."}]), 0))
    assert ex.score(_rec(samples=[{"GT": (0, 1), "GQ": 35}]), 0) == 35.0


def test_format_score_bad_sample_raises():
    with pytest.raises(IndexError):
        FormatExtractor("GQ").score(_rec(), -1)


def test_info_score_takes_first_value_and_snaps_zero():
    ex = InfoExtractor("VQ")
    assert ex.score(_rec(info={"VQ": (4.5, 7.0)}), 0) == 4.5
    assert ex.score(_rec(info={"VQ": 1e-10}), 0) == 0.0


def test_qual_score():
    assert QualExtractor().score(_rec(qual=12.5), 0) == 12.5
    assert math.isnan(QualExtractor().score(_rec(), 0))


def test_derived_qd_and_gqd():
    rec = _rec(qual=30.0, info={"DP": 10}, samples=[{"GT": (0, 1), "GQ": 20, "DP": 5}])
    assert parse_score_field("DERIVED.QD").score(rec, 0) == pytest.approx(3.0)
    assert parse_score_field("DERIVED.GQD").score(rec, 0) == pytest.approx(4.0)
    assert math.isnan(parse_score_field("DERIVED.QD").score(_rec(), 0))


def test_derived_vaf_needs_sample():
    ex = parse_score_field("DERIVED.VAF")
    assert ex.requires_sample
    rec = _rec(samples=[{"GT": (0, 1), "AD": (6, 2)}])
    assert ex.score(rec, 0) == pytest.approx(0.25)
    assert not parse_score_field("DERIVED.AN").requires_sample


def test_header_check_suggests_other_field_type(caplog):
    header = RecordHeader(info={"DP": "Integer"}, formats={"GQ": "Integer"})
    with caplog.at_level(logging.WARNING):
        InfoExtractor("GQ").check_header(header)
        FormatExtractor("DP").check_header(header)
    assert "did you mean FORMAT.GQ?" in caplog.text
    assert "did you mean INFO.DP?" in caplog.text


def test_sort_order_key_puts_missing_last():
    scores = [1.0, None, 5.0, 3.0]
    assert sorted(scores, key=SortOrder.DESCENDING.key) == [5.0, 3.0, 1.0, None]
    assert sorted(scores, key=SortOrder.ASCENDING.key) == [1.0, 3.0, 5.0, None]


def test_sort_order_at_least_as_good():
    assert SortOrder.DESCENDING.at_least_as_good(10.0, 5.0)
    assert not SortOrder.DESCENDING.at_least_as_good(4.0, 5.0)
    assert SortOrder.ASCENDING.at_least_as_good(4.0, 5.0)
