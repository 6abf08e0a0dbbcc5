import math

import numpy as np
import pytest

from evalroc.models import EvalRecord, RocPoint, VcfFormatError, valid_gt
from evalroc.rocfile import compute_slope
from evalroc.text_table import TextTable
from evalroc.utils import f_measure, precision, real_format, recall, round_half_up, zipped_name


def test_real_format_rounds_half_up():
    assert real_format(0.125, 2) == "0.13"
    assert real_format(2.5, 0) == "3"
    assert real_format(10.0, 3) == "10.000"
    assert real_format(-0.0001, 2) == "0.00"


def test_real_format_non_finite():
    assert real_format(math.nan, 4) == "NaN"
    assert real_format(math.inf, 1) == "Infinity"
    assert real_format(-math.inf, 1) == "-Infinity"


def test_metrics_handle_empty_denominators():
    assert math.isnan(precision(0, 0))
    assert math.isnan(recall(0, 0))
    assert math.isnan(f_measure(0.0, 0.0))
    assert f_measure(1.0, 0.5) == 2 * 0.5 / 1.5
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2


def test_zipped_name(tmp_path):
    assert zipped_name(tmp_path / "a_roc.tsv", True).name == "a_roc.tsv.gz"
    assert zipped_name(tmp_path / "a_roc.tsv", False).name == "a_roc.tsv"
    assert zipped_name(tmp_path / "a_roc.tsv.gz", True).name == "a_roc.tsv.gz"


def test_text_table_right_aligns():
    table = TextTable()
    table.add_row("a", "bb")
    table.add_separator()
    table.add_row("ccc", "d")
    assert str(table) == "  a  bb\n-------\nccc   d\n"


def test_roc_point_add_and_copy():
    p = RocPoint(5.0, 1.0, 2.0, 1.0)
    q = p.copy()
    q.add(RocPoint(tp=1.0, fp=1.0, raw_tp=0.5))
    assert (p.tp, p.fp, p.raw_tp) == (1.0, 2.0, 1.0)
    assert (q.tp, q.fp, q.raw_tp) == (2.0, 3.0, 1.5)


def test_valid_gt():
    rec = EvalRecord(chrom="chr1", pos=0, ref="A", alts=["G"], samples=[{"GT": (None, 1)}, {}])
    assert valid_gt(rec, 0) == (-1, 1)
    with pytest.raises(VcfFormatError, match="GT"):
        valid_gt(rec, 1)
    with pytest.raises(VcfFormatError, match="Invalid sample"):
        valid_gt(rec, 2)
    rec.samples[0]["GT"] = (0, 2)
    with pytest.raises(VcfFormatError, match="out of range"):
        valid_gt(rec, 0)


def test_record_add_info_appends():
    rec = EvalRecord(chrom="chr1", pos=0, ref="A")
    rec.add_info("STATUS", "one")
    rec.add_info("STATUS", "two")
    assert rec.info["STATUS"] == ["one", "two"]
    rec.info["OTHER"] = ("x",)
    rec.add_info("OTHER", "y")
    assert rec.info["OTHER"] == ["x", "y"]


def test_compute_slope():
    slope = compute_slope(np.array([1.0, 3.0, 3.0]), np.array([0.0, 1.0, 2.0]))
    assert list(slope["delta_true_positives"]) == [1.0, 2.0, 0.0]
    assert list(slope["delta_false_positives"]) == [0.0, 1.0, 1.0]
    assert math.isinf(slope["slope"][0])
    assert slope["slope"][1] == 2.0
    assert slope["slope"][2] == 0.0
