import logging

import pytest

from evalroc.filters import ALL, default_filters
from evalroc.models import EvalRecord
from evalroc.orchestrator import RocEvaluator
from evalroc.rocfile import FALSE_POSITIVES, TRUE_POSITIVES_BASELINE, read_roc
from evalroc.scoring import FormatExtractor, QualExtractor


def _rec(gq=20) -> EvalRecord:
    return EvalRecord(chrom="chr1", pos=5, ref="A", alts=["G"], samples=[{"GT": (0, 1), "GQ": gq}])


def test_sample_score_without_call_sample_disables_roc(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        ev = RocEvaluator(FormatExtractor("GQ"), tmp_path, filters=default_filters(), call_sample=-1)
    assert "no ROC data will be produced" in caplog.text
    assert not ev.default_roc.roc_enabled
    assert [f.name for f in ev.default_roc.filters] == ["ALL"]


def test_missing_baseline_sample_drops_genotype_filters(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        ev = RocEvaluator(QualExtractor(), tmp_path, filters=default_filters(), baseline_sample=-1)
    assert "some ROC data files will not be produced: [SNP, NON_SNP]" in caplog.text
    assert [f.name for f in ev.default_roc.filters] == ["ALL"]


def test_all_filter_is_always_present(tmp_path):
    ev = RocEvaluator(QualExtractor(), tmp_path, filters=[])
    assert ev.default_roc.filters == [ALL]


def test_unclassified_baseline_is_rejected(tmp_path):
    ev = RocEvaluator(QualExtractor(), tmp_path)
    with pytest.raises(ValueError):
        ev.note_baseline(_rec(), False, False, False)


def test_allele_match_counts_differ_between_rocs(tmp_path):
    ev = RocEvaluator(FormatExtractor("GQ"), tmp_path, dual_rocs=True)
    rec = _rec()
    ev.note_baseline(rec, False, True, False)
    ev.note_call(rec, 1, 0, 1, allele_match=True)
    summary = ev.finish(command_line="evalroc roc")

    names = sorted(p.rsplit("/", 1)[-1] for p in summary["files"]["roc"])
    assert names == ["allele_weighted_roc.tsv", "weighted_roc.tsv"]

    default = read_roc(tmp_path / "weighted_roc.tsv")
    allele = read_roc(tmp_path / "allele_weighted_roc.tsv")
    assert list(default.data[TRUE_POSITIVES_BASELINE]) == [0.0]
    assert list(default.data[FALSE_POSITIVES]) == [1.0]
    assert list(allele.data[TRUE_POSITIVES_BASELINE]) == [1.0]
    assert list(allele.data[FALSE_POSITIVES]) == [0.0]

    assert [r["threshold"] for r in summary["summary"]] == ["None"]
    assert summary["summary"][0]["false_negatives"] == 1
    assert (tmp_path / "summary.txt").exists()
    assert not (tmp_path / "allele_summary.txt").exists()


def test_phasing_counts_are_written(tmp_path):
    ev = RocEvaluator(QualExtractor(), tmp_path)
    ev.add_phasing(1, 4, 2)
    ev.add_phasing(0, 1, 0)
    path = ev.write_phasing()
    assert path.read_text() == "Correct phasings: 5\nIncorrect phasings: 1\nUnresolvable phasings: 2\n"


def test_finish_reports_calls_outside_regions(tmp_path, caplog):
    ev = RocEvaluator(FormatExtractor("GQ"), tmp_path)
    rec = _rec()
    ev.note_baseline(rec, True, False, False)
    ev.note_call(rec, 1, 0, 1)
    ev.note_outside_call()
    with caplog.at_level(logging.INFO):
        summary = ev.finish()
    assert "Fraction of calls outside evaluation regions: 0.5000 (1/2)" in caplog.text
    assert summary["calls_outside"] == 1
    assert summary["phasing"] == {"correct": 0, "incorrect": 0, "unresolvable": 0}
    assert summary["summary"][0]["threshold"] == "20.000"
    assert summary["criteria"] == "F-measure"


def test_finish_warns_about_unscored_calls(tmp_path, caplog):
    ev = RocEvaluator(FormatExtractor("GQ"), tmp_path)
    rec = _rec(gq=None)
    ev.note_baseline(rec, True, False, False)
    ev.note_call(rec, 1, 0, 1)
    with caplog.at_level(logging.WARNING):
        summary = ev.finish()
    assert "1 variants not thresholded" in caplog.text
    assert summary["ignored_variants"] == 1
