import logging
from pathlib import Path
from typing import Dict, List, Optional

import pysam
import pytest

from evalroc.annotated import LAYOUT_GA4GH, LAYOUT_VCFEVAL, detect_layout, load_annotated
from evalroc.filters import ALL, default_filters
from evalroc.models import RecordHeader, VcfFormatError
from evalroc.orchestrator import RocEvaluator
from evalroc.rocfile import read_roc
from evalroc.scoring import FormatExtractor, QualExtractor
from evalroc.toy_data import make_toy_data


def _ga4gh_vcf(path: Path, rows: List[Dict[str, Optional[str]]]) -> Path:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add("chr1", length=500)
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.formats.add("BD", number=1, type="String", description="Decision for call (TP/FP/FN/N)")
    header.add_sample("TRUTH")
    header.add_sample("QUERY")
    vcf_path = path / "ga4gh.vcf"
    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for i, row in enumerate(rows):
            rec = vcf.new_record(contig="chr1", start=10 + i * 10, stop=11 + i * 10, alleles=("A", "G"), qual=row["qual"])
            rec.samples["TRUTH"]["GT"] = (0, 1)
            rec.samples["QUERY"]["GT"] = (0, 1)
            rec.samples["TRUTH"]["BD"] = row["truth"]
            rec.samples["QUERY"]["BD"] = row["query"]
            vcf.write(rec)
    return vcf_path


def test_detect_layout():
    vcfeval = RecordHeader(info={"BASE": "String", "CALL": "String"}, samples=("BASELINE", "CALLS"))
    layout = detect_layout(vcfeval)
    assert (layout.kind, layout.baseline_sample, layout.call_sample) == (LAYOUT_VCFEVAL, 0, 1)

    unnamed = RecordHeader(info={"CALL": "String"}, samples=("S1",))
    layout = detect_layout(unnamed)
    assert (layout.baseline_sample, layout.call_sample) == (0, 0)

    ga4gh = RecordHeader(formats={"BD": "String"}, samples=("TRUTH", "QUERY"))
    layout = detect_layout(ga4gh)
    assert (layout.kind, layout.baseline_sample, layout.call_sample) == (LAYOUT_GA4GH, 0, 1)

    with pytest.raises(VcfFormatError):
        detect_layout(RecordHeader(info={"DP": "Integer"}))


def test_toy_data_replay(tmp_path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    out = tmp_path / "out"
    ev = RocEvaluator(FormatExtractor("GQ"), out, filters=default_filters())
    stats = load_annotated(toy["annotated_vcf"], ev)

    assert stats.kind == LAYOUT_VCFEVAL
    assert stats.records == 10
    assert stats.baseline == {"TP": 5, "FN": 2}
    assert stats.calls == {"TP": 5, "FP": 3}
    assert (ev.baseline_sample, ev.call_sample) == (0, 1)

    summary = ev.finish()
    rows = summary["summary"]
    assert [r["threshold"] for r in rows] == ["30.000", "None"]
    assert rows[0]["true_positives_baseline"] == 5
    assert rows[0]["false_positives"] == 0
    assert rows[-1]["false_positives"] == 3
    assert rows[-1]["false_negatives"] == 2
    assert summary["ignored_variants"] == 1

    weighted = read_roc(out / "weighted_roc.tsv")
    assert weighted.n_rows == 7
    assert weighted.total_baseline == 7
    assert weighted.total_call == 8
    assert (out / "snp_roc.tsv").exists()
    assert (out / "non_snp_roc.tsv").exists()
    assert (out / "phasing.txt").exists()


def test_ga4gh_decisions(tmp_path):
    vcf = _ga4gh_vcf(
        tmp_path,
        [
            {"truth": "TP", "query": "TP", "qual": 30},
            {"truth": "FN", "query": "N", "qual": None},
            {"truth": "N", "query": "FP", "qual": 10},
        ],
    )
    ev = RocEvaluator(QualExtractor(), tmp_path / "out", filters=[ALL])
    stats = load_annotated(vcf, ev)
    assert stats.kind == LAYOUT_GA4GH
    assert stats.baseline == {"TP": 1, "FN": 1, "N": 1}
    assert stats.calls == {"TP": 1, "N": 1, "FP": 1}

    summary = ev.finish()
    last = summary["summary"][-1]
    assert (last["true_positives_baseline"], last["false_positives"], last["false_negatives"]) == (1, 1, 1)


def test_unknown_decision_is_warned_once(tmp_path, caplog):
    vcf = _ga4gh_vcf(
        tmp_path,
        [
            {"truth": "TP", "query": "ODD", "qual": 30},
            {"truth": "TP", "query": "ODD", "qual": 20},
        ],
    )
    ev = RocEvaluator(QualExtractor(), tmp_path / "out", filters=[ALL])
    with caplog.at_level(logging.WARNING):
        load_annotated(vcf, ev)
    assert caplog.text.count("Ignoring unrecognized BD status: ODD") == 1


def test_plain_vcf_is_rejected(tmp_path):
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add("chr1", length=100)
    vcf_path = tmp_path / "plain.vcf"
    with pysam.VariantFile(str(vcf_path), "w", header=header):
        pass
    ev = RocEvaluator(QualExtractor(), tmp_path / "out")
    with pytest.raises(VcfFormatError):
        load_annotated(vcf_path, ev)
