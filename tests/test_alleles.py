from collections import Counter
from pathlib import Path

import pysam

from evalroc.allele_accumulator import AlleleAccumulator, SquashedAlleleAccumulator
from evalroc.annotated import replay_alleles
from evalroc.models import EvalRecord
from evalroc.toy_data import make_toy_data
from evalroc.variant import GtIdVariant, VariantStatus, orientations


def _statuses(path: Path) -> Counter:
    counts: Counter = Counter()
    with pysam.VariantFile(str(path)) as vcf:
        for rec in vcf:
            for status in rec.info["STATUS"]:
                counts[status.split("=", 1)[0]] += 1
    return counts


def _n_records(path: Path) -> int:
    with pysam.VariantFile(str(path)) as vcf:
        return sum(1 for _ in vcf)


def _header() -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add("chr1", length=1000)
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.add_sample("S1")
    return header


def _classified(pos: int, ref: str, alts, gt, *, matched: bool = False, too_hard: bool = False):
    rec = EvalRecord(chrom="chr1", pos=pos, ref=ref, alts=list(alts), samples=[{"GT": gt}], phased=[False])
    v = GtIdVariant.from_record(rec, 0, pos)
    if too_hard:
        v.set_status(VariantStatus.SKIPPED)
    if matched:
        return rec, orientations(v)[0]
    return rec, v


def test_toy_replay_writes_alleles_and_auxiliary(tmp_path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    out = tmp_path / "alleles"
    with pysam.VariantFile(toy["annotated_vcf"]) as vcf:
        header = vcf.header.copy()
    with AlleleAccumulator(header, out) as acc:
        stats = replay_alleles(toy["annotated_vcf"], acc)

    assert stats.baseline == {"TP": 5, "FN": 2}
    assert stats.calls == {"TP": 5, "FP": 3}
    assert _statuses(out / "alleles.vcf") == Counter({"B-TP": 5, "B-FN": 2, "C-FP": 3})
    assert _statuses(out / "auxiliary.vcf") == Counter({"C-TP-BSame": 5})
    with pysam.VariantFile(str(out / "alleles.vcf")) as vcf:
        assert len(vcf.header.samples) == 0


def test_squashed_replay_writes_alternate(tmp_path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    out = tmp_path / "alleles"
    with pysam.VariantFile(toy["annotated_vcf"]) as vcf:
        header = vcf.header.copy()
    with SquashedAlleleAccumulator(header, out, compress=True) as acc:
        replay_alleles(toy["annotated_vcf"], acc)

    assert _n_records(out / "alleles.vcf.gz") == 10
    assert _n_records(out / "alternate.vcf.gz") == 8
    with pysam.VariantFile(str(out / "alternate.vcf.gz")) as vcf:
        assert list(vcf.header.samples) == ["BASELINE", "CALLS"]


def test_call_alts_merge_into_baseline(tmp_path):
    baseline = [_classified(100, "A", ["G"], (0, 1), matched=True)]
    calls = [_classified(100, "A", ["T"], (0, 1))]
    with AlleleAccumulator(_header(), tmp_path) as acc:
        acc.process(baseline, calls)

    with pysam.VariantFile(str(tmp_path / "alleles.vcf")) as vcf:
        recs = list(vcf)
    assert len(recs) == 1
    assert recs[0].alts == ("G", "T")
    statuses = list(recs[0].info["STATUS"])
    assert "B-Merged-T" in statuses
    assert any(s.startswith("B-TP=") for s in statuses)
    assert _statuses(tmp_path / "auxiliary.vcf") == Counter({"C-FP-Merged": 1})


def test_redundant_call_is_not_merged(tmp_path):
    baseline = [_classified(100, "A", ["G"], (0, 1))]
    calls = [_classified(100, "A", ["G"], (1, 1), too_hard=True)]
    with AlleleAccumulator(_header(), tmp_path) as acc:
        acc.process(baseline, calls)

    assert _statuses(tmp_path / "alleles.vcf") == Counter({"B-FN": 1})
    assert _statuses(tmp_path / "auxiliary.vcf") == Counter({"C-TooHard-BSame": 1})


def test_unknown_records_are_kept(tmp_path):
    baseline = [(EvalRecord(chrom="chr1", pos=50, ref="C", alts=["A"]), None)]
    calls = [
        (EvalRecord(chrom="chr1", pos=50, ref="C", alts=["T"]), None),
        _classified(200, "G", ["C", "T"], (0, 2)),
    ]
    with AlleleAccumulator(_header(), tmp_path) as acc:
        acc.process(baseline, calls)
        assert (acc.baseline_not_in_path, acc.calls_not_in_path) == (1, 1)

    with pysam.VariantFile(str(tmp_path / "alleles.vcf")) as vcf:
        recs = list(vcf)
    assert [r.pos for r in recs] == [51, 201]
    assert recs[0].info["STATUS"] == ("B-NotInPath",)
    # Only the ALT the genotype uses survives.
    assert recs[1].alts == ("T",)
    assert _statuses(tmp_path / "auxiliary.vcf") == Counter({"C-NotInPath": 1})
