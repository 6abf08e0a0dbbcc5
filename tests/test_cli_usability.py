import json
import subprocess
import sys
from pathlib import Path

from evalroc.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "evalroc"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "evalroc roc" in cp.stdout
    assert "evalroc alleles" in cp.stdout


def test_make_toy_data_dry_run(tmp_path: Path) -> None:
    outdir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(outdir), "--dry-run"])
    assert cp.returncode == 0
    assert "Would write toy data into" in cp.stdout
    assert not outdir.exists()


def test_roc_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "roc"
    cp = _run_cli(["roc", "--vcf", toy["annotated_vcf"], "--outdir", str(outdir), "--dry-run"])
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert "weighted_roc.tsv.gz" in cp.stdout
    assert not (outdir / "summary.json").exists()


def test_make_toy_data_and_roc(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0

    outdir = tmp_path / "out"
    cp = _run_cli(
        [
            "roc",
            "--vcf",
            str(toy_dir / "toy_annotated.vcf.gz"),
            "--outdir",
            str(outdir),
            "--roc-filter",
            "HET",
            "--slope",
        ]
    )
    assert cp.returncode == 0, cp.stderr
    assert (outdir / "report.html").exists()
    assert (outdir / "weighted_roc.tsv.gz").exists()
    assert (outdir / "heterozygous_roc.tsv.gz").exists()
    assert (outdir / "weighted_slope.tsv.gz").exists()
    assert (outdir / "plots" / "precision_sensitivity.png").exists()
    assert (outdir / "logs" / "roc.log").exists()

    summary = json.loads((outdir / "summary.json").read_text())
    assert summary["summary"][-1]["false_positives"] == 3
    assert summary["filters"] == ["ALL", "HET"]
    assert summary["config"]["score_field"] == "GQ"
    assert summary["inputs"][0]["records"] == 10

    plots = tmp_path / "plots"
    cp = _run_cli(["plot", "--roc", str(outdir), "--outdir", str(plots)])
    assert cp.returncode == 0, cp.stderr
    assert (plots / "roc.png").exists()


def test_roc_rejects_bad_precision(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(
        ["roc", "--vcf", toy["annotated_vcf"], "--outdir", str(tmp_path / "out"), "--at-precision", "1.5"]
    )
    assert cp.returncode == 2
    assert "ValueError" in cp.stderr
    assert "See log:" in cp.stderr


def test_roc_rejects_unknown_filter(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(
        ["roc", "--vcf", toy["annotated_vcf"], "--outdir", str(tmp_path / "out"), "--roc-filter", "BOGUS"]
    )
    assert cp.returncode == 2
    assert "Unknown ROC filter" in cp.stderr


def test_alleles_squash(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "alleles"
    cp = _run_cli(["alleles", "--vcf", toy["annotated_vcf"], "--outdir", str(outdir), "--squash"])
    assert cp.returncode == 0, cp.stderr
    assert (outdir / "alleles.vcf.gz").exists()
    assert (outdir / "auxiliary.vcf.gz").exists()
    assert (outdir / "alternate.vcf.gz").exists()
    stats = json.loads(cp.stdout)
    assert stats["records"] == 10
