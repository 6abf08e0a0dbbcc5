from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from . import __version__
from .allele_accumulator import AlleleAccumulator, SquashedAlleleAccumulator
from .annotated import detect_layout, load_annotated, replay_alleles
from .config import RocConfig
from .filters import BUILTIN_FILTERS
from .orchestrator import ALLELE_PREFIX, RocEvaluator
from .plotting import plot_precision_sensitivity, plot_roc_curve
from .report import render_report
from .rocfile import RocTable, read_roc
from .scoring import DEFAULT_SCORE_FIELD, SortOrder
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .validation import check_outdir, check_roc_inputs, check_vcf_input
from .vcfio import read_header


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="evalroc",
        description=(
            "evalroc: stratified ROC curves and summary statistics from variant-call evaluation output. "
            "Replays annotated evaluation VCFs into per-filter ROC tables, a thresholded summary, "
            "phasing counts, plots and an HTML report."
        ),
    )
    p.add_argument("--version", action="version", version=f"evalroc {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny annotated evaluation VCF for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # roc
    # -----------------
    r = sub.add_parser(
        "roc",
        help="Build ROC tables, summary statistics and a report from annotated evaluation VCF(s).",
    )
    r.add_argument(
        "--vcf",
        required=True,
        nargs="+",
        type=_path_exists,
        help="Annotated VCF(s): vcfeval combined output (INFO BASE/CALL) or GA4GH (FORMAT BD).",
    )
    r.add_argument("--outdir", required=True, help="Output directory.")
    r.add_argument(
        "-f",
        "--score-field",
        default=DEFAULT_SCORE_FIELD,
        help="Score used to rank calls: QUAL, INFO.<name>, FORMAT.<name>, DERIVED.<name> or a FORMAT name.",
    )
    r.add_argument(
        "-O",
        "--sort-order",
        choices=[o.value for o in SortOrder],
        default=SortOrder.DESCENDING.value,
        help="Order in which scores are sorted so that good scores come first.",
    )
    r.add_argument(
        "--roc-filter",
        action="append",
        metavar="NAME",
        help=(
            "Additional ROC table to write (repeatable; join names with '+' to combine). "
            f"One of: {', '.join(sorted(BUILTIN_FILTERS))}. Default: SNP and NON_SNP."
        ),
    )
    crit = r.add_mutually_exclusive_group()
    crit.add_argument("--at-precision", type=float, default=None, help="Report the threshold keeping precision >= P.")
    crit.add_argument(
        "--at-sensitivity", type=float, default=None, help="Report the threshold keeping sensitivity >= S."
    )
    crit.add_argument("--at-score", type=float, default=None, help="Report the threshold at this score.")
    r.add_argument("--dual-rocs", action="store_true", help="Also write allele-level ROC tables (allele_ prefix).")
    r.add_argument("--slope", action="store_true", help="Also write ROC slope files.")
    r.add_argument("--no-gzip", action="store_true", help="Do not gzip ROC tables.")
    r.add_argument(
        "--no-rescale",
        action="store_true",
        help="Do not rescale filters that follow the global default (XRX / NON_XRX).",
    )
    r.add_argument("--no-plots", action="store_true", help="Skip PNG plots and the HTML report.")
    r.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    r.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # plot
    # -----------------
    pl = sub.add_parser(
        "plot",
        help="Plot precision/sensitivity and ROC curves from existing ROC tables.",
    )
    pl.add_argument(
        "--roc",
        required=True,
        nargs="+",
        help="ROC table files (*_roc.tsv[.gz]) or directories containing them.",
    )
    pl.add_argument("--outdir", required=True, help="Output directory for PNG files.")
    pl.add_argument("--title", default=None, help="Plot title prefix.")
    pl.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # alleles
    # -----------------
    a = sub.add_parser(
        "alleles",
        help="Write updated population alleles from a combined annotated evaluation VCF.",
    )
    a.add_argument("--vcf", required=True, type=_path_exists, help="Annotated VCF (vcfeval combined output).")
    a.add_argument("--outdir", required=True, help="Output directory.")
    a.add_argument(
        "--squash",
        action="store_true",
        help="Also write alternate.vcf with sample calls left once matched alleles are removed.",
    )
    a.add_argument("--no-gzip", action="store_true", help="Do not bgzip output VCFs.")
    a.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    a.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Commands
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "evalroc quickstart (copy/paste):",
        "",
        "1) ROC tables + summary from vcfeval combined output:",
        "   evalroc roc \\",
        "     --vcf output.vcf.gz \\",
        "     --outdir results/",
        "   Outputs: results/weighted_roc.tsv.gz, results/summary.txt, results/report.html",
        "",
        "2) Rank by QUAL, report the threshold reaching 99% precision, split by zygosity:",
        "   evalroc roc \\",
        "     --vcf output.vcf.gz \\",
        "     --score-field QUAL \\",
        "     --at-precision 0.99 \\",
        "     --roc-filter HOM --roc-filter HET \\",
        "     --outdir results_qual/",
        "",
        "3) Update a population allele set:",
        "   evalroc alleles \\",
        "     --vcf output.vcf.gz \\",
        "     --squash \\",
        "     --outdir alleles/",
        "   Outputs: alleles/alleles.vcf.gz, alleles/auxiliary.vcf.gz, alleles/alternate.vcf.gz",
        "",
        "Tip: use --dry-run to validate inputs and print the planned outputs.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _make_plots(outdir: Path, roc_files: List[Path], summary: Dict) -> Dict[str, str]:
    tables: List[RocTable] = [
        read_roc(p) for p in roc_files if not p.name.startswith(ALLELE_PREFIX)
    ]
    tables = [t for t in tables if t.n_rows > 0]
    if not tables:
        return {}
    cutpoint: Optional[Tuple[float, float]] = None
    rows = summary.get("summary", [])
    if rows and rows[0]["threshold"] != "None":
        cutpoint = (rows[0]["sensitivity"], rows[0]["precision"])

    plots_dir = outdir / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)
    ps_png = plots_dir / "precision_sensitivity.png"
    roc_png = plots_dir / "roc.png"
    plot_precision_sensitivity(tables=tables, out_png=ps_png, cutpoint=cutpoint)
    plot_roc_curve(tables=tables, out_png=roc_png)
    return {
        "Precision / Sensitivity": str(Path("plots") / ps_png.name),
        "ROC": str(Path("plots") / roc_png.name),
    }


def cmd_roc(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "roc.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("evalroc")
    logger.info("evalroc %s", __version__)

    try:
        config = RocConfig.from_args(args)
        config.validate()
        for vcf in args.vcf:
            check_vcf_input(vcf)

        header = read_header(args.vcf[0])
        layout = detect_layout(header)

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Annotation layout: {layout.kind}")
            print(f"Score field: {config.make_extractor().label}")
            print(f"Filters: {', '.join(f.name for f in config.make_filters())}")
            print("Planned outputs:")
            for f in config.make_filters():
                print(f"  {outdir / f.output_file_name}{'.gz' if config.compress else ''}")
            print(f"  summary.txt -> {outdir / 'summary.txt'}")
            print(f"  phasing.txt -> {outdir / 'phasing.txt'}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            if not args.no_plots:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        check_outdir(outdir)
        outdir = ensure_outdir(outdir)

        evaluator = RocEvaluator(
            config.make_extractor(),
            outdir,
            filters=config.make_filters(),
            criteria=config.make_criteria(),
            baseline_sample=layout.baseline_sample,
            call_sample=layout.call_sample,
            compress=config.compress,
            emit_slope=config.slope,
            dual_rocs=config.dual_rocs,
            rescale_default=config.rescale_default,
        )
        evaluator.check_header(header)

        replays = [load_annotated(vcf, evaluator, progress=True) for vcf in args.vcf]

        command_line = "evalroc " + " ".join(sys.argv[1:])
        summary = evaluator.finish(__version__, command_line)
        summary["config"] = dataclasses.asdict(config)
        summary["inputs"] = [dataclasses.asdict(r) for r in replays]
        write_json(outdir / "summary.json", summary)

        if args.no_plots:
            print(str(outdir / "summary.txt"))
            return 0

        roc_files = [Path(p) for p in summary["files"]["roc"]]
        plots = _make_plots(outdir, roc_files, summary)
        report_path = render_report(
            outdir=outdir,
            version=__version__,
            summary=summary,
            inputs=[str(v) for v in args.vcf],
            plots=plots,
        )

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_plot(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose)
    try:
        tables = [read_roc(p) for p in check_roc_inputs(args.roc)]
        outdir = ensure_outdir(Path(args.outdir).expanduser().resolve())
        prefix = f"{args.title}: " if args.title else ""
        ps_png = outdir / "precision_sensitivity.png"
        roc_png = outdir / "roc.png"
        plot_precision_sensitivity(tables=tables, out_png=ps_png, title=prefix + "Precision / Sensitivity")
        plot_roc_curve(tables=tables, out_png=roc_png, title=prefix + "ROC")
        print(str(ps_png))
        print(str(roc_png))
        return 0
    except Exception as e:
        return _handle_error(e)


def cmd_alleles(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "alleles.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("evalroc")
    logger.info("evalroc %s", __version__)

    try:
        check_vcf_input(args.vcf)
        compress = not bool(args.no_gzip)
        suffix = ".gz" if compress else ""

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print("Planned outputs:")
            print(f"  {outdir / ('alleles.vcf' + suffix)}")
            print(f"  {outdir / ('auxiliary.vcf' + suffix)}")
            if args.squash:
                print(f"  {outdir / ('alternate.vcf' + suffix)}")
            return 0

        outdir = ensure_outdir(outdir)
        with pysam.VariantFile(args.vcf) as vcf:
            header = vcf.header.copy()
        cls = SquashedAlleleAccumulator if args.squash else AlleleAccumulator
        with cls(header, outdir, compress) as acc:
            stats = replay_alleles(args.vcf, acc, progress=True)

        write_json(outdir / "alleles_summary.json", dataclasses.asdict(stats))
        print(json.dumps(dataclasses.asdict(stats), indent=2))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "roc":
        return cmd_roc(args)
    if args.cmd == "plot":
        return cmd_plot(args)
    if args.cmd == "alleles":
        return cmd_alleles(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
