from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from .rocfile import ROC_EXT

logger = logging.getLogger(__name__)

_VCF_SUFFIXES = (".vcf", ".vcf.gz", ".vcf.bgz", ".bcf")


def check_vcf_input(vcf_path: str | Path) -> None:
    """Ensure a VCF input looks readable; raise ValueError with fix instructions."""
    vcf = Path(vcf_path)
    if not vcf.is_file():
        raise ValueError(f"VCF does not exist: {vcf}")
    if not vcf.name.endswith(_VCF_SUFFIXES):
        raise ValueError(f"Unrecognised VCF file extension (expected one of {', '.join(_VCF_SUFFIXES)}): {vcf}")
    if vcf.suffix == ".vcf":
        logger.info(
            "VCF is uncompressed (.vcf). This is supported but slower; "
            "consider bgzip+tabix for large files."
        )


def check_roc_inputs(paths: Iterable[str | Path]) -> List[Path]:
    """Resolve ROC table inputs; directories expand to the ROC tables they contain."""
    resolved: List[Path] = []
    for p in map(Path, paths):
        if p.is_dir():
            found = sorted(f for f in p.iterdir() if f.name.endswith((ROC_EXT, ROC_EXT + ".gz")))
            if not found:
                raise ValueError(f"No ROC files (*{ROC_EXT}[.gz]) found in directory: {p}")
            resolved.extend(found)
        elif p.is_file():
            resolved.append(p)
        else:
            raise ValueError(f"ROC file does not exist: {p}")
    return resolved


def check_outdir(outdir: str | Path) -> None:
    """Warn when an output directory already holds ROC results that will be overwritten."""
    out = Path(outdir)
    if not out.is_dir():
        return
    existing = [f.name for f in out.iterdir() if f.name.endswith((ROC_EXT, ROC_EXT + ".gz"))]
    if existing:
        logger.warning("Output directory %s already contains ROC files; they will be overwritten", out)
