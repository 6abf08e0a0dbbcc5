from __future__ import annotations

from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

import pysam

from .utils import ensure_outdir, write_json

CONTIG = "chr1"
CONTIG_LENGTH = 1000

Genotype = Tuple[Optional[int], Optional[int]]
NO_CALL: Genotype = (None, None)


class _ToyRecord(NamedTuple):
    pos0: int
    ref: str
    alt: str
    base: Optional[str]
    call: Optional[str]
    base_gt: Genotype
    call_gt: Genotype
    gq: Optional[int]


# Five matched calls, two missed baseline variants and three false positives,
# one of which has no GQ.
TOY_RECORDS: List[_ToyRecord] = [
    _ToyRecord(99, "A", "G", "TP", "TP", (0, 1), (0, 1), 50),
    _ToyRecord(199, "C", "T", "TP", "TP", (1, 1), (1, 1), 40),
    _ToyRecord(299, "G", "A", "FN", None, (0, 1), NO_CALL, None),
    _ToyRecord(399, "T", "C", None, "FP", NO_CALL, (0, 1), 10),
    _ToyRecord(499, "AC", "A", "TP", "TP", (0, 1), (0, 1), 30),
    _ToyRecord(599, "G", "GTT", "FN", None, (1, 1), NO_CALL, None),
    _ToyRecord(699, "C", "CAA", None, "FP", NO_CALL, (0, 1), 20),
    _ToyRecord(799, "A", "T", "TP", "TP", (0, 1), (0, 1), 45),
    _ToyRecord(899, "C", "G", None, "FP", NO_CALL, (0, 1), None),
    _ToyRecord(949, "T", "A", "TP", "TP", (1, 1), (1, 1), 50),
]


def _toy_header() -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add(CONTIG, length=CONTIG_LENGTH)
    header.info.add("BASE", number=1, type="String", description="Baseline genotype status")
    header.info.add("CALL", number=1, type="String", description="Call genotype status")
    header.info.add("CALL_WEIGHT", number=1, type="Float", description="Call weight (equivalent number of baseline variants)")
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.formats.add("GQ", number=1, type="Integer", description="Genotype quality")
    header.formats.add("DP", number=1, type="Integer", description="Read depth")
    header.add_sample("BASELINE")
    header.add_sample("CALLS")
    return header


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a small annotated evaluation VCF suitable for quick demos/tests.

    The output is in the combined layout: INFO ``BASE``/``CALL`` statuses with
    a ``BASELINE`` and a ``CALLS`` sample, scored by FORMAT ``GQ``.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    vcf_path = outdir_p / "toy_annotated.vcf"

    header = _toy_header()
    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for t in TOY_RECORDS:
            info = {}
            if t.base is not None:
                info["BASE"] = t.base
            if t.call is not None:
                info["CALL"] = t.call
            rec = vcf.new_record(
                contig=CONTIG,
                start=t.pos0,
                stop=t.pos0 + len(t.ref),
                alleles=(t.ref, t.alt),
                qual=t.gq,
                filter="PASS",
                info=info,
            )
            rec.samples["BASELINE"]["GT"] = t.base_gt
            rec.samples["CALLS"]["GT"] = t.call_gt
            if t.gq is not None:
                rec.samples["CALLS"]["GQ"] = t.gq
                rec.samples["CALLS"]["DP"] = 30
            vcf.write(rec)

    vcf_gz = outdir_p / "toy_annotated.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    summary = {
        "annotated_vcf": str(vcf_gz),
        "records": str(len(TOY_RECORDS)),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
