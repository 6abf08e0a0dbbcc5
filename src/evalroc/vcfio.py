from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pysam

from .models import EvalRecord, RecordHeader


def header_from_pysam(header: pysam.VariantHeader) -> RecordHeader:
    return RecordHeader(
        info={k: str(v.type) for k, v in header.info.items()},
        formats={k: str(v.type) for k, v in header.formats.items()},
        samples=tuple(header.samples),
        contigs={k: v.length for k, v in header.contigs.items()},
    )


def record_from_pysam(rec: pysam.VariantRecord) -> EvalRecord:
    """Copy a pysam record into an :class:`EvalRecord`.

    Coordinates stay 0-based (``rec.start``); flags become ``True``.
    """
    samples: List[Dict[str, Any]] = []
    phased: List[bool] = []
    for name in rec.samples:
        s = rec.samples[name]
        values: Dict[str, Any] = {}
        for key in s.keys():
            values[key] = s[key]
        samples.append(values)
        phased.append(bool(s.phased))
    return EvalRecord(
        chrom=rec.chrom,
        pos=rec.start,
        ref=rec.ref,
        alts=list(rec.alts or ()),
        qual=rec.qual,
        id=rec.id,
        filters=list(rec.filter.keys()),
        info=dict(rec.info.items()),
        samples=samples,
        phased=phased,
        sample_names=list(rec.samples),
    )


def read_header(path: str | Path) -> RecordHeader:
    with pysam.VariantFile(str(path)) as vcf:
        return header_from_pysam(vcf.header)


def copy_header(
    src: pysam.VariantHeader,
    *,
    samples: bool = True,
    extra_info: Optional[Dict[str, Dict[str, str]]] = None,
) -> pysam.VariantHeader:
    """Copy a header, optionally dropping the sample columns and adding INFO fields."""
    if samples:
        header = src.copy()
    else:
        header = pysam.VariantHeader()
        for hrec in src.records:
            # A fresh header already declares these.
            if hrec.key == "fileformat" or (hrec.key == "FILTER" and hrec.get("ID") == "PASS"):
                continue
            header.add_line(str(hrec).rstrip("\n"))
    for info_id, spec in (extra_info or {}).items():
        if info_id not in header.info:
            header.info.add(info_id, number=spec["number"], type=spec["type"], description=spec["description"])
    return header


class VcfWriter:
    """Writes :class:`EvalRecord` objects through pysam; ``.gz`` paths are bgzipped."""

    def __init__(self, path: str | Path, header: pysam.VariantHeader) -> None:
        self.path = Path(path)
        self.header = header
        mode = "wz" if self.path.name.endswith(".gz") else "w"
        self._vcf = pysam.VariantFile(str(self.path), mode, header=header)
        self._samples = list(header.samples)
        self.n_written = 0

    def write(self, record: EvalRecord) -> None:
        info = {k: v for k, v in record.info.items() if k in self.header.info}
        rec = self._vcf.new_record(
            contig=record.chrom,
            start=record.pos,
            stop=record.end,
            alleles=[record.ref] + list(record.alts),
            id=record.id,
            qual=record.qual,
            filter=record.filters or None,
            info=info,
        )
        for i in range(min(len(self._samples), len(record.samples))):
            sample = rec.samples[i]
            for key, value in record.samples[i].items():
                if value is None:
                    continue
                if key in self.header.formats:
                    sample[key] = value
            if i < len(record.phased):
                sample.phased = record.phased[i]
        self._vcf.write(rec)
        self.n_written += 1

    def close(self) -> None:
        self._vcf.close()

    def __enter__(self) -> "VcfWriter":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
