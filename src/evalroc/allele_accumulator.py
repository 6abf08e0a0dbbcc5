"""Population-allele rewriting of classified baseline and call records.

Baseline records are the existing population alleles; call records contribute
alleles the baseline lacks. Both streams must be sorted by position and are
walked in step. Each input pairs an :class:`EvalRecord` with the variant the
matcher loaded for it, or ``None`` when the record never reached the matcher.

Outputs (``.gz`` when compressed):

* ``alleles.vcf``: the updated population alleles, without samples.
* ``auxiliary.vcf``: call records made redundant by an existing allele.
* ``alternate.vcf`` (squashed mode only): sample calls left over once the
  matched alleles are subtracted.

Every written record carries an INFO ``STATUS`` describing what happened to it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

import pysam

from .models import FORMAT_GENOTYPE, EvalRecord
from .utils import GZ_SUFFIX, ensure_outdir
from .variant import GtIdVariant, OrientedVariant, VariantStatus
from .vcfio import VcfWriter, copy_header

logger = logging.getLogger(__name__)

STATUS = "STATUS"
STATUS_INFO = {"number": ".", "type": "String", "description": "Allele accumulation status"}

ALLELES_FILE = "alleles.vcf"
AUXILIARY_FILE = "auxiliary.vcf"
ALTERNATE_FILE = "alternate.vcf"

LoadedVariant = Union[OrientedVariant, GtIdVariant, None]
Classified = Tuple[EvalRecord, LoadedVariant]


class AlleleAccumulator:
    """Folds classified sample calls back into population allele records.

    Parameters
    ----------
    header:
        The baseline VCF header (pysam), used for ``alleles.vcf`` and
        ``auxiliary.vcf``.
    out_dir:
        Output directory, created if needed.
    compress:
        Write bgzipped ``.vcf.gz`` files.
    """

    def __init__(self, header: pysam.VariantHeader, out_dir: str | Path, compress: bool = False) -> None:
        self.out_dir = ensure_outdir(out_dir)
        self.compress = compress
        self.baseline_not_in_path = 0
        self.calls_not_in_path = 0
        self._contig_rank: Dict[str, int] = {name: i for i, name in enumerate(header.contigs)}

        aux_header = copy_header(header, extra_info={STATUS: STATUS_INFO})
        self._auxiliary = VcfWriter(self._out_path(AUXILIARY_FILE), aux_header)
        allele_header = copy_header(aux_header, samples=False)
        self._alleles = VcfWriter(self._out_path(ALLELES_FILE), allele_header)

    def _out_path(self, name: str) -> Path:
        return self.out_dir / (name + (GZ_SUFFIX if self.compress else ""))

    # -----------------
    # Record preparation
    # -----------------

    @staticmethod
    def _reset(rec: EvalRecord) -> EvalRecord:
        return replace(
            rec,
            alts=list(rec.alts),
            id=None,
            qual=None,
            filters=[],
            info={},
            samples=[],
            phased=[],
            sample_names=[],
        )

    def reset_baseline(self, rec: EvalRecord) -> EvalRecord:
        return self._reset(rec)

    def reset_call(self, rec: EvalRecord) -> EvalRecord:
        return self._reset(rec)

    # -----------------
    # Stream walk
    # -----------------

    def _locus(self, rec: EvalRecord) -> Tuple[int, str, int, int]:
        return self._contig_rank.get(rec.chrom, len(self._contig_rank)), rec.chrom, rec.pos, rec.end

    def process(self, baseline: Iterable[Classified], calls: Iterable[Classified]) -> None:
        """Interleave both position-sorted streams and write every record once."""
        b_iter: Iterator[Classified] = iter(baseline)
        c_iter: Iterator[Classified] = iter(calls)
        b: Optional[Classified] = None
        c: Optional[Classified] = None
        while True:
            if b is None:
                nxt = next(b_iter, None)
                if nxt is not None:
                    b = (self.reset_baseline(nxt[0]), nxt[1])
            if c is None:
                nxt = next(c_iter, None)
                if nxt is not None:
                    c = (self.reset_call(nxt[0]), nxt[1])

            if b is None and c is None:
                break
            if b is None:
                self._process_call(*c)
                c = None
            elif c is None:
                self._process_baseline(*b)
                b = None
            else:
                b_locus = self._locus(b[0])
                c_locus = self._locus(c[0])
                if b_locus < c_locus:
                    self._process_baseline(*b)
                    b = None
                elif b_locus > c_locus:
                    self._process_call(*c)
                    c = None
                elif b[1] is None or c[1] is None:
                    # Unknown records are handled as if at independent positions.
                    if b[1] is None:
                        self.handle_unknown_baseline(b[0])
                        b = None
                    if c[1] is None:
                        self.handle_unknown_call(c[0])
                        c = None
                else:
                    # The baseline stays pending so later calls can merge into it.
                    self.handle_known_both(b[0], c[0], c[1])
                    c = None

    def _process_baseline(self, rec: EvalRecord, variant: LoadedVariant) -> None:
        if variant is None:
            self.handle_unknown_baseline(rec)
        else:
            self.handle_known_baseline(rec, variant)

    def _process_call(self, rec: EvalRecord, variant: LoadedVariant) -> None:
        if variant is None:
            self.handle_unknown_call(rec)
        else:
            self.handle_known_call(rec, variant)

    # -----------------
    # Handlers
    # -----------------

    def handle_unknown_baseline(self, brec: EvalRecord) -> None:
        brec.info[STATUS] = ["B-NotInPath"]
        self._alleles.write(brec)
        self.baseline_not_in_path += 1

    def handle_unknown_call(self, crec: EvalRecord) -> None:
        crec.info[STATUS] = ["C-NotInPath"]
        self._auxiliary.write(crec)
        self.calls_not_in_path += 1

    def handle_known_baseline(self, brec: EvalRecord, bv: Union[OrientedVariant, GtIdVariant]) -> None:
        if isinstance(bv, OrientedVariant):
            status = f"B-TP={bv}"
        elif bv.has_status(VariantStatus.SKIPPED):
            status = "B-TooHard"
        else:
            status = "B-FN"
        brec.add_info(STATUS, status)
        self._alleles.write(brec)

    def handle_known_call(self, crec: EvalRecord, cv: Union[OrientedVariant, GtIdVariant]) -> None:
        if isinstance(cv, OrientedVariant):
            # Matched, but the baseline record sits elsewhere.
            crec.add_info(STATUS, f"C-TP-BDiff={cv}")
            self._auxiliary.write(crec)
        elif cv.has_status(VariantStatus.SKIPPED):
            self.write_non_redundant(crec, cv, f"C-TooHard={cv}")
        else:
            self.write_non_redundant(crec, cv, f"C-FP={cv}")

    def handle_known_both(
        self, brec: EvalRecord, crec: EvalRecord, cv: Union[OrientedVariant, GtIdVariant]
    ) -> None:
        if isinstance(cv, OrientedVariant):
            crec.add_info(STATUS, f"C-TP-BSame={cv}")
            self._auxiliary.write(crec)
        elif cv.has_status(VariantStatus.SKIPPED):
            self.merge_into_baseline(brec, crec, cv, "C-TooHard")
        else:
            self.merge_into_baseline(brec, crec, cv, "C-FP")

    def write_non_redundant(self, crec: EvalRecord, v: GtIdVariant, status: str) -> None:
        """Write a call with only the ALTs its genotype uses."""
        crec.add_info(STATUS, status)
        new_alts: List[str] = []
        for gt_id in {v.allele_a, v.allele_b}:
            if gt_id > 0:
                alt = crec.alts[gt_id - 1]
                if alt not in new_alts:
                    new_alts.append(alt)
        crec.alts = sorted(new_alts)
        self._alleles.write(crec)

    def merge_into_baseline(self, brec: EvalRecord, crec: EvalRecord, v: GtIdVariant, status: str) -> None:
        """Add any new ALT from the call to the pending baseline record."""
        merged = False
        for gt_id in (v.allele_a, v.allele_b) if v.allele_a != v.allele_b else (v.allele_a,):
            if gt_id > 0:
                alt = crec.alts[gt_id - 1]
                if alt not in brec.alts:
                    brec.alts.append(alt)
                    brec.add_info(STATUS, f"B-Merged-{alt}")
                    merged = True
        if merged:
            brec.alts.sort()
        crec.add_info(STATUS, status + ("-Merged" if merged else "-BSame"))
        self._auxiliary.write(crec)

    # -----------------
    # Lifecycle
    # -----------------

    def _writers(self) -> List[VcfWriter]:
        return [self._alleles, self._auxiliary]

    def close(self) -> None:
        if self.baseline_not_in_path > 0:
            logger.info("There were %d baseline records not in the path", self.baseline_not_in_path)
        if self.calls_not_in_path > 0:
            logger.info("There were %d call records not in the path", self.calls_not_in_path)
        for w in self._writers():
            w.close()

    def __enter__(self) -> "AlleleAccumulator":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class SquashedAlleleAccumulator(AlleleAccumulator):
    """Allele accumulation that also keeps the sample calls left unexplained.

    Matched calls with two ALTs have the ALT not placed on the matched
    haplotype re-emitted alone (``GT=1``) into ``alternate.vcf``; too-hard and
    excluded calls are copied there unchanged before the usual incorporation.
    """

    def __init__(
        self,
        header: pysam.VariantHeader,
        out_dir: str | Path,
        compress: bool = False,
        calls_header: Optional[pysam.VariantHeader] = None,
    ) -> None:
        super().__init__(header, out_dir, compress)
        alt_header = copy_header(calls_header if calls_header is not None else header, extra_info={STATUS: STATUS_INFO})
        self._alternate = VcfWriter(self._out_path(ALTERNATE_FILE), alt_header)

    def reset_call(self, rec: EvalRecord) -> EvalRecord:
        # Calls keep their samples for the alternate output.
        return replace(rec, alts=list(rec.alts), info={}, samples=[dict(s) for s in rec.samples])

    def handle_known_call(self, crec: EvalRecord, cv: Union[OrientedVariant, GtIdVariant]) -> None:
        if isinstance(cv, OrientedVariant):
            crec.add_info(STATUS, f"C-TP-BDiff={cv}")
            self.write_residual(crec, cv)
        else:
            super().handle_known_call(crec, cv)

    def handle_known_both(
        self, brec: EvalRecord, crec: EvalRecord, cv: Union[OrientedVariant, GtIdVariant]
    ) -> None:
        if isinstance(cv, OrientedVariant):
            crec.add_info(STATUS, f"C-TP-BSame={cv}")
            self.write_residual(crec, cv)
        else:
            super().handle_known_both(brec, crec, cv)

    def write_residual(self, crec: EvalRecord, ov: OrientedVariant) -> None:
        """Write what is left of a matched call once the matched ALT is removed."""
        v = ov.variant
        remaining = -1
        num_alts = 0
        if v.num_alleles > 2:
            for i in range(1, v.num_alleles):
                if v.allele(i) is not None:
                    num_alts += 1
                    if i != ov.allele_id:
                        if remaining != -1:
                            raise RuntimeError(f"Cannot have two remaining ALT alleles: {ov}")
                        remaining = i
        if num_alts > 1:
            if remaining == -1:
                raise RuntimeError(f"Call with {num_alts} ALTs has no remaining ALT allele: {ov}")
            crec.alts = [crec.alts[remaining - 1]]
            crec.samples = [{FORMAT_GENOTYPE: (1,)}]
            crec.phased = [False]
        self._alternate.write(crec)

    def write_non_redundant(self, crec: EvalRecord, v: GtIdVariant, status: str) -> None:
        crec.add_info(STATUS, status)
        self._alternate.write(crec)
        crec.samples = []
        crec.phased = []
        crec.info.pop(STATUS, None)
        super().write_non_redundant(crec, v, status)

    def _writers(self) -> List[VcfWriter]:
        return super()._writers() + [self._alternate]
