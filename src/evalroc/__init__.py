"""evalroc: stratified ROC and summary statistics for variant-call evaluation.

Public API is intentionally small; most users should use the CLI:

    evalroc roc --vcf output.vcf.gz --outdir results/

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
