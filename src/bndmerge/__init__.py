"""bndmerge: merge breakpoints from many structural-variant VCFs into consensus BND records.

Public API is intentionally small; most users should use the CLI:

    bndmerge merge -o merged.vcf.gz sample1.vcf.gz sample2.vcf.gz

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
