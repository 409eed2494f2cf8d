"""contamcheck: estimate contamination of an assembly by a known contaminant.

Fragments assembled against a consensus (e.g. an ancient mitochondrial
genome) are classified as endogenous or contaminant by voting at positions
where the assembly consensus and the contaminant reference disagree.

Most users should use the CLI:

    contamcheck check --reference contaminant.fa sample.bam

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
