"""Thin wrappers around the two aligners the classifier depends on.

- :func:`align_references` aligns the contaminant consensus against the
  assembly consensus globally with edlib, treating compatible IUPAC codes as
  matches and bounding the edit distance.
- :class:`FragmentAligner` re-aligns one fragment's read against its lifted
  reference window with Biopython's ``PairwiseAligner``; the read may start and
  end anywhere in the window at no cost.
"""

from __future__ import annotations

import logging
import warnings
from typing import Optional, Tuple

import edlib
from Bio import BiopythonDeprecationWarning
from Bio.Align import PairwiseAligner, substitution_matrices

from .ambiguity import GAP, iupac_equalities
from .errors import ReferenceAlignmentError
from .models import CachedPairwiseAlignment
from .tracks import AlignedTrackPair

logger = logging.getLogger(__name__)

_ACGT = frozenset("ACGT")


def default_max_distance(contaminant: str, assembly: str) -> int:
    return max(len(contaminant), len(assembly)) // 10


def align_references(
    contaminant: str,
    assembly: str,
    *,
    max_distance: Optional[int] = None,
) -> Tuple[AlignedTrackPair, int]:
    """Globally align contaminant consensus and assembly consensus.

    Returns the gapped track pair and the edit distance. Raises
    ``ReferenceAlignmentError`` if no alignment exists within ``max_distance``
    edits (default: a tenth of the longer sequence).
    """
    if max_distance is None:
        max_distance = default_max_distance(contaminant, assembly)

    con = contaminant.upper()
    ass = assembly.upper()
    result = edlib.align(
        con,
        ass,
        mode="NW",
        task="path",
        k=int(max_distance),
        additionalEqualities=iupac_equalities(),
    )
    distance = int(result["editDistance"])
    if distance < 0:
        raise ReferenceAlignmentError(
            f"Could not align references with up to {max_distance} differences. "
            "This is usually a sign of trouble; if you are sure the reference is right, "
            f"retry with --maxd N, N > {max_distance}.",
            max_distance=max_distance,
        )

    nice = edlib.getNiceAlignment(result, con, ass, gapSymbol=GAP)
    tracks = AlignedTrackPair(consensus=nice["query_aligned"], assembly=nice["target_aligned"])
    logger.info(
        "Aligned references: %d columns, edit distance %d (bound %d)",
        len(tracks),
        distance,
        max_distance,
    )
    return tracks, distance


def normalize_window(window: str) -> str:
    """Uppercase ACGT and replace everything else with N."""
    return "".join(ch if ch in _ACGT else "N" for ch in window.upper())


class FragmentAligner:
    """Semi-global read-vs-window aligner with a nucleotide substitution matrix.

    Parameters
    ----------
    matrix:
        Name of a matrix known to ``Bio.Align.substitution_matrices.load`` (for
        example ``NUC.4.4``) or a path to a matrix file.
    open_gap_score, extend_gap_score:
        Internal gap penalties (negative numbers).
    """

    def __init__(
        self,
        matrix: str = "NUC.4.4",
        *,
        open_gap_score: float = -10.0,
        extend_gap_score: float = -2.0,
    ) -> None:
        self.matrix = substitution_matrices.load(matrix)
        self._alphabet = frozenset(self.matrix.alphabet)

        aligner = PairwiseAligner()
        aligner.mode = "global"
        aligner.substitution_matrix = self.matrix
        aligner.open_gap_score = float(open_gap_score)
        aligner.extend_gap_score = float(extend_gap_score)
        # free end gaps in the read: it may begin and end anywhere in the window
        with warnings.catch_warnings():
            # renamed end_deletion_score in newer Biopython releases
            warnings.simplefilter("ignore", BiopythonDeprecationWarning)
            aligner.query_end_gap_score = 0.0
        self._aligner = aligner

    def _prepare_read(self, read: str) -> str:
        read = read.upper().replace("U", "T")
        return "".join(ch if ch in self._alphabet else "N" for ch in read)

    def align(self, window: str, read: str) -> CachedPairwiseAlignment:
        """Align ``read`` to ``window`` (already normalised to ACGTN).

        The leading window letters that the read does not cover are reported
        as ``start``; the returned rows begin at that offset.
        """
        read = self._prepare_read(read)
        if not window or not read:
            return CachedPairwiseAlignment(start=0, ref_seq="", frag_seq="", score=0.0)

        alignment = self._aligner.align(window, read)[0]
        ref_row = alignment[0]
        frag_row = alignment[1]

        start = 0
        while start < len(frag_row) and frag_row[start] == GAP:
            start += 1

        return CachedPairwiseAlignment(
            start=start,
            ref_seq=ref_row[start:],
            frag_seq=frag_row[start:],
            score=float(alignment.score),
        )
