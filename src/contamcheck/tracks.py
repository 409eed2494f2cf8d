from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from .ambiguity import GAP

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlignedTrackPair:
    """Global alignment of contaminant consensus (``consensus``) against the
    sample's assembly consensus (``assembly``).

    Both tracks have equal length; ``'-'`` marks a gap. Assembly positions are
    counted over the non-gap characters of the assembly track only.
    """

    consensus: str
    assembly: str
    _column_starts: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.consensus) != len(self.assembly):
            raise ValueError(
                f"Aligned tracks differ in length: {len(self.consensus)} != {len(self.assembly)}"
            )
        ass = np.frombuffer(self.assembly.encode("ascii"), dtype=np.uint8)
        non_gap = np.flatnonzero(ass != ord(GAP))
        # column_starts[k]: first column whose gap-free assembly counter equals k
        starts = np.empty(len(non_gap) + 1, dtype=np.int64)
        starts[0] = 0
        starts[1:] = non_gap + 1
        object.__setattr__(self, "_column_starts", starts)

    def __len__(self) -> int:
        return len(self.consensus)

    @property
    def assembly_length(self) -> int:
        """Number of gap-free assembly positions."""
        return len(self._column_starts) - 1

    def column_start(self, pos: int) -> int:
        """Alignment column at which the assembly counter first reaches ``pos``.

        Positions beyond the assembly map to the end of the tracks.
        """
        if pos <= 0:
            return 0
        if pos > self.assembly_length:
            return len(self.consensus)
        return int(self._column_starts[pos])

    def lift_over(self, start: int, end: int) -> str:
        """Consensus-track letters for assembly positions ``[start, end)``."""
        if end <= start:
            return ""
        lo = self.column_start(start)
        hi = self.column_start(end)
        return self.consensus[lo:hi].replace(GAP, "")
