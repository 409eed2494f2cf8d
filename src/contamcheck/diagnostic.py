from __future__ import annotations

import bisect
import logging
from typing import Dict, Iterator, List, Optional

import numpy as np

from .ambiguity import BITMAP_TABLE, GAP, is_transversion
from .models import DiagnosticPosition, Strength
from .tracks import AlignedTrackPair

logger = logging.getLogger(__name__)


class DiagnosticPositionSet:
    """Ordered map from assembly position to :class:`DiagnosticPosition`.

    Positions are kept in a sorted list next to the lookup dict so overlap
    queries are two bisections rather than a scan.
    """

    def __init__(self, entries: Optional[List[DiagnosticPosition]] = None) -> None:
        self._by_pos: Dict[int, DiagnosticPosition] = {}
        for dp in entries or []:
            self._by_pos[dp.position] = dp
        self._positions: List[int] = sorted(self._by_pos)

    @classmethod
    def from_tracks(
        cls,
        tracks: AlignedTrackPair,
        *,
        span_from: int = 0,
        span_to: Optional[int] = None,
        transversions_only: bool = False,
    ) -> "DiagnosticPositionSet":
        """Collect every column where the two tracks disagree.

        Only columns whose gap-free assembly coordinate lies in
        ``[span_from, span_to)`` are considered.
        """
        con = np.frombuffer(tracks.consensus.upper().encode("ascii"), dtype=np.uint8)
        ass = np.frombuffer(tracks.assembly.upper().encode("ascii"), dtype=np.uint8)
        gap = ord(GAP)

        ass_non_gap = ass != gap
        # assembly counter before each column
        counter = np.cumsum(ass_non_gap) - ass_non_gap

        weak = (con != gap) & ass_non_gap & (con != ass)
        strong = weak & ((BITMAP_TABLE[con] & BITMAP_TABLE[ass]) == 0)

        in_span = counter >= span_from
        if span_to is not None:
            in_span &= counter < span_to
        weak &= in_span

        entries: List[DiagnosticPosition] = []
        for col in np.flatnonzero(weak):
            c = tracks.consensus[col]
            a = tracks.assembly[col]
            if transversions_only and not is_transversion(c, a):
                continue
            entries.append(
                DiagnosticPosition(
                    position=int(counter[col]),
                    consensus_base=c,
                    assembly_base=a,
                    strength=Strength.STRONG if strong[col] else Strength.WEAK,
                )
            )
        return cls(entries)

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[DiagnosticPosition]:
        for pos in self._positions:
            yield self._by_pos[pos]

    def __contains__(self, pos: object) -> bool:
        return pos in self._by_pos

    def get(self, pos: int) -> Optional[DiagnosticPosition]:
        return self._by_pos.get(pos)

    def overlapping(self, start: int, end: int) -> List[DiagnosticPosition]:
        """Entries with ``start <= position <= end`` (``end`` inclusive)."""
        left = bisect.bisect_left(self._positions, start)
        right = bisect.bisect_left(self._positions, end + 1)
        return [self._by_pos[p] for p in self._positions[left:right]]

    def count(self, strength: Strength) -> int:
        return sum(1 for dp in self._by_pos.values() if dp.strength is strength)

    def count_transversions(self) -> int:
        return sum(
            1 for dp in self._by_pos.values() if is_transversion(dp.consensus_base, dp.assembly_base)
        )

    def prune_weak(self) -> int:
        """Drop every remaining WEAK entry; returns how many were removed."""
        weak = [p for p, dp in self._by_pos.items() if dp.strength is Strength.WEAK]
        for p in weak:
            del self._by_pos[p]
        self._positions = sorted(self._by_pos)
        logger.debug("Pruned %d weak diagnostic positions; %d remain", len(weak), len(self))
        return len(weak)

    def describe(self, *, strong_only: bool = False) -> str:
        """Compact listing such as ``<12s:T,C>, <40e:R(A),G>``."""
        items = []
        for dp in self:
            if strong_only and dp.strength is not Strength.STRONG:
                continue
            contaminant = f"({dp.contaminant_base})" if dp.strength is Strength.EFFECTIVE else ""
            code = "" if strong_only else dp.strength.code
            items.append(f"<{dp.position}{code}:{dp.consensus_base}{contaminant},{dp.assembly_base}>")
        return ", ".join(items)
