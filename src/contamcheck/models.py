from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple


class Strength(enum.IntEnum):
    """How reliably a diagnostic position separates contaminant from sample."""

    WEAK = 0
    EFFECTIVE = 1
    STRONG = 2

    @property
    def code(self) -> str:
        return "wes"[int(self)]


class Segment(str, enum.Enum):
    BACK = "b"
    FRONT = "f"
    ALONE = "a"


class FragmentClass(enum.IntEnum):
    UNKNOWN = 0
    CLEAN = 1
    DIRT = 2
    CONFLICT = 3
    NONSENSE = 4

    @property
    def label(self) -> str:
        return _CLASS_LABELS[self]


_CLASS_LABELS = {
    FragmentClass.UNKNOWN: "unclassified",
    FragmentClass.CLEAN: "clean",
    FragmentClass.DIRT: "polluting",
    FragmentClass.CONFLICT: "conflicting",
    FragmentClass.NONSENSE: "nonsensical",
}


@dataclass
class DiagnosticPosition:
    """An assembly coordinate where contaminant and sample consensus differ.

    Attributes
    ----------
    position:
        0-based gap-free assembly coordinate.
    consensus_base:
        Contaminant-consensus letter at this alignment column.
    assembly_base:
        Assembly-consensus letter at this alignment column.
    strength:
        WEAK, STRONG, or EFFECTIVE (a WEAK position confirmed by a fragment).
    contaminant_base:
        Fragment base that confirmed the position; only set on upgrade.
    """

    position: int
    consensus_base: str
    assembly_base: str
    strength: Strength
    contaminant_base: Optional[str] = None

    def upgrade(self, base: str) -> bool:
        """Promote WEAK to EFFECTIVE. Returns True if the strength changed."""
        if self.strength is not Strength.WEAK:
            return False
        self.strength = Strength.EFFECTIVE
        self.contaminant_base = base
        return True


@dataclass(frozen=True)
class Fragment:
    """One assembled read (or read half) placed on the assembly consensus.

    ``aligned`` holds one character per assembly position in ``[start, end]``
    (``'-'`` for a deletion); ``insertions[k]`` is the read sequence inserted
    after ``aligned[k]``.
    """

    id: str
    segment: Segment
    start: int
    end: int
    aligned: str
    insertions: Tuple[str, ...] = field(default=())

    def read_sequence(self) -> str:
        parts = []
        for k, nt in enumerate(self.aligned):
            if nt != "-":
                parts.append(nt)
            if k < len(self.insertions) and self.insertions[k]:
                parts.append(self.insertions[k])
        return "".join(parts)

    @property
    def label(self) -> str:
        return f"{self.id}/{self.segment.value}"


@dataclass(frozen=True)
class CachedPairwiseAlignment:
    """Pass-1 alignment of a fragment against its lifted reference window.

    ``start`` is the offset into the window where the aligned part begins;
    ``ref_seq`` and ``frag_seq`` are the gapped rows from that offset on.
    """

    start: int
    ref_seq: str
    frag_seq: str
    score: float = 0.0


@dataclass(frozen=True)
class FragmentVerdict:
    """Final classification of one tallied fragment (paired halves merged)."""

    id: str
    segment: Segment
    n_positions: int
    klass: FragmentClass
    votes: int
    klass_all: FragmentClass
    votes_all: int


@dataclass(frozen=True)
class ConfidenceInterval:
    """Contamination estimate with a 95% interval, all in percent."""

    lower: float
    estimate: float
    upper: float


@dataclass(frozen=True)
class CheckSettings:
    """Tunables for one contamination check run."""

    adna: bool = False
    transversions_only: bool = False
    span_from: int = 0
    span_to: Optional[int] = None
    min_diag_posns: int = 1
    max_distance: Optional[int] = None
    min_strong: int = 40
    allow_few_positions: bool = False
    matrix: str = "NUC.4.4"
    open_gap_score: float = -10.0
    extend_gap_score: float = -2.0

    @property
    def has_span(self) -> bool:
        return self.span_from != 0 or self.span_to is not None
