"""IUPAC ambiguity codes as 4-bit base sets.

Bit 0 = A, bit 1 = C, bit 2 = G, bit 3 = T/U. Two letters are compatible when
their base sets intersect. The gap character ``'-'`` is never diagnostic.
"""

from __future__ import annotations

import itertools
from typing import Dict, List, Tuple

import numpy as np

GAP = "-"

NUCLEOTIDE_ALPHABET = "ACGTBDHVMKYRSWUN"

_BITS: Dict[str, int] = {
    "A": 0b0001,
    "C": 0b0010,
    "G": 0b0100,
    "T": 0b1000,
    "U": 0b1000,
    "M": 0b0011,
    "R": 0b0101,
    "W": 0b1001,
    "S": 0b0110,
    "Y": 0b1010,
    "K": 0b1100,
    "V": 0b0111,
    "H": 0b1011,
    "D": 0b1101,
    "B": 0b1110,
    "N": 0b1111,
}

# Lookup table indexed by ASCII code, for vectorised use on byte arrays.
BITMAP_TABLE = np.zeros(256, dtype=np.uint8)
for _ch, _bits in _BITS.items():
    BITMAP_TABLE[ord(_ch)] = _bits
    BITMAP_TABLE[ord(_ch.lower())] = _bits

# Deamination: a G in the template may read as A, a C as T.
_ADNA_RELAX = str.maketrans("GCgc", "RYry")


def bitmap(ch: str) -> int:
    """Base set of a nucleotide letter; 0 for anything unknown."""
    return _BITS.get(ch.upper(), 0)


def compatible(a: str, b: str) -> bool:
    if a == GAP or b == GAP:
        return True
    return (bitmap(a) & bitmap(b)) != 0


def is_weakly_diagnostic(a: str, b: str) -> bool:
    """Letters differ (case-insensitively) and neither is a gap."""
    return a != GAP and b != GAP and a.upper() != b.upper()


def is_strongly_diagnostic(a: str, b: str) -> bool:
    """Letters share no compatible base and neither is a gap."""
    return a != GAP and b != GAP and (bitmap(a) & bitmap(b)) == 0


def is_transversion(a: str, b: str) -> bool:
    u = a.upper()
    v = b.upper()
    if u == "A":
        return v != "G"
    if u == "C":
        return v != "T"
    if u == "G":
        return v != "A"
    if u in ("T", "U"):
        return v != "C"
    return False


def consistent(x: str, y: str, *, adna: bool = False) -> bool:
    """Could a fragment showing ``y`` derive from a template showing ``x``?

    With ``adna`` set, the template letter is relaxed for deamination damage
    (G -> R, C -> Y) before comparing base sets.
    """
    if x == GAP or y == GAP:
        return True
    if adna:
        x = x.translate(_ADNA_RELAX)
    return (bitmap(x) & bitmap(y)) != 0


def is_valid_sequence(seq: str) -> bool:
    """True if every letter is a nucleotide or ambiguity code (no gaps)."""
    return all(ch in NUCLEOTIDE_ALPHABET for ch in seq.upper())


def iupac_equalities() -> List[Tuple[str, str]]:
    """All pairs of distinct uppercase letters whose base sets intersect."""
    pairs: List[Tuple[str, str]] = []
    for a, b in itertools.permutations(NUCLEOTIDE_ALPHABET, 2):
        if _BITS[a] & _BITS[b]:
            pairs.append((a, b))
    return pairs
