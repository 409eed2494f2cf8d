from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pysam

from .ambiguity import GAP
from .errors import InputValidationError
from .models import Fragment, Segment

logger = logging.getLogger(__name__)

_ALIGNMENT_SUFFIXES = (".bam", ".sam", ".cram")
_FASTA_SUFFIXES = (".fa", ".fasta", ".fna", ".fa.gz", ".fasta.gz")

# CIGAR operations
_MATCH_OPS = (0, 7, 8)  # M, =, X
_INS = 1
_REF_ONLY_OPS = (2, 3)  # D, N
_SOFT_CLIP = 4
_NO_CONSUME_OPS = (5, 6)  # H, P


@dataclass
class Assembly:
    """Assembly consensus and the fragments placed on it."""

    path: str
    consensus_name: str
    consensus: str
    fragments: List[Fragment]
    stats: Dict[str, int] = field(default_factory=dict)


def read_fasta(path: str | Path, *, name: Optional[str] = None) -> Tuple[str, str]:
    """Return ``(name, sequence)`` of the named record, or the first one."""
    with pysam.FastxFile(str(path)) as fh:
        for entry in fh:
            if name is None or entry.name == name:
                return entry.name, entry.sequence or ""
    if name is None:
        raise InputValidationError(f"No sequences found in FASTA file: {path}")
    raise InputValidationError(f"Sequence '{name}' not found in FASTA file: {path}")


def split_fragment_name(name: str) -> Tuple[str, Segment]:
    """Split a read name into fragment id and segment.

    Halves of a paired fragment are named ``<id>_b`` / ``<id>_f`` (a comma
    before the underscore is dropped as well); anything else stands alone.
    """
    if len(name) > 3 and name[-1] in ("b", "f") and name[-2] == "_":
        segment = Segment.BACK if name[-1] == "b" else Segment.FRONT
        cut = 3 if name[-3] == "," else 2
        return name[:-cut], segment
    return name, Segment.ALONE


def fragment_from_read(read: pysam.AlignedSegment) -> Optional[Fragment]:
    """Project an aligned read onto the assembly consensus.

    Matched bases become one character per consensus position, deletions and
    reference skips become gaps, insertions are attached to the preceding
    position. Clipped bases and insertions before the first aligned base are
    ignored.
    """
    if read.is_unmapped or read.cigartuples is None:
        return None
    seq = read.query_sequence
    if seq is None:
        return None

    aligned: List[str] = []
    insertions: List[str] = []
    qpos = 0
    for op, length in read.cigartuples:
        if op in _MATCH_OPS:
            for k in range(length):
                aligned.append(seq[qpos + k])
                insertions.append("")
            qpos += length
        elif op == _INS:
            if insertions:
                insertions[-1] += seq[qpos : qpos + length]
            qpos += length
        elif op in _REF_ONLY_OPS:
            aligned.extend(GAP * length)
            insertions.extend([""] * length)
        elif op == _SOFT_CLIP:
            qpos += length
        elif op in _NO_CONSUME_OPS:
            continue

    if not aligned:
        return None

    frag_id, segment = split_fragment_name(str(read.query_name))
    start = int(read.reference_start)
    return Fragment(
        id=frag_id,
        segment=segment,
        start=start,
        end=start + len(aligned) - 1,
        aligned="".join(aligned),
        insertions=tuple(insertions),
    )


def iter_fragments(
    reads: Iterable[pysam.AlignedSegment],
    *,
    contig: Optional[str] = None,
    skip_duplicates: bool = True,
    stats: Optional[Dict[str, int]] = None,
) -> Iterable[Fragment]:
    """Turn primary alignments into fragments, in input order."""
    if stats is None:
        stats = {}
    for key in (
        "reads_total",
        "reads_unmapped",
        "reads_other_contig",
        "reads_skipped_secondary",
        "reads_skipped_supplementary",
        "reads_skipped_duplicates",
        "reads_empty",
        "fragments",
    ):
        stats.setdefault(key, 0)

    for read in reads:
        stats["reads_total"] += 1
        if read.is_unmapped:
            stats["reads_unmapped"] += 1
            continue
        if read.is_secondary:
            stats["reads_skipped_secondary"] += 1
            continue
        if read.is_supplementary:
            stats["reads_skipped_supplementary"] += 1
            continue
        if skip_duplicates and read.is_duplicate:
            stats["reads_skipped_duplicates"] += 1
            continue
        if contig is not None and read.reference_name != contig:
            stats["reads_other_contig"] += 1
            continue
        fragment = fragment_from_read(read)
        if fragment is None:
            stats["reads_empty"] += 1
            continue
        stats["fragments"] += 1
        yield fragment


def find_consensus_fasta(alignment_path: str | Path) -> Path:
    """Locate the consensus FASTA next to an alignment file (same stem)."""
    p = Path(alignment_path)
    stem = p.name
    for suffix in _ALIGNMENT_SUFFIXES:
        if stem.endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    for suffix in _FASTA_SUFFIXES:
        candidate = p.with_name(stem + suffix)
        if candidate.exists():
            return candidate
    raise InputValidationError(
        f"No consensus FASTA found for {p} (looked for {stem}{{{','.join(_FASTA_SUFFIXES)}}}). "
        "Provide one with --consensus."
    )


def find_latest_iteration(path: str | Path) -> Path:
    """Pick the highest-numbered iteration of an assembly file.

    Iterative assemblers write ``sample.1.bam``, ``sample.2.bam``, ...; given
    any of them, return the sibling with the largest number. Paths whose stem
    does not end in digits are returned unchanged.
    """
    p = Path(path)
    name = p.name
    suffix = ""
    for s in _ALIGNMENT_SUFFIXES:
        if name.endswith(s):
            suffix = s
            name = name[: -len(s)]
            break

    base = name.rstrip("0123456789")
    if base == name or not base:
        return p

    directory = p.parent
    pattern = re.compile(re.escape(base) + r"(\d+)" + re.escape(suffix) + r"$")
    best_num = -1
    best = p
    for candidate in directory.iterdir():
        m = pattern.match(candidate.name)
        if m is None:
            continue
        num = int(m.group(1))
        if num > best_num:
            best_num = num
            best = candidate
    if best != p:
        logger.info("Using latest iteration %s instead of %s", best, p)
    return best


def load_assembly(
    alignment_path: str | Path,
    *,
    consensus_fasta: Optional[str | Path] = None,
    skip_duplicates: bool = True,
) -> Assembly:
    """Load the assembly consensus and its fragments.

    The alignment file (BAM/SAM/CRAM) holds fragments aligned to the assembly
    consensus; the consensus itself comes from ``consensus_fasta`` or a FASTA
    with the same stem next to the alignment file.
    """
    alignment_path = Path(alignment_path)
    fasta = Path(consensus_fasta) if consensus_fasta is not None else find_consensus_fasta(alignment_path)

    with pysam.AlignmentFile(str(alignment_path), "r", check_sq=False) as aln:
        references = list(aln.references)
        contig: Optional[str] = None
        if len(references) > 1:
            name, consensus = _read_first_matching(fasta, set(references))
            contig = name
        else:
            name, consensus = read_fasta(fasta, name=references[0] if references else None)
            contig = references[0] if references else None

        stats: Dict[str, int] = {}
        fragments = list(
            iter_fragments(
                aln.fetch(until_eof=True),
                contig=contig,
                skip_duplicates=skip_duplicates,
                stats=stats,
            )
        )

    logger.info(
        "Loaded %d fragments from %s (consensus %s, %d bp)",
        len(fragments),
        alignment_path,
        name,
        len(consensus),
    )
    return Assembly(
        path=str(alignment_path),
        consensus_name=name,
        consensus=consensus,
        fragments=fragments,
        stats=stats,
    )


def _read_first_matching(fasta: Path, names: set) -> Tuple[str, str]:
    with pysam.FastxFile(str(fasta)) as fh:
        for entry in fh:
            if entry.name in names:
                return entry.name, entry.sequence or ""
    raise InputValidationError(
        f"None of the alignment contigs ({', '.join(sorted(names))}) is present in {fasta}"
    )
