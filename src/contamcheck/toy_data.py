from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Tuple

import pysam

from .utils import ensure_outdir, write_json

_TRANSVERSION = {"A": "C", "C": "A", "G": "T", "T": "G"}


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _make_read(
    name: str,
    start0: int,
    seq: str,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def make_toy_sequences(
    *,
    length: int = 1000,
    n_strong: int = 60,
    n_weak: int = 6,
    seed: int = 7,
) -> Tuple[str, str, List[int], List[int]]:
    """Return ``(contaminant, assembly, strong_positions, weak_positions)``.

    The assembly is random; the contaminant differs from it by transversions
    at ``strong_positions`` and carries ``R`` where the assembly has ``G`` at
    ``weak_positions``.
    """
    rng = random.Random(seed)
    assembly = [rng.choice("ACGT") for _ in range(length)]
    contaminant = list(assembly)

    positions = rng.sample(range(20, length - 20), n_strong + n_weak)
    strong = sorted(positions[:n_strong])
    weak = sorted(positions[n_strong:])
    for p in strong:
        contaminant[p] = _TRANSVERSION[assembly[p]]
    for p in weak:
        assembly[p] = "G"
        contaminant[p] = "R"
    return "".join(contaminant), "".join(assembly), strong, weak


def make_toy_data(
    *,
    outdir: str | Path,
    n_clean: int = 30,
    n_dirt: int = 10,
    n_clean_pairs: int = 5,
    n_dirt_pairs: int = 3,
    read_length: int = 80,
    seed: int = 7,
) -> Dict[str, str]:
    """Create a contaminant reference, an assembly consensus and a fragment BAM.

    The outputs include:
    - contaminant.fa
    - assembly.fa (consensus, same stem as the BAM)
    - assembly.bam (+ .bai)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    contig = "consensus"

    contaminant, assembly, _strong, weak = make_toy_sequences(seed=seed)
    # a contaminant read shows A where the contaminant consensus has R
    dirty_template = list(contaminant)
    for p in weak:
        dirty_template[p] = "A"
    dirty = "".join(dirty_template)

    reference_fa = outdir_p / "contaminant.fa"
    consensus_fa = outdir_p / "assembly.fa"
    _write_fasta(reference_fa, "contaminant", contaminant)
    _write_fasta(consensus_fa, contig, assembly)

    rng = random.Random(seed + 1)
    max_start = len(assembly) - read_length
    reads: List[pysam.AlignedSegment] = []

    for i in range(n_clean):
        s = rng.randint(0, max_start)
        reads.append(_make_read(f"clean{i}", s, assembly[s : s + read_length]))
    for i in range(n_dirt):
        s = rng.randint(0, max_start)
        reads.append(_make_read(f"dirt{i}", s, dirty[s : s + read_length]))

    half = read_length // 2
    for prefix, template, n_pairs in (("cpair", assembly, n_clean_pairs), ("dpair", dirty, n_dirt_pairs)):
        for i in range(n_pairs):
            s = rng.randint(0, max_start - half)
            reads.append(_make_read(f"{prefix}{i}_b", s, template[s : s + read_length]))
            f = s + half
            reads.append(_make_read(f"{prefix}{i}_f", f, template[f : f + read_length]))

    reads.sort(key=lambda r: r.reference_start)

    bam_path = outdir_p / "assembly.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": contig, "LN": len(assembly)}],
    }
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)

    pysam.index(str(bam_path))

    summary = {
        "reference_fa": str(reference_fa),
        "consensus_fa": str(consensus_fa),
        "assembly_bam": str(bam_path),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
