from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .aligners import align_references, default_max_distance
from .ambiguity import is_valid_sequence
from .assembly import Assembly, find_latest_iteration, load_assembly
from .classifier import ClassificationResult, ContaminationCheck
from .confidence import wilson_interval
from .errors import InputValidationError, TooFewDiagnosticPositionsError
from .models import CheckSettings, ConfidenceInterval, FragmentClass, Strength
from .utils import ensure_outdir, open_textmaybe_gzip, write_json

logger = logging.getLogger(__name__)


def validate_sequence(seq: str, *, what: str) -> None:
    """Raise InputValidationError unless ``seq`` is a gap-free nucleotide string."""
    if not seq:
        raise InputValidationError(f"{what} sequence is empty.")
    if not is_valid_sequence(seq):
        bad = sorted({ch for ch in seq.upper() if ch not in "ACGTBDHVMKYRSWUN"})
        raise InputValidationError(
            f"{what} sequence contains gap symbols or invalid letters: {''.join(bad)}"
        )


def _ci_to_json(ci: Optional[ConfidenceInterval]) -> Optional[Dict[str, float]]:
    if ci is None:
        return None
    return {"lower": ci.lower, "estimate": ci.estimate, "upper": ci.upper}


def _counts_to_json(counts: Dict[FragmentClass, int]) -> Dict[str, int]:
    return {klass.label: int(n) for klass, n in counts.items()}


def check_assembly(
    reference: str,
    assembly: Assembly,
    *,
    settings: Optional[CheckSettings] = None,
    progress: bool = False,
) -> Tuple[Dict[str, Any], ClassificationResult]:
    """Run the full contamination check for one assembly.

    Returns a JSON-friendly summary and the per-fragment classification.
    Raises on fatal conditions: invalid sequences, no reference alignment
    within the distance bound, or too few strongly diagnostic positions.
    """
    if settings is None:
        settings = CheckSettings()
    t0 = time.time()

    validate_sequence(reference, what="Contaminant reference")
    validate_sequence(assembly.consensus, what="Assembly consensus")

    if settings.max_distance is None:
        settings = replace(settings, max_distance=default_max_distance(reference, assembly.consensus))
    tracks, distance = align_references(reference, assembly.consensus, max_distance=settings.max_distance)

    check = ContaminationCheck(tracks, assembly.fragments, settings=settings)
    n_differences = len(check.positions)
    n_strong = check.positions.count(Strength.STRONG)
    logger.info(
        "%d diagnostic positions, %d of which are strongly diagnostic",
        n_differences,
        n_strong,
    )
    logger.debug("Diagnostic positions: %s", check.positions.describe())

    if n_strong < settings.min_strong and not settings.allow_few_positions:
        raise TooFewDiagnosticPositionsError(
            f"Low number ({n_strong}) of strongly diagnostic positions found "
            f"(minimum {settings.min_strong}). Stopping for your own safety; "
            "use --shoot-foot to lift this restriction.",
            n_strong=n_strong,
            min_strong=settings.min_strong,
        )

    upgraded = check.pass_one(progress=progress)
    n_effective = len(check.positions)
    n_transversions = check.positions.count_transversions()
    logger.debug("Effective positions: %s", check.positions.describe())

    result = check.pass_two(progress=progress)

    ci_strong = wilson_interval(
        result.counts_strong[FragmentClass.CLEAN], result.counts_strong[FragmentClass.DIRT]
    )
    ci_all = wilson_interval(result.counts_all[FragmentClass.CLEAN], result.counts_all[FragmentClass.DIRT])

    summary: Dict[str, Any] = {
        "input": assembly.path,
        "consensus": assembly.consensus_name,
        "consensus_length": len(assembly.consensus),
        "reference_length": len(reference),
        "alignment_distance": int(distance),
        "max_distance": int(settings.max_distance),
        "span": [settings.span_from, settings.span_to] if settings.has_span else None,
        "adna": bool(settings.adna),
        "transversions_only": bool(settings.transversions_only),
        "min_diag_posns": int(settings.min_diag_posns),
        "n_differences": n_differences,
        "n_strong": n_strong,
        "n_weak": n_differences - n_strong,
        "n_upgraded": int(upgraded),
        "n_effective": n_effective,
        "n_transversions": n_transversions,
        "counts_strong": _counts_to_json(result.counts_strong),
        "counts_all": _counts_to_json(result.counts_all),
        "ci_strong": _ci_to_json(ci_strong),
        "ci_all": _ci_to_json(ci_all),
        "fragments": {
            "total": len(assembly.fragments),
            "aligned": check.fragments_aligned,
            "tallied": len(result.verdicts),
        },
        "read_stats": dict(assembly.stats),
        "anomalies": dict(check.anomalies),
        "runtime_seconds": float(time.time() - t0),
    }
    return summary, result


def write_verdicts(path: str | Path, result: ClassificationResult) -> None:
    with open_textmaybe_gzip(path, "wt") as fh:
        fh.write(
            "\t".join(
                [
                    "id",
                    "segment",
                    "n_positions",
                    "class_strong",
                    "votes_strong",
                    "class_all",
                    "votes_all",
                ]
            )
            + "\n"
        )
        for v in result.verdicts:
            fh.write(
                f"{v.id}\t{v.segment.value}\t{v.n_positions}\t"
                f"{v.klass.label}\t{v.votes}\t{v.klass_all.label}\t{v.votes_all}\n"
            )


def check_file(
    alignment_path: str | Path,
    reference: str,
    *,
    settings: Optional[CheckSettings] = None,
    consensus_fasta: Optional[str | Path] = None,
    latest_iteration: bool = True,
    skip_duplicates: bool = True,
    outdir: Optional[str | Path] = None,
    progress: bool = False,
) -> Dict[str, Any]:
    """Load one assembly, check it, and optionally write per-file outputs.

    With ``outdir`` set, ``<outdir>/<name>/fragments.tsv.gz`` and
    ``summary.json`` are written and their paths recorded in the summary.
    """
    path = find_latest_iteration(alignment_path) if latest_iteration else Path(alignment_path)
    assembly = load_assembly(path, consensus_fasta=consensus_fasta, skip_duplicates=skip_duplicates)
    summary, result = check_assembly(reference, assembly, settings=settings, progress=progress)

    if outdir is not None:
        file_dir = ensure_outdir(Path(outdir) / Path(path).name)
        verdicts_path = file_dir / "fragments.tsv.gz"
        write_verdicts(verdicts_path, result)
        summary["outputs"] = {
            "fragments_tsv_gz": str(verdicts_path),
            "summary_json": str(file_dir / "summary.json"),
        }
        summary["vote_hist"] = _vote_hist(result)
        write_json(file_dir / "summary.json", summary)
    return summary


def _vote_hist(result: ClassificationResult) -> Dict[str, int]:
    hist: Dict[str, int] = {}
    for v in result.verdicts:
        key = str(v.votes_all)
        hist[key] = hist.get(key, 0) + 1
    return hist
