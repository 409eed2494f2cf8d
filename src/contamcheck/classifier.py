from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from tqdm import tqdm

from .aligners import FragmentAligner, normalize_window
from .ambiguity import GAP, consistent, is_transversion, is_weakly_diagnostic
from .diagnostic import DiagnosticPositionSet
from .models import (
    CachedPairwiseAlignment,
    CheckSettings,
    Fragment,
    FragmentClass,
    FragmentVerdict,
    Segment,
    Strength,
)
from .tracks import AlignedTrackPair

logger = logging.getLogger(__name__)


def update_class(
    klass: FragmentClass, votes: int, maybe_clean: bool, maybe_dirt: bool
) -> Tuple[FragmentClass, int]:
    """Fold the evidence of one diagnostic position into a running verdict."""
    if maybe_clean and not maybe_dirt:
        if klass is FragmentClass.UNKNOWN:
            klass = FragmentClass.CLEAN
        elif klass is FragmentClass.DIRT:
            klass = FragmentClass.CONFLICT
    elif maybe_dirt and not maybe_clean:
        if klass is FragmentClass.UNKNOWN:
            klass = FragmentClass.DIRT
        elif klass is FragmentClass.CLEAN:
            klass = FragmentClass.CONFLICT
    elif not maybe_clean and not maybe_dirt:
        klass = FragmentClass.NONSENSE
    if maybe_clean != maybe_dirt:
        votes += 1
    return klass, votes


def merge_classes(a: FragmentClass, b: FragmentClass) -> FragmentClass:
    """Combine the verdicts of two halves of one fragment."""
    if a is b:
        return a
    if a is FragmentClass.UNKNOWN:
        return b
    if b is FragmentClass.UNKNOWN:
        return a
    if a is FragmentClass.NONSENSE or b is FragmentClass.NONSENSE:
        return FragmentClass.NONSENSE
    return FragmentClass.CONFLICT


def empty_counts() -> Dict[FragmentClass, int]:
    return {klass: 0 for klass in FragmentClass}


def cursor_rows(lifted: str, cached: CachedPairwiseAlignment) -> Tuple[str, str]:
    """Reference and fragment rows of a cached alignment, re-anchored at the
    start of the lifted window. The window prefix the read does not cover is
    paired with gaps in the fragment row."""
    ref_row = lifted[: cached.start] + cached.ref_seq
    frag_row = GAP * min(cached.start, len(lifted)) + cached.frag_seq
    return ref_row, frag_row


def _skip_gaps(row: str, i: int) -> int:
    while i < len(row) and row[i] == GAP:
        i += 1
    return i


def iter_diagnostic_columns(
    tracks: AlignedTrackPair,
    fragment: Fragment,
    ref_row: str,
    frag_row: str,
) -> Iterator[Tuple[int, str, str, str, str]]:
    """Walk a fragment's span of the reference/assembly alignment.

    Three cursors advance together: the alignment column, the reference cursor
    into ``ref_row``/``frag_row`` (moved when the consensus track has a letter,
    then past any gaps in ``ref_row``), and the assembly cursor into
    ``fragment.aligned`` (moved when the assembly track has a letter).

    Yields ``(position, consensus, assembly, fragment_vs_reference,
    fragment_vs_assembly)`` for every weakly diagnostic column.
    """
    col = tracks.column_start(fragment.start)
    ncols = len(tracks)
    pos = fragment.start
    stop = fragment.end + 1
    i = _skip_gaps(ref_row, 0)
    j = 0
    n_ref = min(len(ref_row), len(frag_row))
    n_ass = len(fragment.aligned)

    while pos != stop and col < ncols and i < n_ref and j < n_ass:
        c = tracks.consensus[col]
        a = tracks.assembly[col]
        if is_weakly_diagnostic(c, a):
            yield pos, c, a, frag_row[i], fragment.aligned[j]
        if c != GAP:
            i = _skip_gaps(ref_row, i + 1)
        if a != GAP:
            pos += 1
            j += 1
        col += 1


@dataclass
class ClassificationResult:
    """Outcome of pass two for one assembly."""

    verdicts: List[FragmentVerdict] = field(default_factory=list)
    counts_strong: Dict[FragmentClass, int] = field(default_factory=empty_counts)
    counts_all: Dict[FragmentClass, int] = field(default_factory=empty_counts)

    def tally(self, verdict: FragmentVerdict) -> None:
        self.verdicts.append(verdict)
        self.counts_strong[verdict.klass] += 1
        self.counts_all[verdict.klass_all] += 1


@dataclass
class _Half:
    klass: FragmentClass
    votes: int
    klass_all: FragmentClass
    votes_all: int
    n_positions: int


class ContaminationCheck:
    """Per-assembly analysis context.

    Owns the diagnostic position set, the fragments and their cached pass-one
    alignments. Create one per input file; nothing is shared between files.
    """

    def __init__(
        self,
        tracks: AlignedTrackPair,
        fragments: Iterable[Fragment],
        *,
        settings: Optional[CheckSettings] = None,
        aligner: Optional[FragmentAligner] = None,
    ) -> None:
        self.tracks = tracks
        self.fragments: List[Fragment] = list(fragments)
        self.settings = settings if settings is not None else CheckSettings()
        self.aligner = aligner or FragmentAligner(
            self.settings.matrix,
            open_gap_score=self.settings.open_gap_score,
            extend_gap_score=self.settings.extend_gap_score,
        )
        self.positions = DiagnosticPositionSet.from_tracks(
            tracks,
            span_from=self.settings.span_from,
            span_to=self.settings.span_to,
            transversions_only=self.settings.transversions_only,
        )
        self.anomalies: Dict[str, int] = {
            "missing_positions": 0,
            "missing_backs": 0,
            "unclaimed_backs": 0,
        }
        self.fragments_aligned = 0
        self._cache: List[Optional[CachedPairwiseAlignment]] = []
        self._pass_one_done = False

    # -----------------
    # helpers
    # -----------------
    def _expected(self, pos: int, consensus: str, assembly: str) -> bool:
        """Would the position set hold an entry for this differing column?"""
        s = self.settings
        if pos < s.span_from or (s.span_to is not None and pos >= s.span_to):
            return False
        return not s.transversions_only or is_transversion(consensus, assembly)

    def _evidence(
        self, template_assembly: str, template_consensus: str, frag_ass: str, frag_ref: str
    ) -> Tuple[bool, bool]:
        adna = self.settings.adna
        maybe_clean = consistent(template_assembly, frag_ass, adna=adna)
        maybe_dirt = consistent(template_consensus, frag_ref, adna=adna)
        return maybe_clean, maybe_dirt

    # -----------------
    # pass one
    # -----------------
    def pass_one(self, *, progress: bool = False) -> int:
        """Re-align every fragment and upgrade confirmed WEAK positions.

        Returns the number of upgraded positions. Remaining WEAK positions are
        pruned afterwards.
        """
        self._cache = []
        upgraded = 0

        it: Iterable[Fragment] = self.fragments
        if progress:
            it = tqdm(it, unit="fragment", desc="Pass 1: diagnostic positions")

        for fragment in it:
            overlap = self.positions.overlapping(fragment.start, fragment.end)
            if not overlap:
                self._cache.append(None)
                continue

            lifted = self.tracks.lift_over(fragment.start, fragment.end + 2)
            cached = self.aligner.align(normalize_window(lifted), fragment.read_sequence())
            self._cache.append(cached)
            self.fragments_aligned += 1

            ref_row, frag_row = cursor_rows(lifted, cached)
            for pos, con, ass, frag_ref, frag_ass in iter_diagnostic_columns(
                self.tracks, fragment, ref_row, frag_row
            ):
                dp = self.positions.get(pos)
                if dp is None:
                    if self._expected(pos, con, ass):
                        logger.warning("Diagnostic site not found: %d (%s)", pos, fragment.label)
                        self.anomalies["missing_positions"] += 1
                    continue
                if frag_ref != frag_ass:
                    logger.debug("%s: position %d in disagreement (%s/%s)", fragment.label, pos, frag_ref, frag_ass)
                    continue
                maybe_clean, maybe_dirt = self._evidence(dp.assembly_base, dp.consensus_base, frag_ass, frag_ref)
                if not maybe_clean and maybe_dirt and dp.upgrade(frag_ref):
                    upgraded += 1
                    logger.debug(
                        "%s: position %d %s/%s upgraded to effective (%s)",
                        fragment.label,
                        pos,
                        dp.consensus_base,
                        dp.assembly_base,
                        frag_ref,
                    )

        self.positions.prune_weak()
        self._pass_one_done = True
        logger.info(
            "Pass 1: aligned %d of %d fragments, %d positions upgraded, %d effectively diagnostic",
            self.fragments_aligned,
            len(self.fragments),
            upgraded,
            len(self.positions),
        )
        return upgraded

    # -----------------
    # pass two
    # -----------------
    def _classify(self, fragment: Fragment, cached: Optional[CachedPairwiseAlignment], n_positions: int) -> _Half:
        klass = klass_all = FragmentClass.UNKNOWN
        votes = votes_all = 0

        if n_positions < self.settings.min_diag_posns or cached is None:
            logger.debug("%s: no diagnostic positions", fragment.label)
            return _Half(klass, votes, klass_all, votes_all, n_positions)

        lifted = self.tracks.lift_over(fragment.start, fragment.end + 1)
        ref_row, frag_row = cursor_rows(lifted, cached)
        for pos, _con, _ass, frag_ref, frag_ass in iter_diagnostic_columns(
            self.tracks, fragment, ref_row, frag_row
        ):
            dp = self.positions.get(pos)
            if dp is None or frag_ref != frag_ass:
                continue
            maybe_clean, maybe_dirt = self._evidence(dp.assembly_base, dp.consensus_base, frag_ass, frag_ref)
            klass_all, votes_all = update_class(klass_all, votes_all, maybe_clean, maybe_dirt and not maybe_clean)
            if dp.strength is Strength.STRONG:
                klass, votes = update_class(klass, votes, maybe_clean, maybe_dirt)

        return _Half(klass, votes, klass_all, votes_all, n_positions)

    def pass_two(self, *, progress: bool = False) -> ClassificationResult:
        """Classify every fragment against the surviving diagnostic positions."""
        if not self._pass_one_done:
            raise RuntimeError("pass_two() requires pass_one() to have run")

        result = ClassificationResult()
        backs: Dict[str, _Half] = {}

        it: Iterable[Tuple[Fragment, Optional[CachedPairwiseAlignment]]] = zip(self.fragments, self._cache)
        if progress:
            it = tqdm(it, total=len(self.fragments), unit="fragment", desc="Pass 2: classifying")

        for fragment, cached in it:
            n_positions = len(self.positions.overlapping(fragment.start, fragment.end))
            half = self._classify(fragment, cached, n_positions)

            if fragment.segment is Segment.BACK:
                backs[fragment.id] = half
                continue

            if fragment.segment is Segment.FRONT:
                back = backs.pop(fragment.id, None)
                if back is None:
                    logger.warning("%s/f is missing its back.", fragment.id)
                    self.anomalies["missing_backs"] += 1
                else:
                    half.votes += back.votes
                    half.klass = merge_classes(half.klass, back.klass)
                    half.votes_all += back.votes_all
                    half.klass_all = merge_classes(half.klass_all, back.klass_all)
                    half.n_positions += back.n_positions

            verdict = FragmentVerdict(
                id=fragment.id,
                segment=fragment.segment,
                n_positions=half.n_positions,
                klass=half.klass,
                votes=half.votes,
                klass_all=half.klass_all,
                votes_all=half.votes_all,
            )
            logger.debug(
                "%s is %s (%d votes); %s (%d votes) counting effective positions",
                fragment.id,
                verdict.klass.label,
                verdict.votes,
                verdict.klass_all.label,
                verdict.votes_all,
            )
            result.tally(verdict)

        if backs:
            logger.warning("%d back halves were never joined with a front half", len(backs))
            self.anomalies["unclaimed_backs"] = len(backs)

        # cached alignments are only needed between the two passes
        self._cache = []
        return result
