import itertools
import logging

import pytest

from contamcheck.aligners import align_references, normalize_window
from contamcheck.classifier import (
    ContaminationCheck,
    cursor_rows,
    iter_diagnostic_columns,
    merge_classes,
    update_class,
)
from contamcheck.diagnostic import DiagnosticPositionSet
from contamcheck.models import (
    CachedPairwiseAlignment,
    CheckSettings,
    DiagnosticPosition,
    Fragment,
    FragmentClass,
    Segment,
    Strength,
)
from contamcheck.tracks import AlignedTrackPair

U, C, D, X, N = (
    FragmentClass.UNKNOWN,
    FragmentClass.CLEAN,
    FragmentClass.DIRT,
    FragmentClass.CONFLICT,
    FragmentClass.NONSENSE,
)


def make_fragment(name: str, seq: str, start: int = 0, segment: Segment = Segment.ALONE) -> Fragment:
    return Fragment(id=name, segment=segment, start=start, end=start + len(seq) - 1, aligned=seq)


def run_check(tracks, fragments, **settings):
    check = ContaminationCheck(tracks, fragments, settings=CheckSettings(min_strong=1, **settings))
    check.pass_one()
    return check, check.pass_two()


def test_update_class_transitions():
    assert update_class(U, 0, True, False) == (C, 1)
    assert update_class(U, 0, False, True) == (D, 1)
    assert update_class(C, 1, False, True) == (X, 2)
    assert update_class(D, 1, True, False) == (X, 2)
    assert update_class(C, 1, True, True) == (C, 1)
    assert update_class(C, 1, False, False) == (N, 1)


def test_votes_count_exclusive_evidence_only():
    klass, votes = U, 0
    evidence = [(True, False), (True, True), (True, False), (True, True), (True, False)]
    for maybe_clean, maybe_dirt in evidence:
        klass, votes = update_class(klass, votes, maybe_clean, maybe_dirt)
    assert klass is C
    assert votes == 3


def test_merge_is_commutative_and_total():
    for a, b in itertools.product(FragmentClass, repeat=2):
        assert merge_classes(a, b) is merge_classes(b, a)
        assert merge_classes(a, b) in FragmentClass


def test_merge_is_associative():
    for a, b, c in itertools.product(FragmentClass, repeat=3):
        assert merge_classes(merge_classes(a, b), c) is merge_classes(a, merge_classes(b, c))


def test_merge_nonsense_absorbs():
    for a in FragmentClass:
        assert merge_classes(N, a) is N


def test_merge_values():
    assert merge_classes(U, C) is C
    assert merge_classes(C, C) is C
    assert merge_classes(C, D) is X
    assert merge_classes(X, D) is X


def test_cursor_rows_pad_uncovered_prefix():
    cached = CachedPairwiseAlignment(start=2, ref_seq="GTA", frag_seq="GTA")
    ref_row, frag_row = cursor_rows("ACGTA", cached)
    assert ref_row == "ACGTA"
    assert frag_row == "--GTA"


def test_iter_diagnostic_columns_yields_fragment_bases():
    tracks = AlignedTrackPair(consensus="ACGTACGT", assembly="ACGAACGT")
    fragment = make_fragment("r", "GAAC", start=2)
    cached = CachedPairwiseAlignment(start=0, ref_seq="GTAC", frag_seq="GAAC")
    ref_row, frag_row = cursor_rows("GTAC", cached)
    cols = list(iter_diagnostic_columns(tracks, fragment, ref_row, frag_row))
    assert cols == [(3, "T", "A", "A", "A")]


def test_end_to_end_two_fragments():
    tracks, distance = align_references("ACGTACGT", "ACGAACGT", max_distance=2)
    assert distance == 1
    fragments = [make_fragment("dirty", "ACGTACGT"), make_fragment("clean", "ACGAACGT")]
    check, result = run_check(tracks, fragments)

    assert check.positions.count(Strength.STRONG) == 1
    verdicts = {v.id: v for v in result.verdicts}
    assert verdicts["dirty"].klass is D
    assert verdicts["dirty"].votes == 1
    assert verdicts["clean"].klass is C
    assert verdicts["clean"].votes == 1
    assert verdicts["clean"].klass_all is C
    assert result.counts_strong[C] == 1
    assert result.counts_strong[D] == 1


def test_fragment_without_positions_is_unclassified():
    tracks = AlignedTrackPair(consensus="ACGTACGT", assembly="ACGAACGT")
    check, result = run_check(tracks, [make_fragment("far", "ACGT", start=4)])
    assert check.fragments_aligned == 0
    assert result.verdicts[0].klass is U
    assert result.verdicts[0].n_positions == 0


def test_min_diag_posns():
    tracks = AlignedTrackPair(consensus="ACGTACGT", assembly="ACGAACGT")
    _, result = run_check(tracks, [make_fragment("r", "ACGAACGT")], min_diag_posns=2)
    assert result.verdicts[0].klass is U
    assert result.verdicts[0].votes == 0


def test_nonsense_fragment():
    tracks = AlignedTrackPair(consensus="ACGTACGT", assembly="ACGAACGT")
    _, result = run_check(tracks, [make_fragment("odd", "ACGCACGT")])
    assert result.verdicts[0].klass is N
    assert result.counts_strong[N] == 1


def test_weak_position_upgraded_by_contaminant_base():
    tracks = AlignedTrackPair(consensus="ACGRACGTTA", assembly="ACGGACGATA")
    fragments = [make_fragment("dirty", "ACGAACGTTA"), make_fragment("clean", "ACGGACGATA")]
    check, result = run_check(tracks, fragments)

    dp = check.positions.get(3)
    assert dp.strength is Strength.EFFECTIVE
    assert dp.contaminant_base == "A"
    assert check.positions.get(7).strength is Strength.STRONG

    verdicts = {v.id: v for v in result.verdicts}
    assert verdicts["dirty"].votes == 1
    assert verdicts["dirty"].votes_all == 2
    assert verdicts["dirty"].klass_all is D
    assert verdicts["clean"].votes_all == 2
    assert verdicts["clean"].klass_all is C


def test_unconfirmed_weak_position_is_pruned():
    tracks = AlignedTrackPair(consensus="ACGRACGTTA", assembly="ACGGACGATA")
    check, _ = run_check(tracks, [make_fragment("clean", "ACGGACGATA")])
    assert 3 not in check.positions
    assert check.positions.count(Strength.WEAK) == 0
    assert len(check.positions) == 1


def test_adna_blocks_deamination_upgrade():
    tracks = AlignedTrackPair(consensus="ACGRACGTTA", assembly="ACGGACGATA")
    check, _ = run_check(tracks, [make_fragment("dirty", "ACGAACGTTA")], adna=True)
    # G -> A could be damage, so the fragment does not confirm the position
    assert 3 not in check.positions


def test_pairs_are_merged_into_one_verdict():
    tracks = AlignedTrackPair(consensus="ACGTACGT", assembly="ACGAACGT")
    fragments = [
        make_fragment("p", "ACGT", start=0, segment=Segment.BACK),
        make_fragment("p", "ACGT", start=4, segment=Segment.FRONT),
    ]
    check, result = run_check(tracks, fragments)
    assert len(result.verdicts) == 1
    verdict = result.verdicts[0]
    assert verdict.segment is Segment.FRONT
    assert verdict.klass is D
    assert verdict.votes == 1
    assert verdict.n_positions == 1
    assert check.anomalies["missing_backs"] == 0
    assert check.anomalies["unclaimed_backs"] == 0


def test_unpaired_halves_are_reported():
    tracks = AlignedTrackPair(consensus="ACGTACGT", assembly="ACGAACGT")
    fragments = [
        make_fragment("a", "ACGT", start=0, segment=Segment.BACK),
        make_fragment("b", "ACGA", start=0, segment=Segment.FRONT),
    ]
    check, result = run_check(tracks, fragments)
    assert check.anomalies["missing_backs"] == 1
    assert check.anomalies["unclaimed_backs"] == 1
    # the orphan front half is classified alone
    assert [v.id for v in result.verdicts] == ["b"]
    assert result.verdicts[0].klass is C


def test_pass_two_requires_pass_one():
    tracks = AlignedTrackPair(consensus="ACGTACGT", assembly="ACGAACGT")
    check = ContaminationCheck(tracks, [], settings=CheckSettings(min_strong=1))
    with pytest.raises(RuntimeError):
        check.pass_two()


def test_missing_diagnostic_site_is_counted_and_skipped(caplog):
    tracks = AlignedTrackPair(consensus="ACGRACGTTA", assembly="ACGGACGATA")
    fragments = [make_fragment("dirty", "ACGAACGTTA")]
    check = ContaminationCheck(tracks, fragments, settings=CheckSettings(min_strong=1))
    # a set that lost the weak column at 3 but still holds the strong one at 7
    check.positions = DiagnosticPositionSet([DiagnosticPosition(7, "T", "A", Strength.STRONG)])

    with caplog.at_level(logging.WARNING):
        check.pass_one()
    assert check.anomalies["missing_positions"] == 1
    assert "Diagnostic site not found: 3" in caplog.text

    result = check.pass_two()
    assert result.verdicts[0].klass is D
    assert result.verdicts[0].votes == 1


def test_consensus_only_column_and_read_insertion():
    # column 2 holds a consensus letter the assembly lacks; A/C differ at assembly position 5
    tracks = AlignedTrackPair(consensus="ACGATCAGTAGC", assembly="AC-ATCCGTAGC")
    dirty = Fragment(
        id="dirty",
        segment=Segment.ALONE,
        start=0,
        end=10,
        aligned="ACATCAGTAGC",
        insertions=("", "G"),
    )
    assert dirty.read_sequence() == "ACGATCAGTAGC"
    clean = make_fragment("clean", "ACATCCGTAGC")

    check, result = run_check(tracks, [dirty, clean])
    assert check.positions.get(5).strength is Strength.STRONG
    verdicts = {v.id: v for v in result.verdicts}
    assert (verdicts["dirty"].klass, verdicts["dirty"].votes) == (D, 1)
    assert (verdicts["clean"].klass, verdicts["clean"].votes) == (C, 1)


def test_assembly_only_column_and_read_deletion():
    # column 2 holds an assembly letter the consensus lacks; A/C differ at assembly position 6
    tracks = AlignedTrackPair(consensus="AC-ATCAGTAGC", assembly="ACGATCCGTAGC")
    dirty = make_fragment("dirty", "AC-ATCAGTAGC")
    clean = make_fragment("clean", "ACGATCCGTAGC")

    check, result = run_check(tracks, [dirty, clean])
    assert check.positions.get(6).strength is Strength.STRONG
    verdicts = {v.id: v for v in result.verdicts}
    assert (verdicts["dirty"].klass, verdicts["dirty"].votes) == (D, 1)
    assert (verdicts["clean"].klass, verdicts["clean"].votes) == (C, 1)


def test_read_insertion_after_uncovered_window_prefix():
    # consensus-only columns 3-4 open the lifted window of a fragment starting at 3,
    # so the re-aligned read begins two letters into the window
    tracks = AlignedTrackPair(consensus="ACGTTATCAGTAGCAT", assembly="ACG--ATCCGTAGCAT")
    dirty = Fragment(
        id="dirty",
        segment=Segment.ALONE,
        start=3,
        end=11,
        aligned="ATCAGTAGC",
        insertions=("", "GG"),
    )
    clean = Fragment(
        id="clean",
        segment=Segment.ALONE,
        start=3,
        end=11,
        aligned="ATCCGTAGC",
        insertions=("", "GG"),
    )

    lifted = tracks.lift_over(3, 13)
    assert lifted.startswith("TTA")
    check = ContaminationCheck(tracks, [dirty, clean], settings=CheckSettings(min_strong=1))
    assert check.aligner.align(normalize_window(lifted), dirty.read_sequence()).start == 2

    check.pass_one()
    result = check.pass_two()
    verdicts = {v.id: v for v in result.verdicts}
    assert (verdicts["dirty"].klass, verdicts["dirty"].votes) == (D, 1)
    assert (verdicts["clean"].klass, verdicts["clean"].votes) == (C, 1)
