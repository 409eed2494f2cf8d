from contamcheck.diagnostic import DiagnosticPositionSet
from contamcheck.models import DiagnosticPosition, Strength
from contamcheck.tracks import AlignedTrackPair


def test_every_difference_is_diagnostic():
    tracks = AlignedTrackPair(consensus="AAAAAAAA", assembly="CCCCCCCC")
    positions = DiagnosticPositionSet.from_tracks(tracks)
    assert [dp.position for dp in positions] == list(range(8))
    assert positions.count(Strength.STRONG) == 8


def test_span_is_exclusive_at_end():
    tracks = AlignedTrackPair(consensus="AAAAAAAA", assembly="CCCCCCCC")
    positions = DiagnosticPositionSet.from_tracks(tracks, span_from=2, span_to=5)
    assert [dp.position for dp in positions] == [2, 3, 4]
    assert 5 not in positions
    assert 1 not in positions


def test_strengths_and_gaps():
    # col 1: R/G weak; col 3: T/A strong; col 5: gap in assembly; col 7: a/A same letter
    tracks = AlignedTrackPair(consensus="ARGTACGa", assembly="AGGAA-GA")
    positions = DiagnosticPositionSet.from_tracks(tracks)
    assert len(positions) == 2
    assert positions.get(1).strength is Strength.WEAK
    assert positions.get(3).strength is Strength.STRONG
    assert positions.count(Strength.WEAK) == 1


def test_positions_follow_assembly_coordinates():
    # the inserted consensus column does not advance the assembly coordinate
    tracks = AlignedTrackPair(consensus="ACGTTC", assembly="AC-TTA")
    positions = DiagnosticPositionSet.from_tracks(tracks)
    assert [dp.position for dp in positions] == [4]


def test_transversions_only():
    tracks = AlignedTrackPair(consensus="AACA", assembly="AGAA")
    assert len(DiagnosticPositionSet.from_tracks(tracks)) == 2
    positions = DiagnosticPositionSet.from_tracks(tracks, transversions_only=True)
    assert [dp.position for dp in positions] == [2]
    assert positions.count_transversions() == 1


def test_overlapping_is_inclusive():
    positions = DiagnosticPositionSet(
        [DiagnosticPosition(p, "A", "C", Strength.STRONG) for p in (3, 10, 20)]
    )
    assert [dp.position for dp in positions.overlapping(3, 10)] == [3, 10]
    assert [dp.position for dp in positions.overlapping(4, 19)] == [10]
    assert positions.overlapping(21, 30) == []


def test_prune_weak_keeps_strong_and_effective():
    entries = [
        DiagnosticPosition(1, "R", "G", Strength.WEAK),
        DiagnosticPosition(2, "R", "G", Strength.WEAK),
        DiagnosticPosition(3, "T", "A", Strength.STRONG),
    ]
    positions = DiagnosticPositionSet(entries)
    assert entries[1].upgrade("A")
    assert positions.prune_weak() == 1
    assert [dp.position for dp in positions] == [2, 3]
    assert positions.count(Strength.WEAK) == 0
    assert positions.overlapping(0, 10)[0].position == 2


def test_upgrade_is_monotonic():
    strong = DiagnosticPosition(3, "T", "A", Strength.STRONG)
    assert not strong.upgrade("T")
    assert strong.strength is Strength.STRONG
    assert strong.contaminant_base is None

    weak = DiagnosticPosition(1, "R", "G", Strength.WEAK)
    assert weak.upgrade("A")
    assert not weak.upgrade("G")
    assert weak.strength is Strength.EFFECTIVE
    assert weak.contaminant_base == "A"


def test_describe():
    positions = DiagnosticPositionSet(
        [
            DiagnosticPosition(3, "T", "A", Strength.STRONG),
            DiagnosticPosition(7, "R", "G", Strength.EFFECTIVE, contaminant_base="A"),
        ]
    )
    assert positions.describe() == "<3s:T,A>, <7e:R(A),G>"
    assert positions.describe(strong_only=True) == "<3:T,A>"
