import pytest

from contamcheck.confidence import wilson_interval


def test_wilson_interval_ninety_ten():
    ci = wilson_interval(90, 10)
    assert ci.estimate == pytest.approx(10.0)
    assert 0.0 <= ci.lower < ci.estimate < ci.upper <= 100.0
    assert ci.lower == pytest.approx(5.52, abs=0.01)
    assert ci.upper == pytest.approx(17.44, abs=0.01)


def test_wilson_interval_unavailable_without_fragments():
    assert wilson_interval(0, 0) is None


def test_wilson_interval_bounds_are_clamped():
    clean_only = wilson_interval(20, 0)
    assert clean_only.estimate == 0.0
    assert clean_only.lower == pytest.approx(0.0, abs=1e-9)
    assert clean_only.lower >= 0.0

    dirt_only = wilson_interval(0, 20)
    assert dirt_only.estimate == 100.0
    assert dirt_only.upper <= 100.0
    assert dirt_only.upper == pytest.approx(100.0, abs=1e-9)
