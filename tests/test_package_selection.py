import pytest

from fakes import pkg
from matching.packages import (
    WARN_NO_ACTIVE,
    calculate_fill_precision,
    calculate_overfill,
    calculate_underfill,
    select_packages,
)
from utils.errors import ValidationError


def _sizes(res):
    return [p.size_quantity for p in res.selected]


def test_exact_match_wins():
    res = select_packages(30, [pkg(100), pkg(30), pkg(60)])
    assert _sizes(res) == [30]
    assert res.overfill_pct == 0
    assert res.underfill_pct == 0
    assert res.warnings == []


def test_small_overfill_has_no_warning():
    res = select_packages(100, [pkg(105)])
    assert res.overfill_pct == 5
    assert res.warnings == []

    res = select_packages(100, [pkg(110)])
    assert res.overfill_pct == 10
    assert res.warnings == []


def test_overfill_above_ten_percent_warns():
    res = select_packages(100, [pkg(111)])
    assert _sizes(res) == [111]
    assert res.overfill_pct == pytest.approx(11)
    assert len(res.warnings) == 1
    assert "Overfill" in res.warnings[0]


def test_minimal_overfill_package_is_chosen():
    res = select_packages(45, [pkg(100), pkg(60), pkg(30)])
    assert _sizes(res) == [60]
    assert res.underfill_pct == 0


def test_all_candidates_too_small_yields_empty_selection():
    res = select_packages(100, [pkg(30), pkg(60), pkg(90)])
    assert res.selected == []
    assert len(res.warnings) == 1
    assert res.warnings[0].startswith("No suitable package")


def test_inactive_packages_are_ignored():
    res = select_packages(30, [pkg(30, active=False)])
    assert res.selected == []
    assert res.warnings == [WARN_NO_ACTIVE]

    res = select_packages(30, [pkg(30, active=False), pkg(60)])
    assert _sizes(res) == [60]


def test_ties_resolve_to_smallest_code():
    a = pkg(60, code="55555-0001-01")
    b = pkg(60, code="11111-0001-01")
    assert select_packages(60, [a, b]).selected[0].code == "11111-0001-01"
    assert select_packages(50, [a, b]).selected[0].code == "11111-0001-01"


def test_required_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        select_packages(0, [pkg(30)])


def test_greedy_multi_pack_tier():
    res = select_packages(100, [pkg(30), pkg(60), pkg(90)], allow_multi_pack=True)
    assert _sizes(res) == [90, 30]
    assert res.total_quantity == 120
    assert res.overfill_pct == pytest.approx(20)
    assert res.underfill_pct == 0
    assert res.warnings[0] == "Multiple packages required (2 packages)"


def test_greedy_can_reuse_a_package():
    res = select_packages(120, [pkg(60)], allow_multi_pack=True)
    assert _sizes(res) == [60, 60]
    assert res.overfill_pct == 0
    assert res.underfill_pct == 0


def test_result_invariants_hold():
    cases = [
        (30, [pkg(30)]),
        (100, [pkg(111)]),
        (100, [pkg(30), pkg(60), pkg(90)]),
        (250, [pkg(100), pkg(30)]),
    ]
    for required, candidates in cases:
        res = select_packages(required, candidates, allow_multi_pack=True)
        assert res.selected
        assert res.total_quantity == sum(p.size_quantity for p in res.selected)
        assert not (res.overfill_pct > 0 and res.underfill_pct > 0)


def test_fill_helpers():
    assert calculate_fill_precision(60, 60) == "exact"
    assert calculate_fill_precision(60, 90) == "overfill"
    assert calculate_fill_precision(60, 30) == "underfill"
    assert calculate_overfill(100, 120) == pytest.approx(20)
    assert calculate_overfill(100, 90) == 0
    assert calculate_underfill(100, 90) == pytest.approx(10)
