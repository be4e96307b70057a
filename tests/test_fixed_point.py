import pytest

from vault_ledger.constants import RAY
from vault_ledger.fixed_point import (
    Rounding,
    assets_to_value,
    bps_of,
    ceil_div,
    mul_div,
    normalize_rate,
    value_to_assets,
)


@pytest.mark.parametrize(
    ("rate", "decimals", "expected"),
    [
        (10**18, 18, RAY),
        (5, 27, 5),
        (10**30, 30, RAY),
        # Higher precision truncates.
        (1999, 30, 1),
        (1, 0, RAY),
        (0, 18, 0),
    ],
)
def test_normalize_rate(rate, decimals, expected) -> None:
    assert normalize_rate(rate, decimals) == expected


def test_normalize_rate_rejects_negative_input() -> None:
    with pytest.raises(ValueError):
        normalize_rate(-1, 18)
    with pytest.raises(ValueError):
        normalize_rate(1, -1)


def test_mul_div_rounding() -> None:
    assert mul_div(10, 1, 3, Rounding.FLOOR) == 3
    assert mul_div(10, 1, 3, Rounding.CEIL) == 4
    assert mul_div(9, 1, 3, Rounding.CEIL) == 3
    assert mul_div(0, 5, 7, Rounding.CEIL) == 0
    with pytest.raises(ZeroDivisionError):
        mul_div(1, 1, 0)


def test_ceil_div() -> None:
    assert ceil_div(0, 5) == 0
    assert ceil_div(1, 5) == 1
    assert ceil_div(10, 5) == 2


def test_value_conversions_round_as_requested() -> None:
    """Floor and ceiling conversions differ by at most one unit."""
    half = RAY // 2
    assert assets_to_value(1000, RAY) == 1000
    assert assets_to_value(3, half, Rounding.FLOOR) == 1
    assert assets_to_value(3, half, Rounding.CEIL) == 2
    assert value_to_assets(3, 3 * RAY, Rounding.FLOOR) == 1
    assert value_to_assets(100, 11 * RAY // 10, Rounding.FLOOR) == 90
    assert value_to_assets(100, 11 * RAY // 10, Rounding.CEIL) == 91


def test_value_to_assets_needs_a_nonzero_rate() -> None:
    with pytest.raises(ZeroDivisionError):
        value_to_assets(1, 0)


def test_bps_of_floors() -> None:
    assert bps_of(10_000, 1) == 1
    assert bps_of(9_999, 1) == 0
    assert bps_of(12_345, 10_000) == 12_345
