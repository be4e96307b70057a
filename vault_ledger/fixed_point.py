"""Fixed-point helpers: rate normalization and rounded multiply-divide."""

from enum import Enum

from vault_ledger.constants import MAX_BPS, RATE_DECIMALS, RAY


class Rounding(Enum):
    """Rounding direction for integer division."""

    FLOOR = "floor"
    CEIL = "ceil"


def ceil_div(numer: int, denom: int) -> int:
    """Ceiling division."""
    if denom == 0:
        raise ZeroDivisionError("denom must be > 0")
    return (numer + denom - 1) // denom


def mul_div(x: int, y: int, denominator: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """Compute x * y / denominator with an explicit rounding direction."""
    if denominator == 0:
        raise ZeroDivisionError("denominator must be > 0")
    product = x * y
    if rounding is Rounding.CEIL:
        return ceil_div(product, denominator)
    return product // denominator


def normalize_rate(rate: int, decimals: int, target_decimals: int = RATE_DECIMALS) -> int:
    """
    Rescale a rate quoted with `decimals` precision to `target_decimals` precision.

    Lower source precision multiplies by the power-of-ten gap, higher precision divides
    (truncating). No rounding mode applies to the rescale itself.
    """
    if rate < 0:
        raise ValueError(f"rate must be >= 0, got {rate}")
    if decimals < 0 or target_decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals} -> {target_decimals}")
    if decimals < target_decimals:
        return rate * 10 ** (target_decimals - decimals)
    if decimals > target_decimals:
        return rate // 10 ** (decimals - target_decimals)
    return rate


def assets_to_value(assets: int, rate_ray: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """Convert asset units into value units at a ray-scaled rate."""
    return mul_div(assets, rate_ray, RAY, rounding)


def value_to_assets(value: int, rate_ray: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """Convert value units into asset units at a ray-scaled rate. A zero rate cannot be inverted."""
    if rate_ray == 0:
        raise ZeroDivisionError("rate must be > 0 to convert value to assets")
    return mul_div(value, RAY, rate_ray, rounding)


def bps_of(amount: int, bps: int) -> int:
    """Floor `bps` basis points of `amount`."""
    return amount * bps // MAX_BPS
