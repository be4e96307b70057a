"""Formatting and conversion utilities."""

from decimal import Decimal

from vault_ledger.constants import RAY
from vault_ledger.models import LedgerSnapshot


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip().replace("_", "")
        if v.lower().startswith(("0x", "-0x")):
            return int(v, 16)
        return int(v)
    return int(value)


def format_bp(bp: int) -> str:
    """Format basis points as percentage."""
    return f"{(Decimal(bp) / Decimal(100)):.2f}%"


def format_sci(value: int, *, sig: int = 3) -> str:
    """Format a raw integer amount in scientific notation."""
    if value == 0:
        return "0"
    s = format(Decimal(abs(value)), f".{max(0, sig - 1)}e")  # 1.69e+13
    mant, exp = s.split("e")
    mant = mant.rstrip("0").rstrip(".")
    exp_i = int(exp)
    sign = "-" if value < 0 else ""
    return f"{sign}{mant}e{exp_i}"


def format_amount(value: int, decimals: int, symbol: str = "", *, places: int = 6) -> str:
    """Format a raw token amount with its decimals, e.g. 1500000 @ 6 -> '1.5 USDC'."""
    whole = Decimal(value) / (Decimal(10) ** decimals)
    s = f"{whole:.{places}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return f"{s} {symbol}".rstrip()


def format_rate(rate_ray: int, *, places: int = 6) -> str:
    """Format a ray-scaled exchange rate as a plain decimal."""
    s = f"{Decimal(rate_ray) / Decimal(RAY):.{places}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


def solvency_status(s: LedgerSnapshot) -> tuple[str, str]:
    """Returns (emoji, status) for a ledger snapshot."""
    if s.insolvent is None:
        return "🟢", "n/a (donating)"
    if s.insolvent:
        return "🔴", "Insolvent (dragon router locked, proportional exits)"
    return "🟢", "Solvent"


def health_check_status(s: LedgerSnapshot) -> tuple[str, str]:
    """Returns (emoji, description) for the health-check gate."""
    if not s.health_check_enabled:
        return "⚪", "Disabled for next report"
    return (
        "🛡️",
        f"Armed (profit ≤ {format_bp(s.profit_limit_ratio)}, loss ≤ {format_bp(s.loss_limit_ratio)})",
    )
