"""Console output formatting."""

from vault_ledger.constants import MAX_BPS
from vault_ledger.formatters import (
    format_amount,
    format_bp,
    format_rate,
    format_sci,
    health_check_status,
    solvency_status,
)
from vault_ledger.models import LedgerSnapshot, Scenario, StepOutcome, VaultSnapshot


def print_ledger_snapshot(s: LedgerSnapshot, *, decimals: int, symbol: str) -> None:
    """Print ledger totals, operator position and health-check state."""
    solvency_emoji, solvency_text = solvency_status(s)
    hc_emoji, hc_text = health_check_status(s)

    print(f"\n{solvency_emoji} Ledger: {s.name}")
    print(f"   Mode: {s.mode}  •  Solvency: {solvency_text}")
    print("   " + "─" * 50)
    print(f"   💰 Total assets:     {format_amount(s.total_assets, decimals, symbol)}")
    print(f"   🧾 Total supply:     {format_amount(s.total_supply, decimals)} shares")
    print(f"   📐 Price per share:  {format_amount(s.price_per_share, decimals, symbol)}")
    print(f"   🐉 Dragon router:    {s.dragon_router}")
    print(f"      • Balance:        {format_amount(s.dragon_balance, decimals)} shares")
    print(f"      • Loss burning:   {'enabled' if s.enable_burning else 'disabled'}")
    print(f"   {hc_emoji} Health check:  {hc_text}")

    if s.mode == "skimming":
        print("   📊 Value debt (value units):")
        print(f"      • Depositors:     {format_amount(s.user_debt or 0, decimals)}")
        print(f"      • Dragon router:  {format_amount(s.dragon_debt or 0, decimals)}")
        print(f"      • Current value:  {format_amount(s.current_value or 0, decimals)}")
        print(f"      • Exchange rate:  {format_rate(s.current_rate or 0)}")


def print_vault_snapshot(v: VaultSnapshot, *, decimals: int, symbol: str) -> None:
    """Print the vault's idle/debt split and per-strategy debt."""
    status = "🛑 Shut down" if v.shutdown else "🟢 Active"
    print(f"\n🏦 Vault: {v.address}  •  {status}")
    print("   " + "─" * 50)
    print(f"   💰 Total assets:     {format_amount(v.total_assets, decimals, symbol)}")
    print(f"      • Idle:           {format_amount(v.total_idle, decimals, symbol)}")
    print(f"      • Debt:           {format_amount(v.total_debt, decimals, symbol)}")
    print(f"      • Minimum idle:   {format_amount(v.minimum_total_idle, decimals, symbol)}")
    print(f"   🧾 Total supply:     {format_amount(v.total_supply, decimals)} shares")
    for address, params in sorted(v.strategies.items()):
        utilization = (
            format_bp(params.current_debt * MAX_BPS // params.max_debt) if params.max_debt > 0 else "n/a"
        )
        print(f"   📦 Strategy {address}:")
        print(f"      • Current debt:   {format_amount(params.current_debt, decimals, symbol)}")
        print(f"      • Max debt:       {format_amount(params.max_debt, decimals, symbol)} (used {utilization})")


def print_outcomes(scenario: Scenario, outcomes: list[StepOutcome]) -> None:
    """Print one line per replayed step."""
    print("=" * 70)
    print(f"🧪 SCENARIO: {scenario.name}  •  mode={scenario.mode}  •  {len(outcomes)} step(s)")
    print("=" * 70)
    for o in outcomes:
        marker = "✅" if o.ok else "❌"
        detail = o.error if o.error else o.result
        print(f"{marker} #{o.index:<3} {o.op:<24} {detail}")
        for issue in o.issues:
            print(f"      ⚠️  {issue}")


def print_rate(kind: str, address: str, block: int | str, raw_rate: int, decimals: int, rate_ray: int) -> None:
    """Print an on-chain exchange rate read."""
    print(f"📈 {kind} rate at {address} (block {block})")
    print(f"   • Raw:        {raw_rate} (≈{format_sci(raw_rate)}, {decimals} decimals)")
    print(f"   • Normalized: {rate_ray} (ray) ≈ {format_rate(rate_ray, places=9)}")
