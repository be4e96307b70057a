"""Invariant checks for vaults and ledgers."""

from vault_ledger.tokenized_strategy import TokenizedStrategy
from vault_ledger.vault import MultistrategyVault
from vault_ledger.yield_skimming import YieldSkimmingStrategy


def _record(issues: list[str], msg: str, warn_only: bool) -> None:
    issues.append(msg)
    if not warn_only:
        raise ValueError(msg)


def validate_vault(vault: MultistrategyVault, *, warn_only: bool = False) -> list[str]:
    """
    Validate vault debt bookkeeping.

    Returns list of validation warnings/errors. If warn_only=False, raises ValueError on the first one.
    """
    issues: list[str] = []

    # 1. Debt conservation: total debt is the sum of strategy debts.
    summed = sum(p.current_debt for p in vault.strategies.values())
    if summed != vault.total_debt:
        _record(issues, f"Vault {vault.name}: total_debt={vault.total_debt} != sum(current_debt)={summed}", warn_only)

    # 2. Idle is backed by tokens actually held (donations may push the balance higher).
    held = vault.asset.balance_of(vault.address)
    if held < vault.total_idle:
        _record(issues, f"Vault {vault.name}: total_idle={vault.total_idle} exceeds asset balance {held}", warn_only)

    # 3. Non-negative values
    non_negative_fields = {
        "totalIdle": vault.total_idle,
        "totalDebt": vault.total_debt,
        "minimumTotalIdle": vault.minimum_total_idle,
        "totalSupply": vault.total_supply,
    }
    for address, params in vault.strategies.items():
        non_negative_fields[f"currentDebt[{address}]"] = params.current_debt
    for name, value in non_negative_fields.items():
        if value < 0:
            _record(issues, f"Vault {vault.name}: negative {name}: {value}", warn_only)

    return issues


def validate_ledger(ledger: TokenizedStrategy, *, warn_only: bool = False) -> list[str]:
    """
    Validate ledger share and value-debt bookkeeping.

    Returns list of validation warnings/errors. If warn_only=False, raises ValueError on the first one.
    """
    issues: list[str] = []
    state = ledger.state

    # 1. Supply equals the sum of balances.
    summed = sum(state.balances.values())
    if summed != state.total_supply:
        _record(issues, f"Ledger {ledger.name}: total_supply={state.total_supply} != sum(balances)={summed}", warn_only)

    if state.total_assets < 0:
        _record(issues, f"Ledger {ledger.name}: negative total_assets: {state.total_assets}", warn_only)

    if isinstance(ledger, YieldSkimmingStrategy):
        skim = ledger.skim
        # 2. Shares are value units: the two debt buckets add up to the supply...
        if skim.total_debt != state.total_supply:
            _record(
                issues,
                f"Ledger {ledger.name}: user_debt({skim.user_debt}) + dragon_debt({skim.dragon_debt}) "
                f"!= total_supply({state.total_supply})",
                warn_only,
            )
        # 3. ...and the dragon bucket is exactly the dragon router's balance.
        dragon_balance = ledger.balance_of(state.dragon_router)
        if skim.dragon_debt != dragon_balance:
            _record(
                issues,
                f"Ledger {ledger.name}: dragon_debt={skim.dragon_debt} != dragon router balance {dragon_balance}",
                warn_only,
            )
        if skim.user_debt < 0 or skim.dragon_debt < 0:
            _record(issues, f"Ledger {ledger.name}: negative debt counter {skim}", warn_only)

    return issues
