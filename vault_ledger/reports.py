"""Point-in-time snapshots of vaults and ledgers."""

import copy

from vault_ledger.models import LedgerSnapshot, VaultSnapshot
from vault_ledger.tokenized_strategy import TokenizedStrategy
from vault_ledger.vault import MultistrategyVault
from vault_ledger.yield_skimming import YieldSkimmingStrategy


def ledger_snapshot(ledger: TokenizedStrategy) -> LedgerSnapshot:
    """Capture a ledger's totals, operator position and health-check settings."""
    state = ledger.state
    hc = ledger.health_check
    extra = {}
    if isinstance(ledger, YieldSkimmingStrategy):
        extra = {
            "user_debt": ledger.skim.user_debt,
            "dragon_debt": ledger.skim.dragon_debt,
            "current_rate": ledger.current_rate(),
            "current_value": ledger.current_value(),
            "insolvent": ledger.is_insolvent(),
        }
    return LedgerSnapshot(
        name=ledger.name,
        mode=ledger.mode,
        total_assets=state.total_assets,
        total_supply=state.total_supply,
        price_per_share=ledger.price_per_share(),
        dragon_router=state.dragon_router,
        dragon_balance=ledger.balance_of(state.dragon_router),
        enable_burning=state.enable_burning,
        health_check_enabled=hc.enabled,
        profit_limit_ratio=hc.profit_limit_ratio,
        loss_limit_ratio=hc.loss_limit_ratio,
        last_report=state.last_report,
        **extra,
    )


def vault_snapshot(vault: MultistrategyVault) -> VaultSnapshot:
    """Capture a vault's idle/debt split and a copy of its strategy records."""
    return VaultSnapshot(
        address=vault.address,
        total_idle=vault.total_idle,
        total_debt=vault.total_debt,
        total_assets=vault.total_assets(),
        total_supply=vault.total_supply,
        minimum_total_idle=vault.minimum_total_idle,
        shutdown=vault.shutdown,
        strategies=copy.deepcopy(vault.strategies),
    )
