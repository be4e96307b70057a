"""Skimming mode: value-debt tracking against a live exchange rate.

The asset is itself yield-bearing (e.g. wstETH): its balance stays flat while its
exchange rate grows. Shares are value units, so a depositor keeps a claim on the value
they brought in, and any value above what is owed to depositors and the dragon router
is skimmed to the dragon router on report.

Solvency is derived, not stored: the ledger is insolvent while the value of its assets
at the current rate is strictly below `user_debt + dragon_debt`.
"""

import copy
import logging
from typing import Any

from vault_ledger.errors import InsolvencyError, InvalidOperationError
from vault_ledger.fixed_point import Rounding, assets_to_value, normalize_rate, value_to_assets
from vault_ledger.models import ReportResult, SkimmingState
from vault_ledger.sources import RateSource
from vault_ledger.tokenized_strategy import TokenizedStrategy

logger = logging.getLogger(__name__)


class YieldSkimmingStrategy(TokenizedStrategy):
    """Ledger that mints captured rate appreciation to the dragon router."""

    mode = "skimming"

    def __init__(self, asset, name: str, address: str, rate_source: RateSource, **kwargs) -> None:
        super().__init__(asset, name, address, **kwargs)
        self.rate_source = rate_source
        self.skim = SkimmingState(last_rate=self.current_rate())

    def checkpoint(self) -> Any:
        return super().checkpoint(), copy.deepcopy(self.skim)

    def rollback(self, snapshot: Any) -> None:
        base, self.skim = snapshot
        super().rollback(base)

    # ------------------------------------------------------------------
    # Rate and solvency
    # ------------------------------------------------------------------

    def current_rate(self) -> int:
        """Current exchange rate normalized to a ray."""
        return normalize_rate(
            self.rate_source.get_current_exchange_rate(),
            self.rate_source.decimals_of_exchange_rate(),
        )

    def current_value(self) -> int:
        """Value of tracked total assets at the current rate."""
        return assets_to_value(self.state.total_assets, self.current_rate(), Rounding.FLOOR)

    def is_insolvent(self) -> bool:
        debt = self.skim.total_debt
        if debt == 0:
            return False
        return self.current_value() < debt

    def _rate_for_conversion(self) -> int:
        """Ray rate to convert with, or 0 when the proportional fallback applies."""
        rate = self.current_rate()
        if rate == 0 or self.is_insolvent():
            return 0
        return rate

    def _convert_to_shares(self, assets: int, rounding: Rounding) -> int:
        rate = self._rate_for_conversion()
        if rate == 0:
            return super()._convert_to_shares(assets, rounding)
        return assets_to_value(assets, rate, rounding)

    def _convert_to_assets(self, shares: int, rounding: Rounding) -> int:
        rate = self._rate_for_conversion()
        if rate == 0:
            return super()._convert_to_assets(shares, rounding)
        return value_to_assets(shares, rate, rounding)

    def max_deposit(self, receiver: str) -> int:
        if receiver == self.state.dragon_router or self.is_insolvent():
            return 0
        return super().max_deposit(receiver)

    def max_withdraw(self, owner: str) -> int:
        if owner == self.state.dragon_router and self.is_insolvent():
            return 0
        return super().max_withdraw(owner)

    def max_redeem(self, owner: str) -> int:
        if owner == self.state.dragon_router and self.is_insolvent():
            return 0
        return super().max_redeem(owner)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _before_deposit(self, receiver: str) -> None:
        if self.is_insolvent():
            raise InsolvencyError(f"{self.name}: cannot deposit while insolvent")
        if receiver == self.state.dragon_router:
            raise InvalidOperationError(f"{self.name}: dragon router cannot receive deposits")

    def _after_deposit(self, receiver: str, assets: int, shares: int) -> None:
        # Shares are minted 1:1 with the value deposited, so they are the debt increment.
        self.skim.user_debt += shares

    def _before_withdraw(self, owner: str) -> None:
        if owner == self.state.dragon_router and self.is_insolvent():
            raise InsolvencyError(f"{self.name}: dragon router cannot withdraw while insolvent")

    def _after_withdraw(self, owner: str, shares: int) -> None:
        if owner == self.state.dragon_router:
            self.skim.dragon_debt -= shares
        else:
            self.skim.user_debt -= shares
        if self.state.total_supply == 0:
            self.skim.user_debt = 0
            self.skim.dragon_debt = 0

    def _before_transfer(self, sender: str, to: str, shares: int) -> None:
        dragon = self.state.dragon_router
        if sender == dragon and to == dragon:
            raise InvalidOperationError(f"{self.name}: dragon router cannot transfer to itself")
        if dragon in (sender, to) and self.is_insolvent():
            raise InsolvencyError(f"{self.name}: dragon router transfers blocked while insolvent")

    def _after_transfer(self, sender: str, to: str, shares: int) -> None:
        dragon = self.state.dragon_router
        if sender == dragon:
            self.skim.dragon_debt -= shares
            self.skim.user_debt += shares
        elif to == dragon:
            self.skim.user_debt -= shares
            self.skim.dragon_debt += shares

    def _on_dragon_router_change(self, old: str, new: str) -> None:
        outgoing = self.balance_of(old)
        incoming = self.balance_of(new)
        self.skim.dragon_debt -= outgoing
        self.skim.user_debt += outgoing
        self.skim.user_debt -= incoming
        self.skim.dragon_debt += incoming
        logger.debug(
            "%s: migrated %d value units to depositors and %d to the new dragon router", self.name, outgoing, incoming
        )

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def _process_report(self) -> ReportResult:
        new_total = self.harvest_and_report()
        rate = self.current_rate()
        previous_rate = self.skim.last_rate
        if previous_rate == 0:
            # Nothing to compare against yet; still consume a one-off disable.
            self.health_check.enabled = True
        else:
            self.health_check.gate(previous_rate, rate)

        self.state.total_assets = new_total
        value = assets_to_value(new_total, rate, Rounding.FLOOR)
        debt = self.skim.total_debt
        dragon = self.state.dragon_router

        profit_value = 0
        loss_value = 0
        if value > debt:
            profit_value = value - debt
            self._mint(dragon, profit_value)
            self.skim.dragon_debt += profit_value
        elif value < debt:
            loss_value = debt - value
            if self.state.enable_burning:
                burned = min(loss_value, self.balance_of(dragon))
                if burned > 0:
                    self._burn(dragon, burned)
                    self.skim.dragon_debt -= burned
                if burned < loss_value:
                    # Left in the counters; withdrawals absorb it through the insolvency fallback.
                    logger.warning(
                        "%s: %d value units of loss not covered by the dragon router", self.name, loss_value - burned
                    )

        self.skim.last_rate = rate
        return ReportResult(profit=self._value_in_assets(profit_value, rate), loss=self._value_in_assets(loss_value, rate))

    @staticmethod
    def _value_in_assets(value: int, rate: int) -> int:
        if value == 0 or rate == 0:
            return 0
        return value_to_assets(value, rate, Rounding.FLOOR)
