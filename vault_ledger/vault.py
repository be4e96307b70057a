"""Multistrategy vault: idle reserve, per-strategy debt and the debt rebalancer."""

import copy
import logging
import time
from collections.abc import Callable
from typing import Any

from vault_ledger.constants import MAX_BPS
from vault_ledger.errors import CapacityError, InvalidOperationError, LossToleranceError, ZeroAmountError
from vault_ledger.fixed_point import Rounding, bps_of, mul_div
from vault_ledger.guard import AtomicGuard, atomic
from vault_ledger.models import DebtUpdate, StrategyParams, StrategyReport
from vault_ledger.sources import YieldSource
from vault_ledger.tokens import Token, force_approve, safe_transfer, safe_transfer_from

logger = logging.getLogger(__name__)


def assess_share_of_unrealised_losses(strategy_assets: int, current_debt: int, assets_needed: int) -> int:
    """
    Share of a strategy's unrealised loss attributable to withdrawing `assets_needed`.

    Zero when the vault's position is worth at least its recorded debt. Otherwise the loss
    is pro-rated over `assets_needed` and rounded up, so any fractional loss counts as one unit.
    """
    if strategy_assets >= current_debt or current_debt == 0:
        return 0
    return mul_div(assets_needed, current_debt - strategy_assets, current_debt, Rounding.CEIL)


class MultistrategyVault:
    """
    Vault holding an idle reserve and lending it out to strategies up to their max debt.

    Invariant outside an operation: `total_idle + total_debt == total_assets()` and
    `total_debt == sum(current_debt)` across strategies.
    """

    def __init__(
        self,
        asset: Token,
        name: str,
        address: str,
        *,
        minimum_total_idle: int = 0,
        clock: Callable[[], int] | None = None,
    ) -> None:
        if minimum_total_idle < 0:
            raise ValueError(f"minimum_total_idle must be >= 0, got {minimum_total_idle}")
        self.asset = asset
        self.name = name
        self.address = address
        self._clock = clock or (lambda: int(time.time()))
        self.total_idle = 0
        self.total_debt = 0
        self.minimum_total_idle = minimum_total_idle
        self.shutdown = False
        self.total_supply = 0
        self.strategies: dict[str, StrategyParams] = {}
        self._balances: dict[str, int] = {}
        self._strategy_refs: dict[str, YieldSource] = {}
        self._guard = AtomicGuard(name)

    def __repr__(self) -> str:
        return f"MultistrategyVault({self.name!r}, idle={self.total_idle}, debt={self.total_debt})"

    # ------------------------------------------------------------------
    # Journaling
    # ------------------------------------------------------------------

    def checkpoint(self) -> Any:
        return copy.deepcopy(
            (
                self.total_idle,
                self.total_debt,
                self.minimum_total_idle,
                self.shutdown,
                self.total_supply,
                self.strategies,
                self._balances,
            )
        )

    def rollback(self, snapshot: Any) -> None:
        (
            self.total_idle,
            self.total_debt,
            self.minimum_total_idle,
            self.shutdown,
            self.total_supply,
            self.strategies,
            self._balances,
        ) = snapshot

    def journal_participants(self) -> list[Any]:
        return [self.asset, *self._strategy_refs.values()]

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def total_assets(self) -> int:
        return self.total_idle + self.total_debt

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def strategy(self, address: str) -> YieldSource:
        return self._strategy_refs[address]

    def _params(self, address: str) -> StrategyParams:
        params = self.strategies.get(address)
        if params is None:
            raise InvalidOperationError(f"{self.name}: inactive strategy {address}")
        return params

    def convert_to_shares(self, assets: int, rounding: Rounding = Rounding.FLOOR) -> int:
        if self.total_supply == 0:
            return assets
        total = self.total_assets()
        if total == 0:
            return 0
        return mul_div(assets, self.total_supply, total, rounding)

    def convert_to_assets(self, shares: int, rounding: Rounding = Rounding.FLOOR) -> int:
        if self.total_supply == 0:
            return shares
        return mul_div(shares, self.total_assets(), self.total_supply, rounding)

    def max_withdraw(self, owner: str) -> int:
        """Withdrawals are served from idle only; move debt back first to free more."""
        return min(self.convert_to_assets(self.balance_of(owner)), self.total_idle)

    # ------------------------------------------------------------------
    # Depositors
    # ------------------------------------------------------------------

    @atomic
    def deposit(self, assets: int, receiver: str, *, sender: str) -> int:
        if assets < 0:
            raise ValueError(f"assets must be >= 0, got {assets}")
        if self.shutdown:
            raise CapacityError(f"{self.name}: vault is shut down")
        shares = self.convert_to_shares(assets)
        if shares == 0:
            raise ZeroAmountError(f"{self.name}: cannot mint zero")
        safe_transfer_from(self.asset, sender, self.address, assets, sender=self.address)
        self.total_idle += assets
        self._balances[receiver] = self.balance_of(receiver) + shares
        self.total_supply += shares
        return shares

    @atomic
    def redeem(self, shares: int, receiver: str, owner: str, *, sender: str) -> int:
        if shares < 0:
            raise ValueError(f"shares must be >= 0, got {shares}")
        if sender != owner:
            raise InvalidOperationError(f"{self.name}: {sender} cannot redeem for {owner}")
        if shares > self.balance_of(owner):
            raise CapacityError(f"{self.name}: insufficient shares to redeem")
        assets = self.convert_to_assets(shares)
        if assets == 0:
            raise ZeroAmountError(f"{self.name}: no assets to withdraw")
        if assets > self.total_idle:
            raise CapacityError(f"{self.name}: insufficient idle ({assets} > {self.total_idle}); rebalance first")
        self._balances[owner] = self.balance_of(owner) - shares
        self.total_supply -= shares
        self.total_idle -= assets
        safe_transfer(self.asset, receiver, assets, sender=self.address)
        return assets

    # ------------------------------------------------------------------
    # Strategy management
    # ------------------------------------------------------------------

    @atomic
    def add_strategy(self, strategy: YieldSource, *, max_debt: int = 0) -> None:
        if strategy.address in (self.address, "") or strategy.address in self.strategies:
            raise InvalidOperationError(f"{self.name}: strategy {strategy.address} already added or invalid")
        if getattr(strategy, "asset", self.asset) is not self.asset:
            raise InvalidOperationError(f"{self.name}: strategy {strategy.address} uses a different asset")
        now = self._clock()
        self.strategies[strategy.address] = StrategyParams(activation=now, last_report=now, max_debt=max_debt)
        self._strategy_refs[strategy.address] = strategy
        logger.info("%s: added strategy %s (max debt %d)", self.name, strategy.address, max_debt)

    @atomic
    def revoke_strategy(self, address: str, *, force: bool = False) -> None:
        """Remove a strategy. Outstanding debt blocks it unless `force`, which books it as a loss."""
        params = self._params(address)
        if params.current_debt != 0:
            if not force:
                raise InvalidOperationError(f"{self.name}: strategy {address} has debt")
            logger.warning("%s: force-revoking %s, writing off %d of debt", self.name, address, params.current_debt)
            self.total_debt -= params.current_debt
        del self.strategies[address]
        del self._strategy_refs[address]

    @atomic
    def update_max_debt(self, address: str, max_debt: int) -> None:
        if max_debt < 0:
            raise ValueError(f"max_debt must be >= 0, got {max_debt}")
        self._params(address).max_debt = max_debt

    @atomic
    def set_minimum_total_idle(self, minimum_total_idle: int) -> None:
        if minimum_total_idle < 0:
            raise ValueError(f"minimum_total_idle must be >= 0, got {minimum_total_idle}")
        self.minimum_total_idle = minimum_total_idle

    @atomic
    def shutdown_vault(self) -> None:
        self.shutdown = True
        logger.warning("%s: vault shut down", self.name)

    @atomic
    def process_report(self, address: str) -> StrategyReport:
        """Reconcile a strategy's recorded debt with what the vault's position is worth now."""
        params = self._params(address)
        strategy = self._strategy_refs[address]
        position = strategy.convert_to_assets(strategy.balance_of(self.address))
        gain = 0
        loss = 0
        if position > params.current_debt:
            gain = position - params.current_debt
            params.current_debt += gain
            self.total_debt += gain
        elif position < params.current_debt:
            loss = params.current_debt - position
            params.current_debt -= loss
            self.total_debt -= loss
        params.last_report = self._clock()
        logger.info("%s: strategy %s reported gain=%d loss=%d", self.name, address, gain, loss)
        return StrategyReport(strategy=address, gain=gain, loss=loss, current_debt=params.current_debt)

    # ------------------------------------------------------------------
    # Debt rebalancer
    # ------------------------------------------------------------------

    @atomic
    def update_debt(self, address: str, target_debt: int, max_loss: int = MAX_BPS) -> DebtUpdate:
        """
        Move funds between idle and a strategy so its debt approaches `target_debt`.

        Withdrawals respect the minimum idle top-up, the strategy's withdrawable capacity,
        unrealised losses and the `max_loss` tolerance (bps of the requested amount).
        Deposits respect the strategy's max debt, its deposit capacity and the idle
        kept above `minimum_total_idle`. Amounts actually moved are measured by balance
        difference.
        """
        if target_debt < 0:
            raise ValueError(f"target_debt must be >= 0, got {target_debt}")
        if not 0 <= max_loss <= MAX_BPS:
            raise ValueError(f"max_loss must be within [0, {MAX_BPS}], got {max_loss}")
        params = self._params(address)
        strategy = self._strategy_refs[address]
        current_debt = params.current_debt
        new_debt = 0 if self.shutdown else target_debt

        if new_debt == current_debt:
            raise InvalidOperationError(f"{self.name}: new debt equals current debt ({current_debt})")

        if current_debt > new_debt:
            new_debt = self._decrease_debt(address, strategy, current_debt, new_debt, max_loss)
        else:
            new_debt = self._increase_debt(address, strategy, params, current_debt, new_debt)

        params.current_debt = new_debt
        logger.info(
            "%s: debt of %s %d -> %d (idle %d, total debt %d)",
            self.name,
            address,
            current_debt,
            new_debt,
            self.total_idle,
            self.total_debt,
        )
        return DebtUpdate(
            strategy=address,
            previous_debt=current_debt,
            new_debt=new_debt,
            total_idle=self.total_idle,
            total_debt=self.total_debt,
        )

    def _decrease_debt(
        self, address: str, strategy: YieldSource, current_debt: int, new_debt: int, max_loss: int
    ) -> int:
        assets_to_withdraw = current_debt - new_debt

        # Only pull what is needed to top idle up to the minimum, if that is more.
        if self.total_idle + assets_to_withdraw < self.minimum_total_idle:
            assets_to_withdraw = min(self.minimum_total_idle - self.total_idle, current_debt)

        withdrawable = strategy.convert_to_assets(strategy.max_redeem(self.address))
        assets_to_withdraw = min(assets_to_withdraw, withdrawable)
        if assets_to_withdraw == 0:
            return current_debt

        position = strategy.convert_to_assets(strategy.balance_of(self.address))
        if assess_share_of_unrealised_losses(position, current_debt, assets_to_withdraw) != 0:
            raise InvalidOperationError(f"{self.name}: strategy {address} has unrealised losses")

        pre_balance = self.asset.balance_of(self.address)
        shares_to_redeem = min(strategy.preview_withdraw(assets_to_withdraw), strategy.balance_of(self.address))
        strategy.redeem(shares_to_redeem, self.address, self.address, MAX_BPS, sender=self.address)
        post_balance = self.asset.balance_of(self.address)

        withdrawn = min(post_balance - pre_balance, current_debt)
        if withdrawn < assets_to_withdraw and max_loss < MAX_BPS:
            shortfall = assets_to_withdraw - withdrawn
            if shortfall > bps_of(assets_to_withdraw, max_loss):
                raise LossToleranceError(
                    f"{self.name}: too much loss ({shortfall} > {max_loss} bps of {assets_to_withdraw})"
                )
        elif withdrawn > assets_to_withdraw:
            assets_to_withdraw = withdrawn

        self.total_idle += withdrawn
        self.total_debt -= assets_to_withdraw
        return current_debt - assets_to_withdraw

    def _increase_debt(
        self, address: str, strategy: YieldSource, params: StrategyParams, current_debt: int, new_debt: int
    ) -> int:
        if new_debt > params.max_debt:
            new_debt = params.max_debt
            # A report can push current debt above the cap.
            if new_debt < current_debt:
                return current_debt

        max_deposit = strategy.max_deposit(self.address)
        if max_deposit == 0:
            return current_debt

        assets_to_deposit = min(new_debt - current_debt, max_deposit)

        if self.total_idle <= self.minimum_total_idle:
            return current_debt
        assets_to_deposit = min(assets_to_deposit, self.total_idle - self.minimum_total_idle)

        if assets_to_deposit > 0:
            force_approve(self.asset, address, assets_to_deposit, sender=self.address)
            pre_balance = self.asset.balance_of(self.address)
            strategy.deposit(assets_to_deposit, self.address, sender=self.address)
            post_balance = self.asset.balance_of(self.address)
            force_approve(self.asset, address, 0, sender=self.address)

            assets_to_deposit = pre_balance - post_balance
            self.total_idle -= assets_to_deposit
            self.total_debt += assets_to_deposit

        return current_debt + assets_to_deposit
