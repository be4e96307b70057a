"""Share ledger shared by both accounting modes.

`TokenizedStrategy` owns everything the two modes have in common: the share token
(balances, allowances, supply), the ERC-4626 style entry points with loss tolerance,
funds movement into and out of the wrapped yield source, roles, the dragon router
(operator) change with cooldown, shutdown and the health-check settings.

Mode-specific behavior lives in subclasses (`YieldDonatingStrategy`,
`YieldSkimmingStrategy`), which override the conversion functions, the
`_before_*` / `_after_*` hooks and `_process_report()`.
"""

import copy
import logging
import time
from collections.abc import Callable
from typing import Any

from vault_ledger.constants import DRAGON_ROUTER_COOLDOWN, MAX_BPS, MAX_UINT256, ZERO_ADDRESS
from vault_ledger.errors import (
    CapacityError,
    InvalidOperationError,
    LossToleranceError,
    TransferError,
    UnauthorizedError,
    ZeroAmountError,
)
from vault_ledger.fixed_point import Rounding, bps_of, mul_div
from vault_ledger.guard import AtomicGuard, atomic
from vault_ledger.health_check import HealthCheck, validate_loss_limit_ratio, validate_profit_limit_ratio
from vault_ledger.models import ReportResult, StrategyData
from vault_ledger.sources import YieldSource
from vault_ledger.tokens import Token, force_approve, safe_transfer, safe_transfer_from

logger = logging.getLogger(__name__)


def _require_amount(amount: int, name: str = "amount") -> None:
    if amount < 0:
        raise ValueError(f"{name} must be >= 0, got {amount}")


def _require_max_loss(max_loss: int) -> None:
    if not 0 <= max_loss <= MAX_BPS:
        raise ValueError(f"max_loss must be within [0, {MAX_BPS}], got {max_loss}")


class TokenizedStrategy:
    """Base ledger: shares, entry points, funds movement, roles and operator change."""

    mode = "base"

    def __init__(
        self,
        asset: Token,
        name: str,
        address: str,
        *,
        management: str,
        keeper: str,
        dragon_router: str,
        emergency_admin: str = ZERO_ADDRESS,
        yield_source: YieldSource | None = None,
        enable_burning: bool = True,
        health_check: HealthCheck | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        if dragon_router in (ZERO_ADDRESS, address):
            raise ValueError(f"invalid dragon router: {dragon_router}")
        self.asset = asset
        self.name = name
        self.address = address
        self.yield_source = yield_source
        self._clock = clock or (lambda: int(time.time()))
        self.state = StrategyData(
            management=management,
            keeper=keeper,
            emergency_admin=emergency_admin,
            dragon_router=dragon_router,
            enable_burning=enable_burning,
            last_report=self._clock(),
        )
        self.health_check = health_check or HealthCheck()
        self._guard = AtomicGuard(name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, total_assets={self.state.total_assets})"

    # ------------------------------------------------------------------
    # Journaling
    # ------------------------------------------------------------------

    def checkpoint(self) -> Any:
        return copy.deepcopy((self.state, self.health_check))

    def rollback(self, snapshot: Any) -> None:
        self.state, self.health_check = snapshot

    def journal_participants(self) -> list[Any]:
        return [self.asset, self.yield_source]

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def decimals(self) -> int:
        return self.asset.decimals

    @property
    def dragon_router(self) -> str:
        return self.state.dragon_router

    def total_assets(self) -> int:
        return self.state.total_assets

    def total_supply(self) -> int:
        return self.state.total_supply

    def balance_of(self, account: str) -> int:
        return self.state.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.state.allowances.get((owner, spender), 0)

    def is_shutdown(self) -> bool:
        return self.state.shutdown

    def _convert_to_shares(self, assets: int, rounding: Rounding) -> int:
        supply = self.state.total_supply
        if supply == 0:
            return assets
        total = self.state.total_assets
        if total == 0:
            return 0
        return mul_div(assets, supply, total, rounding)

    def _convert_to_assets(self, shares: int, rounding: Rounding) -> int:
        supply = self.state.total_supply
        if supply == 0:
            return shares
        return mul_div(shares, self.state.total_assets, supply, rounding)

    def convert_to_shares(self, assets: int) -> int:
        return self._convert_to_shares(assets, Rounding.FLOOR)

    def convert_to_assets(self, shares: int) -> int:
        return self._convert_to_assets(shares, Rounding.FLOOR)

    def preview_deposit(self, assets: int) -> int:
        return self._convert_to_shares(assets, Rounding.FLOOR)

    def preview_mint(self, shares: int) -> int:
        return self._convert_to_assets(shares, Rounding.CEIL)

    def preview_withdraw(self, assets: int) -> int:
        return self._convert_to_shares(assets, Rounding.CEIL)

    def preview_redeem(self, shares: int) -> int:
        return self._convert_to_assets(shares, Rounding.FLOOR)

    def price_per_share(self) -> int:
        """Assets per one whole share (10**decimals share units), floor-rounded."""
        return self._convert_to_assets(10**self.decimals, Rounding.FLOOR)

    def available_deposit_limit(self, owner: str) -> int:
        if self.yield_source is None:
            return MAX_UINT256
        return self.yield_source.max_deposit(self.address)

    def available_withdraw_limit(self, owner: str) -> int:
        if self.yield_source is None:
            return MAX_UINT256
        return self.asset.balance_of(self.address) + self.yield_source.max_withdraw(self.address)

    def max_deposit(self, receiver: str) -> int:
        if receiver == self.address or self.state.shutdown:
            return 0
        return self.available_deposit_limit(receiver)

    def max_mint(self, receiver: str) -> int:
        limit = self.max_deposit(receiver)
        if limit == MAX_UINT256:
            return limit
        return self._convert_to_shares(limit, Rounding.FLOOR)

    def max_withdraw(self, owner: str) -> int:
        owned = self._convert_to_assets(self.balance_of(owner), Rounding.FLOOR)
        return min(owned, self.available_withdraw_limit(owner))

    def max_redeem(self, owner: str) -> int:
        balance = self.balance_of(owner)
        limit = self.available_withdraw_limit(owner)
        if limit == MAX_UINT256:
            return balance
        return min(self._convert_to_shares(limit, Rounding.FLOOR), balance)

    def harvest_and_report(self) -> int:
        """Fresh total assets: idle balance plus the value of the yield source position."""
        idle = self.asset.balance_of(self.address)
        if self.yield_source is None:
            return idle
        position = self.yield_source.convert_to_assets(self.yield_source.balance_of(self.address))
        return idle + position

    # ------------------------------------------------------------------
    # Mode hooks
    # ------------------------------------------------------------------

    def _before_deposit(self, receiver: str) -> None:
        """Checks run before a deposit or mint is sized."""

    def _after_deposit(self, receiver: str, assets: int, shares: int) -> None:
        """Bookkeeping after shares were minted for a deposit."""

    def _before_withdraw(self, owner: str) -> None:
        """Checks run before a withdraw or redeem is sized."""

    def _after_withdraw(self, owner: str, shares: int) -> None:
        """Bookkeeping after shares were burned for a withdrawal."""

    def _before_transfer(self, sender: str, to: str, shares: int) -> None:
        """Checks run before shares change hands."""

    def _after_transfer(self, sender: str, to: str, shares: int) -> None:
        """Bookkeeping after shares changed hands."""

    def _on_dragon_router_change(self, old: str, new: str) -> None:
        """Bookkeeping before the dragon router pointer moves from `old` to `new`."""

    def _process_report(self) -> ReportResult:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Share token
    # ------------------------------------------------------------------

    def _mint(self, to: str, shares: int) -> None:
        self.state.balances[to] = self.balance_of(to) + shares
        self.state.total_supply += shares

    def _burn(self, owner: str, shares: int) -> None:
        balance = self.balance_of(owner)
        if shares > balance:
            raise TransferError(f"{self.name}: burn amount exceeds balance ({shares} > {balance})")
        self.state.balances[owner] = balance - shares
        self.state.total_supply -= shares

    def _spend_allowance(self, owner: str, spender: str, shares: int) -> None:
        allowed = self.allowance(owner, spender)
        if allowed == MAX_UINT256:
            return
        if shares > allowed:
            raise TransferError(f"{self.name}: insufficient allowance ({shares} > {allowed})")
        self.state.allowances[(owner, spender)] = allowed - shares

    def _transfer(self, sender: str, to: str, shares: int) -> None:
        _require_amount(shares, "shares")
        if to == self.address:
            raise InvalidOperationError(f"{self.name}: cannot transfer shares to the strategy itself")
        self._before_transfer(sender, to, shares)
        balance = self.balance_of(sender)
        if shares > balance:
            raise TransferError(f"{self.name}: transfer amount exceeds balance ({shares} > {balance})")
        self.state.balances[sender] = balance - shares
        self.state.balances[to] = self.balance_of(to) + shares
        self._after_transfer(sender, to, shares)

    @atomic
    def transfer(self, to: str, shares: int, *, sender: str) -> bool:
        self._transfer(sender, to, shares)
        return True

    @atomic
    def transfer_from(self, owner: str, to: str, shares: int, *, sender: str) -> bool:
        self._spend_allowance(owner, sender, shares)
        self._transfer(owner, to, shares)
        return True

    @atomic
    def approve(self, spender: str, shares: int, *, sender: str) -> bool:
        _require_amount(shares, "shares")
        self.state.allowances[(sender, spender)] = shares
        return True

    # ------------------------------------------------------------------
    # Funds movement
    # ------------------------------------------------------------------

    def _deploy_funds(self, amount: int) -> None:
        if self.yield_source is None or amount == 0:
            return
        amount = min(amount, self.yield_source.max_deposit(self.address))
        if amount == 0:
            return
        force_approve(self.asset, self.yield_source.address, amount, sender=self.address)
        self.yield_source.deposit(amount, self.address, sender=self.address)
        force_approve(self.asset, self.yield_source.address, 0, sender=self.address)

    def _free_funds(self, amount: int) -> None:
        if self.yield_source is None or amount == 0:
            return
        amount = min(amount, self.yield_source.max_withdraw(self.address))
        if amount == 0:
            return
        self.yield_source.withdraw(amount, self.address, self.address, sender=self.address)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @atomic
    def deposit(self, assets: int, receiver: str, *, sender: str) -> int:
        """Deposit `assets` from `sender`, minting shares to `receiver`. Returns shares minted."""
        _require_amount(assets, "assets")
        self._before_deposit(receiver)
        if assets > self.max_deposit(receiver):
            raise CapacityError(f"{self.name}: ERC4626: deposit more than max")
        shares = self.preview_deposit(assets)
        if shares == 0:
            raise ZeroAmountError(f"{self.name}: ZERO_SHARES")
        self._deposit(sender, receiver, assets, shares)
        return shares

    @atomic
    def mint(self, shares: int, receiver: str, *, sender: str) -> int:
        """Mint exactly `shares` to `receiver`, pulling the assets from `sender`. Returns assets."""
        _require_amount(shares, "shares")
        self._before_deposit(receiver)
        if shares > self.max_mint(receiver):
            raise CapacityError(f"{self.name}: ERC4626: mint more than max")
        assets = self.preview_mint(shares)
        if assets == 0:
            raise ZeroAmountError(f"{self.name}: ZERO_ASSETS")
        self._deposit(sender, receiver, assets, shares)
        return assets

    @atomic
    def withdraw(self, assets: int, receiver: str, owner: str, max_loss: int = 0, *, sender: str) -> int:
        """Withdraw `assets` for `owner`, tolerating up to `max_loss` bps of loss. Returns shares burned."""
        _require_amount(assets, "assets")
        _require_max_loss(max_loss)
        self._before_withdraw(owner)
        if assets > self.max_withdraw(owner):
            raise CapacityError(f"{self.name}: ERC4626: withdraw more than max")
        shares = self.preview_withdraw(assets)
        if shares == 0:
            raise ZeroAmountError(f"{self.name}: ZERO_SHARES")
        self._withdraw(sender, receiver, owner, assets, shares, max_loss)
        return shares

    @atomic
    def redeem(self, shares: int, receiver: str, owner: str, max_loss: int = MAX_BPS, *, sender: str) -> int:
        """Redeem `shares` of `owner`, tolerating up to `max_loss` bps of loss. Returns assets paid."""
        _require_amount(shares, "shares")
        _require_max_loss(max_loss)
        self._before_withdraw(owner)
        if shares > self.max_redeem(owner):
            raise CapacityError(f"{self.name}: ERC4626: redeem more than max")
        assets = self.preview_redeem(shares)
        if assets == 0:
            raise ZeroAmountError(f"{self.name}: ZERO_ASSETS")
        return self._withdraw(sender, receiver, owner, assets, shares, max_loss)

    def _deposit(self, sender: str, receiver: str, assets: int, shares: int) -> None:
        safe_transfer_from(self.asset, sender, self.address, assets, sender=self.address)
        self._deploy_funds(self.asset.balance_of(self.address))
        self.state.total_assets += assets
        self._mint(receiver, shares)
        self._after_deposit(receiver, assets, shares)
        logger.debug("%s: deposit %d assets from %s, %d shares to %s", self.name, assets, sender, shares, receiver)

    def _withdraw(self, sender: str, receiver: str, owner: str, assets: int, shares: int, max_loss: int) -> int:
        if sender != owner:
            self._spend_allowance(owner, sender, shares)

        idle = self.asset.balance_of(self.address)
        loss = 0
        if idle < assets:
            self._free_funds(assets - idle)
            idle = self.asset.balance_of(self.address)
            if idle < assets:
                loss = assets - idle
                if max_loss < MAX_BPS and loss > bps_of(assets, max_loss):
                    raise LossToleranceError(
                        f"{self.name}: too much loss ({loss} > {max_loss} bps of {assets})"
                    )
                assets = idle

        self.state.total_assets -= assets + loss
        self._burn(owner, shares)
        self._after_withdraw(owner, shares)
        safe_transfer(self.asset, receiver, assets, sender=self.address)
        logger.debug(
            "%s: withdraw %d assets (loss %d) for %s, %d shares burned", self.name, assets, loss, owner, shares
        )
        return assets

    @atomic
    def report(self, *, sender: str) -> ReportResult:
        """Harvest, run the health check and book profit or loss. Keeper or management only."""
        self._require_keeper_or_management(sender)
        result = self._process_report()
        self.state.last_report = self._clock()
        logger.info(
            "%s: reported profit=%d loss=%d (total assets %d, supply %d)",
            self.name,
            result.profit,
            result.loss,
            self.state.total_assets,
            self.state.total_supply,
        )
        return result

    # ------------------------------------------------------------------
    # Roles and administration
    # ------------------------------------------------------------------

    def _require_management(self, sender: str) -> None:
        if sender != self.state.management:
            raise UnauthorizedError(f"{self.name}: !management ({sender})")

    def _require_keeper_or_management(self, sender: str) -> None:
        if sender not in (self.state.keeper, self.state.management):
            raise UnauthorizedError(f"{self.name}: !keeper ({sender})")

    def _require_emergency_authorized(self, sender: str) -> None:
        if sender not in (self.state.emergency_admin, self.state.management):
            raise UnauthorizedError(f"{self.name}: !emergency authorized ({sender})")

    @atomic
    def set_pending_management(self, new_management: str, *, sender: str) -> None:
        self._require_management(sender)
        if new_management == ZERO_ADDRESS:
            raise ValueError("management cannot be the zero address")
        self.state.pending_management = new_management

    @atomic
    def accept_management(self, *, sender: str) -> None:
        if sender != self.state.pending_management:
            raise UnauthorizedError(f"{self.name}: !pending management ({sender})")
        self.state.management = sender
        self.state.pending_management = ZERO_ADDRESS
        logger.info("%s: management accepted by %s", self.name, sender)

    @atomic
    def set_keeper(self, keeper: str, *, sender: str) -> None:
        self._require_management(sender)
        self.state.keeper = keeper

    @atomic
    def set_emergency_admin(self, emergency_admin: str, *, sender: str) -> None:
        self._require_management(sender)
        self.state.emergency_admin = emergency_admin

    @atomic
    def set_enable_burning(self, enabled: bool, *, sender: str) -> None:
        self._require_management(sender)
        self.state.enable_burning = enabled

    @atomic
    def set_profit_limit_ratio(self, ratio: int, *, sender: str) -> None:
        self._require_management(sender)
        self.health_check.profit_limit_ratio = validate_profit_limit_ratio(ratio)

    @atomic
    def set_loss_limit_ratio(self, ratio: int, *, sender: str) -> None:
        self._require_management(sender)
        self.health_check.loss_limit_ratio = validate_loss_limit_ratio(ratio)

    @atomic
    def set_do_health_check(self, enabled: bool, *, sender: str) -> None:
        self._require_management(sender)
        self.health_check.enabled = enabled

    @atomic
    def shutdown_strategy(self, *, sender: str) -> None:
        """Stop accepting deposits for good. Withdrawals and reports keep working."""
        self._require_emergency_authorized(sender)
        self.state.shutdown = True
        logger.warning("%s: strategy shut down by %s", self.name, sender)

    @atomic
    def emergency_withdraw(self, amount: int, *, sender: str) -> None:
        """Pull up to `amount` out of the yield source into idle. Only after shutdown."""
        _require_amount(amount)
        self._require_emergency_authorized(sender)
        if not self.state.shutdown:
            raise InvalidOperationError(f"{self.name}: not shutdown")
        self._free_funds(amount)

    @atomic
    def set_dragon_router(self, new_dragon_router: str, *, sender: str) -> None:
        """Propose a new dragon router; it takes effect after the cooldown via finalize."""
        self._require_management(sender)
        if new_dragon_router in (ZERO_ADDRESS, self.address, self.state.dragon_router):
            raise InvalidOperationError(f"{self.name}: invalid dragon router {new_dragon_router}")
        self.state.pending_dragon_router = new_dragon_router
        self.state.dragon_router_change_timestamp = self._clock()
        logger.info("%s: dragon router change to %s pending", self.name, new_dragon_router)

    @atomic
    def finalize_dragon_router_change(self) -> str:
        """Apply the pending dragon router once the cooldown has elapsed. Callable by anyone."""
        pending = self.state.pending_dragon_router
        if pending == ZERO_ADDRESS:
            raise InvalidOperationError(f"{self.name}: no pending dragon router change")
        ready_at = self.state.dragon_router_change_timestamp + DRAGON_ROUTER_COOLDOWN
        if self._clock() < ready_at:
            raise InvalidOperationError(f"{self.name}: dragon router cooldown not elapsed (ready at {ready_at})")
        old = self.state.dragon_router
        self._on_dragon_router_change(old, pending)
        self.state.dragon_router = pending
        self.state.pending_dragon_router = ZERO_ADDRESS
        self.state.dragon_router_change_timestamp = 0
        logger.info("%s: dragon router changed %s -> %s", self.name, old, pending)
        return pending

    @atomic
    def cancel_dragon_router_change(self, *, sender: str) -> None:
        self._require_management(sender)
        if self.state.pending_dragon_router == ZERO_ADDRESS:
            raise InvalidOperationError(f"{self.name}: no pending dragon router change")
        self.state.pending_dragon_router = ZERO_ADDRESS
        self.state.dragon_router_change_timestamp = 0
