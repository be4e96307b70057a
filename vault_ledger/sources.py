"""Collaborator interfaces (yield source, rate source) and in-memory implementations."""

import copy
import logging
from collections.abc import Callable
from typing import Any, Protocol

from vault_ledger.constants import MAX_BPS, MAX_UINT256
from vault_ledger.errors import CapacityError, UnauthorizedError, ZeroAmountError
from vault_ledger.fixed_point import Rounding, bps_of, mul_div
from vault_ledger.tokens import Erc20Token, safe_transfer, safe_transfer_from

logger = logging.getLogger(__name__)


class YieldSource(Protocol):
    """ERC-4626 style capability a ledger deploys into and a vault allocates to."""

    address: str

    def balance_of(self, account: str) -> int: ...

    def convert_to_assets(self, shares: int) -> int: ...

    def preview_withdraw(self, assets: int) -> int: ...

    def max_deposit(self, receiver: str) -> int: ...

    def max_withdraw(self, owner: str) -> int: ...

    def max_redeem(self, owner: str) -> int: ...

    def deposit(self, assets: int, receiver: str, *, sender: str) -> int: ...

    def withdraw(self, assets: int, receiver: str, owner: str, max_loss: int = 0, *, sender: str) -> int: ...

    def redeem(self, shares: int, receiver: str, owner: str, max_loss: int = MAX_BPS, *, sender: str) -> int: ...


class RateSource(Protocol):
    """Exchange rate of a yield-bearing asset, quoted with its own decimal precision."""

    def get_current_exchange_rate(self) -> int: ...

    def decimals_of_exchange_rate(self) -> int: ...


class FixedRateSource:
    """Rate source holding a settable rate (tests and simulations)."""

    def __init__(self, rate: int, decimals: int = 18) -> None:
        if decimals < 0:
            raise ValueError(f"decimals must be >= 0, got {decimals}")
        self.decimals = decimals
        self.rate = 0
        self.set_rate(rate)

    def __repr__(self) -> str:
        return f"FixedRateSource(rate={self.rate}, decimals={self.decimals})"

    def set_rate(self, rate: int) -> None:
        if rate < 0:
            raise ValueError(f"rate must be >= 0, got {rate}")
        self.rate = rate

    def get_current_exchange_rate(self) -> int:
        return self.rate

    def decimals_of_exchange_rate(self) -> int:
        return self.decimals


class MockYieldSource:
    """
    In-memory ERC-4626 style vault over an `Erc20Token`.

    Knobs for exercising the accounting core:
    - `deposit_limit`: cap on total assets accepted (None = unlimited)
    - `liquidity`: cap on assets that can leave per call (None = unlimited)
    - `exit_fee_bps`: haircut applied to every payout, kept by the source; this is
      how a withdrawal returns less than its reported value
    - `on_deposit`: hook invoked mid-deposit (used to attempt reentrancy)
    """

    def __init__(
        self,
        asset: Erc20Token,
        address: str,
        *,
        deposit_limit: int | None = None,
        liquidity: int | None = None,
        exit_fee_bps: int = 0,
    ) -> None:
        if not 0 <= exit_fee_bps <= MAX_BPS:
            raise ValueError(f"exit_fee_bps must be within [0, {MAX_BPS}], got {exit_fee_bps}")
        self.asset = asset
        self.address = address
        self.deposit_limit = deposit_limit
        self.liquidity = liquidity
        self.exit_fee_bps = exit_fee_bps
        self.on_deposit: Callable[[int], None] | None = None
        self.total_shares = 0
        self._shares: dict[str, int] = {}

    def __repr__(self) -> str:
        return f"MockYieldSource({self.address!r}, total_assets={self.total_assets()})"

    def checkpoint(self) -> Any:
        return copy.deepcopy((self.total_shares, self._shares))

    def rollback(self, snapshot: Any) -> None:
        self.total_shares, self._shares = snapshot

    def journal_participants(self) -> list[Any]:
        return [self.asset]

    def total_assets(self) -> int:
        return self.asset.balance_of(self.address)

    def balance_of(self, account: str) -> int:
        return self._shares.get(account, 0)

    def convert_to_shares(self, assets: int, rounding: Rounding = Rounding.FLOOR) -> int:
        if self.total_shares == 0:
            return assets
        total = self.total_assets()
        if total == 0:
            return 0
        return mul_div(assets, self.total_shares, total, rounding)

    def convert_to_assets(self, shares: int, rounding: Rounding = Rounding.FLOOR) -> int:
        if self.total_shares == 0:
            return shares
        return mul_div(shares, self.total_assets(), self.total_shares, rounding)

    def preview_withdraw(self, assets: int) -> int:
        return self.convert_to_shares(assets, Rounding.CEIL)

    def max_deposit(self, receiver: str) -> int:
        if self.deposit_limit is None:
            return MAX_UINT256
        return max(self.deposit_limit - self.total_assets(), 0)

    def max_withdraw(self, owner: str) -> int:
        owned = self.convert_to_assets(self.balance_of(owner))
        return owned if self.liquidity is None else min(owned, self.liquidity)

    def max_redeem(self, owner: str) -> int:
        shares = self.balance_of(owner)
        if self.liquidity is None:
            return shares
        return min(shares, self.convert_to_shares(self.liquidity))

    def simulate_gain(self, amount: int) -> None:
        """Yield accrues to every share holder."""
        self.asset.mint(self.address, amount)

    def simulate_loss(self, amount: int) -> None:
        """Assets vanish from the source (e.g. a bad debt write-off)."""
        self.asset.burn(self.address, amount)

    def deposit(self, assets: int, receiver: str, *, sender: str) -> int:
        if assets > self.max_deposit(receiver):
            raise CapacityError(f"{self.address}: deposit more than max")
        shares = self.convert_to_shares(assets)
        if shares == 0:
            raise ZeroAmountError(f"{self.address}: ZERO_SHARES")
        safe_transfer_from(self.asset, sender, self.address, assets, sender=self.address)
        if self.on_deposit is not None:
            self.on_deposit(assets)
        self._shares[receiver] = self.balance_of(receiver) + shares
        self.total_shares += shares
        return shares

    def _exit(self, shares: int, assets: int, receiver: str, owner: str, sender: str) -> int:
        if sender != owner:
            raise UnauthorizedError(f"{self.address}: {sender} cannot exit on behalf of {owner}")
        if self.liquidity is not None and assets > self.liquidity:
            raise CapacityError(f"{self.address}: withdraw more than available liquidity")
        self._shares[owner] = self.balance_of(owner) - shares
        self.total_shares -= shares
        paid = assets - bps_of(assets, self.exit_fee_bps)
        safe_transfer(self.asset, receiver, paid, sender=self.address)
        return paid

    def withdraw(self, assets: int, receiver: str, owner: str, max_loss: int = 0, *, sender: str) -> int:
        shares = self.preview_withdraw(assets)
        if shares > self.balance_of(owner):
            raise CapacityError(f"{self.address}: withdraw more than max")
        self._exit(shares, assets, receiver, owner, sender)
        return shares

    def redeem(self, shares: int, receiver: str, owner: str, max_loss: int = MAX_BPS, *, sender: str) -> int:
        if shares > self.balance_of(owner):
            raise CapacityError(f"{self.address}: redeem more than max")
        assets = self.convert_to_assets(shares)
        if assets == 0:
            raise ZeroAmountError(f"{self.address}: ZERO_ASSETS")
        return self._exit(shares, assets, receiver, owner, sender)
