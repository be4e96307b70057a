"""Token movement: an in-memory ERC-20 style token and safe transfer helpers.

The helpers accept any object with the token surface (`balance_of`, `allowance`,
`transfer`, `transfer_from`, `approve`). A call that returns ``False`` is a failure; a call
that returns ``None`` (non-compliant tokens) is accepted only if the resulting balance or
allowance proves the call took effect.
"""

import copy
import logging
from typing import Any, Protocol

from vault_ledger.errors import TransferError

logger = logging.getLogger(__name__)


class Token(Protocol):
    """Token surface the ledger and vault depend on."""

    decimals: int

    def balance_of(self, account: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, to: str, amount: int, *, sender: str) -> bool | None: ...

    def transfer_from(self, owner: str, to: str, amount: int, *, sender: str) -> bool | None: ...

    def approve(self, spender: str, amount: int, *, sender: str) -> bool | None: ...


class Erc20Token:
    """In-memory fungible token with balances, allowances and optional non-compliant returns."""

    def __init__(self, symbol: str, decimals: int = 18, *, returns_bool: bool = True) -> None:
        if decimals < 0:
            raise ValueError(f"decimals must be >= 0, got {decimals}")
        self.symbol = symbol
        self.decimals = decimals
        # Non-compliant tokens return nothing from transfer/approve.
        self.returns_bool = returns_bool
        self.total_supply = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}

    def __repr__(self) -> str:
        return f"Erc20Token({self.symbol!r}, decimals={self.decimals})"

    def checkpoint(self) -> Any:
        return copy.deepcopy((self.total_supply, self._balances, self._allowances))

    def rollback(self, snapshot: Any) -> None:
        self.total_supply, self._balances, self._allowances = snapshot

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def mint(self, to: str, amount: int) -> None:
        """Create tokens out of thin air (faucet / simulated yield)."""
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        self._balances[to] = self.balance_of(to) + amount
        self.total_supply += amount

    def burn(self, account: str, amount: int) -> None:
        """Destroy tokens held by `account` (simulated loss)."""
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        balance = self.balance_of(account)
        if amount > balance:
            raise TransferError(f"{self.symbol}: burn amount exceeds balance ({amount} > {balance})")
        self._balances[account] = balance - amount
        self.total_supply -= amount

    def _move(self, owner: str, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        balance = self.balance_of(owner)
        if amount > balance:
            raise TransferError(f"{self.symbol}: transfer amount exceeds balance ({amount} > {balance})")
        self._balances[owner] = balance - amount
        self._balances[to] = self.balance_of(to) + amount

    def transfer(self, to: str, amount: int, *, sender: str) -> bool | None:
        self._move(sender, to, amount)
        return True if self.returns_bool else None

    def transfer_from(self, owner: str, to: str, amount: int, *, sender: str) -> bool | None:
        allowed = self.allowance(owner, sender)
        if amount > allowed:
            raise TransferError(f"{self.symbol}: insufficient allowance ({amount} > {allowed})")
        self._move(owner, to, amount)
        self._allowances[(owner, sender)] = allowed - amount
        return True if self.returns_bool else None

    def approve(self, spender: str, amount: int, *, sender: str) -> bool | None:
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        self._allowances[(sender, spender)] = amount
        return True if self.returns_bool else None


def _check_result(result: bool | None, confirmed: bool, action: str) -> None:
    if result is False:
        raise TransferError(f"{action} returned false")
    if result is None and not confirmed:
        raise TransferError(f"{action} returned no value and the balance check failed")


def safe_transfer(token: Token, to: str, amount: int, *, sender: str) -> None:
    """Transfer `amount` from `sender` to `to`, failing hard on any unconfirmed outcome."""
    if amount == 0 or sender == to:
        return
    before = token.balance_of(to)
    result = token.transfer(to, amount, sender=sender)
    _check_result(result, token.balance_of(to) - before == amount, f"transfer({to}, {amount})")


def safe_transfer_from(token: Token, owner: str, to: str, amount: int, *, sender: str) -> None:
    """Pull `amount` from `owner` to `to` using `sender`'s allowance."""
    if amount == 0:
        return
    before = token.balance_of(to)
    result = token.transfer_from(owner, to, amount, sender=sender)
    _check_result(result, token.balance_of(to) - before == amount, f"transfer_from({owner}, {to}, {amount})")


def force_approve(token: Token, spender: str, amount: int, *, sender: str) -> None:
    """Set `spender`'s allowance to exactly `amount`, verifying ambiguous returns."""
    result = token.approve(spender, amount, sender=sender)
    _check_result(result, token.allowance(sender, spender) == amount, f"approve({spender}, {amount})")
