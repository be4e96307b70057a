import pytest

from vault_ledger.errors import TransferError
from vault_ledger.tokens import Erc20Token, force_approve, safe_transfer, safe_transfer_from
from vault_ledger.yield_donating import YieldDonatingStrategy


class FalseReturningToken(Erc20Token):
    def transfer(self, to, amount, *, sender):
        return False


class SilentNoopToken(Erc20Token):
    """Returns nothing and moves nothing."""

    def transfer(self, to, amount, *, sender):
        return None

    def approve(self, spender, amount, *, sender):
        return None


def test_safe_transfer_accepts_confirmed_non_compliant_token() -> None:
    token = Erc20Token("USDT", 6, returns_bool=False)
    token.mint("alice", 100)
    safe_transfer(token, "bob", 60, sender="alice")
    assert token.balance_of("bob") == 60

    force_approve(token, "bob", 40, sender="alice")
    safe_transfer_from(token, "alice", "carol", 40, sender="bob")
    assert token.balance_of("carol") == 40
    assert token.allowance("alice", "bob") == 0


def test_safe_transfer_rejects_false_return() -> None:
    token = FalseReturningToken("BAD")
    token.mint("alice", 100)
    with pytest.raises(TransferError, match="returned false"):
        safe_transfer(token, "bob", 1, sender="alice")


def test_safe_helpers_reject_unconfirmed_none_return() -> None:
    """A silent token that moved nothing is treated as a failed transfer."""
    token = SilentNoopToken("BAD")
    token.mint("alice", 100)
    with pytest.raises(TransferError, match="balance check failed"):
        safe_transfer(token, "bob", 1, sender="alice")
    with pytest.raises(TransferError):
        force_approve(token, "bob", 1, sender="alice")


def test_transfer_failures() -> None:
    token = Erc20Token("TKN")
    token.mint("alice", 5)
    with pytest.raises(TransferError):
        token.transfer("bob", 6, sender="alice")
    with pytest.raises(TransferError):
        token.transfer_from("alice", "bob", 1, sender="bob")
    with pytest.raises(ValueError):
        token.mint("alice", -1)


def test_ledger_round_trip_with_non_compliant_token(clock) -> None:
    token = Erc20Token("USDT", 6, returns_bool=False)
    ledger = YieldDonatingStrategy(
        token, "usdt", "ledger", management="management", keeper="keeper", dragon_router="dragon", clock=clock
    )
    token.mint("alice", 500)
    token.approve("ledger", 500, sender="alice")
    ledger.deposit(500, "alice", sender="alice")
    assert token.balance_of("ledger") == 500
    assert ledger.redeem(500, "alice", "alice", sender="alice") == 500
    assert token.balance_of("alice") == 500
