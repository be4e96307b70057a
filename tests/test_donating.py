import logging

import pytest

from vault_ledger.errors import (
    CapacityError,
    InvalidOperationError,
    LossToleranceError,
    TransferError,
    UnauthorizedError,
    ZeroAmountError,
)


def test_deposit_then_redeem_round_trip(fund, token, donating) -> None:
    fund("alice", 10_000, "ledger")
    shares = donating.deposit(10_000, "alice", sender="alice")
    assert shares == 10_000
    assert token.balance_of("yield_source") == 10_000

    assets = donating.redeem(shares, "alice", "alice", sender="alice")
    assert assets == 10_000
    assert token.balance_of("alice") == 10_000
    assert donating.total_supply() == 0
    assert donating.total_assets() == 0


def test_deposit_then_withdraw_round_trip(fund, token, donating) -> None:
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    burned = donating.withdraw(10_000, "alice", "alice", sender="alice")
    assert burned == 10_000
    assert token.balance_of("alice") == 10_000
    assert donating.balance_of("alice") == 0


def test_profit_is_minted_to_dragon_router(fund, source, donating) -> None:
    """Yield becomes dragon router shares at the pre-report share price."""
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    pps = donating.price_per_share()

    source.simulate_gain(500)
    result = donating.report(sender="keeper")

    assert (result.profit, result.loss) == (500, 0)
    assert donating.balance_of("dragon") == 500
    assert donating.total_assets() == 10_500
    # Depositors do not capture the yield.
    assert donating.price_per_share() == pps
    assert donating.convert_to_assets(donating.balance_of("alice")) == 10_000


def test_loss_burns_dragon_shares_first(fund, source, donating) -> None:
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    source.simulate_gain(500)
    donating.report(sender="keeper")

    donating.set_loss_limit_ratio(1_000, sender="management")
    source.simulate_loss(300)
    result = donating.report(sender="keeper")

    assert (result.profit, result.loss) == (0, 300)
    assert donating.balance_of("dragon") == 200
    assert donating.total_supply() == 10_200
    assert donating.convert_to_assets(donating.balance_of("alice")) == 10_000


def test_loss_beyond_dragon_balance_lowers_share_price(fund, source, donating, caplog) -> None:
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    source.simulate_gain(100)
    donating.report(sender="keeper")

    donating.set_loss_limit_ratio(5_000, sender="management")
    source.simulate_loss(1_100)
    with caplog.at_level(logging.WARNING, logger="vault_ledger.yield_donating"):
        donating.report(sender="keeper")

    assert "dragon router covered 100 of 1100" in caplog.text
    assert donating.balance_of("dragon") == 0
    assert donating.total_supply() == 10_000
    assert donating.total_assets() == 9_000
    assert donating.convert_to_assets(donating.balance_of("alice")) == 9_000


def test_loss_without_burning_is_shared(fund, source, donating) -> None:
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    source.simulate_gain(100)
    donating.report(sender="keeper")

    donating.set_enable_burning(False, sender="management")
    donating.set_loss_limit_ratio(1_000, sender="management")
    source.simulate_loss(101)
    donating.report(sender="keeper")

    assert donating.balance_of("dragon") == 100
    assert donating.total_supply() == 10_100
    assert donating.total_assets() == 9_999


def test_report_needs_keeper_or_management(donating) -> None:
    with pytest.raises(UnauthorizedError):
        donating.report(sender="alice")
    donating.report(sender="management")


def test_withdraw_loss_tolerance(fund, token, source, donating) -> None:
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    # Exiting the source now costs 1 bp.
    source.exit_fee_bps = 1

    with pytest.raises(LossToleranceError):
        donating.withdraw(10_000, "alice", "alice", 0, sender="alice")
    assert token.balance_of("alice") == 0
    assert donating.balance_of("alice") == 10_000

    donating.withdraw(10_000, "alice", "alice", 1, sender="alice")
    assert token.balance_of("alice") == 9_999
    assert donating.total_assets() == 0


def test_redeem_tolerates_any_loss_by_default(fund, token, source, donating) -> None:
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    source.exit_fee_bps = 100
    assert donating.redeem(10_000, "alice", "alice", sender="alice") == 9_900
    assert token.balance_of("alice") == 9_900


def test_deposit_limits(fund, token, source, donating) -> None:
    fund("alice", 1_000, "ledger")
    with pytest.raises(ZeroAmountError):
        donating.deposit(0, "alice", sender="alice")
    with pytest.raises(CapacityError):
        donating.deposit(1, "ledger", sender="alice")

    source.deposit_limit = 500
    assert donating.max_deposit("alice") == 500
    with pytest.raises(CapacityError):
        donating.deposit(501, "alice", sender="alice")
    donating.deposit(500, "alice", sender="alice")
    assert donating.max_deposit("alice") == 0


def test_shutdown_blocks_deposits_but_not_exits(fund, token, donating) -> None:
    fund("alice", 2_000, "ledger")
    donating.deposit(1_000, "alice", sender="alice")

    with pytest.raises(UnauthorizedError):
        donating.shutdown_strategy(sender="alice")
    donating.shutdown_strategy(sender="management")
    assert donating.is_shutdown()
    with pytest.raises(CapacityError):
        donating.deposit(1_000, "alice", sender="alice")

    donating.emergency_withdraw(1_000, sender="management")
    assert token.balance_of("ledger") == 1_000
    assert donating.redeem(1_000, "alice", "alice", sender="alice") == 1_000


def test_emergency_withdraw_requires_shutdown(donating) -> None:
    with pytest.raises(InvalidOperationError):
        donating.emergency_withdraw(1, sender="management")


def test_allowance_is_spent_by_third_party_redeem(fund, token, donating) -> None:
    fund("alice", 1_000, "ledger")
    donating.deposit(1_000, "alice", sender="alice")
    donating.approve("bob", 400, sender="alice")

    donating.redeem(400, "bob", "alice", sender="bob")
    assert token.balance_of("bob") == 400
    assert donating.allowance("alice", "bob") == 0
    with pytest.raises(TransferError):
        donating.redeem(1, "bob", "alice", sender="bob")
    assert donating.balance_of("alice") == 600


def test_management_handover(donating) -> None:
    donating.set_pending_management("newmgmt", sender="management")
    with pytest.raises(UnauthorizedError):
        donating.accept_management(sender="alice")
    donating.accept_management(sender="newmgmt")
    assert donating.state.management == "newmgmt"
    with pytest.raises(UnauthorizedError):
        donating.set_keeper("k2", sender="management")
    donating.set_keeper("k2", sender="newmgmt")
    assert donating.state.keeper == "k2"


def test_mint_after_reported_loss_charges_the_lower_share_price(fund, token, source, donating) -> None:
    """Minting rounds the asset cost up at the post-loss share price."""
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    donating.set_loss_limit_ratio(5_000, sender="management")
    source.simulate_loss(2_000)
    donating.report(sender="keeper")

    fund("bob", 800, "ledger")
    assert donating.preview_mint(1_001) == 801
    assert donating.mint(1_000, "bob", sender="bob") == 800
    assert token.balance_of("bob") == 0
    assert donating.balance_of("bob") == 1_000
    assert donating.total_assets() == 8_800
    assert donating.total_supply() == 11_000


def test_transfer_from_spends_allowance_with_dragon_router(fund, source, donating) -> None:
    fund("alice", 1_000, "ledger")
    donating.deposit(1_000, "alice", sender="alice")
    source.simulate_gain(100)
    donating.report(sender="keeper")

    donating.approve("bob", 300, sender="alice")
    donating.approve("bob", 50, sender="dragon")
    donating.transfer_from("alice", "dragon", 200, sender="bob")
    donating.transfer_from("dragon", "carol", 50, sender="bob")

    assert donating.balance_of("dragon") == 250
    assert donating.balance_of("carol") == 50
    assert donating.allowance("alice", "bob") == 100
    assert donating.allowance("dragon", "bob") == 0
    with pytest.raises(TransferError):
        donating.transfer_from("dragon", "carol", 1, sender="bob")
    assert donating.balance_of("carol") == 50
