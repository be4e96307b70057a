import pytest

from vault_ledger.validation import validate_ledger, validate_vault


def test_fresh_objects_validate(vault, donating, skimming) -> None:
    assert validate_vault(vault) == []
    assert validate_ledger(donating) == []
    assert validate_ledger(skimming) == []


def test_vault_debt_mismatch(vault) -> None:
    vault.total_debt = 5
    issues = validate_vault(vault, warn_only=True)
    assert any("sum(current_debt)" in issue for issue in issues)
    with pytest.raises(ValueError):
        validate_vault(vault)


def test_vault_idle_must_be_held(vault) -> None:
    vault.total_idle = 10
    issues = validate_vault(vault, warn_only=True)
    assert issues == ["Vault vault: total_idle=10 exceeds asset balance 0"]


def test_ledger_supply_mismatch(donating) -> None:
    donating.state.total_supply = 3
    issues = validate_ledger(donating, warn_only=True)
    assert any("sum(balances)" in issue for issue in issues)


def test_skimming_counter_mismatch(fund, skimming) -> None:
    """Tampered debt counters are flagged against supply and dragon balance."""
    fund("alice", 100, "ledger")
    skimming.deposit(100, "alice", sender="alice")
    assert validate_ledger(skimming) == []

    skimming.skim.dragon_debt = 7
    issues = validate_ledger(skimming, warn_only=True)
    assert len(issues) == 2
    assert any("!= total_supply" in issue for issue in issues)
    assert any("dragon router balance" in issue for issue in issues)
