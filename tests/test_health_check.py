import pytest

from vault_ledger.errors import HealthCheckError, UnauthorizedError
from vault_ledger.health_check import HealthCheck, validate_loss_limit_ratio, validate_profit_limit_ratio


def test_ratio_bounds() -> None:
    assert validate_profit_limit_ratio(1) == 1
    assert validate_profit_limit_ratio(65_535) == 65_535
    assert validate_loss_limit_ratio(0) == 0
    assert validate_loss_limit_ratio(9_999) == 9_999
    for bad in (0, 65_536):
        with pytest.raises(ValueError):
            validate_profit_limit_ratio(bad)
    for bad in (-1, 10_000):
        with pytest.raises(ValueError):
            validate_loss_limit_ratio(bad)
    with pytest.raises(ValueError):
        HealthCheck(profit_limit_ratio=0)


def test_gate_limits_are_inclusive() -> None:
    hc = HealthCheck(profit_limit_ratio=1_000, loss_limit_ratio=500)
    hc.gate(10_000, 11_000)
    hc.gate(10_000, 9_500)
    hc.gate(10_000, 10_000)
    with pytest.raises(HealthCheckError, match="profit"):
        hc.gate(10_000, 11_001)
    with pytest.raises(HealthCheckError, match="loss"):
        hc.gate(10_000, 9_499)


def test_default_gate_rejects_any_loss() -> None:
    hc = HealthCheck()
    hc.gate(100, 200)
    with pytest.raises(HealthCheckError):
        hc.gate(100, 99)


def test_disabled_gate_lets_one_report_through_and_rearms() -> None:
    """Disabling skips exactly one check."""
    hc = HealthCheck(profit_limit_ratio=1_000, enabled=False)
    hc.gate(100, 1_000)
    assert hc.enabled
    with pytest.raises(HealthCheckError):
        hc.gate(100, 1_000)


def test_report_scenario_with_ten_percent_limit(fund, source, donating) -> None:
    fund("alice", 10_000, "ledger")
    donating.deposit(10_000, "alice", sender="alice")
    donating.set_profit_limit_ratio(1_000, sender="management")

    # 20% gain is rejected and nothing is booked.
    source.simulate_gain(2_000)
    with pytest.raises(HealthCheckError):
        donating.report(sender="keeper")
    assert donating.total_assets() == 10_000
    assert donating.balance_of("dragon") == 0
    assert donating.health_check.enabled

    # Disabled once: the same report goes through and books exactly the gain.
    donating.set_do_health_check(False, sender="management")
    result = donating.report(sender="keeper")
    assert result.profit == 2_000
    assert result.loss == 0
    assert donating.total_assets() == 12_000
    assert donating.balance_of("dragon") == 2_000
    assert donating.health_check.enabled

    # Re-armed: another 20% jump fails again.
    source.simulate_gain(2_400)
    with pytest.raises(HealthCheckError):
        donating.report(sender="keeper")


def test_health_check_settings_need_management(donating) -> None:
    with pytest.raises(UnauthorizedError):
        donating.set_do_health_check(False, sender="keeper")
    with pytest.raises(ValueError):
        donating.set_loss_limit_ratio(10_000, sender="management")
    assert donating.health_check.loss_limit_ratio == 0
