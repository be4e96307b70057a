import json

import pytest

from vault_ledger.cli import main
from vault_ledger.constants import DRAGON_ROUTER_COOLDOWN
from vault_ledger.formatters import format_amount, format_bp, format_rate, format_sci
from vault_ledger.models import Step
from vault_ledger.parsing import parse_scenario
from vault_ledger.reports import ledger_snapshot, vault_snapshot
from vault_ledger.simulation import SimClock, Simulation

DONATING = {
    "name": "usdc-donating",
    "asset": {"symbol": "USDC", "decimals": 6},
    "health_check": {"profit_limit_ratio": 1000},
    "vault": {"max_debt": 5000},
    "balances": {"alice": 10000, "bob": 5000},
    "steps": [
        {"op": "deposit", "account": "alice", "amount": 10000},
        {"op": "gain", "amount": 2000},
        {"op": "report", "expect_error": "HealthCheckError"},
        {"op": "set_health_check", "enabled": False},
        {"op": "report"},
        {"op": "vault_deposit", "account": "bob", "amount": 5000},
        {"op": "rebalance", "target_debt": 5000},
        {"op": "process_report"},
        {"op": "rebalance", "target_debt": 5000, "expect_error": "InvalidOperationError"},
    ],
}

SKIMMING = {
    "name": "wsteth-skimming",
    "mode": "skimming",
    "rate": {"value": "1000000000000000000", "decimals": 18},
    "balances": {"alice": 1000},
    "steps": [
        {"op": "deposit", "account": "alice", "amount": 1000},
        {"op": "set_rate", "rate": "1100000000000000000"},
        {"op": "report"},
        {"op": "transfer", "from": "alice", "to": "bob", "shares": 300},
        {"op": "set_dragon_router", "address": "bob"},
        {"op": "finalize_dragon_router", "expect_error": "InvalidOperationError"},
        {"op": "advance_time", "seconds": DRAGON_ROUTER_COOLDOWN},
        {"op": "finalize_dragon_router"},
        {"op": "redeem", "account": "alice", "shares": "all"},
    ],
}


def test_sim_clock() -> None:
    clock = SimClock(5)
    clock.advance(10)
    assert clock() == 15
    with pytest.raises(ValueError):
        clock.advance(-1)


def test_donating_scenario_replays_cleanly() -> None:
    """Health-check trip, disable, report and rebalance replayed end to end."""
    sim = Simulation(parse_scenario(DONATING))
    outcomes = sim.run(progress=False)

    assert all(o.ok for o in outcomes), [o for o in outcomes if not o.ok]
    assert all(not o.issues for o in outcomes)
    assert outcomes[0].result == "10000"
    assert outcomes[2].error.startswith("HealthCheckError")

    ledger = ledger_snapshot(sim.ledger)
    assert ledger.mode == "donating"
    assert ledger.dragon_balance == 2000
    assert ledger.total_assets == 17000
    assert ledger.health_check_enabled
    assert ledger.insolvent is None

    vault = vault_snapshot(sim.vault)
    assert (vault.total_idle, vault.total_debt) == (0, 5000)
    assert vault.strategies["ledger"].current_debt == 5000


def test_skimming_scenario_migrates_operator_debt() -> None:
    sim = Simulation(parse_scenario(SKIMMING))
    outcomes = sim.run(progress=False)

    assert all(o.ok for o in outcomes), [o for o in outcomes if not o.ok]
    snap = ledger_snapshot(sim.ledger)
    assert snap.dragon_router == "bob"
    # bob held 300 as a depositor; the old router's 100 moved to depositor debt.
    assert (snap.user_debt, snap.dragon_debt) == (100, 300)
    assert snap.insolvent is False
    assert sim.token.balance_of("alice") == 636


def test_unexpected_failures_and_missing_errors_are_reported() -> None:
    scenario = parse_scenario({"balances": {"alice": 10}, "steps": []})
    sim = Simulation(scenario)

    failed = sim.apply(0, Step(op="withdraw", params={"account": "alice", "amount": 5}))
    assert not failed.ok
    assert failed.error.startswith("CapacityError")

    missing = sim.apply(1, Step(op="advance_time", params={"seconds": 1}, expect_error="ValueError"))
    assert not missing.ok
    assert "succeeded" in missing.error

    wrong_mode = sim.apply(2, Step(op="set_rate", params={"rate": 1}))
    assert not wrong_mode.ok


def test_failed_deposit_steps_leave_no_allowance_behind() -> None:
    """The approval granted for a deposit step is undone when the deposit fails."""
    sim = Simulation(parse_scenario({"balances": {"alice": 10}, "steps": []}))

    ledger_step = sim.apply(0, Step(op="deposit", params={"account": "alice", "amount": 20}))
    assert ledger_step.error.startswith("TransferError")
    assert sim.token.allowance("alice", "ledger") == 0

    vault_step = sim.apply(1, Step(op="vault_deposit", params={"account": "alice", "amount": 20}))
    assert vault_step.error.startswith("TransferError")
    assert sim.token.allowance("alice", "vault") == 0
    assert sim.token.balance_of("alice") == 10


def test_scenario_starting_at_time_zero_can_rebalance() -> None:
    sim = Simulation(parse_scenario({"balances": {"alice": 100}, "vault": {"max_debt": 100}, "steps": []}))
    assert sim.clock() == 0
    sim.apply(0, Step(op="vault_deposit", params={"account": "alice", "amount": 100}))

    outcome = sim.apply(1, Step(op="rebalance", params={"target_debt": 100}))
    assert outcome.ok, outcome.error
    assert sim.ledger.balance_of("vault") == 100


def test_formatters() -> None:
    assert format_bp(150) == "1.50%"
    assert format_amount(1_500_000, 6, "USDC") == "1.5 USDC"
    assert format_amount(0, 6) == "0"
    assert format_amount(10 * 10**18, 18, "ETH", places=0) == "10 ETH"
    assert format_rate(11 * 10**26) == "1.1"
    assert format_sci(16900000000000) == "1.69e13"
    assert format_sci(-1000) == "-1e3"


def test_cli_simulate(tmp_path, capsys) -> None:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps(DONATING), encoding="utf-8")

    assert main(["simulate", str(path), "--no-progress"]) == 0
    captured = capsys.readouterr()
    assert "SCENARIO: usdc-donating" in captured.out
    assert "Ledger: usdc-donating" in captured.out
    assert "Vault: vault" in captured.out
    assert "behaved as expected" in captured.err


def test_cli_simulate_reports_failed_steps(tmp_path, capsys) -> None:
    bad = {**DONATING, "steps": [{"op": "report", "sender": "alice"}]}
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps(bad), encoding="utf-8")

    assert main(["simulate", str(path), "--no-progress"]) == 1
    assert "UnauthorizedError" in capsys.readouterr().out


def test_cli_simulate_rejects_bad_scenario(tmp_path, capsys) -> None:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({"mode": "nope"}), encoding="utf-8")
    assert main(["simulate", str(path)]) == 2
    assert "cannot load scenario" in capsys.readouterr().err
    assert main(["simulate", str(tmp_path / "missing.json")]) == 2


def test_cli_rate_requires_rpc_url(monkeypatch, capsys) -> None:
    monkeypatch.delenv("ETH_RPC_URL", raising=False)
    assert main(["rate", "--address", "0xae7ab96520DE3A18E5e111B5EaAb095312D7fE84"]) == 2
    assert "RPC URL is required" in capsys.readouterr().err
