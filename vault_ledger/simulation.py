"""Scenario replay: build a vault + ledger from a Scenario and apply its steps in order."""

import logging
import sys
from collections.abc import Callable
from typing import Any

from tqdm import tqdm

from vault_ledger.constants import MAX_BPS
from vault_ledger.errors import LedgerError
from vault_ledger.guard import AtomicGuard
from vault_ledger.health_check import HealthCheck
from vault_ledger.models import Scenario, Step, StepOutcome
from vault_ledger.sources import FixedRateSource, MockYieldSource
from vault_ledger.tokenized_strategy import TokenizedStrategy
from vault_ledger.tokens import Erc20Token, force_approve
from vault_ledger.validation import validate_ledger, validate_vault
from vault_ledger.vault import MultistrategyVault
from vault_ledger.yield_donating import YieldDonatingStrategy
from vault_ledger.yield_skimming import YieldSkimmingStrategy

logger = logging.getLogger(__name__)

LEDGER_ADDRESS = "ledger"
VAULT_ADDRESS = "vault"
SOURCE_ADDRESS = "yield_source"
MANAGEMENT = "management"
KEEPER = "keeper"


class SimClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        if seconds < 0:
            raise ValueError(f"seconds must be >= 0, got {seconds}")
        self.now += seconds


class Simulation:
    """
    In-memory deployment for one scenario.

    Donating scenarios wrap a `MockYieldSource` so gains and losses land in the position;
    skimming scenarios hold the yield-bearing asset idle and move the rate instead.
    The ledger is registered as the vault's only strategy.
    """

    def __init__(self, scenario: Scenario) -> None:
        self.scenario = scenario
        self.clock = SimClock(scenario.start_time)
        self.token = Erc20Token(scenario.asset_symbol, scenario.asset_decimals)
        self._guard = AtomicGuard(f"simulation {scenario.name}")
        self.rate_source: FixedRateSource | None = None
        self.source: MockYieldSource | None = None

        health_check = HealthCheck(
            profit_limit_ratio=scenario.profit_limit_ratio,
            loss_limit_ratio=scenario.loss_limit_ratio,
        )
        common: dict[str, Any] = {
            "management": MANAGEMENT,
            "keeper": KEEPER,
            "dragon_router": scenario.dragon_router,
            "enable_burning": scenario.enable_burning,
            "health_check": health_check,
            "clock": self.clock,
        }
        self.ledger: TokenizedStrategy
        if scenario.mode == "skimming":
            self.rate_source = FixedRateSource(scenario.rate, scenario.rate_decimals)
            self.ledger = YieldSkimmingStrategy(
                self.token, scenario.name, LEDGER_ADDRESS, self.rate_source, **common
            )
        else:
            self.source = MockYieldSource(
                self.token,
                SOURCE_ADDRESS,
                deposit_limit=scenario.deposit_limit,
                exit_fee_bps=scenario.exit_fee_bps,
            )
            self.ledger = YieldDonatingStrategy(
                self.token, scenario.name, LEDGER_ADDRESS, yield_source=self.source, **common
            )

        self.vault = MultistrategyVault(
            self.token,
            f"{scenario.name} vault",
            VAULT_ADDRESS,
            minimum_total_idle=scenario.minimum_total_idle,
            clock=self.clock,
        )
        self.vault.add_strategy(self.ledger, max_debt=scenario.max_debt)

        for account, amount in scenario.balances.items():
            self.token.mint(account, amount)

        self._ops: dict[str, Callable[[dict[str, Any]], Any]] = {
            "mint_asset": self._mint_asset,
            "deposit": self._deposit,
            "withdraw": self._withdraw,
            "redeem": self._redeem,
            "transfer": self._transfer,
            "vault_deposit": self._vault_deposit,
            "vault_redeem": self._vault_redeem,
            "rebalance": self._rebalance,
            "process_report": lambda p: self.vault.process_report(LEDGER_ADDRESS),
            "gain": self._gain,
            "loss": self._loss,
            "set_rate": self._set_rate,
            "report": lambda p: self.ledger.report(sender=p.get("sender", KEEPER)),
            "set_health_check": self._set_health_check,
            "set_enable_burning": lambda p: self.ledger.set_enable_burning(bool(p["enabled"]), sender=MANAGEMENT),
            "set_dragon_router": lambda p: self.ledger.set_dragon_router(str(p["address"]), sender=MANAGEMENT),
            "advance_time": lambda p: self.clock.advance(p["seconds"]),
            "finalize_dragon_router": lambda p: self.ledger.finalize_dragon_router_change(),
            "shutdown": lambda p: self.ledger.shutdown_strategy(sender=MANAGEMENT),
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _mint_asset(self, p: dict[str, Any]) -> None:
        self.token.mint(p["account"], p["amount"])

    def _approve_and_call(self, account: str, spender: str, amount: int, call: Callable[[], int]) -> int:
        """Approve `spender` and run `call`; a failed call also undoes the approval."""
        with self._guard.enter([self.token]):
            force_approve(self.token, spender, amount, sender=account)
            return call()

    def _deposit(self, p: dict[str, Any]) -> int:
        account = p["account"]
        return self._approve_and_call(
            account,
            LEDGER_ADDRESS,
            p["amount"],
            lambda: self.ledger.deposit(p["amount"], p.get("receiver", account), sender=account),
        )

    def _withdraw(self, p: dict[str, Any]) -> int:
        account = p["account"]
        return self.ledger.withdraw(
            p["amount"], p.get("receiver", account), account, p.get("max_loss", 0), sender=account
        )

    @staticmethod
    def _shares(account: str, shares: int | str, balance_of: Callable[[str], int]) -> int:
        return balance_of(account) if shares == "all" else int(shares)

    def _redeem(self, p: dict[str, Any]) -> int:
        account = p["account"]
        shares = self._shares(account, p["shares"], self.ledger.balance_of)
        return self.ledger.redeem(
            shares, p.get("receiver", account), account, p.get("max_loss", MAX_BPS), sender=account
        )

    def _transfer(self, p: dict[str, Any]) -> bool:
        sender = p["from"]
        shares = self._shares(sender, p["shares"], self.ledger.balance_of)
        return self.ledger.transfer(p["to"], shares, sender=sender)

    def _vault_deposit(self, p: dict[str, Any]) -> int:
        account = p["account"]
        return self._approve_and_call(
            account, VAULT_ADDRESS, p["amount"], lambda: self.vault.deposit(p["amount"], account, sender=account)
        )

    def _vault_redeem(self, p: dict[str, Any]) -> int:
        account = p["account"]
        shares = self._shares(account, p["shares"], self.vault.balance_of)
        return self.vault.redeem(shares, account, account, sender=account)

    def _rebalance(self, p: dict[str, Any]) -> Any:
        return self.vault.update_debt(LEDGER_ADDRESS, p["target_debt"], p.get("max_loss", MAX_BPS))

    def _gain(self, p: dict[str, Any]) -> None:
        if self.source is not None:
            self.source.simulate_gain(p["amount"])
        else:
            self.token.mint(LEDGER_ADDRESS, p["amount"])

    def _loss(self, p: dict[str, Any]) -> None:
        if self.source is not None:
            self.source.simulate_loss(p["amount"])
        else:
            self.token.burn(LEDGER_ADDRESS, p["amount"])

    def _set_rate(self, p: dict[str, Any]) -> None:
        if self.rate_source is None:
            raise ValueError("set_rate only applies to skimming scenarios")
        self.rate_source.set_rate(p["rate"])

    def _set_health_check(self, p: dict[str, Any]) -> None:
        if "profit_limit_ratio" in p:
            self.ledger.set_profit_limit_ratio(p["profit_limit_ratio"], sender=MANAGEMENT)
        if "loss_limit_ratio" in p:
            self.ledger.set_loss_limit_ratio(p["loss_limit_ratio"], sender=MANAGEMENT)
        if "enabled" in p:
            self.ledger.set_do_health_check(bool(p["enabled"]), sender=MANAGEMENT)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def validate(self) -> list[str]:
        """Invariant issues of the current state (never raises)."""
        return validate_vault(self.vault, warn_only=True) + validate_ledger(self.ledger, warn_only=True)

    def apply(self, index: int, step: Step) -> StepOutcome:
        """Apply one step; ledger errors are recorded, not raised."""
        try:
            result = self._ops[step.op](step.params)
        except (LedgerError, ValueError, ZeroDivisionError) as ex:
            name = type(ex).__name__
            ok = step.expect_error == name
            if not ok:
                logger.debug("step %d (%s) failed: %s", index, step.op, ex)
            return StepOutcome(index=index, op=step.op, ok=ok, error=f"{name}: {ex}", issues=tuple(self.validate()))

        if step.expect_error is not None:
            return StepOutcome(
                index=index,
                op=step.op,
                ok=False,
                result="" if result is None else str(result),
                error=f"expected {step.expect_error}, but the step succeeded",
                issues=tuple(self.validate()),
            )
        return StepOutcome(
            index=index,
            op=step.op,
            ok=True,
            result="" if result is None else str(result),
            issues=tuple(self.validate()),
        )

    def run(self, *, progress: bool = True) -> list[StepOutcome]:
        """Apply every step in order."""
        outcomes: list[StepOutcome] = []
        with tqdm(
            self.scenario.steps,
            desc="🧪 Replaying scenario",
            unit="step",
            file=sys.stderr,
            disable=not progress,
        ) as pbar:
            for index, step in enumerate(pbar):
                pbar.set_postfix(op=step.op)
                outcome = self.apply(index, step)
                if outcome.issues:
                    tqdm.write(f"⚠️  Invariant warnings after step {index} ({step.op}):", file=sys.stderr)
                    for issue in outcome.issues:
                        tqdm.write(f"   {issue}", file=sys.stderr)
                outcomes.append(outcome)
        return outcomes
