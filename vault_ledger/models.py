"""Data models for vault and ledger accounting."""

from dataclasses import dataclass, field
from typing import Any

from vault_ledger.constants import ZERO_ADDRESS


@dataclass
class StrategyParams:
    """Vault-side record of one sub-strategy."""

    # Timestamp the strategy was added. Revoked strategies are dropped from the vault.
    activation: int
    last_report: int
    current_debt: int = 0
    max_debt: int = 0


@dataclass
class StrategyData:
    """Base ledger record shared by both accounting modes."""

    management: str
    keeper: str
    emergency_admin: str
    dragon_router: str
    enable_burning: bool = True
    # Tracked total assets; only deposits, withdrawals and report() move it.
    total_assets: int = 0
    total_supply: int = 0
    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[tuple[str, str], int] = field(default_factory=dict)
    last_report: int = 0
    pending_management: str = ZERO_ADDRESS
    pending_dragon_router: str = ZERO_ADDRESS
    dragon_router_change_timestamp: int = 0
    shutdown: bool = False


@dataclass
class SkimmingState:
    """Value-debt counters of a skimming ledger, kept apart from `StrategyData`."""

    # Value units (1 unit = 1 unit of underlying value when recorded) owed to depositors.
    user_debt: int = 0
    # Value units owed to the dragon router (operator).
    dragon_debt: int = 0
    # Last observed exchange rate, ray-scaled.
    last_rate: int = 0

    @property
    def total_debt(self) -> int:
        return self.user_debt + self.dragon_debt


@dataclass(frozen=True)
class ReportResult:
    """Outcome of a ledger report, in asset units."""

    profit: int
    loss: int


@dataclass(frozen=True)
class DebtUpdate:
    """Outcome of a vault debt rebalance for one strategy."""

    strategy: str
    previous_debt: int
    new_debt: int
    total_idle: int
    total_debt: int


@dataclass(frozen=True)
class StrategyReport:
    """Outcome of a vault-side report reconciling a strategy's recorded debt."""

    strategy: str
    gain: int
    loss: int
    current_debt: int


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time view of a ledger, for console output and validation."""

    name: str
    mode: str
    total_assets: int
    total_supply: int
    price_per_share: int
    dragon_router: str
    dragon_balance: int
    enable_burning: bool
    health_check_enabled: bool
    profit_limit_ratio: int
    loss_limit_ratio: int
    last_report: int
    # Skimming only.
    user_debt: int | None = None
    dragon_debt: int | None = None
    current_rate: int | None = None
    current_value: int | None = None
    insolvent: bool | None = None


@dataclass(frozen=True)
class VaultSnapshot:
    """Point-in-time view of a multistrategy vault."""

    address: str
    total_idle: int
    total_debt: int
    total_assets: int
    total_supply: int
    minimum_total_idle: int
    shutdown: bool
    strategies: dict[str, StrategyParams]


@dataclass(frozen=True)
class Step:
    """One operation of a scenario."""

    op: str
    params: dict[str, Any]
    # Name of the exception class the step must raise (e.g. "HealthCheckError"), if any.
    expect_error: str | None = None


@dataclass(frozen=True)
class Scenario:
    """Simulation setup plus the ordered steps to replay."""

    name: str
    mode: str
    asset_symbol: str
    asset_decimals: int
    balances: dict[str, int]
    steps: list[Step]
    profit_limit_ratio: int
    loss_limit_ratio: int
    enable_burning: bool = True
    dragon_router: str = "dragon"
    # Skimming only: starting exchange rate and its precision.
    rate: int = 0
    rate_decimals: int = 18
    minimum_total_idle: int = 0
    max_debt: int = 0
    deposit_limit: int | None = None
    exit_fee_bps: int = 0
    start_time: int = 0


@dataclass(frozen=True)
class StepOutcome:
    """Result of replaying one scenario step."""

    index: int
    op: str
    ok: bool
    result: str = ""
    error: str | None = None
    issues: tuple[str, ...] = ()
