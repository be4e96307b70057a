import pytest

from vault_ledger.simulation import SimClock
from vault_ledger.sources import FixedRateSource, MockYieldSource
from vault_ledger.tokens import Erc20Token
from vault_ledger.vault import MultistrategyVault
from vault_ledger.yield_donating import YieldDonatingStrategy
from vault_ledger.yield_skimming import YieldSkimmingStrategy

ROLES = {"management": "management", "keeper": "keeper", "dragon_router": "dragon"}


@pytest.fixture
def clock() -> SimClock:
    return SimClock(1_700_000_000)


@pytest.fixture
def token() -> Erc20Token:
    return Erc20Token("USDC", 6)


@pytest.fixture
def source(token) -> MockYieldSource:
    return MockYieldSource(token, "yield_source")


@pytest.fixture
def donating(token, source, clock) -> YieldDonatingStrategy:
    return YieldDonatingStrategy(token, "donating", "ledger", yield_source=source, clock=clock, **ROLES)


@pytest.fixture
def rate_source() -> FixedRateSource:
    return FixedRateSource(10**18, 18)


@pytest.fixture
def skimming(token, rate_source, clock) -> YieldSkimmingStrategy:
    return YieldSkimmingStrategy(token, "skimming", "ledger", rate_source, clock=clock, **ROLES)


@pytest.fixture
def vault(token, clock) -> MultistrategyVault:
    return MultistrategyVault(token, "vault", "vault", clock=clock)


@pytest.fixture
def fund(token):
    """Mint `amount` to `account` and approve `spender` for it."""

    def _fund(account: str, amount: int, spender: str) -> None:
        token.mint(account, amount)
        token.approve(spender, token.allowance(account, spender) + amount, sender=account)

    return _fund
