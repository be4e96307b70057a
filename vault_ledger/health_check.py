"""Health check: bounded-delta circuit breaker applied to every report cycle."""

import logging
from dataclasses import dataclass

from vault_ledger.constants import (
    DEFAULT_LOSS_LIMIT_RATIO,
    DEFAULT_PROFIT_LIMIT_RATIO,
    MAX_BPS,
    MAX_PROFIT_LIMIT_RATIO,
)
from vault_ledger.errors import HealthCheckError

logger = logging.getLogger(__name__)


def validate_profit_limit_ratio(ratio: int) -> int:
    if ratio <= 0:
        raise ValueError("profit limit ratio must be > 0")
    if ratio > MAX_PROFIT_LIMIT_RATIO:
        raise ValueError(f"profit limit ratio must be <= {MAX_PROFIT_LIMIT_RATIO}, got {ratio}")
    return ratio


def validate_loss_limit_ratio(ratio: int) -> int:
    if not 0 <= ratio < MAX_BPS:
        raise ValueError(f"loss limit ratio must be within [0, {MAX_BPS}), got {ratio}")
    return ratio


@dataclass
class HealthCheck:
    """
    Profit/loss limits for a report, as basis points of the previous figure.

    `gate(before, after)` is the whole check: when disabled it re-arms itself and lets one
    report through unchecked; otherwise a rise above `before * profit_limit_ratio / MAX_BPS`
    or a drop above `before * loss_limit_ratio / MAX_BPS` is rejected. The figures compared
    are total assets (donating) or exchange rates (skimming).
    """

    profit_limit_ratio: int = DEFAULT_PROFIT_LIMIT_RATIO
    loss_limit_ratio: int = DEFAULT_LOSS_LIMIT_RATIO
    enabled: bool = True

    def __post_init__(self) -> None:
        validate_profit_limit_ratio(self.profit_limit_ratio)
        validate_loss_limit_ratio(self.loss_limit_ratio)

    def gate(self, before: int, after: int) -> None:
        if not self.enabled:
            self.enabled = True
            logger.info("Health check skipped for this report (before=%d, after=%d); re-armed", before, after)
            return

        if after > before:
            limit = before * self.profit_limit_ratio // MAX_BPS
            if after - before > limit:
                raise HealthCheckError(
                    f"healthCheck: profit {after - before} exceeds limit {limit} "
                    f"({self.profit_limit_ratio} bps of {before})"
                )
        elif before > after:
            limit = before * self.loss_limit_ratio // MAX_BPS
            if before - after > limit:
                raise HealthCheckError(
                    f"healthCheck: loss {before - after} exceeds limit {limit} "
                    f"({self.loss_limit_ratio} bps of {before})"
                )
