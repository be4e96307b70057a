"""Donating mode: harvested profit is minted to the dragon router as new shares."""

import logging

from vault_ledger.fixed_point import Rounding
from vault_ledger.models import ReportResult
from vault_ledger.tokenized_strategy import TokenizedStrategy

logger = logging.getLogger(__name__)


class YieldDonatingStrategy(TokenizedStrategy):
    """
    Ledger that tracks a single total-assets figure and settles it on every report.

    Profit is minted to the dragon router at the floor share price, so depositors'
    share price never moves up. Loss burns dragon router shares at the ceiling share
    price when burning is enabled; whatever the dragon router cannot cover lowers the
    share price for everyone.
    """

    mode = "donating"

    def _process_report(self) -> ReportResult:
        new_total = self.harvest_and_report()
        old_total = self.state.total_assets
        self.health_check.gate(old_total, new_total)

        profit = 0
        loss = 0
        if new_total > old_total:
            profit = new_total - old_total
            # Priced against the totals before this report.
            shares = self._convert_to_shares(profit, Rounding.FLOOR)
            if shares > 0:
                self._mint(self.state.dragon_router, shares)
                logger.debug("%s: minted %d shares to dragon router for profit %d", self.name, shares, profit)
        else:
            loss = old_total - new_total
            if loss > 0 and self.state.enable_burning:
                self._burn_dragon_shares_for_loss(loss)

        self.state.total_assets = new_total
        return ReportResult(profit=profit, loss=loss)

    def _burn_dragon_shares_for_loss(self, loss: int) -> int:
        dragon = self.state.dragon_router
        needed = self._convert_to_shares(loss, Rounding.CEIL)
        burned = min(needed, self.balance_of(dragon))
        if burned > 0:
            self._burn(dragon, burned)
        if burned < needed:
            logger.warning(
                "%s: dragon router covered %d of %d shares of loss; remainder lowers share price",
                self.name,
                burned,
                needed,
            )
        return burned
