# wallet_engine/logic/pl_aggregator.py

import logging
from decimal import Decimal
from typing import Iterable, Optional

from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.enums.strategy import Strategy
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.stock import Stock
from wallet_engine.core.models.views import (
    CombinedPL, PLBreakdown, PortfolioSummary, RealizedPL, StockSummary, UnrealizedPL
)
from wallet_engine.logic.budget_risk import portfolio_roic
from wallet_engine.logic.cost_objects import SaleResult
from wallet_engine.logic.numeric import ZERO, percent_of, round_currency, to_decimal
from wallet_engine.logic.split_adjuster import SplitAdjuster

logger = logging.getLogger(__name__)


def _breakdown(pl: Optional[Decimal], cost_basis: Decimal) -> PLBreakdown:
    cost_basis = round_currency(cost_basis)
    if pl is None:
        return PLBreakdown(pl=None, cost_basis=cost_basis, pl_percent=None)
    pl = round_currency(pl)
    return PLBreakdown(pl=pl, cost_basis=cost_basis, pl_percent=percent_of(pl, cost_basis))


class PLAggregator:
    """
    Realized, unrealized and combined P/L at stock and portfolio level.
    Read-only: it never mutates the events, lots or stocks it is given.
    """

    def sale_for(
        self,
        sell: LedgerEvent,
        lots_by_id: dict[str, Lot],
        splits: SplitAdjuster,
        commission_percent=None
    ) -> Optional[tuple[Strategy, Decimal, Decimal]]:
        """
        (strategy, profit, cost basis) of one Sell, or None when it cannot be
        matched to a lot. The stored profit wins over a recomputed one.
        """
        lot = lots_by_id.get(sell.lot_id) if sell.lot_id else None
        strategy = sell.strategy or (lot.strategy if lot else None)
        if strategy is None:
            return None

        if sell.buy_price_at_sale is not None:
            sale = SaleResult.compute(sell.buy_price_at_sale, sell.quantity, sell.price, commission_percent)
        elif lot is not None:
            # The lot has been split-adjusted in place since the sale; bring the sale into today's units.
            price, quantity = splits.adjust(sell.price, sell.quantity, since=sell.event_date)
            sale = SaleResult.compute(lot.buy_price, quantity, price, commission_percent)
        else:
            return None

        profit = to_decimal(sell.txn_profit) if sell.txn_profit is not None else sale.profit
        return strategy, profit, sale.cost_basis

    def realized(self, stock: Stock, events: Iterable[LedgerEvent], lots: Iterable[Lot]) -> RealizedPL:
        events = [e for e in events if e.stock_id == stock.stock_id]
        lots_by_id = {lot.lot_id: lot for lot in lots}
        splits = SplitAdjuster.from_events(events)

        profit = {Strategy.SWING: ZERO, Strategy.HOLD: ZERO}
        basis = {Strategy.SWING: ZERO, Strategy.HOLD: ZERO}
        dividends = lending = ZERO
        sell_count = 0
        inconsistent = False

        for event in events:
            if event.event_type == EventType.DIVIDEND:
                dividends += to_decimal(event.amount)
            elif event.event_type == EventType.STOCK_LENDING_PAYMENT:
                lending += to_decimal(event.amount)
            elif event.event_type == EventType.SELL:
                matched = self.sale_for(event, lots_by_id, splits, stock.commission_percent)
                if matched is None:
                    logger.warning(f"Sell {event.event_id} of {stock.symbol} has no strategy or lot; left out of realized P/L.")
                    inconsistent = True
                    continue
                strategy, sale_profit, cost_basis = matched
                profit[strategy] += sale_profit
                basis[strategy] += cost_basis
                sell_count += 1

        result = RealizedPL(
            swing=_breakdown(profit[Strategy.SWING], basis[Strategy.SWING]),
            hold=_breakdown(profit[Strategy.HOLD], basis[Strategy.HOLD]),
            total=_breakdown(profit[Strategy.SWING] + profit[Strategy.HOLD],
                             basis[Strategy.SWING] + basis[Strategy.HOLD]),
            sell_count=sell_count,
            dividend_income=round_currency(dividends),
            lending_income=round_currency(lending),
            inconsistent=inconsistent,
        )
        for part in (result.swing, result.hold, result.total):
            if part.pl_percent is None:
                result.inconsistent = True
        if result.inconsistent:
            logger.warning(f"Realized P/L of {stock.symbol} is inconsistent with its cost basis.")
        return result

    def unrealized(self, lots: Iterable[Lot], current_price) -> UnrealizedPL:
        price = to_decimal(current_price)
        pl = {Strategy.SWING: ZERO, Strategy.HOLD: ZERO}
        basis = {Strategy.SWING: ZERO, Strategy.HOLD: ZERO}
        for lot in lots:
            if not lot.is_open:
                continue
            basis[lot.strategy] += lot.buy_price * lot.remaining_shares
            if price is not None:
                pl[lot.strategy] += (price - lot.buy_price) * lot.remaining_shares

        if price is None:
            return UnrealizedPL(
                price_available=False,
                swing=_breakdown(None, basis[Strategy.SWING]),
                hold=_breakdown(None, basis[Strategy.HOLD]),
                total=_breakdown(None, basis[Strategy.SWING] + basis[Strategy.HOLD]),
            )
        return UnrealizedPL(
            price_available=True,
            swing=_breakdown(pl[Strategy.SWING], basis[Strategy.SWING]),
            hold=_breakdown(pl[Strategy.HOLD], basis[Strategy.HOLD]),
            total=_breakdown(pl[Strategy.SWING] + pl[Strategy.HOLD],
                             basis[Strategy.SWING] + basis[Strategy.HOLD]),
        )

    def combined(self, realized: RealizedPL, unrealized: UnrealizedPL) -> CombinedPL:
        """
        Realized plus unrealized over the sold plus held cost basis. Without a price
        only the realized part is included, partial_data is set and no percent is given.
        """
        partial = not unrealized.price_available

        def merge(r: PLBreakdown, u: PLBreakdown) -> PLBreakdown:
            pl = (r.pl or ZERO) + (u.pl if u.pl is not None else ZERO)
            merged = _breakdown(pl, r.cost_basis + u.cost_basis)
            if partial:
                merged.pl_percent = None
            return merged

        return CombinedPL(
            swing=merge(realized.swing, unrealized.swing),
            hold=merge(realized.hold, unrealized.hold),
            total=merge(realized.total, unrealized.total),
            partial_data=partial,
        )

    def portfolio(self, summaries: list[StockSummary], stocks: Iterable[Stock]) -> PortfolioSummary:
        """
        Plain sums of per-stock figures. When any stock has no price, every figure
        that depends on a price is None instead of a sum over the priced stocks.
        """
        stocks = list(stocks)
        realized = sum((s.realized.total.pl or ZERO for s in summaries), ZERO)
        income = sum((s.realized.total_income for s in summaries), ZERO)
        oop = sum((to_decimal(s.total_out_of_pocket) for s in stocks), ZERO)
        cash = sum((to_decimal(s.current_cash_balance) for s in stocks), ZERO)
        partial = any(not s.unrealized.price_available for s in summaries)

        unrealized = value = combined = with_income = roic = None
        if partial:
            logger.info("Portfolio summary uses partial data: at least one stock has no price.")
        else:
            unrealized = round_currency(sum((s.unrealized.total.pl for s in summaries), ZERO))
            value = round_currency(sum((s.budget.market_value or ZERO for s in summaries), ZERO))
            combined = round_currency(realized + unrealized)
            with_income = round_currency(realized + unrealized + income)
            roic = portfolio_roic(cash, value, oop)

        return PortfolioSummary(
            stocks=summaries,
            realized_pl=round_currency(realized),
            unrealized_pl=unrealized,
            combined_pl=combined,
            total_income=round_currency(income),
            total_stock_pl_with_income=with_income,
            tied_up_investment=round_currency(sum((s.budget.tied_up_investment for s in summaries), ZERO)),
            risk_investment=round_currency(sum((s.budget.risk_investment for s in summaries), ZERO)),
            market_value=value,
            total_out_of_pocket=round_currency(oop),
            current_cash_balance=round_currency(cash),
            roic=roic,
            partial_data=partial,
        )
