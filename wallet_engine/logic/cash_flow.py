# wallet_engine/logic/cash_flow.py

import logging
from decimal import Decimal
from typing import Iterable

from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.stock import Stock
from wallet_engine.logic.numeric import ZERO, clamp_non_negative, round_currency, to_decimal
from wallet_engine.logic.sorter import LedgerEventSorter

logger = logging.getLogger(__name__)


class CashFlowState:
    """
    Out-of-pocket and cash-balance bookkeeping of one stock.
    Buys spend cash first; only the shortfall is new out-of-pocket money.
    """
    def __init__(self, total_out_of_pocket: Decimal = ZERO, current_cash_balance: Decimal = ZERO):
        self.total_out_of_pocket = round_currency(total_out_of_pocket)
        self.current_cash_balance = round_currency(current_cash_balance)

    @classmethod
    def of(cls, stock: Stock) -> "CashFlowState":
        return cls(stock.total_out_of_pocket, stock.current_cash_balance)

    def apply(self, event: LedgerEvent) -> "CashFlowState":
        """Returns the state after the event; self is left unchanged."""
        oop, cash = self.total_out_of_pocket, self.current_cash_balance
        event_type = EventType(event.event_type)

        if event_type == EventType.BUY:
            investment = to_decimal(event.investment)
            if cash >= investment:
                cash -= investment
            else:
                oop += investment - cash
                cash = ZERO
        elif event_type == EventType.SELL:
            cash += to_decimal(event.price) * to_decimal(event.quantity)
        elif event_type.is_income:
            cash += to_decimal(event.amount)

        return CashFlowState(clamp_non_negative(oop), clamp_non_negative(cash))

    def __eq__(self, other) -> bool:
        return (isinstance(other, CashFlowState)
                and self.total_out_of_pocket == other.total_out_of_pocket
                and self.current_cash_balance == other.current_cash_balance)

    def __repr__(self) -> str:
        return f"CashFlowState(oop={self.total_out_of_pocket}, cash={self.current_cash_balance})"


def replay_cash_flow(events: Iterable[LedgerEvent]) -> CashFlowState:
    """Rebuilds the cash-flow state from a stock's full ledger, in processing order."""
    state = CashFlowState()
    ordered = LedgerEventSorter().sort_events(list(events), [])
    for event in ordered:
        state = state.apply(event)
    logger.debug(f"Replayed {len(ordered)} event(s): {state}.")
    return state


def with_cash_flow(stock: Stock, state: CashFlowState) -> Stock:
    return stock.model_copy(update={
        "total_out_of_pocket": state.total_out_of_pocket,
        "current_cash_balance": state.current_cash_balance,
    })
