# wallet_engine/logic/cost_objects.py

from decimal import Decimal
from typing import Optional

from wallet_engine.core.enums.strategy import Strategy
from wallet_engine.logic.numeric import (
    HUNDRED, ZERO, percent_of, round_currency, round_shares, to_decimal
)


def sell_commission(price: Decimal, quantity: Decimal, commission_percent) -> Decimal:
    """Commission charged on the sell leg. Same 0 < c < 100 guard as the target math."""
    c = to_decimal(commission_percent)
    if c is None or c <= 0 or c >= HUNDRED:
        return ZERO
    return price * quantity * c / HUNDRED


class SaleResult:
    """Profit of one sale out of one lot."""
    def __init__(self, quantity: Decimal, price: Decimal, buy_price: Decimal,
                 profit: Decimal, profit_percent: Optional[Decimal]):
        self.quantity = quantity
        self.price = price
        self.buy_price = buy_price
        self.profit = profit
        self.profit_percent = profit_percent

    @classmethod
    def compute(cls, buy_price, quantity, price, commission_percent=None) -> "SaleResult":
        """
        profit = (price - buy_price) * quantity - price * quantity * commission / 100.
        Selling at a commission-adjusted take-profit target therefore realizes the nominal profit.
        """
        buy_price, quantity, price = to_decimal(buy_price), to_decimal(quantity), to_decimal(price)
        gross = (price - buy_price) * quantity
        profit = round_currency(gross - sell_commission(price, quantity, commission_percent))
        return cls(
            quantity=quantity,
            price=price,
            buy_price=buy_price,
            profit=profit,
            profit_percent=percent_of(profit, buy_price * quantity),
        )

    @property
    def cost_basis(self) -> Decimal:
        return self.buy_price * self.quantity

    def __repr__(self) -> str:
        return (f"SaleResult(qty={self.quantity}, price={self.price}, "
                f"buy_price={self.buy_price}, profit={self.profit})")


class Contribution:
    """Shares and investment a Buy adds to (or, negated, removes from) one lot."""
    def __init__(self, strategy: Strategy, buy_price: Decimal, shares: Decimal,
                 investment: Decimal, tp_percent: Optional[Decimal] = None):
        self.strategy = strategy
        self.buy_price = buy_price
        self.shares = round_shares(shares)
        self.investment = round_currency(investment)
        self.tp_percent = tp_percent

    def negated(self) -> "Contribution":
        return Contribution(self.strategy, self.buy_price, -self.shares, -self.investment, self.tp_percent)

    def __repr__(self) -> str:
        return (f"Contribution({self.strategy.value}, buy_price={self.buy_price}, "
                f"shares={self.shares}, investment={self.investment})")
