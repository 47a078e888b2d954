# wallet_engine/logic/split_adjuster.py

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.models.ledger_event import LedgerEvent

logger = logging.getLogger(__name__)


class SplitRecord:
    """A split extracted from a STOCK_SPLIT ledger event."""
    def __init__(self, event_id: str, effective_date: date, multiplier: Decimal):
        self.event_id = event_id
        self.effective_date = effective_date
        self.multiplier = multiplier

    def __repr__(self) -> str:
        return (f"SplitRecord(event_id='{self.event_id}', "
                f"effective_date={self.effective_date.isoformat()}, "
                f"multiplier={self.multiplier})")


class SplitAdjuster:
    """
    Normalizes historical per-share prices and quantities across stock splits.

    Only used transiently, e.g. to recompute the profit of a sale recorded before
    a split against a lot whose values have since been split-adjusted in place.
    Open lots are never adjusted through here.
    """

    def __init__(self, splits: Iterable[SplitRecord] = ()):
        self._splits: list[SplitRecord] = sorted(splits, key=lambda s: s.effective_date)

    @classmethod
    def from_events(cls, events: Iterable[LedgerEvent]) -> "SplitAdjuster":
        splits = [
            SplitRecord(e.event_id, e.event_date, Decimal(str(e.split_multiplier)))
            for e in events
            if e.event_type == EventType.STOCK_SPLIT and e.split_multiplier is not None
        ]
        logger.debug(f"SplitAdjuster: extracted {len(splits)} split(s).")
        return cls(splits)

    @property
    def splits(self) -> list[SplitRecord]:
        return list(self._splits)

    def factor(self, since: date, as_of: Optional[date] = None) -> Decimal:
        """
        Product of the multipliers of all splits effective on/after `since`
        and on/before `as_of` (no upper bound when `as_of` is None).
        """
        result = Decimal(1)
        for split in self._splits:
            if split.effective_date < since:
                continue
            if as_of is not None and split.effective_date > as_of:
                break
            result *= split.multiplier
        return result

    def adjust(
        self,
        price: Decimal,
        shares: Decimal,
        since: date,
        as_of: Optional[date] = None
    ) -> tuple[Decimal, Decimal]:
        """Returns (price / factor, shares * factor)."""
        f = self.factor(since, as_of)
        if f == 1:
            return price, shares
        return price / f, shares * f
