# wallet_engine/tests/unit/test_wallet_service.py

import threading
import pytest
from datetime import date
from decimal import Decimal

from wallet_engine.core.config.settings import settings
from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.enums.strategy import BuyAllocation, Strategy
from wallet_engine.core.enums.warning_code import WarningCode
from wallet_engine.core.exceptions import (
    CommittedLotConflict, EventNotFound, LedgerValidationError, OverdrawnLot,
    StockNotFound, StoreWriteError, UpstreamUnavailable
)
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.price import PriceQuote
from wallet_engine.core.models.stock import Stock
from wallet_engine.core.models.store import StoreResult
from wallet_engine.services.repository import InMemoryLedgerRepository, StaticPriceFeed
from wallet_engine.services.wallet_service import WALLET_NOT_UPDATED_MESSAGE, WalletService

TODAY = date(2024, 1, 20)


@pytest.fixture
def stock():
    return Stock(stock_id="S1", symbol="ACME", swing_hold_ratio=Decimal("50"), pdp=Decimal("5"),
                 stp=Decimal("10"), htp=Decimal("20"), budget=Decimal("2000"))

@pytest.fixture
def repository(stock):
    return InMemoryLedgerRepository([stock])

@pytest.fixture
def price_feed():
    return StaticPriceFeed([PriceQuote(symbol="ACME", current_price=Decimal("120"))])

@pytest.fixture
def service(repository, price_feed):
    return WalletService(repository, price_feed=price_feed)

def buy_event(event_id="b1", price="100", investment="1000", on=date(2024, 1, 10), allocation=BuyAllocation.SPLIT):
    return LedgerEvent(event_id=event_id, stock_id="S1", event_type=EventType.BUY, event_date=on,
                       price=Decimal(price), investment=Decimal(investment), allocation=allocation)

def sell_event(lot_id, event_id="s1", price="110", quantity="3", on=date(2024, 1, 15)):
    return LedgerEvent(event_id=event_id, stock_id="S1", event_type=EventType.SELL, event_date=on,
                       price=Decimal(price), quantity=Decimal(quantity), lot_id=lot_id)

def lot_of(repository, strategy, price):
    matches = [lot for lot in repository.list_lots("S1")
               if lot.strategy == strategy and lot.buy_price == Decimal(price)]
    assert len(matches) == 1
    return matches[0]

@pytest.fixture
def bought(service, repository):
    """Buy 1000 @ 100 split 50/50; returns the Swing lot."""
    service.record_event(buy_event())
    return lot_of(repository, Strategy.SWING, "100")

@pytest.fixture
def sold(service, repository, bought):
    """Sell 3 of the Swing lot @ 110; returns the updated Swing lot."""
    service.record_event(sell_event(bought.lot_id))
    return lot_of(repository, Strategy.SWING, "100")

# --- Recording ---

def test_record_buy(service, repository):
    result = service.record_event(buy_event())

    assert result.has_warnings is False
    assert result.payload.quantity == Decimal("10")
    assert len(repository.list_lots("S1")) == 2
    assert lot_of(repository, Strategy.HOLD, "100").tp_value == Decimal("120.0000")
    stock = repository.get_stock("S1")
    assert stock.total_out_of_pocket == Decimal("1000.00")
    assert stock.current_cash_balance == Decimal("0.00")
    assert repository.list_events("S1", limit=10).events[0].swing_shares == Decimal("5")

def test_record_buy_with_rounding_nudge(service):
    result = service.record_event(buy_event(investment="1000.001"))
    assert result.codes() == [WarningCode.ROUNDING_ADJUSTED]

def test_record_sell(service, repository, bought):
    result = service.record_event(sell_event(bought.lot_id))

    assert result.payload.txn_profit == Decimal("30.00")
    lots = repository.list_lots("S1")
    swing = lot_of(repository, Strategy.SWING, "100")
    assert len(lots) == 2
    assert swing.remaining_shares == Decimal("2")
    assert swing.realized_pl == Decimal("30.00")
    assert swing.version == bought.version + 1
    assert repository.get_stock("S1").current_cash_balance == Decimal("330.00")

def test_overdrawn_sell_changes_nothing(service, repository, bought):
    with pytest.raises(OverdrawnLot):
        service.record_event(sell_event(bought.lot_id, quantity="6"))
    assert lot_of(repository, Strategy.SWING, "100") == bought
    assert [e.event_id for e in repository.list_events("S1", limit=10).events] == ["b1"]

def test_duplicate_event_id_is_rejected(service, bought):
    with pytest.raises(LedgerValidationError):
        service.record_event(buy_event())

def test_unknown_stock(service):
    event = buy_event()
    event.stock_id = "NOPE"
    with pytest.raises(StockNotFound):
        service.record_event(event)

def test_sell_after_split(service, repository, bought):
    split = LedgerEvent(event_id="sp1", stock_id="S1", event_type=EventType.STOCK_SPLIT,
                        event_date=date(2024, 2, 1), split_multiplier=Decimal("2"))
    service.record_event(split)
    swing = lot_of(repository, Strategy.SWING, "50")
    assert swing.remaining_shares == Decimal("10")
    assert repository.get_stock("S1").split_adjustment_factor == Decimal("2")

    result = service.record_event(sell_event(swing.lot_id, price="60", quantity="4", on=date(2024, 2, 10)))
    assert result.payload.txn_profit == Decimal("40.00")

def test_backdated_sell_before_recorded_split(service, repository, bought):
    service.record_event(LedgerEvent(event_id="sp1", stock_id="S1", event_type=EventType.STOCK_SPLIT,
                                     event_date=date(2024, 2, 1), split_multiplier=Decimal("2")))
    result = service.record_event(sell_event(bought.lot_id, on=date(2024, 1, 15)))

    assert result.payload.txn_profit == Decimal("30.00")
    assert result.payload.buy_price_at_sale == Decimal("100")
    assert lot_of(repository, Strategy.SWING, "50").shares_sold == Decimal("6")

# --- Editing ---

def test_edit_buy_moves_uncommitted_lots(service, repository, bought):
    result = service.edit_buy("S1", "b1", {"price": Decimal("80")})

    assert result.has_warnings is False
    assert result.payload.quantity == Decimal("12.5")
    old_swing = lot_of(repository, Strategy.SWING, "100")
    assert old_swing.remaining_shares == 0  # emptied, kept until deleted explicitly
    new_swing = lot_of(repository, Strategy.SWING, "80")
    assert new_swing.total_shares_qty == Decimal("6.25")
    assert new_swing.total_investment == Decimal("500.00")
    assert len(repository.list_lots("S1")) == 4

def test_edit_buy_on_committed_lot_saves_event_with_warning(service, repository, sold):
    result = service.edit_buy("S1", "b1", {"price": Decimal("90")})

    # 1000 / 90 halves to 5.55556 twice, so the Hold half is nudged down first.
    assert result.codes() == [WarningCode.ROUNDING_ADJUSTED, WarningCode.WALLET_NOT_UPDATED]
    not_updated = next(w for w in result.warnings if w.code == WarningCode.WALLET_NOT_UPDATED)
    assert not_updated.message.startswith(WALLET_NOT_UPDATED_MESSAGE)
    assert lot_of(repository, Strategy.SWING, "100") == sold
    stored = [e for e in repository.list_events("S1", limit=10).events if e.event_id == "b1"][0]
    assert stored.price == Decimal("90")

def test_edit_buy_on_committed_lot_can_be_refused(service, repository, sold):
    with pytest.raises(CommittedLotConflict) as exc_info:
        service.edit_buy("S1", "b1", {"price": Decimal("90")}, refuse_committed=True)
    assert exc_info.value.http_status == 409
    stored = [e for e in repository.list_events("S1", limit=10).events if e.event_id == "b1"][0]
    assert stored.price == Decimal("100")

def test_edit_buy_adding_investment_to_committed_lot(service, repository, sold):
    result = service.edit_buy("S1", "b1", {"investment": Decimal("1200")})

    assert result.has_warnings is False
    swing = lot_of(repository, Strategy.SWING, "100")
    assert swing.total_shares_qty == Decimal("6")
    assert swing.total_investment == Decimal("600.00")
    assert swing.remaining_shares == Decimal("3")
    assert repository.get_stock("S1").total_out_of_pocket == Decimal("1200.00")

def test_edit_buy_rejects_non_editable_fields(service, bought):
    with pytest.raises(LedgerValidationError):
        service.edit_buy("S1", "b1", {"stock_id": "S2"})

def test_edit_sell(service, repository, sold):
    result = service.edit_sell("S1", "s1", {"quantity": Decimal("4")})

    assert result.payload.txn_profit == Decimal("40.00")
    swing = lot_of(repository, Strategy.SWING, "100")
    assert swing.remaining_shares == Decimal("1")
    assert swing.realized_pl == Decimal("40.00")
    assert swing.sell_txn_count == 1
    assert repository.get_stock("S1").current_cash_balance == Decimal("440.00")

def test_edit_sell_overdrawn_changes_nothing(service, repository, sold):
    with pytest.raises(OverdrawnLot):
        service.edit_sell("S1", "s1", {"quantity": Decimal("6")})
    assert lot_of(repository, Strategy.SWING, "100") == sold

def test_edit_income(service, repository):
    service.record_event(LedgerEvent(event_id="d1", stock_id="S1", event_type=EventType.DIVIDEND,
                                     event_date=date(2024, 3, 1), amount=Decimal("20")))
    service.edit_income("S1", "d1", {"amount": Decimal("30")})
    assert repository.get_stock("S1").current_cash_balance == Decimal("30.00")

def test_edit_unknown_event(service, bought):
    with pytest.raises(EventNotFound):
        service.edit_sell("S1", "missing", {"quantity": Decimal("1")})

# --- Deleting ---

def test_delete_sell_restores_lot(service, repository, bought, sold):
    service.delete_event("S1", "s1")

    swing = lot_of(repository, Strategy.SWING, "100")
    assert swing.remaining_shares == Decimal("5")
    assert swing.realized_pl == Decimal("0.00")
    assert swing.sell_txn_count == 0
    assert swing.is_committed is False
    stock = repository.get_stock("S1")
    assert stock.current_cash_balance == Decimal("0.00")
    assert stock.total_out_of_pocket == Decimal("1000.00")

def test_delete_buy_with_sales_is_refused(service, repository, sold):
    with pytest.raises(CommittedLotConflict):
        service.delete_event("S1", "b1")
    assert len(repository.list_events("S1", limit=10).events) == 2

def test_delete_buy_empties_its_lots(service, repository, bought):
    service.delete_event("S1", "b1")

    assert all(lot.remaining_shares == 0 for lot in repository.list_lots("S1"))
    assert len(repository.list_lots("S1")) == 2
    assert repository.get_stock("S1").total_out_of_pocket == Decimal("0.00")

def test_delete_split_is_refused(service, bought):
    service.record_event(LedgerEvent(event_id="sp1", stock_id="S1", event_type=EventType.STOCK_SPLIT,
                                     event_date=date(2024, 2, 1), split_multiplier=Decimal("2")))
    with pytest.raises(LedgerValidationError):
        service.delete_event("S1", "sp1")

def test_delete_lot_only_when_empty(service, repository, bought):
    with pytest.raises(LedgerValidationError):
        service.delete_lot("S1", bought.lot_id)

    service.delete_event("S1", "b1")
    service.delete_lot("S1", bought.lot_id)
    assert [lot.strategy for lot in repository.list_lots("S1")] == [Strategy.HOLD]

# --- Cash flow, paging and store errors ---

def test_recalculate_cash_flow(service, repository, sold):
    repository.update_stock(repository.get_stock("S1").model_copy(
        update={"total_out_of_pocket": Decimal("1"), "current_cash_balance": Decimal("2")}
    ))
    result = service.recalculate_cash_flow("S1")
    assert result.payload.total_out_of_pocket == Decimal("1000.00")
    assert result.payload.current_cash_balance == Decimal("330.00")

def test_load_events_reads_every_page(service, monkeypatch):
    monkeypatch.setattr(settings, "EVENT_PAGE_SIZE", 2)
    for i in range(5):
        service.record_event(LedgerEvent(event_id=f"d{i}", stock_id="S1", event_type=EventType.DIVIDEND,
                                         event_date=date(2024, 3, 1 + i), amount=Decimal("10")))

    assert [e.event_id for e in service.load_events("S1")] == ["d0", "d1", "d2", "d3", "d4"]
    assert service.recalculate_cash_flow("S1").payload.current_cash_balance == Decimal("50.00")

class RejectingRepository(InMemoryLedgerRepository):
    def create_event(self, event):
        return StoreResult.failed("event_date", "must not be in the future")

def test_store_rejection_is_raised(stock):
    repository = RejectingRepository([stock])
    service = WalletService(repository)
    with pytest.raises(StoreWriteError) as exc_info:
        service.record_event(buy_event())
    assert exc_info.value.http_status == 502
    assert exc_info.value.errors[0].field == "event_date"
    assert "must not be in the future" in str(exc_info.value)
    assert repository.list_lots("S1") == []

class FlakyStockRepository(InMemoryLedgerRepository):
    """Accepts every write until reject_stock is set, then refuses stock updates."""
    reject_stock = False

    def update_stock(self, stock):
        if self.reject_stock:
            return StoreResult.failed("current_cash_balance", "stock record is locked")
        return super().update_stock(stock)

def test_rejected_stock_write_undoes_recorded_buy(stock):
    repository = FlakyStockRepository([stock])
    repository.reject_stock = True

    with pytest.raises(StoreWriteError):
        WalletService(repository).record_event(buy_event())

    assert repository.list_lots("S1") == []
    assert repository.list_events("S1", limit=10).events == []

def test_rejected_stock_write_restores_edited_and_deleted_sell(stock):
    repository = FlakyStockRepository([stock])
    service = WalletService(repository)
    service.record_event(buy_event())
    service.record_event(sell_event(lot_of(repository, Strategy.SWING, "100").lot_id))
    repository.reject_stock = True

    with pytest.raises(StoreWriteError):
        service.edit_sell("S1", "s1", {"quantity": Decimal("4")})
    with pytest.raises(StoreWriteError):
        service.delete_event("S1", "s1")

    swing = lot_of(repository, Strategy.SWING, "100")
    assert swing.shares_sold == Decimal("3")
    assert swing.remaining_shares == Decimal("2")
    assert swing.realized_pl == Decimal("30.00")
    stored = {e.event_id: e for e in repository.list_events("S1", limit=10).events}
    assert stored["s1"].quantity == Decimal("3")
    assert repository.get_stock("S1").current_cash_balance == Decimal("330.00")

class UnreachableRepository(InMemoryLedgerRepository):
    def list_lots(self, stock_id):
        raise ConnectionError("connection reset by peer")

def test_unreachable_store_is_reported_unavailable(stock):
    service = WalletService(UnreachableRepository([stock]))
    with pytest.raises(UpstreamUnavailable) as exc_info:
        service.stock_summary("S1", today=TODAY)
    assert exc_info.value.http_status == 503
    assert "ledger store unavailable" in str(exc_info.value)

def test_concurrent_sells_never_overdraw(service, repository, bought):
    """Five sells of 2 shares race for a 5-share lot: exactly two can succeed."""
    outcomes = []
    barrier = threading.Barrier(5)

    def sell(i):
        barrier.wait()
        try:
            service.record_event(sell_event(bought.lot_id, event_id=f"s{i}", quantity="2"))
            outcomes.append("ok")
        except OverdrawnLot:
            outcomes.append("overdrawn")

    threads = [threading.Thread(target=sell, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "ok", "overdrawn", "overdrawn", "overdrawn"]
    swing = lot_of(repository, Strategy.SWING, "100")
    assert swing.remaining_shares == Decimal("1")
    assert swing.shares_sold == Decimal("4")

# --- Summaries ---

def test_stock_summary(service, sold):
    summary = service.stock_summary("S1", today=TODAY)

    assert summary.current_price == Decimal("120")
    assert (summary.buy_count, summary.sell_count) == (1, 1)
    assert summary.realized.swing.pl == Decimal("30.00")
    assert summary.unrealized.total.pl == Decimal("140.00")
    assert summary.combined.swing.pl_percent == Decimal("14.00")
    assert summary.budget.budget_used == Decimal("670.00")
    assert summary.budget.budget_available == Decimal("1330.00")
    assert summary.signals.days_since_last_buy == 10
    assert summary.signals.swing_tp_active is True

class UnavailablePriceFeed:
    def get_price(self, symbol):
        raise UpstreamUnavailable("price feed", "timeout")

def test_summary_without_price_feed(repository, stock):
    service = WalletService(repository, price_feed=UnavailablePriceFeed())
    service.record_event(buy_event())
    summary = service.stock_summary("S1", today=TODAY)

    assert summary.current_price is None
    assert summary.unrealized.total.pl is None
    assert summary.combined.partial_data is True
    assert summary.budget.risk_investment == Decimal("1000.00")
    assert [w.code for w in summary.warnings] == [WarningCode.PRICE_UNAVAILABLE]
    assert summary.combined.total.pl_percent is None

    portfolio = service.portfolio_summary(today=TODAY)
    assert portfolio.total_out_of_pocket == Decimal("1000.00")
    assert (portfolio.unrealized_pl, portfolio.combined_pl, portfolio.roic) == (None, None, None)

def test_portfolio_summary_skips_archived_stocks(price_feed):
    repository = InMemoryLedgerRepository([
        Stock(stock_id="S1", symbol="ACME", swing_hold_ratio=Decimal("50"), stp=Decimal("10")),
        Stock(stock_id="S2", symbol="OLD", is_archived=True),
    ])
    service = WalletService(repository, price_feed=price_feed)
    service.record_event(buy_event())

    portfolio = service.portfolio_summary(today=TODAY)
    assert [s.stock_id for s in portfolio.stocks] == ["S1"]
    assert portfolio.unrealized_pl == Decimal("200.00")
    assert portfolio.total_out_of_pocket == Decimal("1000.00")
    assert portfolio.partial_data is False

    with_archived = service.portfolio_summary(today=TODAY, include_archived=True)
    assert [s.stock_id for s in with_archived.stocks] == ["S1", "S2"]
    assert with_archived.partial_data is True
    assert with_archived.unrealized_pl is None
