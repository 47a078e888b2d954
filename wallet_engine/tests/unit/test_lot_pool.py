# wallet_engine/tests/unit/test_lot_pool.py

import itertools
import pytest
from decimal import Decimal

from wallet_engine.core.enums.strategy import Strategy
from wallet_engine.core.exceptions import (
    CommittedLotConflict, LedgerValidationError, LotNotFound, OverdrawnLot
)
from wallet_engine.logic.cost_objects import Contribution
from wallet_engine.logic.lot_pool import LotPool, StockLockRegistry
from wallet_engine.logic.numeric import round_shares


@pytest.fixture
def pool():
    """Provides an empty LotPool with predictable lot ids."""
    counter = itertools.count(1)
    return LotPool(id_factory=lambda: f"lot-{next(counter)}")

@pytest.fixture
def swing_lot(pool):
    """5 Swing shares bought at 100 for 500, STP 10%."""
    return pool.contribute("S1", Strategy.SWING, Decimal("100"), Decimal("5"), Decimal("500"), tp_percent=Decimal("10"))

def assert_invariant(lot):
    assert lot.remaining_shares == round_shares(lot.total_shares_qty - lot.shares_sold)
    assert lot.remaining_shares >= 0

# --- contribute ---

def test_contribute_creates_lot(pool, swing_lot):
    assert swing_lot.lot_id == "lot-1"
    assert swing_lot.total_shares_qty == Decimal("5")
    assert swing_lot.remaining_shares == Decimal("5")
    assert swing_lot.total_investment == Decimal("500")
    assert swing_lot.tp_value == Decimal("110.0000")
    assert swing_lot.is_committed is False
    assert_invariant(swing_lot)

def test_contribute_same_key_adds_to_existing_lot(pool, swing_lot):
    lot = pool.contribute("S1", Strategy.SWING, Decimal("100.00001"), Decimal("2.5"), Decimal("250"))
    assert lot.lot_id == swing_lot.lot_id  # within match precision
    assert lot.total_shares_qty == Decimal("7.5")
    assert lot.total_investment == Decimal("750")
    assert lot.version == swing_lot.version + 1
    assert len(pool.lots_for("S1")) == 1

def test_contribute_other_strategy_or_price_creates_new_lot(pool, swing_lot):
    hold = pool.contribute("S1", Strategy.HOLD, Decimal("100"), Decimal("5"), Decimal("500"))
    other_price = pool.contribute("S1", Strategy.SWING, Decimal("101"), Decimal("1"), Decimal("101"))
    assert len({swing_lot.lot_id, hold.lot_id, other_price.lot_id}) == 3
    assert pool.find("S1", Strategy.HOLD, Decimal("100")).lot_id == hold.lot_id

def test_contribute_to_emptiness_keeps_lot(pool, swing_lot):
    lot = pool.contribute("S1", Strategy.SWING, Decimal("100"), Decimal("-5"), Decimal("-500"))
    assert lot.remaining_shares == 0
    assert pool.get(swing_lot.lot_id).remaining_shares == 0  # not removed automatically

def test_contribute_rejects_negative_result(pool, swing_lot):
    with pytest.raises(LedgerValidationError):
        pool.contribute("S1", Strategy.SWING, Decimal("100"), Decimal("-6"), Decimal("-500"))
    assert pool.get(swing_lot.lot_id).total_shares_qty == Decimal("5")

def test_contribute_negative_without_lot_is_rejected(pool):
    with pytest.raises(LedgerValidationError):
        pool.contribute("S1", Strategy.SWING, Decimal("100"), Decimal("-1"), Decimal("-100"))

def test_contribute_rejects_non_positive_price(pool):
    with pytest.raises(LedgerValidationError):
        pool.contribute("S1", Strategy.SWING, Decimal("0"), Decimal("1"), Decimal("1"))

def test_negative_contribution_to_committed_lot_conflicts(pool, swing_lot):
    pool.apply_sale(swing_lot.lot_id, Decimal("1"), Decimal("110"))
    with pytest.raises(CommittedLotConflict):
        pool.contribute("S1", Strategy.SWING, Decimal("100"), Decimal("-1"), Decimal("-100"))
    # Additive contributions at the same price are still accepted
    lot = pool.contribute("S1", Strategy.SWING, Decimal("100"), Decimal("1"), Decimal("100"))
    assert lot.total_shares_qty == Decimal("6")
    assert lot.remaining_shares == Decimal("5")

# --- sales ---

def test_apply_sale_updates_lot(pool, swing_lot):
    """Sell 3 of 5 Swing shares bought at 100 for 110: +30.00."""
    sale = pool.apply_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"))
    assert sale.profit == Decimal("30.00")
    assert sale.profit_percent == Decimal("10.00")

    lot = pool.get(swing_lot.lot_id)
    assert lot.shares_sold == Decimal("3")
    assert lot.remaining_shares == Decimal("2")
    assert lot.realized_pl == Decimal("30.00")
    assert lot.realized_pl_percent == Decimal("10.00")
    assert lot.sell_txn_count == 1
    assert lot.is_committed is True
    assert_invariant(lot)

def test_apply_sale_with_sell_leg_commission(pool, swing_lot):
    sale = pool.apply_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"), Decimal("1"))
    assert sale.profit == Decimal("26.70")  # 30 - 330 * 1%

def test_overdrawn_sale_is_rejected_without_change(pool, swing_lot):
    with pytest.raises(OverdrawnLot):
        pool.apply_sale(swing_lot.lot_id, Decimal("5.00001"), Decimal("110"))
    assert pool.get(swing_lot.lot_id) == swing_lot

def test_sale_of_exact_remaining_is_allowed(pool, swing_lot):
    pool.apply_sale(swing_lot.lot_id, Decimal("5.000001"), Decimal("90"))  # rounds to 5.00000
    assert pool.get(swing_lot.lot_id).remaining_shares == 0

def test_sale_from_unknown_lot(pool):
    with pytest.raises(LotNotFound):
        pool.apply_sale("missing", Decimal("1"), Decimal("1"))

@pytest.mark.parametrize("quantity,price,commission", [
    (Decimal("3"), Decimal("110"), None),
    (Decimal("1.23456"), Decimal("97.13"), Decimal("0.35")),
    (Decimal("4"), Decimal("42"), Decimal("2")),
])
def test_reverse_sale_restores_lot(pool, swing_lot, quantity, price, commission):
    pool.apply_sale(swing_lot.lot_id, Decimal("1"), Decimal("105"))
    before = pool.get(swing_lot.lot_id).model_dump(exclude={"version"})

    pool.apply_sale(swing_lot.lot_id, quantity, price, commission)
    pool.reverse_sale(swing_lot.lot_id, quantity, price, commission)
    assert pool.get(swing_lot.lot_id).model_dump(exclude={"version"}) == before

def test_reverse_only_sale_returns_to_uncommitted(pool, swing_lot):
    before = swing_lot.model_dump(exclude={"version"})
    pool.apply_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"))
    lot = pool.reverse_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"))
    assert lot.model_dump(exclude={"version"}) == before
    assert lot.is_committed is False

def test_reverse_sale_with_stored_profit(pool, swing_lot):
    pool.apply_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"))
    lot = pool.reverse_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"), profit=Decimal("30"))
    assert lot.realized_pl == 0
    assert lot.realized_pl_percent == 0

def test_reverse_sale_beyond_sold_shares_is_rejected(pool, swing_lot):
    with pytest.raises(LedgerValidationError, match="cannot reverse"):
        pool.reverse_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"))
    assert pool.get(swing_lot.lot_id) == swing_lot

    pool.apply_sale(swing_lot.lot_id, Decimal("2"), Decimal("110"))
    sold = pool.get(swing_lot.lot_id)
    with pytest.raises(LedgerValidationError):
        pool.reverse_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"))
    assert pool.get(swing_lot.lot_id) == sold
    assert sold.realized_pl == Decimal("20.00")

# --- stock split ---

def test_apply_stock_split_adjusts_per_share_fields(pool, swing_lot):
    pool.apply_sale(swing_lot.lot_id, Decimal("3"), Decimal("110"))
    adjusted, skipped = pool.apply_stock_split("S1", Decimal("2"), "split-1")

    assert skipped == []
    lot = adjusted[0]
    assert lot.buy_price == Decimal("50")
    assert lot.total_shares_qty == Decimal("10")
    assert lot.shares_sold == Decimal("6")
    assert lot.remaining_shares == Decimal("4")
    assert lot.tp_value == Decimal("55.0000")
    assert lot.total_investment == Decimal("500")  # capital unchanged
    assert lot.realized_pl == Decimal("30.00")
    assert lot.realized_pl_percent == Decimal("10.00")
    assert lot.applied_split_ids == ["split-1"]
    assert pool.find("S1", Strategy.SWING, Decimal("50")).lot_id == lot.lot_id
    assert pool.find("S1", Strategy.SWING, Decimal("100")) is None
    assert_invariant(lot)

def test_apply_stock_split_is_idempotent_per_event(pool, swing_lot):
    pool.apply_stock_split("S1", Decimal("2"), "split-1")
    adjusted, skipped = pool.apply_stock_split("S1", Decimal("2"), "split-1")
    assert adjusted == []
    assert skipped == [swing_lot.lot_id]
    assert pool.get(swing_lot.lot_id).total_shares_qty == Decimal("10")

def test_apply_stock_split_leaves_other_stocks_alone(pool, swing_lot):
    other = pool.contribute("S2", Strategy.SWING, Decimal("100"), Decimal("1"), Decimal("100"))
    pool.apply_stock_split("S1", Decimal("4"), "split-1")
    assert pool.get(other.lot_id).buy_price == Decimal("100")

def test_apply_stock_split_rejects_bad_multiplier(pool, swing_lot):
    with pytest.raises(LedgerValidationError):
        pool.apply_stock_split("S1", Decimal("0"), "split-1")

# --- relocation ---

def test_relocate_buy_moves_uncommitted_contribution(pool, swing_lot):
    old = [Contribution(Strategy.SWING, Decimal("100"), Decimal("5"), Decimal("500"), Decimal("10"))]
    new = [Contribution(Strategy.SWING, Decimal("80"), Decimal("6.25"), Decimal("500"), Decimal("10"))]
    pool.relocate_buy("S1", old, new)

    assert pool.get(swing_lot.lot_id).remaining_shares == 0
    moved = pool.find("S1", Strategy.SWING, Decimal("80"))
    assert moved.total_shares_qty == Decimal("6.25")
    assert moved.tp_value == Decimal("88.0000")

def test_relocate_buy_nets_same_key(pool, swing_lot):
    """Investment-only edit: the same lot is adjusted by the difference."""
    old = [Contribution(Strategy.SWING, Decimal("100"), Decimal("5"), Decimal("500"))]
    new = [Contribution(Strategy.SWING, Decimal("100"), Decimal("7"), Decimal("700"))]
    pool.relocate_buy("S1", old, new)
    assert pool.get(swing_lot.lot_id).total_shares_qty == Decimal("7")
    assert len(pool.lots_for("S1")) == 1

def test_relocate_buy_refuses_committed_source(pool, swing_lot):
    pool.apply_sale(swing_lot.lot_id, Decimal("1"), Decimal("110"))
    before = pool.all_lots()
    old = [Contribution(Strategy.SWING, Decimal("100"), Decimal("5"), Decimal("500"))]
    new = [Contribution(Strategy.HOLD, Decimal("100"), Decimal("5"), Decimal("500"))]
    with pytest.raises(CommittedLotConflict):
        pool.relocate_buy("S1", old, new)
    assert pool.all_lots() == before

def test_relocate_buy_is_atomic(pool, swing_lot):
    """A failing leg leaves every lot as it was."""
    old = [Contribution(Strategy.SWING, Decimal("100"), Decimal("6"), Decimal("500"))]  # more than the lot holds
    new = [Contribution(Strategy.SWING, Decimal("90"), Decimal("6"), Decimal("540"))]
    with pytest.raises(LedgerValidationError):
        pool.relocate_buy("S1", old, new)
    assert pool.find("S1", Strategy.SWING, Decimal("90")) is None
    assert pool.get(swing_lot.lot_id).total_shares_qty == Decimal("5")

# --- removal and change tracking ---

def test_remove_lot_requires_empty_lot(pool, swing_lot):
    with pytest.raises(LedgerValidationError):
        pool.remove_lot(swing_lot.lot_id)
    pool.apply_sale(swing_lot.lot_id, Decimal("5"), Decimal("110"))
    removed = pool.remove_lot(swing_lot.lot_id)
    assert removed.lot_id == swing_lot.lot_id
    with pytest.raises(LotNotFound):
        pool.get(swing_lot.lot_id)

def test_pending_changes_track_created_updated_deleted(swing_lot):
    existing = swing_lot.model_copy(update={"lot_id": "stored", "stock_id": "S9"})
    pool = LotPool([existing])
    assert pool.pending_changes().is_empty

    created = pool.contribute("S9", Strategy.HOLD, Decimal("10"), Decimal("1"), Decimal("10"))
    pool.apply_sale("stored", Decimal("5"), Decimal("100"))
    changes = pool.pending_changes()
    assert [l.lot_id for l in changes.created] == [created.lot_id]
    assert [l.lot_id for l in changes.updated] == ["stored"]

    pool.remove_lot("stored")
    assert [l.lot_id for l in pool.pending_changes().deleted] == ["stored"]
    pool.mark_persisted()
    assert pool.pending_changes().is_empty

def test_invariant_holds_across_mixed_mutations(pool, swing_lot):
    pool.contribute("S1", Strategy.SWING, Decimal("100"), Decimal("0.33333"), Decimal("33.33"))
    pool.apply_sale(swing_lot.lot_id, Decimal("1.11111"), Decimal("120"))
    pool.apply_stock_split("S1", Decimal("3"), "split-1")
    pool.apply_sale(swing_lot.lot_id, Decimal("2.5"), Decimal("35"))
    pool.reverse_sale(swing_lot.lot_id, Decimal("2.5"), Decimal("35"))
    for lot in pool.all_lots():
        assert_invariant(lot)

# --- locking ---

def test_lock_registry_gives_one_lock_per_stock():
    registry = StockLockRegistry()
    assert registry.lock_for("S1") is registry.lock_for("S1")
    assert registry.lock_for("S1") is not registry.lock_for("S2")
    with registry.hold("S1"):
        with registry.hold("S1"):  # re-entrant
            pass
