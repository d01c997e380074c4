from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from backoffice.app.core.exceptions import NotFoundError, ValidationError
from backoffice.app.db.models.core_types import TransactionType
from backoffice.app.db.models.models_v1 import Inventory, InventoryTransaction, Product
from backoffice.services import inventory, procurement
from backoffice.services.inventory import (
    adjust_inventory,
    check_ledger,
    count_inventory,
    inventory_stats,
    list_inventory,
    list_transactions,
    rebuild_qty_on_order,
)
from backoffice.services.procurement import OrderLine, ReceivedLine

ACTOR = "user-1"


def test_rebuild_qty_on_order_before_po_closed(db_session, master, sent_po, stock):
    """
    GIVEN
    - a sent PO of 10 x A and 5 x B
    - a receipt of 5 x A
    - the on-order projection corrupted afterwards

    THEN
    - rebuild gives qty_on_order == 5 for A and 5 for B
    """
    po_id = sent_po()
    item_a = next(i for i in procurement.get_purchase_order(db_session, po_id).items if i.product_id == master.product_a)
    procurement.receive_items(db_session, po_id, actor_id=ACTOR, lines=[ReceivedLine(item_id=item_a.id, quantity=5)])

    row = stock(master.product_a)
    row.quantity_on_order = 99
    db_session.commit()

    rebuilt = rebuild_qty_on_order(db_session, product_ids=[master.product_a, master.product_b])
    db_session.commit()

    assert rebuilt == {master.product_a: 5, master.product_b: 5}
    assert stock(master.product_a).quantity_on_order == 5


def test_rebuild_ignores_closed_orders(db_session, master, make_po, sent_po, stock):
    cancelled = make_po()
    procurement.cancel_purchase_order(db_session, cancelled, actor_id=ACTOR)

    received = sent_po([OrderLine(product_id=master.product_a, quantity=2, unit_cost=Decimal("5"))])
    item = procurement.get_purchase_order(db_session, received).items[0]
    procurement.receive_items(db_session, received, actor_id=ACTOR, lines=[ReceivedLine(item_id=item.id, quantity=2)])

    on_hold = make_po([OrderLine(product_id=master.product_a, quantity=7, unit_cost=Decimal("5"))])
    procurement.hold_purchase_order(db_session, on_hold, actor_id=ACTOR)

    rebuilt = rebuild_qty_on_order(db_session)
    db_session.commit()

    assert rebuilt[master.product_a] == 7
    assert rebuilt[master.product_b] == 0


def test_rebuild_matches_the_projection(db_session, master, make_po, sent_po, stock):
    make_po()
    po_id = sent_po()
    item = procurement.get_purchase_order(db_session, po_id).items[1]
    procurement.receive_items(db_session, po_id, actor_id=ACTOR, lines=[ReceivedLine(item_id=item.id, quantity=3)])

    before = {pid: stock(pid).quantity_on_order for pid in (master.product_a, master.product_b)}
    rebuilt = rebuild_qty_on_order(db_session)
    db_session.commit()

    assert rebuilt == before


def test_rebuild_skips_unknown_products(db_session, master):
    assert rebuild_qty_on_order(db_session, product_ids=[424242]) == {}
    assert rebuild_qty_on_order(db_session, product_ids=[]) == {}


def test_rebuild_sees_a_receive_committed_before_it_locks(db_session, session_factory, master, sent_po, stock, monkeypatch):
    """
    GIVEN
    - a sent PO of 10 x A
    - another session receiving 6 x A just before the rebuild takes its row locks

    THEN
    - the rebuild counts that receipt: qty_on_order == 4
    """
    po_id = sent_po([OrderLine(product_id=master.product_a, quantity=10, unit_cost=Decimal("5"))])
    item_id = procurement.get_purchase_order(db_session, po_id).items[0].id
    real_lock = inventory.lock_inventory_rows

    def lock_after_concurrent_receive(db, product_ids):
        other = session_factory()
        try:
            procurement.receive_items(
                other, po_id, actor_id="user-2", lines=[ReceivedLine(item_id=item_id, quantity=6)]
            )
        finally:
            other.close()
        return real_lock(db, product_ids)

    monkeypatch.setattr(inventory, "lock_inventory_rows", lock_after_concurrent_receive)

    rebuilt = inventory.rebuild_qty_on_order(db_session, product_ids=[master.product_a])
    db_session.commit()

    assert rebuilt == {master.product_a: 4}
    assert stock(master.product_a).quantity_on_order == 4


def test_missing_row_is_created_once_when_another_writer_wins(db_session, session_factory, master, monkeypatch):
    """
    GIVEN
    - a product without an inventory row
    - another writer inserting that row right after our empty SELECT ... FOR UPDATE

    THEN
    - no unique violation, and the locked row is the one the other writer created
    """
    product = Product(sku="C", name="Product C")
    db_session.add(product)
    db_session.commit()
    product_id = product.id

    real_select = inventory._select_for_update
    calls = []

    def select_then_lose_the_race(db, pid):
        calls.append(pid)
        if len(calls) == 1:
            other = session_factory()
            try:
                other.add(Inventory(product_id=pid, quantity_on_hand=3, quantity_reserved=0, quantity_on_order=0))
                other.commit()
            finally:
                other.close()
            return None
        return real_select(db, pid)

    monkeypatch.setattr(inventory, "_select_for_update", select_then_lose_the_race)

    rows = inventory.lock_inventory_rows(db_session, [product_id])
    db_session.commit()

    assert rows[product_id].quantity_on_hand == 3
    count = db_session.execute(
        select(func.count()).select_from(Inventory).where(Inventory.product_id == product_id)
    ).scalar_one()
    assert count == 1


# ---------- Adjust / count ----------
def test_adjust_writes_ledger_entry(db_session, master, stock):
    adjust_inventory(db_session, master.product_a, adjustment=8, actor_id=ACTOR, notes="found a box")
    adjust_inventory(db_session, master.product_a, adjustment=-3, actor_id=ACTOR)

    row = stock(master.product_a)
    assert row.quantity_on_hand == 5
    assert row.last_count_by == ACTOR

    entries, total = list_transactions(db_session, master.product_a)
    assert total == 2
    newest = entries[0]
    assert newest.transaction_type == TransactionType.adjustment
    assert (newest.quantity, newest.quantity_before, newest.quantity_after) == (-3, 8, 5)


def test_adjust_below_zero_is_rejected(db_session, master, stock):
    adjust_inventory(db_session, master.product_a, adjustment=2, actor_id=ACTOR)

    with pytest.raises(ValidationError):
        adjust_inventory(db_session, master.product_a, adjustment=-3, actor_id=ACTOR)

    assert stock(master.product_a).quantity_on_hand == 2
    assert list_transactions(db_session, master.product_a)[1] == 1


def test_adjust_requires_a_quantity_and_a_row(db_session, master):
    with pytest.raises(ValidationError):
        adjust_inventory(db_session, master.product_a, adjustment=0, actor_id=ACTOR)
    with pytest.raises(NotFoundError):
        adjust_inventory(db_session, 424242, adjustment=1, actor_id=ACTOR)


def test_count_sets_on_hand_through_the_ledger(db_session, master, stock):
    adjust_inventory(db_session, master.product_b, adjustment=10, actor_id=ACTOR)
    count_inventory(db_session, master.product_b, actual_count=7, actor_id="counter-1")

    row = stock(master.product_b)
    assert row.quantity_on_hand == 7
    assert row.last_count_by == "counter-1"

    latest = list_transactions(db_session, master.product_b)[0][0]
    assert latest.transaction_type == TransactionType.count
    assert (latest.quantity, latest.quantity_before, latest.quantity_after) == (-3, 10, 7)
    assert latest.notes == "Physical inventory count"


def test_count_rejects_negative(db_session, master):
    with pytest.raises(ValidationError):
        count_inventory(db_session, master.product_b, actual_count=-1, actor_id=ACTOR)


# ---------- Ledger check ----------
def test_ledger_replays_to_the_projection(db_session, master, sent_po):
    po_id = sent_po()
    items = procurement.get_purchase_order(db_session, po_id).items
    procurement.receive_items(
        db_session, po_id, actor_id=ACTOR, lines=[ReceivedLine(item_id=i.id, quantity=2) for i in items]
    )
    adjust_inventory(db_session, master.product_a, adjustment=-1, actor_id=ACTOR)
    count_inventory(db_session, master.product_a, actual_count=4, actor_id=ACTOR)

    result = check_ledger(db_session, master.product_a)
    assert result.ok, result.problems
    assert result.entries == 3
    assert result.quantity_on_hand == 4


def test_ledger_check_reports_projection_drift(db_session, master, stock):
    adjust_inventory(db_session, master.product_a, adjustment=5, actor_id=ACTOR)
    row = stock(master.product_a)
    row.quantity_on_hand = 9
    db_session.commit()

    result = check_ledger(db_session, master.product_a)
    assert not result.ok
    assert "projection on hand 9" in result.problems[0]


def test_ledger_check_reports_gaps(db_session, master):
    adjust_inventory(db_session, master.product_a, adjustment=5, actor_id=ACTOR)
    db_session.add(
        InventoryTransaction(
            product_id=master.product_a,
            transaction_type=TransactionType.adjustment,
            quantity=1,
            quantity_before=7,
            quantity_after=8,
            created_by=ACTOR,
        )
    )
    db_session.commit()

    result = check_ledger(db_session, master.product_a)
    assert any("previous entry ended at 5" in p for p in result.problems)


def test_on_hand_cannot_go_negative_in_storage(db_session, master):
    row = db_session.execute(select(Inventory).where(Inventory.product_id == master.product_a)).scalar_one()
    row.quantity_on_hand = -1
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


# ---------- Reads ----------
def test_stats_and_listing(db_session, master, stock):
    adjust_inventory(db_session, master.product_a, adjustment=20, actor_id=ACTOR)

    stats = inventory_stats(db_session)
    assert stats["total_products"] == 2
    # B is at 0 which is below its reorder level of 5
    assert stats["low_stock_items"] == 1
    assert stats["out_of_stock"] == 1
    assert Decimal(str(stats["total_value"])) == Decimal("200")

    rows, total = list_inventory(db_session, low_stock=True)
    assert total == 1
    assert rows[0].product_id == master.product_b

    rows, total = list_inventory(db_session, search="product a")
    assert [r.product_id for r in rows] == [master.product_a]
