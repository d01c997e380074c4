import threading
from datetime import date
from decimal import Decimal

import pytest

from backoffice.services import procurement
from backoffice.services.procurement import OrderLine, ReceivedLine

ACTOR = "user-1"


@pytest.fixture(autouse=True)
def _row_locks_required(engine):
    if engine.dialect.name != "postgresql":
        pytest.skip("SELECT ... FOR UPDATE needs Postgres (set TEST_DATABASE_URL)")


def _run_concurrently(session_factory, jobs):
    barrier = threading.Barrier(len(jobs))
    errors = []

    def worker(job):
        db = session_factory()
        try:
            barrier.wait()
            job(db)
        except Exception as exc:  # collected and asserted below
            errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(job,)) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return errors


def test_parallel_receipts_on_the_same_product_lose_nothing(db_session, session_factory, master, sent_po, stock):
    line = [OrderLine(product_id=master.product_a, quantity=10, unit_cost=Decimal("5"))]
    first, second = sent_po(line), sent_po(line)
    first_item = procurement.get_purchase_order(db_session, first).items[0].id
    second_item = procurement.get_purchase_order(db_session, second).items[0].id
    before = stock(master.product_a)
    on_hand, on_order = before.quantity_on_hand, before.quantity_on_order

    errors = _run_concurrently(
        session_factory,
        [
            lambda db: procurement.receive_items(
                db, first, actor_id=ACTOR, lines=[ReceivedLine(item_id=first_item, quantity=3)]
            ),
            lambda db: procurement.receive_items(
                db, second, actor_id=ACTOR, lines=[ReceivedLine(item_id=second_item, quantity=4)]
            ),
        ],
    )

    assert errors == []
    after = stock(master.product_a)
    assert after.quantity_on_hand == on_hand + 7
    assert after.quantity_on_order == on_order - 7


def test_parallel_creates_get_distinct_numbers(db_session, session_factory, master, stock):
    def create(db):
        procurement.create_purchase_order(
            db,
            actor_id=ACTOR,
            supplier_id=master.supplier_id,
            order_date=date.today(),
            items=[OrderLine(product_id=master.product_b, quantity=1, unit_cost=Decimal("2"))],
        )

    errors = _run_concurrently(session_factory, [create] * 4)

    assert errors == []
    rows, total = procurement.list_purchase_orders(db_session)
    assert total == 4
    assert len({po.po_number for po in rows}) == 4
    assert stock(master.product_b).quantity_on_order == 4
