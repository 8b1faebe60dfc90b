"""Tests for bulk and incremental order line upserts."""

import pytest

from masapos.db.models import Product
from masapos.db.order_utils import (
    compute_total_cents,
    parse_order_lines,
    upsert_items_bulk,
    upsert_items_incremental,
)
from masapos.db.session_utils import cancel_table, open_table, pay_table
from masapos.errors import InvalidInput, InvalidState, NotFound


def _assert_total_matches_lines(session, ts):
    expected = sum(item.price_cents * item.quantity for item in ts.items)
    assert ts.total_cents == expected
    assert compute_total_cents(session, ts.id) == expected


def test_bulk_replaces_lines(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_bulk(db_session, notifier, ts.id, [
        {"name": "Coffee", "price": 20, "quantity": 2},
        {"product_id": floor.tea_id, "quantity": 3},
    ])
    assert ts.total_cents == 2 * 2000 + 3 * 1500
    _assert_total_matches_lines(db_session, ts)

    upsert_items_bulk(db_session, notifier, ts.id, [{"name": "Water", "price": 5, "quantity": 1}])
    assert [(i.name, i.quantity) for i in ts.items] == [("Water", 1)]
    assert ts.total_cents == 500
    _assert_total_matches_lines(db_session, ts)


def test_bulk_does_not_touch_stock(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_bulk(db_session, notifier, ts.id, [{"product_id": floor.tea_id, "quantity": 4}])
    assert db_session.get(Product, floor.tea_id).stock == 10


def test_bulk_skips_zero_quantity_and_empty_list(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_bulk(db_session, notifier, ts.id, [
        {"name": "Coffee", "price": 20, "quantity": 0},
        {"name": "Tea", "price": 15, "quantity": 1},
    ])
    assert [i.name for i in ts.items] == ["Tea"]

    upsert_items_bulk(db_session, notifier, ts.id, [])
    assert ts.items == []
    assert ts.total_cents == 0


def test_snapshot_of_product_name_and_price(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_incremental(db_session, notifier, ts.id, [{"product_id": floor.cola_id, "quantity": 1}])
    item = ts.items[0]
    assert (item.name, item.price_cents) == ("Cola", 4000)

    # Later price changes do not rewrite stored lines
    product = db_session.get(Product, floor.cola_id)
    product.price_cents = 5000
    db_session.commit()
    assert ts.items[0].price_cents == 4000


def test_incremental_updates_existing_lines(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_incremental(db_session, notifier, ts.id, [
        {"product_id": floor.tea_id, "quantity": 2},
        {"name": "Bread", "price": 3.5, "quantity": 1},
    ])
    upsert_items_incremental(db_session, notifier, ts.id, [
        {"name": "Bread", "price": 3.5, "quantity": 3},
    ])

    lines = {i.name: i.quantity for i in ts.items}
    assert lines == {"Tea": 2, "Bread": 3}
    assert ts.total_cents == 2 * 1500 + 3 * 350
    _assert_total_matches_lines(db_session, ts)


def test_incremental_after_payment_keeps_status(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    pay_table(db_session, notifier, ts.id, "cash")

    upsert_items_incremental(db_session, notifier, ts.id, [{"name": "Tip jar", "price": 1, "quantity": 1}])
    assert ts.status == "paid"
    assert ts.total_cents == 100
    assert notifier.last.status.value == "paid"


def test_incremental_rejects_canceled_session(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    cancel_table(db_session, notifier, ts.id)
    with pytest.raises(InvalidState):
        upsert_items_incremental(db_session, notifier, ts.id, [{"product_id": floor.tea_id, "quantity": 1}])
    assert db_session.get(Product, floor.tea_id).stock == 10


def test_duplicate_keys_last_wins(db_session, floor):
    lines = parse_order_lines(db_session, [
        {"product_id": floor.tea_id, "quantity": 1},
        {"name": "Bread", "price": 2, "quantity": 1},
        {"product_id": floor.tea_id, "quantity": 4},
    ])
    assert [(l.name, l.quantity) for l in lines] == [("Bread", 1), ("Tea", 4)]


def test_zero_quantity_does_not_override_positive_line(db_session, floor):
    lines = parse_order_lines(db_session, [
        {"product_id": floor.tea_id, "quantity": 3},
        {"product_id": floor.tea_id, "quantity": 0},
    ])
    assert [(l.name, l.quantity) for l in lines] == [("Tea", 3)]


def test_bulk_keeps_line_followed_by_zero_entry_with_same_name(db_session, floor, notifier):
    # Clients post every menu entry by name, unselected ones with quantity 0
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_bulk(db_session, notifier, ts.id, [
        {"name": "Tea", "price": 15, "quantity": 2},
        {"name": "Tea", "price": 20, "quantity": 0},
    ])
    assert [(i.name, i.price_cents, i.quantity) for i in ts.items] == [("Tea", 1500, 2)]
    assert ts.total_cents == 3000
    _assert_total_matches_lines(db_session, ts)


def test_bulk_adds_up_repeated_lines(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_bulk(db_session, notifier, ts.id, [
        {"name": "Tea", "price": 15, "quantity": 2},
        {"product_id": floor.cola_id, "quantity": 1},
        {"name": "Tea", "price": 15, "quantity": 1},
        {"product_id": floor.cola_id, "quantity": 2},
    ])
    assert [(i.name, i.quantity) for i in ts.items] == [("Tea", 3), ("Cola", 3)]
    assert ts.total_cents == 3 * 1500 + 3 * 4000


def test_bulk_rejects_same_name_with_different_prices(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    upsert_items_bulk(db_session, notifier, ts.id, [{"name": "Water", "price": 5, "quantity": 1}])

    with pytest.raises(InvalidInput):
        upsert_items_bulk(db_session, notifier, ts.id, [
            {"name": "Tea", "price": 15, "quantity": 2},
            {"name": "Tea", "price": 20, "quantity": 1},
        ])
    assert [i.name for i in ts.items] == ["Water"]
    assert ts.total_cents == 500


@pytest.mark.parametrize("entry", [
    {"name": "Bread", "quantity": 1},
    {"price": 2, "quantity": 1},
    {"name": "Bread", "price": 2},
    {"name": "Bread", "price": 2, "quantity": -1},
    {"name": "Bread", "price": 2, "quantity": 1.5},
    {"name": "Bread", "price": -2, "quantity": 1},
    {"name": "Bread", "price": "free", "quantity": 1},
])
def test_invalid_lines(db_session, floor, entry):
    with pytest.raises(InvalidInput):
        parse_order_lines(db_session, [entry])


def test_unknown_product(db_session, floor, notifier):
    ts = open_table(db_session, notifier, floor.terrace_id, 1)
    with pytest.raises(NotFound):
        upsert_items_bulk(db_session, notifier, ts.id, [{"product_id": 777, "quantity": 1}])


def test_unknown_session(db_session, floor, notifier):
    with pytest.raises(NotFound):
        upsert_items_bulk(db_session, notifier, 31337, [])
    assert notifier.events == []
