from datetime import datetime, timedelta

import pytest

from masapos.db.models import Payment, TableSession
from masapos.db.stats_utils import get_payment_stats
from masapos.errors import InvalidInput

NOW = datetime(2024, 5, 20, 21, 30)


@pytest.fixture
def payments(db_session):
    ts = TableSession(status="paid", total_cents=0)
    db_session.add(ts)
    db_session.flush()
    rows = [
        ("cash", 6000, NOW.replace(hour=12, minute=5)),
        ("card", 4000, NOW.replace(hour=12, minute=50)),
        ("card", 2550, NOW.replace(hour=20, minute=0)),
        ("cash", 1000, NOW - timedelta(days=1)),   # yesterday 21:30
        ("cash", 9900, NOW - timedelta(days=10)),  # outside a 7 day window
    ]
    for method, amount, created_at in rows:
        db_session.add(Payment(table_session_id=ts.id, method=method, amount_cents=amount, created_at=created_at))
    db_session.commit()
    return ts


def test_today_only(db_session, payments):
    stats = get_payment_stats(db_session, days=1, now=NOW)
    assert stats["todayTotal"] == 125.5
    assert stats["methodTotals"] == {"card": 65.5, "cash": 60.0}
    assert len(stats["hourlyTotals"]) == 24
    assert stats["hourlyTotals"][12] == 100.0
    assert stats["hourlyTotals"][20] == 25.5
    assert stats["hourlyTotals"][21] == 0.0
    assert stats["rangeStart"] == "2024-05-20T00:00:00"


def test_week_window(db_session, payments):
    stats = get_payment_stats(db_session, days=7, now=NOW)
    assert stats["todayTotal"] == 125.5
    assert stats["methodTotals"] == {"card": 65.5, "cash": 70.0}
    assert stats["hourlyTotals"][21] == 10.0
    assert sum(stats["hourlyTotals"]) == 135.5
    assert stats["days"] == 7


def test_no_payments(db_session):
    stats = get_payment_stats(db_session, days=1, now=NOW)
    assert stats["todayTotal"] == 0.0
    assert stats["methodTotals"] == {}
    assert stats["hourlyTotals"] == [0.0] * 24


@pytest.mark.parametrize("days", [0, -1, 367, True])
def test_invalid_window(db_session, days):
    with pytest.raises(InvalidInput):
        get_payment_stats(db_session, days=days, now=NOW)


@pytest.mark.asyncio
async def test_stats_endpoint(api_client, floor):
    opened = (await api_client.post("/api/open-table", json={"regionId": floor.terrace_id, "tableId": 1})).json()
    await api_client.post("/api/upsert-order-items-bulk", json={
        "sessionId": opened["id"], "items": [{"name": "Kebab", "price": 220, "quantity": 1}],
    })
    await api_client.post("/api/partial-payment", json={"sessionId": opened["id"], "method": "cash", "amount": 20})
    await api_client.post("/api/pay-table", json={"sessionId": opened["id"], "paymentMethod": "card"})

    response = await api_client.get("/api/statistics/payments", params={"days": 7})
    assert response.status_code == 200
    data = response.json()
    assert data["todayTotal"] == 220.0
    assert data["methodTotals"] == {"card": 200.0, "cash": 20.0}
    assert sum(data["hourlyTotals"]) == 220.0
    assert data["days"] == 7


@pytest.mark.asyncio
async def test_stats_endpoint_rejects_bad_window(api_client):
    response = await api_client.get("/api/statistics/payments", params={"days": 0})
    assert response.status_code == 422
