import os
import sys
from types import SimpleNamespace
from typing import List

import pytest
import pytest_asyncio
import httpx
from httpx import ASGITransport

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from masapos.broadcast import Notifier, TableUpdated
from masapos.db.models import Category, Product, Region, Table
from masapos.storage import SQLAlchemyStorage


class RecordingNotifier(Notifier):
    """Collects published events instead of sending them."""

    def __init__(self):
        self.events: List[TableUpdated] = []

    def publish(self, event: TableUpdated) -> None:
        self.events.append(event)

    @property
    def last(self) -> TableUpdated:
        return self.events[-1]


@pytest.fixture
def storage(tmp_path):
    db_path = tmp_path / "masa_test.db"
    storage = SQLAlchemyStorage(f"sqlite:///{db_path}")
    yield storage
    storage.close()


@pytest.fixture
def db_session(storage):
    session = storage._get_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


def seed_floor(session):
    """Two regions, a category and two stock-tracked products; committed."""
    terrace = Region(name="Terrace")
    salon = Region(name="Salon")
    session.add_all([terrace, salon])
    session.flush()
    for ordinal in (1, 2, 3):
        session.add(Table(region_id=terrace.id, table_id=ordinal))
    for ordinal in (1, 2):
        session.add(Table(region_id=salon.id, table_id=ordinal))

    drinks = Category(name="Drinks")
    session.add(drinks)
    session.flush()
    tea = Product(name="Tea", price_cents=1500, category_id=drinks.id, stock=10, critical=2, in_stock_list=True)
    cola = Product(name="Cola", price_cents=4000, category_id=drinks.id, stock=5, critical=1, in_stock_list=True)
    session.add_all([tea, cola])
    session.commit()

    tables = {(t.region_id, t.table_id): t.id for t in session.query(Table).all()}
    return SimpleNamespace(
        terrace_id=terrace.id,
        salon_id=salon.id,
        category_id=drinks.id,
        tea_id=tea.id,
        cola_id=cola.id,
        table_ids=tables,
    )


@pytest.fixture
def floor(db_session):
    return seed_floor(db_session)


@pytest_asyncio.fixture
async def api_client(storage, notifier):
    """HTTP client against the app wired to the test database and a recording notifier."""
    from masapos.main import app

    original_storage = app.state.storage
    original_notifier = app.state.notifier
    app.state.storage = storage
    app.state.notifier = notifier
    try:
        async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.state.storage = original_storage
        app.state.notifier = original_notifier
