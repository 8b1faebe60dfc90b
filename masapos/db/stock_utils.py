"""Stock reconciliation for products referenced by order lines.

Order-driven stock changes are always deltas applied with a single
``UPDATE ... SET stock = stock + :delta`` so concurrent sessions touching the
same product never lose an update. No lower bound is enforced: overselling
drives stock negative.

Administrative stock counts (the stock-management view) are absolute writes.
"""

import logging
from typing import Any, List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from masapos.db.models import Product, TableSession
from masapos.errors import InvalidInput, NotFound

logger = logging.getLogger(__name__)


def adjust_stock(session: Session, product_id: int, delta: int) -> None:
    """
    Atomically add *delta* to a product's stock.

    Args:
        session: SQLAlchemy session (caller owns the transaction)
        product_id: Product primary key
        delta: positive returns inventory, negative consumes it

    Raises:
        NotFound: unknown product
    """
    if delta == 0:
        return
    product = session.get(Product, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + delta)
        .execution_options(synchronize_session=False)
    )
    # Reload on next access instead of trusting the in-memory counter
    session.expire(product, ["stock"])
    logger.debug("[adjust_stock] product=%s delta=%+d", product_id, delta)


def consume_stock(session: Session, product_id: int, quantity: int) -> None:
    """Take *quantity* units out of stock."""
    adjust_stock(session, product_id, -quantity)


def return_stock(session: Session, product_id: int, quantity: int) -> None:
    """Put *quantity* units back into stock."""
    adjust_stock(session, product_id, quantity)


def reconcile_line(session: Session, product_id: int, old_quantity: int, new_quantity: int) -> int:
    """
    Apply the stock effect of an order line going from *old_quantity* to *new_quantity*.

    Returns the quantity diff (new - old).
    """
    diff = new_quantity - old_quantity
    if diff > 0:
        consume_stock(session, product_id, diff)
    elif diff < 0:
        return_stock(session, product_id, -diff)
    return diff


def restock_session_items(session: Session, table_session: TableSession) -> int:
    """
    Return every product-linked item quantity of *table_session* to stock.

    Returns the number of units returned.
    """
    returned = 0
    for item in table_session.items:
        if item.product_id is None:
            continue
        return_stock(session, item.product_id, item.quantity)
        returned += item.quantity
    logger.info("[restock] session=%s returned %d units", table_session.id, returned)
    return returned


def _validate_counter(name: str, value: Any) -> int:
    if value is None:
        raise InvalidInput(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer")
    if value < 0:
        raise InvalidInput(f"{name} cannot be negative")
    return value


def update_stock(session: Session, product_id: int, stock: Any, critical: Any) -> Product:
    """
    Set a product's stock and critical level and add it to the stock list.

    Raises:
        InvalidInput: missing or negative counters
        NotFound: unknown product
    """
    stock = _validate_counter("stock", stock)
    critical = _validate_counter("critical", critical)

    product = session.get(Product, product_id)
    if product is None:
        raise NotFound("Product", product_id)

    product.stock = stock
    product.critical = critical
    product.in_stock_list = True
    session.flush()
    return product


def list_stock_tracked(session: Session) -> List[Product]:
    """Products shown in the stock-management view, by name."""
    stmt = (
        select(Product)
        .where(Product.in_stock_list.is_(True))
        .order_by(Product.name)
    )
    return list(session.execute(stmt).scalars().all())


def remove_from_stock_tracking(session: Session, product_id: int) -> Product:
    """Hide a product from the stock view without touching its counters."""
    product = session.get(Product, product_id)
    if product is None:
        raise NotFound("Product", product_id)
    product.in_stock_list = False
    session.flush()
    return product
