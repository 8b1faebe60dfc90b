"""Order line upserts for table sessions.

Two policies reconcile a submitted item list against a session's stored lines.
In both the client sends the full desired quantity per line, never a delta.

- bulk replace: drop every line, insert the submitted ones, no stock effect.
- incremental: diff each line against the stored quantity and move stock by
  the difference before writing the line.

Lines are keyed by product id when one is given, by name for ad hoc lines.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from masapos.broadcast import Notifier, publish_session
from masapos.db import transaction
from masapos.db.models import Product, SessionStatus, TableSession, TableSessionItem
from masapos.db.stock_utils import reconcile_line
from masapos.errors import InvalidInput, InvalidState, NotFound
from masapos.utils.money import to_cents

logger = logging.getLogger(__name__)


@dataclass
class OrderLine:
    """A validated line of a submitted order."""

    name: str
    price_cents: int
    quantity: int
    product_id: Optional[int] = None

    @property
    def key(self) -> Tuple[str, Any]:
        if self.product_id is not None:
            return ("product", self.product_id)
        return ("name", self.name)


def _parse_quantity(raw: Any) -> int:
    if raw is None:
        raise InvalidInput("quantity is required")
    if isinstance(raw, bool):
        raise InvalidInput("quantity must be an integer")
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if not isinstance(raw, int):
        raise InvalidInput("quantity must be an integer")
    if raw < 0:
        raise InvalidInput("quantity cannot be negative")
    return raw


def _merge_line(lines: Dict[Tuple[str, Any], OrderLine], line: OrderLine, combine: bool) -> None:
    existing = lines.get(line.key)
    if existing is None or existing.quantity == 0:
        lines.pop(line.key, None)
        lines[line.key] = line
        return
    # A zero never cancels a positive line submitted in the same request
    if line.quantity == 0:
        return
    if not combine:
        lines.pop(line.key)
        lines[line.key] = line
        return
    if existing.price_cents != line.price_cents:
        raise InvalidInput(f"conflicting prices for '{line.name}'")
    existing.quantity += line.quantity


def parse_order_lines(
    session: Session,
    items: Iterable[Dict[str, Any]],
    combine: bool = False,
) -> List[OrderLine]:
    """
    Validate submitted items and snapshot product name/price where omitted.

    Lines sharing a key are merged. A quantity 0 entry never overrides a
    positive one. Between positive entries the last one wins, or with
    *combine* their quantities are added up (prices must agree).

    Raises:
        InvalidInput: missing name/price, negative price or quantity,
            combined lines with different prices
        NotFound: unknown product id
    """
    if items is None:
        raise InvalidInput("items are required")

    lines: Dict[Tuple[str, Any], OrderLine] = {}
    for entry in items:
        product_id = entry.get("product_id")
        product = None
        if product_id is not None:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFound("Product", product_id)

        name = (entry.get("name") or "").strip()
        if not name and product is not None:
            name = product.name
        if not name:
            raise InvalidInput("item name is required")

        price = entry.get("price")
        if price is None:
            if product is None:
                raise InvalidInput(f"price is required for '{name}'")
            price_cents = product.price_cents
        else:
            try:
                price_cents = to_cents(price)
            except ValueError as e:
                raise InvalidInput(str(e))
        if price_cents < 0:
            raise InvalidInput(f"price cannot be negative for '{name}'")

        line = OrderLine(
            name=name,
            price_cents=price_cents,
            quantity=_parse_quantity(entry.get("quantity")),
            product_id=product_id,
        )
        _merge_line(lines, line, combine)
    return list(lines.values())


def get_table_session(session: Session, session_id: int) -> TableSession:
    """Load a session or raise NotFound."""
    table_session = session.get(TableSession, session_id)
    if table_session is None:
        raise NotFound("Session", session_id)
    return table_session


def compute_total_cents(session: Session, table_session_id: int) -> int:
    """Sum price x quantity over the stored lines of a session."""
    stmt = (
        select(func.coalesce(func.sum(TableSessionItem.price_cents * TableSessionItem.quantity), 0))
        .where(TableSessionItem.table_session_id == table_session_id)
    )
    return int(session.execute(stmt).scalar_one())


def recompute_total(session: Session, table_session: TableSession) -> int:
    """Flush pending line changes and write the recomputed total to the session."""
    session.flush()
    table_session.total_cents = compute_total_cents(session, table_session.id)
    session.flush()
    return table_session.total_cents


def _find_line(table_session: TableSession, line: OrderLine) -> Optional[TableSessionItem]:
    for item in table_session.items:
        if line.product_id is not None:
            if item.product_id == line.product_id:
                return item
        elif item.product_id is None and item.name == line.name:
            return item
    return None


def upsert_items_bulk(
    session: Session,
    notifier: Notifier,
    session_id: int,
    items: Iterable[Dict[str, Any]],
) -> TableSession:
    """
    Replace all lines of a session with *items* (quantity > 0 only).

    Stock is not adjusted: callers use this when stock was reconciled
    elsewhere or is not tracked for the flow. Repeated lines are added up.
    """
    with transaction(session):
        table_session = get_table_session(session, session_id)
        lines = parse_order_lines(session, items, combine=True)

        table_session.items.clear()
        session.flush()

        for line in lines:
            if line.quantity <= 0:
                continue
            table_session.items.append(
                TableSessionItem(
                    product_id=line.product_id,
                    name=line.name,
                    price_cents=line.price_cents,
                    quantity=line.quantity,
                )
            )
        total = recompute_total(session, table_session)
        logger.info("[upsert_bulk] session=%s lines=%d total_cents=%d",
                    session_id, len(table_session.items), total)

    publish_session(notifier, table_session)
    return table_session


def upsert_items_incremental(
    session: Session,
    notifier: Notifier,
    session_id: int,
    items: Iterable[Dict[str, Any]],
) -> TableSession:
    """
    Reconcile *items* line by line against the stored lines, moving stock by the diff.

    Works for any status except canceled (a canceled session's stock has already
    been returned). The broadcast carries the session's current status.
    """
    with transaction(session):
        table_session = get_table_session(session, session_id)
        if table_session.status == SessionStatus.CANCELED.value:
            raise InvalidState(f"Session {session_id} is canceled")
        lines = parse_order_lines(session, items)

        for line in lines:
            existing = _find_line(table_session, line)
            old_quantity = existing.quantity if existing is not None else 0

            if line.product_id is not None:
                diff = reconcile_line(session, line.product_id, old_quantity, line.quantity)
                if diff:
                    logger.debug("[upsert_incremental] session=%s product=%s diff=%+d",
                                 session_id, line.product_id, diff)

            if line.quantity == 0:
                if existing is not None:
                    table_session.items.remove(existing)
            elif existing is not None:
                existing.name = line.name
                existing.price_cents = line.price_cents
                existing.quantity = line.quantity
            else:
                table_session.items.append(
                    TableSessionItem(
                        product_id=line.product_id,
                        name=line.name,
                        price_cents=line.price_cents,
                        quantity=line.quantity,
                    )
                )
            session.flush()

        total = recompute_total(session, table_session)
        logger.info("[upsert_incremental] session=%s status=%s total_cents=%d",
                    session_id, table_session.status, total)

    publish_session(notifier, table_session)
    return table_session
