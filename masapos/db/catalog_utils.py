"""Regions, tables, categories and products."""

import logging
from typing import Any, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased, selectinload

from masapos.db import transaction
from masapos.db.models import Category, Product, Region, SessionStatus, Table, TableSession, TableSessionItem
from masapos.errors import InvalidInput, InvalidState, NotFound
from masapos.utils.money import to_cents

logger = logging.getLogger(__name__)


def _require_name(name: Optional[str], what: str) -> str:
    name = (name or "").strip()
    if not name:
        raise InvalidInput(f"{what} name is required")
    return name


def _open_session_count(session: Session, table_ids: List[int]) -> int:
    if not table_ids:
        return 0
    stmt = (
        select(func.count(TableSession.id))
        .where(TableSession.table_id.in_(table_ids))
        .where(TableSession.status == SessionStatus.OPEN.value)
    )
    return int(session.execute(stmt).scalar_one())


# ---------- Regions ----------

def list_regions(session: Session) -> List[Region]:
    return list(session.execute(select(Region).order_by(Region.name)).scalars().all())


def create_region(session: Session, name: str) -> Region:
    name = _require_name(name, "Region")
    with transaction(session):
        existing = session.execute(select(Region).where(Region.name == name)).scalar_one_or_none()
        if existing is not None:
            raise InvalidState(f"Region '{name}' already exists")
        region = Region(name=name)
        session.add(region)
        session.flush()
        logger.info("[create_region] %s id=%s", name, region.id)
    return region


def delete_region(session: Session, region_id: int) -> None:
    """
    Delete a region together with its tables.

    Refused while any of its tables has an open session; historical sessions
    are kept and lose their table reference.
    """
    with transaction(session):
        region = session.get(Region, region_id)
        if region is None:
            raise NotFound("Region", region_id)
        if _open_session_count(session, [t.id for t in region.tables]):
            raise InvalidState(f"Region {region_id} has open tables")
        session.delete(region)
        logger.info("[delete_region] region=%s deleted", region_id)


# ---------- Tables ----------

def list_tables(session: Session, region_id: Optional[int] = None) -> List[Table]:
    """Tables of one region, or all tables (with their region) ordered by ordinal."""
    stmt = select(Table).options(selectinload(Table.region))
    if region_id is not None:
        stmt = stmt.where(Table.region_id == region_id)
    stmt = stmt.order_by(Table.table_id, Table.region_id)
    return list(session.execute(stmt).scalars().all())


def add_table(session: Session, region_id: int) -> Table:
    """Create the next table of a region; ordinals continue from the highest one."""
    with transaction(session):
        if session.get(Region, region_id) is None:
            raise NotFound("Region", region_id)
        highest = session.execute(
            select(func.max(Table.table_id)).where(Table.region_id == region_id)
        ).scalar_one()
        table = Table(region_id=region_id, table_id=(highest or 0) + 1)
        session.add(table)
        session.flush()
        logger.info("[add_table] region=%s ordinal=%s id=%s", region_id, table.table_id, table.id)
    return table


def rename_table(session: Session, table_id: int, alias: Optional[str]) -> Table:
    """Set or clear a table's display alias. The ordinal is unchanged."""
    with transaction(session):
        table = session.get(Table, table_id)
        if table is None:
            raise NotFound("Table", table_id)
        table.alias = (alias or "").strip() or None
        session.flush()
    return table


def delete_table(session: Session, table_id: int) -> None:
    """Delete a table unless it has an open session."""
    with transaction(session):
        table = session.get(Table, table_id)
        if table is None:
            raise NotFound("Table", table_id)
        if _open_session_count(session, [table.id]):
            raise InvalidState(f"Table {table_id} has an open session")
        session.delete(table)
        logger.info("[delete_table] table=%s deleted", table_id)


# ---------- Categories ----------

def list_categories(session: Session) -> List[Category]:
    return list(session.execute(select(Category).order_by(Category.name)).scalars().all())


def create_category(session: Session, name: str) -> Category:
    name = _require_name(name, "Category")
    with transaction(session):
        existing = session.execute(select(Category).where(Category.name == name)).scalar_one_or_none()
        if existing is not None:
            raise InvalidState(f"Category '{name}' already exists")
        category = Category(name=name)
        session.add(category)
        session.flush()
    return category


# ---------- Products ----------

def list_products(session: Session) -> List[Product]:
    return list(session.execute(select(Product).order_by(Product.name)).scalars().all())


def create_product(
    session: Session,
    name: str,
    price: Any,
    category_id: Optional[int] = None,
    is_favorite: bool = False,
) -> Product:
    """
    Create a product.

    Raises:
        InvalidInput: missing name, missing or negative price
        NotFound: unknown category
    """
    name = _require_name(name, "Product")
    if price is None:
        raise InvalidInput("price is required")
    try:
        price_cents = to_cents(price)
    except ValueError as e:
        raise InvalidInput(str(e))
    if price_cents < 0:
        raise InvalidInput("price cannot be negative")

    with transaction(session):
        if category_id is not None and session.get(Category, category_id) is None:
            raise NotFound("Category", category_id)
        product = Product(
            name=name,
            price_cents=price_cents,
            category_id=category_id,
            is_favorite=bool(is_favorite),
        )
        session.add(product)
        session.flush()
        logger.info("[create_product] %s id=%s price_cents=%d", name, product.id, price_cents)
    return product


def _orphan_name_clashes(session: Session, product_id: int) -> int:
    """Lines of *product_id* sharing a session and name with a line that has no product."""
    line = aliased(TableSessionItem)
    adhoc = aliased(TableSessionItem)
    stmt = (
        select(func.count())
        .select_from(line)
        .join(
            adhoc,
            and_(
                adhoc.table_session_id == line.table_session_id,
                adhoc.name == line.name,
                adhoc.product_id.is_(None),
            ),
        )
        .where(line.product_id == product_id)
    )
    return int(session.execute(stmt).scalar_one())


def delete_product(session: Session, product_id: int) -> None:
    """
    Delete a product; past order lines keep their name/price snapshot.

    Its lines lose the product reference and become ad hoc lines, so the
    delete is refused while one of them shares a session and name with an
    existing ad hoc line.

    Raises:
        NotFound: unknown product
        InvalidState: an order line would clash with an ad hoc line
    """
    try:
        with transaction(session):
            product = session.get(Product, product_id)
            if product is None:
                raise NotFound("Product", product_id)
            if _orphan_name_clashes(session, product_id):
                raise InvalidState(
                    f"Product {product_id} has order lines named like ad hoc lines of the same session"
                )
            session.delete(product)
            logger.info("[delete_product] product=%s deleted", product_id)
    except IntegrityError:
        raise InvalidState(f"Product {product_id} cannot be deleted while its order lines clash")
