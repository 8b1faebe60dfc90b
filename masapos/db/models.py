"""
Canonical relational database models for masa-pos.

Money columns are stored as integer cents; timestamps are naive local time
(see app timezone in masapos.utils.time_utils).
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

from masapos.utils.time_utils import now_local_naive

Base = declarative_base()


class SessionStatus(str, enum.Enum):
    """Table session states. ``open`` is the only non-terminal one."""

    OPEN = "open"
    PAID = "paid"
    CANCELED = "canceled"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.OPEN


class Region(Base):
    """Top-level grouping of tables (terrace, garden, hall...)."""

    __tablename__ = "regions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)

    tables = relationship(
        "Table",
        back_populates="region",
        cascade="all, delete-orphan",
        order_by="Table.table_id",
    )

    def __repr__(self):
        return f"<Region(id={self.id}, name={self.name})>"


class Table(Base):
    """A physical table; ``table_id`` is its ordinal inside the region."""

    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False, index=True)
    table_id = Column(Integer, nullable=False)
    alias = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("region_id", "table_id", name="uq_tables_region_ordinal"),
    )

    region = relationship("Region", back_populates="tables")
    sessions = relationship("TableSession", back_populates="table")

    def __repr__(self):
        return f"<Table(id={self.id}, region_id={self.region_id}, table_id={self.table_id})>"


class Category(Base):
    """Product grouping."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)

    products = relationship("Product", back_populates="category")

    def __repr__(self):
        return f"<Category(id={self.id}, name={self.name})>"


class Product(Base):
    """Sellable product with an optional tracked stock counter."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    price_cents = Column(Integer, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    is_favorite = Column(Boolean, default=False, nullable=False)
    stock = Column(Integer, default=0, nullable=False)
    critical = Column(Integer, default=0, nullable=False)
    in_stock_list = Column(Boolean, default=False, nullable=False)  # shown in stock management

    category = relationship("Category", back_populates="products")

    @property
    def is_critical(self) -> bool:
        return (self.stock or 0) <= (self.critical or 0)

    def __repr__(self):
        return f"<Product(id={self.id}, name={self.name}, stock={self.stock})>"


class TableSession(Base):
    """One occupancy of a table, from open to a terminal status. Never deleted."""

    __tablename__ = "table_sessions"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), default=SessionStatus.OPEN.value, nullable=False)
    total_cents = Column(Integer, default=0, nullable=False)
    payment_method = Column(String(50), nullable=True)
    opened_at = Column(DateTime, default=now_local_naive, nullable=False)
    closed_at = Column(DateTime, nullable=True, index=True)

    __table_args__ = (
        Index("idx_table_sessions_status", "status"),
        # At most one open session per table
        Index(
            "uq_table_sessions_open_table",
            "table_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    table = relationship("Table", back_populates="sessions")
    items = relationship(
        "TableSessionItem",
        back_populates="table_session",
        cascade="all, delete-orphan",
        order_by="TableSessionItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="table_session",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    @property
    def session_status(self) -> SessionStatus:
        return SessionStatus(self.status)

    def __repr__(self):
        return f"<TableSession(id={self.id}, table_id={self.table_id}, status={self.status})>"


class TableSessionItem(Base):
    """Order line: product/name/price snapshot with a positive quantity."""

    __tablename__ = "table_session_items"

    id = Column(Integer, primary_key=True, index=True)
    table_session_id = Column(Integer, ForeignKey("table_sessions.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)

    __table_args__ = (
        Index(
            "uq_session_items_product",
            "table_session_id",
            "product_id",
            unique=True,
            sqlite_where=text("product_id IS NOT NULL"),
            postgresql_where=text("product_id IS NOT NULL"),
        ),
        Index(
            "uq_session_items_adhoc_name",
            "table_session_id",
            "name",
            unique=True,
            sqlite_where=text("product_id IS NULL"),
            postgresql_where=text("product_id IS NULL"),
        ),
    )

    table_session = relationship("TableSession", back_populates="items")
    product = relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def __repr__(self):
        return f"<TableSessionItem(id={self.id}, name={self.name}, quantity={self.quantity})>"


class Payment(Base):
    """Append-only payment applied toward a session total."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    table_session_id = Column(Integer, ForeignKey("table_sessions.id"), nullable=False, index=True)
    method = Column(String(50), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=now_local_naive, nullable=False, index=True)

    table_session = relationship("TableSession", back_populates="payments")

    def __repr__(self):
        return f"<Payment(id={self.id}, session={self.table_session_id}, amount_cents={self.amount_cents})>"
