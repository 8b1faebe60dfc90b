"""Request/response models shared by the API routers.

JSON field names are camelCase (``sessionId``, ``regionId``...), Python
attributes stay snake_case. Money leaves the API as two-place numbers.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from masapos.db.models import Category, Payment, Product, Region, SessionStatus, Table, TableSession, TableSessionItem
from masapos.utils.money import from_cents


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------- Responses ----------

class RegionResponse(CamelModel):
    id: int
    name: str

    @classmethod
    def from_model(cls, region: Region) -> "RegionResponse":
        return cls(id=region.id, name=region.name)


class TableResponse(CamelModel):
    id: int
    region_id: int
    table_id: int
    alias: Optional[str] = None
    region_name: Optional[str] = None

    @classmethod
    def from_model(cls, table: Table, with_region: bool = False) -> "TableResponse":
        return cls(
            id=table.id,
            region_id=table.region_id,
            table_id=table.table_id,
            alias=table.alias,
            region_name=table.region.name if with_region and table.region else None,
        )


class CategoryResponse(CamelModel):
    id: int
    name: str

    @classmethod
    def from_model(cls, category: Category) -> "CategoryResponse":
        return cls(id=category.id, name=category.name)


class ProductResponse(CamelModel):
    id: int
    name: str
    price: float
    category_id: Optional[int] = None
    is_favorite: bool
    stock: int
    critical: int
    in_stock_list: bool
    is_critical: bool

    @classmethod
    def from_model(cls, product: Product) -> "ProductResponse":
        return cls(
            id=product.id,
            name=product.name,
            price=from_cents(product.price_cents),
            category_id=product.category_id,
            is_favorite=product.is_favorite,
            stock=product.stock,
            critical=product.critical,
            in_stock_list=product.in_stock_list,
            is_critical=product.is_critical,
        )


class ItemResponse(CamelModel):
    id: int
    product_id: Optional[int] = None
    name: str
    price: float
    quantity: int
    line_total: float

    @classmethod
    def from_model(cls, item: TableSessionItem) -> "ItemResponse":
        return cls(
            id=item.id,
            product_id=item.product_id,
            name=item.name,
            price=from_cents(item.price_cents),
            quantity=item.quantity,
            line_total=from_cents(item.line_total_cents),
        )


class PaymentResponse(CamelModel):
    id: int
    table_session_id: int
    method: str
    amount: float
    created_at: datetime

    @classmethod
    def from_model(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            table_session_id=payment.table_session_id,
            method=payment.method,
            amount=from_cents(payment.amount_cents),
            created_at=payment.created_at,
        )


class SessionResponse(CamelModel):
    id: int
    table_id: Optional[int] = None
    status: SessionStatus
    total: float
    payment_method: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    items: List[ItemResponse] = []

    @classmethod
    def from_model(cls, table_session: TableSession) -> "SessionResponse":
        return cls(**cls._fields_from(table_session))

    @staticmethod
    def _fields_from(table_session: TableSession) -> dict:
        return dict(
            id=table_session.id,
            table_id=table_session.table_id,
            status=SessionStatus(table_session.status),
            total=from_cents(table_session.total_cents),
            payment_method=table_session.payment_method,
            opened_at=table_session.opened_at,
            closed_at=table_session.closed_at,
            items=[ItemResponse.from_model(it) for it in table_session.items],
        )


class SessionDetailResponse(SessionResponse):
    payments: List[PaymentResponse] = []
    paid_total: float
    balance: float

    @classmethod
    def from_model(cls, table_session: TableSession) -> "SessionDetailResponse":
        paid_cents = sum(p.amount_cents for p in table_session.payments)
        return cls(
            **cls._fields_from(table_session),
            payments=[PaymentResponse.from_model(p) for p in table_session.payments],
            paid_total=from_cents(paid_cents),
            balance=from_cents(table_session.total_cents - paid_cents),
        )


class RegionTablesResponse(CamelModel):
    tables: List[TableResponse]
    session_map: Dict[int, SessionResponse]


class PartialPaymentResponse(CamelModel):
    payment: PaymentResponse
    session: Optional[SessionResponse] = None


class PaymentStatsResponse(CamelModel):
    today_total: float
    method_totals: Dict[str, float]
    hourly_totals: List[float]
    range_start: str
    days: int


# ---------- Requests ----------

class CreateRegionRequest(CamelModel):
    name: Optional[str] = None


class AddTableRequest(CamelModel):
    region_id: int


class RenameTableRequest(CamelModel):
    alias: Optional[str] = None


class CreateCategoryRequest(CamelModel):
    name: Optional[str] = None


class CreateProductRequest(CamelModel):
    name: Optional[str] = None
    price: Optional[float] = None
    category_id: Optional[int] = None
    is_favorite: bool = False


class UpdateStockRequest(CamelModel):
    stock: Optional[int] = None
    critical: Optional[int] = None


class OpenTableRequest(CamelModel):
    region_id: int
    table_id: int = Field(description="Table ordinal inside the region")


class SessionRequest(CamelModel):
    session_id: int


class PayTableRequest(CamelModel):
    session_id: int
    payment_method: Optional[str] = None


class PartialPaymentRequest(CamelModel):
    session_id: int
    method: Optional[str] = None
    amount: Optional[float] = None


class ItemInput(CamelModel):
    product_id: Optional[int] = None
    name: Optional[str] = None
    price: Optional[float] = None
    quantity: int


class UpsertItemsRequest(CamelModel):
    session_id: int
    items: List[ItemInput]


class TransferTableRequest(CamelModel):
    session_id: int
    new_table_id: int
