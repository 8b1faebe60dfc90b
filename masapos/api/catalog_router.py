"""Regions, tables, categories, products and stock tracking API."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from masapos.api.schemas import (
    AddTableRequest,
    CategoryResponse,
    CreateCategoryRequest,
    CreateProductRequest,
    CreateRegionRequest,
    ProductResponse,
    RegionResponse,
    RenameTableRequest,
    TableResponse,
    UpdateStockRequest,
)
from masapos.db import catalog_utils, stock_utils, transaction
from masapos.db.dependencies import get_db_session
from masapos.errors import PosError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["catalog"])


def _failed(action: str, e: Exception) -> HTTPException:
    logger.exception("[catalog_router] Failed to %s", action)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {e}")


# ---------- Regions ----------

@router.get("/regions", response_model=List[RegionResponse], summary="List regions")
async def list_regions(session: Session = Depends(get_db_session)) -> List[RegionResponse]:
    """All regions ordered by name."""
    try:
        return [RegionResponse.from_model(r) for r in catalog_utils.list_regions(session)]
    except Exception as e:
        raise _failed("list regions", e)


@router.post("/regions", response_model=RegionResponse, status_code=201, summary="Create region")
async def create_region(
    request: CreateRegionRequest,
    session: Session = Depends(get_db_session),
) -> RegionResponse:
    try:
        return RegionResponse.from_model(catalog_utils.create_region(session, request.name))
    except PosError:
        raise
    except Exception as e:
        raise _failed("create region", e)


@router.delete("/regions/{region_id}", summary="Delete region and its tables")
async def delete_region(region_id: int, session: Session = Depends(get_db_session)) -> Dict[str, Any]:
    """Refused with 409 while one of the region's tables is open."""
    try:
        catalog_utils.delete_region(session, region_id)
        return {"status": "deleted", "region_id": region_id}
    except PosError:
        raise
    except Exception as e:
        raise _failed("delete region", e)


# ---------- Tables ----------

@router.get("/tables", response_model=List[TableResponse], summary="List tables")
async def list_tables(
    region_id: Optional[int] = Query(None, alias="regionId"),
    session: Session = Depends(get_db_session),
) -> List[TableResponse]:
    """Tables of one region, or every table with its region name when `regionId` is omitted."""
    try:
        tables = catalog_utils.list_tables(session, region_id)
        return [TableResponse.from_model(t, with_region=region_id is None) for t in tables]
    except Exception as e:
        raise _failed("list tables", e)


@router.post("/tables", response_model=TableResponse, status_code=201, summary="Add a table to a region")
async def add_table(request: AddTableRequest, session: Session = Depends(get_db_session)) -> TableResponse:
    """The new table gets the next ordinal of its region."""
    try:
        return TableResponse.from_model(catalog_utils.add_table(session, request.region_id))
    except PosError:
        raise
    except Exception as e:
        raise _failed("add table", e)


@router.patch("/tables/{table_id}", response_model=TableResponse, summary="Rename a table")
async def rename_table(
    table_id: int,
    request: RenameTableRequest,
    session: Session = Depends(get_db_session),
) -> TableResponse:
    try:
        return TableResponse.from_model(catalog_utils.rename_table(session, table_id, request.alias))
    except PosError:
        raise
    except Exception as e:
        raise _failed("rename table", e)


@router.delete("/tables/{table_id}", summary="Delete a table")
async def delete_table(table_id: int, session: Session = Depends(get_db_session)) -> Dict[str, Any]:
    try:
        catalog_utils.delete_table(session, table_id)
        return {"status": "deleted", "table_id": table_id}
    except PosError:
        raise
    except Exception as e:
        raise _failed("delete table", e)


# ---------- Categories ----------

@router.get("/categories", response_model=List[CategoryResponse], summary="List categories")
async def list_categories(session: Session = Depends(get_db_session)) -> List[CategoryResponse]:
    try:
        return [CategoryResponse.from_model(c) for c in catalog_utils.list_categories(session)]
    except Exception as e:
        raise _failed("list categories", e)


@router.post("/categories", response_model=CategoryResponse, status_code=201, summary="Create category")
async def create_category(
    request: CreateCategoryRequest,
    session: Session = Depends(get_db_session),
) -> CategoryResponse:
    try:
        return CategoryResponse.from_model(catalog_utils.create_category(session, request.name))
    except PosError:
        raise
    except Exception as e:
        raise _failed("create category", e)


# ---------- Products ----------

@router.get("/products", response_model=List[ProductResponse], summary="List products")
async def list_products(session: Session = Depends(get_db_session)) -> List[ProductResponse]:
    """All products ordered by name."""
    try:
        return [ProductResponse.from_model(p) for p in catalog_utils.list_products(session)]
    except Exception as e:
        raise _failed("list products", e)


@router.post("/products", response_model=ProductResponse, status_code=201, summary="Create product")
async def create_product(
    request: CreateProductRequest,
    session: Session = Depends(get_db_session),
) -> ProductResponse:
    """
    - **name**: required
    - **price**: required, not negative
    - **categoryId**, **isFavorite**: optional
    """
    try:
        product = catalog_utils.create_product(
            session,
            request.name,
            request.price,
            category_id=request.category_id,
            is_favorite=request.is_favorite,
        )
        return ProductResponse.from_model(product)
    except PosError:
        raise
    except Exception as e:
        raise _failed("create product", e)


@router.delete("/products/{product_id}", summary="Delete product")
async def delete_product(product_id: int, session: Session = Depends(get_db_session)) -> Dict[str, Any]:
    try:
        catalog_utils.delete_product(session, product_id)
        return {"status": "deleted", "product_id": product_id}
    except PosError:
        raise
    except Exception as e:
        raise _failed("delete product", e)


# ---------- Stock tracking ----------

@router.get("/stock-list", response_model=List[ProductResponse], summary="Products in stock tracking")
async def list_stock_tracked(session: Session = Depends(get_db_session)) -> List[ProductResponse]:
    try:
        return [ProductResponse.from_model(p) for p in stock_utils.list_stock_tracked(session)]
    except Exception as e:
        raise _failed("list stock", e)


@router.delete("/stock-list/{product_id}", response_model=ProductResponse, summary="Stop tracking a product")
async def remove_from_stock_tracking(
    product_id: int,
    session: Session = Depends(get_db_session),
) -> ProductResponse:
    """Hides the product from the stock view; the product itself is kept."""
    try:
        with transaction(session):
            product = stock_utils.remove_from_stock_tracking(session, product_id)
        return ProductResponse.from_model(product)
    except PosError:
        raise
    except Exception as e:
        raise _failed("remove product from stock list", e)


@router.patch("/products/{product_id}/stock", response_model=ProductResponse, summary="Set stock and critical level")
async def update_stock(
    product_id: int,
    request: UpdateStockRequest,
    session: Session = Depends(get_db_session),
) -> ProductResponse:
    """
    - **stock**: units on hand (integer, not negative)
    - **critical**: warning threshold (integer, not negative)

    The product is added to the stock list.
    """
    try:
        with transaction(session):
            product = stock_utils.update_stock(session, product_id, request.stock, request.critical)
        return ProductResponse.from_model(product)
    except PosError:
        raise
    except Exception as e:
        raise _failed("update stock", e)
