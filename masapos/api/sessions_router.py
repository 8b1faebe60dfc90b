"""
Table session API router.

Opening, ordering, paying, cancelling, closing and transferring table
sessions. Every state change is broadcast as ``tableUpdated`` once committed.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from masapos.api.schemas import (
    ItemResponse,
    OpenTableRequest,
    PartialPaymentRequest,
    PartialPaymentResponse,
    PayTableRequest,
    PaymentResponse,
    RegionTablesResponse,
    SessionDetailResponse,
    SessionRequest,
    SessionResponse,
    TableResponse,
    TransferTableRequest,
    UpsertItemsRequest,
)
from masapos.broadcast import Notifier
from masapos.db import order_utils, session_utils
from masapos.db.dependencies import get_db_session, get_notifier
from masapos.errors import PosError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sessions"])


def _failed(action: str, e: Exception) -> HTTPException:
    logger.exception("[sessions_router] Failed to %s", action)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {e}")


@router.get("/region-tables-and-sessions", response_model=RegionTablesResponse,
            summary="Tables of a region with their open sessions")
async def region_tables_and_sessions(
    region_id: int = Query(..., alias="regionId"),
    session: Session = Depends(get_db_session),
) -> RegionTablesResponse:
    """
    Snapshot used by clients to draw a region.

    - **regionId**: Region ID
    - **Returns**: `tables` ordered by ordinal and `sessionMap` {table id -> open session}
    """
    try:
        tables, session_map = session_utils.get_region_tables_and_sessions(session, region_id)
        return RegionTablesResponse(
            tables=[TableResponse.from_model(t) for t in tables],
            session_map={table_id: SessionResponse.from_model(s) for table_id, s in session_map.items()},
        )
    except PosError:
        raise
    except Exception as e:
        raise _failed("load region tables", e)


@router.post("/open-table", response_model=SessionResponse, summary="Open a table (idempotent)")
async def open_table(
    request: OpenTableRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    """
    Return the table's open session, creating one with total 0 if needed.

    - **regionId**: Region ID
    - **tableId**: Table ordinal inside the region
    """
    try:
        table_session = session_utils.open_table(session, notifier, request.region_id, request.table_id)
        return SessionResponse.from_model(table_session)
    except PosError:
        raise
    except Exception as e:
        raise _failed("open table", e)


@router.post("/cancel-table", response_model=SessionResponse, summary="Cancel an open session")
async def cancel_table(
    request: SessionRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    """Cancel the session and return its product quantities to stock."""
    try:
        return SessionResponse.from_model(session_utils.cancel_table(session, notifier, request.session_id))
    except PosError:
        raise
    except Exception as e:
        raise _failed("cancel table", e)


@router.post("/pay-table", response_model=SessionResponse, summary="Pay an open session in full")
async def pay_table(
    request: PayTableRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    try:
        table_session = session_utils.pay_table(session, notifier, request.session_id, request.payment_method)
        return SessionResponse.from_model(table_session)
    except PosError:
        raise
    except Exception as e:
        raise _failed("pay table", e)


@router.post("/partial-payment", response_model=PartialPaymentResponse, summary="Record a partial payment")
async def partial_payment(
    request: PartialPaymentRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> PartialPaymentResponse:
    """
    Add a payment toward the session total.

    - **Returns**: the payment, and the session once payments cover the total
      (`session` is null while it stays open)
    """
    try:
        payment, table_session = session_utils.partial_payment(
            session, notifier, request.session_id, request.method, request.amount
        )
        return PartialPaymentResponse(
            payment=PaymentResponse.from_model(payment),
            session=SessionResponse.from_model(table_session) if table_session is not None else None,
        )
    except PosError:
        raise
    except Exception as e:
        raise _failed("record partial payment", e)


@router.post("/upsert-order-items-bulk", response_model=SessionResponse, summary="Replace all order lines")
async def upsert_order_items_bulk(
    request: UpsertItemsRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    """Replace the session's lines and recompute its total. Stock is untouched."""
    try:
        table_session = order_utils.upsert_items_bulk(
            session, notifier, request.session_id, [item.model_dump() for item in request.items]
        )
        return SessionResponse.from_model(table_session)
    except PosError:
        raise
    except Exception as e:
        raise _failed("upsert order items", e)


@router.post("/upsert-order-items", response_model=SessionResponse,
             summary="Upsert order lines with stock reconciliation")
async def upsert_order_items(
    request: UpsertItemsRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    """
    Reconcile each submitted line against the stored one.

    Quantities are the full desired count per line; product stock moves by the
    difference. Quantity 0 removes the line.
    """
    try:
        table_session = order_utils.upsert_items_incremental(
            session, notifier, request.session_id, [item.model_dump() for item in request.items]
        )
        return SessionResponse.from_model(table_session)
    except PosError:
        raise
    except Exception as e:
        raise _failed("upsert order items", e)


@router.post("/close-table", response_model=SessionResponse, summary="Close an open or paid session")
async def close_table(
    request: SessionRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    try:
        return SessionResponse.from_model(session_utils.close_table(session, notifier, request.session_id))
    except PosError:
        raise
    except Exception as e:
        raise _failed("close table", e)


@router.post("/transfer-table", response_model=SessionResponse, summary="Move a session to another table")
async def transfer_table(
    request: TransferTableRequest,
    session: Session = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
) -> SessionResponse:
    """
    - **sessionId**: open session to move
    - **newTableId**: destination table ID (not ordinal); must have no open session
    """
    try:
        table_session = session_utils.transfer_table(session, notifier, request.session_id, request.new_table_id)
        return SessionResponse.from_model(table_session)
    except PosError:
        raise
    except Exception as e:
        raise _failed("transfer table", e)


@router.get("/sessions", response_model=List[SessionResponse], summary="List sessions by status")
async def list_sessions(
    status: str = Query("paid"),
    session: Session = Depends(get_db_session),
) -> List[SessionResponse]:
    """Paid / canceled / closed history, most recently closed first."""
    try:
        return [SessionResponse.from_model(s) for s in session_utils.list_sessions(session, status)]
    except PosError:
        raise
    except Exception as e:
        raise _failed("list sessions", e)


@router.get("/sessions/{session_id}/items", response_model=List[ItemResponse], summary="Order lines of a session")
async def get_session_items(
    session_id: int,
    session: Session = Depends(get_db_session),
) -> List[ItemResponse]:
    try:
        return [ItemResponse.from_model(it) for it in session_utils.get_session_items(session, session_id)]
    except PosError:
        raise
    except Exception as e:
        raise _failed("load session items", e)


@router.get("/sessions/{session_id}", response_model=SessionDetailResponse, summary="Session with items and payments")
async def get_session_details(
    session_id: int,
    session: Session = Depends(get_db_session),
) -> SessionDetailResponse:
    try:
        return SessionDetailResponse.from_model(session_utils.get_session_details(session, session_id))
    except PosError:
        raise
    except Exception as e:
        raise _failed("load session", e)
