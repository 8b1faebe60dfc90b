"""Payment statistics API."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from masapos.api.schemas import PaymentStatsResponse
from masapos.db.dependencies import get_db_session
from masapos.db.stats_utils import MAX_DAY_RANGE, get_payment_stats
from masapos.errors import PosError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/statistics", tags=["statistics"])


@router.get("/payments", response_model=PaymentStatsResponse, summary="Payment totals")
async def payment_stats(
    days: int = Query(1, ge=1, le=MAX_DAY_RANGE, description="Window in local days, today included"),
    session: Session = Depends(get_db_session),
) -> PaymentStatsResponse:
    """
    - **todayTotal**: payments since local midnight
    - **methodTotals**: totals per payment method over the window
    - **hourlyTotals**: 24 totals by local hour of day over the window
    """
    try:
        return PaymentStatsResponse(**_to_fields(get_payment_stats(session, days)))
    except PosError:
        raise
    except Exception as e:
        logger.exception("[stats_router] Failed to compute payment stats")
        raise HTTPException(status_code=500, detail=f"Failed to compute payment stats: {e}")


def _to_fields(stats: dict) -> dict:
    return {
        "today_total": stats["todayTotal"],
        "method_totals": stats["methodTotals"],
        "hourly_totals": stats["hourlyTotals"],
        "range_start": stats["rangeStart"],
        "days": stats["days"],
    }
