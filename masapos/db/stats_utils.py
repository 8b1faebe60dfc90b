"""Payment statistics over a window of local days."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from masapos.db.models import Payment
from masapos.errors import InvalidInput
from masapos.utils.money import from_cents
from masapos.utils.time_utils import day_range_start, now_local_naive, start_of_day

MAX_DAY_RANGE = 366


def get_payment_stats(session: Session, days: int = 1, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Aggregate payments for the last *days* local days (today included).

    Returns:
        todayTotal: payments since local midnight
        methodTotals: {method: amount} over the window
        hourlyTotals: 24 amounts, index = local hour of day, over the window
        rangeStart / days: the window actually used
    """
    if not isinstance(days, int) or isinstance(days, bool) or not 1 <= days <= MAX_DAY_RANGE:
        raise InvalidInput(f"days must be between 1 and {MAX_DAY_RANGE}")

    now = now or now_local_naive()
    range_start = day_range_start(days, now)
    today_start = start_of_day(now)

    today_cents = session.execute(
        select(func.coalesce(func.sum(Payment.amount_cents), 0))
        .where(Payment.created_at >= today_start)
    ).scalar_one()

    method_rows = session.execute(
        select(Payment.method, func.sum(Payment.amount_cents))
        .where(Payment.created_at >= range_start)
        .group_by(Payment.method)
        .order_by(Payment.method)
    ).all()

    # Hour extraction is dialect specific, bucket in Python
    hourly_cents = [0] * 24
    rows = session.execute(
        select(Payment.created_at, Payment.amount_cents).where(Payment.created_at >= range_start)
    ).all()
    for created_at, amount_cents in rows:
        hourly_cents[created_at.hour] += amount_cents

    return {
        "todayTotal": from_cents(int(today_cents)),
        "methodTotals": {method: from_cents(int(total)) for method, total in method_rows},
        "hourlyTotals": [from_cents(c) for c in hourly_cents],
        "rangeStart": range_start.isoformat(),
        "days": days,
    }
