"""Table session lifecycle: open, cancel, pay, partial payment, close, transfer.

A session starts ``open`` and ends in one of ``paid``, ``canceled`` or
``closed``. Every transition runs in one transaction and is broadcast after
commit through the notifier handed in by the caller.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from masapos.broadcast import Notifier, publish_session
from masapos.db import transaction
from masapos.db.models import Payment, Region, SessionStatus, Table, TableSession, TableSessionItem
from masapos.db.order_utils import get_table_session
from masapos.db.stock_utils import restock_session_items
from masapos.errors import InvalidInput, InvalidState, NotFound
from masapos.utils.money import to_cents
from masapos.utils.time_utils import now_local_naive

logger = logging.getLogger(__name__)

CLOSABLE_STATUSES = (SessionStatus.OPEN.value, SessionStatus.PAID.value)


# ---------- Lookups ----------

def find_table(session: Session, region_id: int, table_ordinal: int) -> Table:
    """Find a table by region and ordinal or raise NotFound."""
    stmt = (
        select(Table)
        .where(Table.region_id == region_id)
        .where(Table.table_id == table_ordinal)
    )
    table = session.execute(stmt).scalar_one_or_none()
    if table is None:
        raise NotFound(f"Table {table_ordinal} in region", region_id)
    return table


def find_open_session(session: Session, table_id: int) -> Optional[TableSession]:
    """Return the open session of a table, if any."""
    stmt = (
        select(TableSession)
        .where(TableSession.table_id == table_id)
        .where(TableSession.status == SessionStatus.OPEN.value)
    )
    return session.execute(stmt).scalar_one_or_none()


def paid_total_cents(session: Session, table_session_id: int) -> int:
    """Sum of all payments recorded against a session."""
    stmt = (
        select(func.coalesce(func.sum(Payment.amount_cents), 0))
        .where(Payment.table_session_id == table_session_id)
    )
    return int(session.execute(stmt).scalar_one())


def _require_open(table_session: TableSession) -> None:
    if table_session.session_status.is_terminal:
        raise InvalidState(f"Session {table_session.id} is not open (status={table_session.status})")


def _require_method(method: Optional[str]) -> str:
    method = (method or "").strip()
    if not method:
        raise InvalidInput("payment method is required")
    return method


def _finish(table_session: TableSession, status: SessionStatus) -> None:
    table_session.status = status.value
    table_session.closed_at = now_local_naive()


def _mark_paid(table_session: TableSession, method: str) -> None:
    _finish(table_session, SessionStatus.PAID)
    table_session.payment_method = method


# ---------- Transitions ----------

def open_table(session: Session, notifier: Notifier, region_id: int, table_ordinal: int) -> TableSession:
    """
    Open a table: return its open session or create one with total 0.

    Idempotent while the session stays open. When two requests race to
    create, the store's one-open-session-per-table index rejects the loser,
    which then returns the winner's session.

    Raises:
        NotFound: no table with that ordinal in the region
    """
    try:
        with transaction(session):
            table = find_table(session, region_id, table_ordinal)
            table_session = find_open_session(session, table.id)
            if table_session is None:
                table_session = TableSession(
                    table_id=table.id,
                    status=SessionStatus.OPEN.value,
                    total_cents=0,
                )
                session.add(table_session)
                session.flush()
                logger.info("[open_table] region=%s table=%s new session=%s",
                            region_id, table_ordinal, table_session.id)
    except IntegrityError:
        logger.info("[open_table] concurrent open on region=%s table=%s, reusing winner",
                    region_id, table_ordinal)
        table = find_table(session, region_id, table_ordinal)
        table_session = find_open_session(session, table.id)
        if table_session is None:
            raise

    publish_session(notifier, table_session)
    return table_session


def cancel_table(session: Session, notifier: Notifier, session_id: int) -> TableSession:
    """
    Cancel an open session and return its product-linked quantities to stock.

    Raises:
        NotFound: unknown session
        InvalidState: session is not open (so stock is never returned twice)
    """
    with transaction(session):
        table_session = get_table_session(session, session_id)
        _require_open(table_session)
        restock_session_items(session, table_session)
        _finish(table_session, SessionStatus.CANCELED)
        session.flush()
        logger.info("[cancel_table] session=%s canceled", session_id)

    publish_session(notifier, table_session)
    return table_session


def pay_table(session: Session, notifier: Notifier, session_id: int, payment_method: str) -> TableSession:
    """
    Settle an open session in full.

    Any outstanding balance (total minus partial payments) is recorded as a
    payment with *payment_method* before the session moves to paid.

    Raises:
        InvalidInput: empty payment method
        NotFound: unknown session
        InvalidState: session is not open
    """
    method = _require_method(payment_method)
    with transaction(session):
        table_session = get_table_session(session, session_id)
        _require_open(table_session)

        balance = table_session.total_cents - paid_total_cents(session, table_session.id)
        if balance > 0:
            session.add(Payment(table_session_id=table_session.id, method=method, amount_cents=balance))

        _mark_paid(table_session, method)
        session.flush()
        logger.info("[pay_table] session=%s paid by %s (balance_cents=%d)", session_id, method, max(balance, 0))

    publish_session(notifier, table_session)
    return table_session


def partial_payment(
    session: Session,
    notifier: Notifier,
    session_id: int,
    method: str,
    amount,
) -> Tuple[Payment, Optional[TableSession]]:
    """
    Record a payment toward an open session.

    Returns ``(payment, session)`` when the payments now cover the total and the
    session moved to paid, ``(payment, None)`` while it stays open.
    Overpayment is accepted.

    Raises:
        InvalidInput: empty method or non-positive amount
        NotFound: unknown session
        InvalidState: session is not open
    """
    method = _require_method(method)
    if amount is None:
        raise InvalidInput("amount is required")
    try:
        amount_cents = to_cents(amount)
    except ValueError as e:
        raise InvalidInput(str(e))
    if amount_cents <= 0:
        raise InvalidInput("amount must be positive")

    with transaction(session):
        table_session = get_table_session(session, session_id)
        _require_open(table_session)

        payment = Payment(table_session_id=table_session.id, method=method, amount_cents=amount_cents)
        session.add(payment)
        session.flush()

        paid = paid_total_cents(session, table_session.id)
        completed = paid >= table_session.total_cents
        if completed:
            _mark_paid(table_session, method)
            session.flush()
        logger.info("[partial_payment] session=%s +%d cents, paid=%d/%d%s",
                    session_id, amount_cents, paid, table_session.total_cents,
                    " -> paid" if completed else "")

    if not completed:
        return payment, None
    publish_session(notifier, table_session)
    return payment, table_session


def close_table(session: Session, notifier: Notifier, session_id: int) -> TableSession:
    """
    Close a session administratively.

    Allowed from open (e.g. a comped table) and paid; canceled and closed
    sessions stay as they are.

    Raises:
        NotFound: unknown session
        InvalidState: session is canceled or already closed
    """
    with transaction(session):
        table_session = get_table_session(session, session_id)
        if table_session.status not in CLOSABLE_STATUSES:
            raise InvalidState(f"Session {session_id} cannot be closed (status={table_session.status})")
        _finish(table_session, SessionStatus.CLOSED)
        session.flush()
        logger.info("[close_table] session=%s closed", session_id)

    publish_session(notifier, table_session)
    return table_session


def transfer_table(session: Session, notifier: Notifier, session_id: int, new_table_id: int) -> TableSession:
    """
    Move an open session to another (empty) table.

    Raises:
        NotFound: unknown session or destination table
        InvalidState: session not open, or destination already has an open session
    """
    try:
        with transaction(session):
            table_session = get_table_session(session, session_id)
            _require_open(table_session)
            destination = session.get(Table, new_table_id)
            if destination is None:
                raise NotFound("Table", new_table_id)

            if destination.id != table_session.table_id:
                occupant = find_open_session(session, destination.id)
                if occupant is not None:
                    raise InvalidState(f"Table {new_table_id} already has open session {occupant.id}")
                previous = table_session.table_id
                table_session.table_id = destination.id
                session.flush()
                logger.info("[transfer_table] session=%s table %s -> %s", session_id, previous, destination.id)
    except IntegrityError:
        raise InvalidState(f"Table {new_table_id} already has an open session")

    publish_session(notifier, table_session)
    return table_session


# ---------- Reads ----------

def get_session_items(session: Session, session_id: int) -> List[TableSessionItem]:
    """Lines of a session in insertion order."""
    return list(get_table_session(session, session_id).items)


def get_session_details(session: Session, session_id: int) -> TableSession:
    """Session with items and payments loaded."""
    stmt = (
        select(TableSession)
        .where(TableSession.id == session_id)
        .options(selectinload(TableSession.items), selectinload(TableSession.payments))
    )
    table_session = session.execute(stmt).scalar_one_or_none()
    if table_session is None:
        raise NotFound("Session", session_id)
    return table_session


def list_sessions(session: Session, status: str) -> List[TableSession]:
    """Sessions in *status*, most recently closed first."""
    try:
        status = SessionStatus(status).value
    except ValueError:
        raise InvalidInput(f"Unknown session status '{status}'")
    stmt = (
        select(TableSession)
        .where(TableSession.status == status)
        .options(selectinload(TableSession.items))
        .order_by(TableSession.closed_at.desc(), TableSession.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_region_tables_and_sessions(session: Session, region_id: int) -> Tuple[List[Table], Dict[int, TableSession]]:
    """
    Tables of a region (by ordinal) and their open sessions keyed by table id.

    Raises:
        NotFound: unknown region
    """
    if session.get(Region, region_id) is None:
        raise NotFound("Region", region_id)

    tables = session.execute(
        select(Table).where(Table.region_id == region_id).order_by(Table.table_id)
    ).scalars().all()
    table_ids = [t.id for t in tables]
    if not table_ids:
        return [], {}

    open_sessions = session.execute(
        select(TableSession)
        .where(TableSession.table_id.in_(table_ids))
        .where(TableSession.status == SessionStatus.OPEN.value)
        .options(selectinload(TableSession.items))
    ).scalars().all()
    return list(tables), {s.table_id: s for s in open_sessions}
