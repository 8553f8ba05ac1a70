"""
Cash Shift Service ("turno de caja")

WHY: Cashier accountability. A shift records the float counted at the
start, and at close compares the cash counted in the drawer with what the
system expects from the sales rung up during the shift.

DESIGN PRINCIPLES:
- At most one open shift per (user, branch)
- Closed shifts are never reopened or recalculated
- Shift window is open-ended: every completed sale of the (user, branch)
  created at or after start_time counts, including sales rung up after the
  shift was meant to end but before it was closed
- Card sales go to the card total; every other method counts as cash
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Branch, CashShift, Sale, User
from ..models.sales import PAYMENT_CARD, SALE_COMPLETED
from ..models.shifts import SHIFT_CLOSED, SHIFT_OPEN
from ..time_utils import local_day_bounds, utcnow
from ..validation import coerce_amount
from .concurrency import lock_for_update, run_atomic
from .filters import ShiftFilter


def _open_shift_query(user_id: int, branch_id: int):
    return db.session.query(CashShift).filter_by(
        user_id=user_id,
        branch_id=branch_id,
        status=SHIFT_OPEN,
    )


def get_current_shift(user_id: int, branch_id: int) -> CashShift | None:
    """The open shift of (user, branch), or None."""
    return _open_shift_query(user_id, branch_id).first()


def start_shift(*, user_id: int, branch_id: int, start_amount) -> CashShift:
    """
    Open a shift with the counted float.

    Raises:
        ValidationError: start_amount missing or negative
        NotFoundError: unknown branch
        ConflictError: (user, branch) already has an open shift
    """
    start_amount = coerce_amount(start_amount, "start_amount")
    if not branch_id:
        raise ValidationError("A branch is required to open a cash shift")

    def _op():
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError(f"Branch {branch_id} not found")

        # Serializes concurrent starts by the same user on row-locking DBs
        lock_for_update(db.session.query(User).filter_by(id=user_id)).first()

        existing = get_current_shift(user_id, branch_id)
        if existing is not None:
            raise ConflictError(
                "You already have an open cash shift",
                details={"shift_id": existing.id},
            )

        shift = CashShift(
            user_id=user_id,
            branch_id=branch_id,
            status=SHIFT_OPEN,
            start_time=utcnow(),
            start_amount=start_amount,
        )
        db.session.add(shift)
        db.session.flush()
        return shift

    shift = run_atomic(_op)
    current_app.logger.info(
        "Cash shift %s opened by user %s at branch %s with %s",
        shift.id, user_id, branch_id, start_amount,
    )
    return shift


def shift_sales_query(shift: CashShift):
    """Completed sales counted in a shift's window."""
    q = db.session.query(Sale).filter(
        Sale.user_id == shift.user_id,
        Sale.branch_id == shift.branch_id,
        Sale.status == SALE_COMPLETED,
        Sale.created_at >= shift.start_time,
    )
    if shift.status == SHIFT_CLOSED and shift.end_time is not None:
        q = q.filter(Sale.created_at <= shift.end_time)
    return q


def _sales_totals(shift: CashShift) -> tuple[int, int, int]:
    rows = (
        shift_sales_query(shift)
        .with_entities(Sale.payment_method, func.coalesce(func.sum(Sale.total_amount), 0))
        .group_by(Sale.payment_method)
        .all()
    )
    cash_total = 0
    card_total = 0
    for method, amount in rows:
        if method == PAYMENT_CARD:
            card_total += int(amount)
        else:
            cash_total += int(amount)
    return cash_total + card_total, cash_total, card_total


def close_shift(*, user_id: int, branch_id: int, actual_cash, observations: str | None = None) -> CashShift:
    """
    Close the open shift of (user, branch) and reconcile the drawer.

        expected_cash = start_amount + cash_sales_total
        difference    = actual_cash - expected_cash

    Raises NotFoundError when there is no open shift.
    """
    actual_cash = coerce_amount(actual_cash, "actual_cash")

    def _op():
        shift = lock_for_update(_open_shift_query(user_id, branch_id)).first()
        if shift is None:
            raise NotFoundError("You do not have an open cash shift")

        sales_total, cash_total, card_total = _sales_totals(shift)
        expected = shift.start_amount + cash_total

        shift.end_time = utcnow()
        shift.status = SHIFT_CLOSED
        shift.sales_total = sales_total
        shift.cash_sales_total = cash_total
        shift.card_sales_total = card_total
        shift.expected_cash = expected
        shift.actual_cash = actual_cash
        shift.difference = actual_cash - expected
        shift.observations = observations
        db.session.flush()
        return shift

    shift = run_atomic(_op)
    log = current_app.logger.warning if shift.difference else current_app.logger.info
    log(
        "Cash shift %s closed: expected %s, counted %s, difference %s",
        shift.id, shift.expected_cash, shift.actual_cash, shift.difference,
    )
    return shift


def list_shifts(filters: ShiftFilter) -> list[CashShift]:
    """Shifts for an already-scoped filter, newest start first."""
    q = db.session.query(CashShift)
    if filters.branch_id is not None:
        q = q.filter(CashShift.branch_id == filters.branch_id)
    if filters.user_id is not None:
        q = q.filter(CashShift.user_id == filters.user_id)
    if filters.status is not None:
        q = q.filter(CashShift.status == filters.status)
    if filters.date:
        try:
            start, end = local_day_bounds(filters.date, current_app.config["LOCAL_TIMEZONE"])
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        q = q.filter(CashShift.start_time >= start, CashShift.start_time < end)
    return q.order_by(CashShift.start_time.desc(), CashShift.id.desc()).all()


def get_shift(shift_id: int) -> CashShift:
    shift = db.session.get(CashShift, shift_id)
    if shift is None:
        raise NotFoundError(f"Cash shift {shift_id} not found")
    return shift
