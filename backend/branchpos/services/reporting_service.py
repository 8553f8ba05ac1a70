# Overview: Read-only report data builders; rendering (PDF, print) happens downstream.

from __future__ import annotations

import time
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Branch, CashShift, InventoryRecord, Product, Sale
from ..models.sales import PAYMENT_CARD, PAYMENT_CASH
from ..time_utils import to_utc_z, utcnow
from . import ledger_service, sales_service, shift_service
from .filters import SaleFilter, ShiftFilter


def _generated_at() -> str:
    return to_utc_z(utcnow())


def import_receipt(document_id: str) -> dict:
    """
    Receipt of one spreadsheet import: every movement with the document id.

    Raises NotFoundError when the document has no movements.
    """
    movements = ledger_service.movements_for_document(document_id)
    if not movements:
        raise NotFoundError(f"No records found for import {document_id}")

    first = movements[0]
    return {
        "document_id": document_id,
        "generated_at": _generated_at(),
        "created_at": to_utc_z(first.created_at),
        "user": {"id": first.user.id, "name": first.user.name} if first.user else None,
        "items": [
            {
                "product": m.product.name if m.product else None,
                "barcode": m.product.barcode if m.product else None,
                "branch": m.branch.name if m.branch else None,
                "quantity": m.quantity,
                "lot": m.batch_lot,
                "expiry": m.batch_expiry.isoformat() if m.batch_expiry else None,
            }
            for m in movements
        ],
        "total_items": len(movements),
        "total_quantity": sum(m.quantity for m in movements),
    }


def transfer_document(document_id: str) -> dict:
    """
    Transfer guide: the departing (negative) legs plus the destination.

    Quantities are reported as positive units moved.
    """
    movements = [
        m for m in ledger_service.movements_for_document(document_id)
        if m.type == "TRANSFER"
    ]
    out_legs = [m for m in movements if m.quantity < 0]
    in_legs = [m for m in movements if m.quantity > 0]
    if not out_legs:
        raise NotFoundError(f"No records found for transfer {document_id}")

    destination = in_legs[0].branch if in_legs else None
    origins = sorted({m.branch.name for m in out_legs if m.branch})
    first = out_legs[0]
    return {
        "document_id": document_id,
        "generated_at": _generated_at(),
        "created_at": to_utc_z(first.created_at),
        "user": {"id": first.user.id, "name": first.user.name} if first.user else None,
        "from_branches": origins,
        "to_branch": destination.name if destination else None,
        "items": [
            {
                "product": m.product.name if m.product else None,
                "barcode": m.product.barcode if m.product else None,
                "from_branch": m.branch.name if m.branch else None,
                "quantity": -m.quantity,
            }
            for m in out_legs
        ],
        "total_items": len(out_legs),
        "total_quantity": sum(-m.quantity for m in out_legs),
    }


def _payment_totals(sales) -> dict:
    cash = sum(s.total_amount for s in sales if s.payment_method != PAYMENT_CARD)
    card = sum(s.total_amount for s in sales if s.payment_method == PAYMENT_CARD)
    return {PAYMENT_CASH: cash, PAYMENT_CARD: card, "total": cash + card}


def sales_report(filters: SaleFilter) -> dict:
    """Sales for an already-scoped filter with totals by payment method."""
    sales = sales_service.list_sales(filters)
    branch_name = None
    if filters.branch_id is not None:
        branch = db.session.get(Branch, filters.branch_id)
        branch_name = branch.name if branch else None
    return {
        "generated_at": _generated_at(),
        "date": filters.date,
        "branch": branch_name,
        "sales": [s.to_dict() for s in sales],
        "count": len(sales),
        "totals": _payment_totals(sales),
    }


def cash_shift_report(shift_id: int) -> dict:
    """One shift with the sales inside its window, oldest first."""
    shift = shift_service.get_shift(shift_id)
    sales = (
        shift_service.shift_sales_query(shift)
        .order_by(Sale.created_at, Sale.id)
        .all()
    )
    return {
        "generated_at": _generated_at(),
        "shift": shift.to_dict(),
        "sales": [
            {
                "id": s.id,
                "order_id": s.order_id,
                "created_at": to_utc_z(s.created_at),
                "payment_method": s.payment_method,
                "authorization_code": s.card_authorization_code,
                "total_amount": s.total_amount,
            }
            for s in sales
        ],
        "totals": _payment_totals(sales),
    }


def daily_cash_report(filters: ShiftFilter) -> dict:
    """Every shift of a day (and branch) with grand totals."""
    shifts: list[CashShift] = shift_service.list_shifts(filters)
    return {
        "generated_at": _generated_at(),
        "date": filters.date,
        "branch_id": filters.branch_id,
        "shifts": [s.to_dict() for s in shifts],
        "totals": {
            "cash_sales": sum(s.cash_sales_total or 0 for s in shifts),
            "card_sales": sum(s.card_sales_total or 0 for s in shifts),
            "sales": sum(s.sales_total or 0 for s in shifts),
            "difference": sum(s.difference or 0 for s in shifts),
        },
    }


def stock_checklist(items: Iterable[dict]) -> dict:
    """
    Counting sheet for the given (product, branch) pairs.

    Pairs with no inventory record are listed with system quantity 0 so the
    physical count can still be written down.
    """
    if not items:
        raise ValidationError("items are required")

    rows = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Each checklist item must be an object")
        product_id = item.get("product_id")
        branch_id = item.get("branch_id")
        product = db.session.get(Product, product_id) if product_id else None
        branch = db.session.get(Branch, branch_id) if branch_id else None
        if product is None or branch is None:
            current_app.logger.warning(
                "Stock checklist skipped unknown pair product=%s branch=%s", product_id, branch_id,
            )
            continue
        record = db.session.query(InventoryRecord).filter_by(product_id=product.id, branch_id=branch.id).first()
        rows.append({
            "product_id": product.id,
            "product": product.name,
            "barcode": product.barcode,
            "branch_id": branch.id,
            "branch": branch.name,
            "system_quantity": record.quantity if record else 0,
        })

    return {
        "document_id": f"CHK-{int(time.time() * 1000)}",
        "generated_at": _generated_at(),
        "items": rows,
    }
