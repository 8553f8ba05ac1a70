# Overview: Service-layer operations for the stock movement ledger.

from __future__ import annotations

from datetime import date, datetime

from ..extensions import db
from ..errors import ValidationError
from ..models import StockMovement
from ..models.inventory import MOVEMENT_TYPES
from branchpos.time_utils import utcnow
from .filters import MovementFilter, Page, paginate
"""
Stock Ledger Invariants (authoritative)

- Append-only: movements are never updated or deleted.
- No business rules here. Callers (stock_service, sales_service) validate
  stock availability first; the ledger accepts any well-formed entry.
- Movements are written inside the same DB transaction as the quantity
  change they explain, so SUM(quantity) per (product, branch) always equals
  InventoryRecord.quantity.
"""


def record_movement(
    *,
    product_id: int,
    branch_id: int,
    user_id: int,
    quantity: int,
    movement_type: str,
    reason: str | None = None,
    lot: str | None = None,
    expiry: date | None = None,
    document_id: str | None = None,
    created_at: datetime | None = None,
) -> StockMovement:
    """
    Append one immutable movement.

    Only structural checks: required references present, a known type and a
    non-zero integer quantity.
    """
    if not product_id or not branch_id or not user_id:
        raise ValidationError("product_id, branch_id and user_id are required for a stock movement")
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity == 0:
        raise ValidationError("movement quantity must be a non-zero integer")

    movement = StockMovement(
        product_id=product_id,
        branch_id=branch_id,
        user_id=user_id,
        quantity=quantity,
        type=movement_type,
        reason=reason,
        batch_lot=lot,
        batch_expiry=expiry,
        document_id=document_id,
        created_at=created_at or utcnow(),
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def _movement_query(filters: MovementFilter):
    q = db.session.query(StockMovement)
    if filters.product_id is not None:
        q = q.filter(StockMovement.product_id == filters.product_id)
    if filters.branch_id is not None:
        q = q.filter(StockMovement.branch_id == filters.branch_id)
    if filters.user_id is not None:
        q = q.filter(StockMovement.user_id == filters.user_id)
    if filters.movement_type is not None:
        q = q.filter(StockMovement.type == filters.movement_type)
    if filters.document_id is not None:
        q = q.filter(StockMovement.document_id == filters.document_id)
    if filters.start is not None:
        q = q.filter(StockMovement.created_at >= filters.start)
    if filters.end is not None:
        q = q.filter(StockMovement.created_at <= filters.end)
    return q


def query_movements(filters: MovementFilter) -> Page:
    """Filtered ledger page, newest first."""
    q = _movement_query(filters).order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    )
    return paginate(q, filters.page, filters.page_size)


def movements_for_document(document_id: str) -> list[StockMovement]:
    """All movements of one import / transfer document, in write order."""
    return (
        db.session.query(StockMovement)
        .filter_by(document_id=document_id)
        .order_by(StockMovement.id)
        .all()
    )


def ledger_balance(product_id: int, branch_id: int) -> int:
    """SUM of signed movement quantities for one (product, branch)."""
    total = (
        db.session.query(db.func.coalesce(db.func.sum(StockMovement.quantity), 0))
        .filter_by(product_id=product_id, branch_id=branch_id)
        .scalar()
    )
    return int(total or 0)
