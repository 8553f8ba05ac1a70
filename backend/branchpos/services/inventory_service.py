# Overview: Service-layer operations for per-branch inventory records.

# backend/branchpos/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InsufficientStockError, ValidationError
from ..models import InventoryBatch, InventoryRecord, Product
from branchpos.time_utils import utcnow
from .filters import InventoryFilter, Page, paginate
"""
Inventory Invariants (authoritative)

Storage model:
- One InventoryRecord per (product, branch); created lazily with quantity 0.
- quantity is a stored counter, explained by the stock ledger:
    quantity == SUM(stock_movements.quantity) for the pair.

Concurrency:
- quantity is only ever changed by a single conditional UPDATE:
    UPDATE ... SET quantity = quantity + :delta
    WHERE id = :id AND quantity + :delta >= 0
  A zero rowcount means the deduction lost (insufficient stock). There is
  no read-modify-write, so concurrent requests can not lose updates.
- Record creation uses INSERT ... ON CONFLICT DO NOTHING where the dialect
  supports it (SAVEPOINT + IntegrityError elsewhere), so two first-receipts
  for the same pair both succeed.

Batches:
- Appended on positive adjustments that carry lot info; never removed or
  decremented. They describe what was received, not what is left.
"""


@dataclass(frozen=True)
class BatchInfo:
    lot: str | None = None
    expiry: date | None = None


SORT_KEYS = {
    "quantity": InventoryRecord.quantity,
    "last_updated": InventoryRecord.last_updated,
    "name": Product.name,
    "barcode": Product.barcode,
    "threshold": InventoryRecord.low_stock_threshold,
}


def get_record(product_id: int, branch_id: int) -> InventoryRecord | None:
    return db.session.query(InventoryRecord).filter_by(
        product_id=product_id,
        branch_id=branch_id,
    ).first()


def _insert_if_absent(values: dict) -> None:
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        try:
            with db.session.begin_nested():
                db.session.add(InventoryRecord(**values))
        except IntegrityError:
            # Lost the race to a concurrent first receipt; the row exists now
            current_app.logger.info(
                "Inventory record for product %s branch %s created concurrently",
                values["product_id"], values["branch_id"],
            )
        return

    stmt = insert(InventoryRecord).values(**values).on_conflict_do_nothing(
        index_elements=["product_id", "branch_id"],
    )
    db.session.execute(stmt)


def get_or_create(product_id: int, branch_id: int) -> InventoryRecord:
    """
    Existing record for (product, branch) or a new one at quantity 0.

    Idempotent: concurrent callers for the same key end up with the same row.
    """
    record = get_record(product_id, branch_id)
    if record is not None:
        return record

    _insert_if_absent({
        "product_id": product_id,
        "branch_id": branch_id,
        "quantity": 0,
        "low_stock_threshold": current_app.config.get("LOW_STOCK_THRESHOLD_DEFAULT", 5),
        "last_updated": utcnow(),
    })
    return get_record(product_id, branch_id)


def adjust_quantity(
    product_id: int,
    branch_id: int,
    delta: int,
    batch: BatchInfo | None = None,
) -> InventoryRecord:
    """
    Apply a signed delta to the on-hand quantity.

    - delta > 0 creates the record if needed and appends a batch when batch
      info is given.
    - delta < 0 requires an existing record with enough stock; raises
      InsufficientStockError otherwise and changes nothing.

    Does not commit and does not write the ledger; callers pair it with
    ledger_service.record_movement in the same transaction.
    """
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    if delta > 0:
        record = get_or_create(product_id, branch_id)
    else:
        record = get_record(product_id, branch_id)
        if record is None:
            raise InsufficientStockError(
                f"No stock for product {product_id} in branch {branch_id}",
                details={"product_id": product_id, "branch_id": branch_id, "available": 0, "requested": -delta},
            )

    now = utcnow()
    stmt = (
        update(InventoryRecord)
        .where(InventoryRecord.id == record.id)
        .where(InventoryRecord.quantity + delta >= 0)
        .values(quantity=InventoryRecord.quantity + delta, last_updated=now)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount == 0:
        db.session.refresh(record)
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id} in branch {branch_id}. "
            f"Available: {record.quantity}, requested: {-delta}",
            details={
                "product_id": product_id,
                "branch_id": branch_id,
                "available": record.quantity,
                "requested": -delta,
            },
        )

    if delta > 0 and batch is not None:
        db.session.add(InventoryBatch(
            inventory_id=record.id,
            lot=batch.lot,
            expiry=batch.expiry,
            quantity=delta,
            received_at=now,
        ))
        db.session.flush()

    db.session.refresh(record)
    return record


def available_quantity(product_id: int, branch_id: int) -> int:
    record = get_record(product_id, branch_id)
    return record.quantity if record else 0


def query_inventory(filters: InventoryFilter) -> Page:
    """
    Inventory listing with branch / search / status filters.

    status:
    - out: quantity == 0
    - low: quantity <= low_stock_threshold (includes out)
    - ok:  quantity > 0
    """
    q = db.session.query(InventoryRecord).join(Product, InventoryRecord.product_id == Product.id)

    if filters.branch_id is not None:
        q = q.filter(InventoryRecord.branch_id == filters.branch_id)
    if filters.product_id is not None:
        q = q.filter(InventoryRecord.product_id == filters.product_id)

    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.barcode.ilike(pattern)))

    if filters.status == "out":
        q = q.filter(InventoryRecord.quantity == 0)
    elif filters.status == "low":
        q = q.filter(InventoryRecord.quantity <= InventoryRecord.low_stock_threshold)
    elif filters.status == "ok":
        q = q.filter(InventoryRecord.quantity > 0)

    q = q.order_by(*_sort_clauses(filters.sort), InventoryRecord.id.desc())
    return paginate(q, filters.page, filters.page_size)


def _sort_clauses(sort: str | None) -> list:
    """
    "name,-quantity" style sort string limited to SORT_KEYS.

    Defaults to most recently updated first.
    """
    if not sort:
        return [InventoryRecord.last_updated.desc()]

    clauses = []
    for part in sort.split(","):
        part = part.strip()
        if not part:
            continue
        descending = part.startswith("-")
        key = part.lstrip("-")
        column = SORT_KEYS.get(key)
        if column is None:
            raise ValidationError(f"Unsupported sort key: {key}")
        clauses.append(column.desc() if descending else column.asc())
    return clauses or [InventoryRecord.last_updated.desc()]


def set_low_stock_threshold(product_id: int, branch_id: int, threshold: int) -> InventoryRecord:
    if threshold < 0:
        raise ValidationError("low_stock_threshold must be >= 0")
    record = get_or_create(product_id, branch_id)
    record.low_stock_threshold = threshold
    db.session.commit()
    return record
