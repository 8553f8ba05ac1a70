# backend/branchpos/services/stock_service.py
"""
Stock operations: receive, transfer, bulk transfer and spreadsheet import.

WHY: Every quantity change must be explained by a ledger movement written
in the same transaction. This module is the only place that pairs
inventory_service.adjust_quantity with ledger_service.record_movement.

FAILURE POLICY:
- Single operations (receive, transfer) are all-or-nothing: one commit at
  the end, full rollback on any error. A rejected transfer leaves both
  branches and the ledger untouched.
- Batch operations (bulk_transfer, import_confirm) are best-effort per
  item: an item with missing references or insufficient source stock is
  skipped and the rest continue. The returned count is the number of items
  actually applied, which can be lower than the input count.
"""
from __future__ import annotations

import random
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..events import emit, stock_updated
from ..models import Branch, InventoryRecord, Product
from ..time_utils import parse_expiry
from ..validation import coerce_positive_int
from . import inventory_service, ledger_service
from .concurrency import run_atomic
from .inventory_service import BatchInfo


TRANSFER_LOT = "TRANSFER"
IMPORT_LOT = "IMPORT"

ROW_VALID = "Valid"
ROW_ERROR = "Error"


@dataclass
class TransferResult:
    document_id: str
    source: InventoryRecord
    destination: InventoryRecord

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "source": {"branch_id": self.source.branch_id, "quantity": self.source.quantity},
            "destination": {"branch_id": self.destination.branch_id, "quantity": self.destination.quantity},
        }


@dataclass
class BatchResult:
    """Outcome of a best-effort batch: applied count, shared document id, skipped items."""
    count: int
    document_id: str
    skipped: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "document_id": self.document_id,
            "skipped": self.skipped,
        }


@dataclass
class PreviewRow:
    row: int
    barcode: Any
    product_name: str
    product_id: int | None
    branch_name: Any
    branch_id: int | None
    quantity: Any
    lot: Any
    expiry: Any
    status: str
    error: str | None = None

    def to_dict(self) -> dict:
        expiry = self.expiry
        if hasattr(expiry, "isoformat"):
            expiry = expiry.isoformat()
        return {
            "row": self.row,
            "barcode": self.barcode,
            "product_name": self.product_name,
            "product_id": self.product_id,
            "branch_name": self.branch_name,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "lot": self.lot,
            "expiry": expiry,
            "status": self.status,
            "error": self.error,
        }


# =============================================================================
# DOCUMENT IDS
# =============================================================================

def _millis() -> int:
    return int(time.time() * 1000)


def new_import_document_id() -> str:
    """IMPORT-<ms timestamp>-<0..999>, groups every movement of one import."""
    return f"IMPORT-{_millis()}-{random.randint(0, 999)}"


def new_transfer_document_id() -> str:
    """TRANS-<ms timestamp>-<hex>, groups both legs of every transferred item."""
    return f"TRANS-{_millis()}-{secrets.token_hex(2)}"


# =============================================================================
# HELPERS
# =============================================================================

def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id) if product_id else None
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _require_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id) if branch_id else None
    if branch is None:
        raise NotFoundError(f"Branch {branch_id} not found")
    return branch


def _receive_inner(
    *,
    product_id: int,
    branch_id: int,
    quantity: int,
    user_id: int,
    lot: str | None,
    expiry,
    reason: str,
    document_id: str | None = None,
) -> InventoryRecord:
    """Core receive logic without validation, retry or commit."""
    record = inventory_service.adjust_quantity(
        product_id,
        branch_id,
        quantity,
        batch=BatchInfo(lot=lot, expiry=expiry),
    )
    ledger_service.record_movement(
        product_id=product_id,
        branch_id=branch_id,
        user_id=user_id,
        quantity=quantity,
        movement_type="IN",
        reason=reason,
        lot=lot,
        expiry=expiry,
        document_id=document_id,
    )
    return record


def _transfer_inner(
    *,
    product_id: int,
    from_branch: Branch,
    to_branch: Branch,
    quantity: int,
    user_id: int,
    document_id: str,
    out_reason: str,
    in_reason: str,
) -> tuple[InventoryRecord, InventoryRecord]:
    """
    Move quantity between branches: OUT leg first, then IN leg.

    The deduction is the conditional decrement, so it raises
    InsufficientStockError before anything is written for this item.
    """
    source = inventory_service.adjust_quantity(product_id, from_branch.id, -quantity)
    ledger_service.record_movement(
        product_id=product_id,
        branch_id=from_branch.id,
        user_id=user_id,
        quantity=-quantity,
        movement_type="TRANSFER",
        reason=out_reason,
        document_id=document_id,
    )

    destination = inventory_service.adjust_quantity(
        product_id,
        to_branch.id,
        quantity,
        batch=BatchInfo(lot=TRANSFER_LOT),
    )
    ledger_service.record_movement(
        product_id=product_id,
        branch_id=to_branch.id,
        user_id=user_id,
        quantity=quantity,
        movement_type="TRANSFER",
        reason=in_reason,
        lot=TRANSFER_LOT,
        document_id=document_id,
    )
    return source, destination


# =============================================================================
# RECEIVE
# =============================================================================

def receive_stock(
    *,
    product_id: int,
    branch_id: int,
    quantity,
    user_id: int,
    lot: str | None = None,
    expiry=None,
    reason: str | None = None,
) -> InventoryRecord:
    """
    Receive stock into a branch (type IN).

    Creates the inventory record on first receipt and appends a batch with
    the lot/expiry.
    """
    product_id = coerce_positive_int(product_id, "product_id")
    branch_id = coerce_positive_int(branch_id, "branch_id")
    quantity = coerce_positive_int(quantity, "quantity")
    try:
        expiry_date = parse_expiry(expiry)
    except ValueError:
        raise ValidationError("expiry must be a date (YYYY-MM-DD)")

    def _op():
        _require_product(product_id)
        _require_branch(branch_id)
        return _receive_inner(
            product_id=product_id,
            branch_id=branch_id,
            quantity=quantity,
            user_id=user_id,
            lot=lot,
            expiry=expiry_date,
            reason=reason or "Manual Entry",
        )

    record = run_atomic(_op)

    current_app.logger.info(
        "Received %s units of product %s at branch %s (lot=%s)",
        quantity, product_id, branch_id, lot,
    )
    emit(stock_updated, {
        "product_id": product_id,
        "branch_id": branch_id,
        "quantity": record.quantity,
    })
    return record


# =============================================================================
# TRANSFERS
# =============================================================================

def transfer_stock(
    *,
    product_id: int,
    from_branch_id: int,
    to_branch_id: int,
    quantity,
    user_id: int,
    reason: str | None = None,
) -> TransferResult:
    """
    Move stock from one branch to another.

    All-or-nothing: if the source record is missing or short, raises
    InsufficientStockError and neither branch changes. On success two
    TRANSFER movements share one document id: a negative one at the source
    and a positive one (lot "TRANSFER") at the destination.
    """
    product_id = coerce_positive_int(product_id, "product_id")
    from_branch_id = coerce_positive_int(from_branch_id, "from_branch_id")
    to_branch_id = coerce_positive_int(to_branch_id, "to_branch_id")
    quantity = coerce_positive_int(quantity, "quantity")
    if from_branch_id == to_branch_id:
        raise ValidationError("Cannot transfer to the same branch")

    def _op():
        _require_product(product_id)
        from_branch = _require_branch(from_branch_id)
        to_branch = _require_branch(to_branch_id)

        available = inventory_service.available_quantity(product_id, from_branch_id)
        if available < quantity:
            raise InsufficientStockError(
                "Insufficient stock in source branch",
                details={"available": available, "requested": quantity},
            )

        document_id = new_transfer_document_id()
        source, destination = _transfer_inner(
            product_id=product_id,
            from_branch=from_branch,
            to_branch=to_branch,
            quantity=quantity,
            user_id=user_id,
            document_id=document_id,
            out_reason=reason or f"Transfer to {to_branch.name}",
            in_reason=reason or f"Transfer from {from_branch.name}",
        )
        return TransferResult(document_id=document_id, source=source, destination=destination)

    result = run_atomic(_op)

    current_app.logger.info(
        "Transferred %s units of product %s from branch %s to %s (%s)",
        quantity, product_id, from_branch_id, to_branch_id, result.document_id,
    )
    emit(stock_updated, {
        "product_id": product_id,
        "document_id": result.document_id,
        "branches": [
            {"id": from_branch_id, "quantity": result.source.quantity},
            {"id": to_branch_id, "quantity": result.destination.quantity},
        ],
    })
    return result


def bulk_transfer(
    *,
    items: Sequence[dict],
    to_branch_id: int,
    user_id: int,
    reason: str | None = None,
) -> BatchResult:
    """
    Transfer many items into one destination branch under one document id.

    Best-effort on purpose: unlike transfer_stock, an item whose source
    record is missing or short is skipped, not failed. Only the count of
    transferred items is reported back (plus the skipped list).

    items: [{"product_id", "from_branch_id", "quantity"}]
    """
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("Invalid transfer data")
    to_branch_id = coerce_positive_int(to_branch_id, "to_branch_id")

    def _op():
        to_branch = _require_branch(to_branch_id)
        document_id = new_transfer_document_id()
        transferred = 0
        skipped: list[dict] = []

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                skipped.append({"index": index, "reason": "malformed item"})
                continue
            if item.get("product_id") in (None, "") or item.get("from_branch_id") in (None, ""):
                skipped.append({"index": index, "reason": "missing product or source branch"})
                continue

            try:
                product_id = coerce_positive_int(item["product_id"], "product_id")
                from_branch_id = coerce_positive_int(item["from_branch_id"], "from_branch_id")
            except ValidationError:
                skipped.append({"index": index, "reason": "invalid product or source branch id"})
                continue
            try:
                quantity = coerce_positive_int(item.get("quantity"), "quantity")
            except ValidationError:
                skipped.append({"index": index, "reason": "invalid quantity"})
                continue

            if from_branch_id == to_branch_id:
                skipped.append({"index": index, "reason": "source equals destination"})
                continue

            from_branch = db.session.get(Branch, from_branch_id)
            if from_branch is None:
                skipped.append({"index": index, "reason": "source branch not found"})
                continue

            try:
                _transfer_inner(
                    product_id=product_id,
                    from_branch=from_branch,
                    to_branch=to_branch,
                    quantity=quantity,
                    user_id=user_id,
                    document_id=document_id,
                    out_reason=reason or f"Bulk Transfer to {to_branch.name}",
                    in_reason=reason or f"Bulk Transfer from {from_branch.name}",
                )
            except InsufficientStockError:
                skipped.append({"index": index, "reason": "insufficient stock"})
                continue

            transferred += 1

        return BatchResult(count=transferred, document_id=document_id, skipped=skipped)

    result = run_atomic(_op)

    if result.skipped:
        current_app.logger.warning(
            "Bulk transfer %s skipped %s of %s items",
            result.document_id, len(result.skipped), len(items),
        )
    current_app.logger.info("Bulk transfer %s moved %s items", result.document_id, result.count)
    if result.count:
        emit(stock_updated, {"type": "bulk", "document_id": result.document_id, "count": result.count})
    return result


# =============================================================================
# SPREADSHEET IMPORT
# =============================================================================

def _normalize_cell(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _normalize_barcode(value) -> str | None:
    value = _normalize_cell(value)
    if value is None:
        return None
    # Spreadsheets hand back numeric barcodes as 7801234567890.0
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def import_preview(rows: Iterable[Sequence]) -> list[PreviewRow]:
    """
    Validate spreadsheet rows without touching the database state.

    Row layout is fixed: (barcode, branch name, quantity, lot, expiry).
    Row numbers are spreadsheet numbers (the header is row 1). Fully blank
    rows are ignored; every other row comes back as Valid or Error with the
    reason, so one bad row never hides the others.
    """
    product_cache: dict[str, Product | None] = {}
    branch_cache: dict[str, Branch | None] = {}
    preview: list[PreviewRow] = []

    for index, raw in enumerate(rows):
        cells = list(raw) + [None] * (5 - len(raw))
        barcode = _normalize_barcode(cells[0])
        branch_name = _normalize_cell(cells[1])
        quantity = _normalize_cell(cells[2])
        lot = _normalize_cell(cells[3])
        expiry = _normalize_cell(cells[4])

        if barcode is None and branch_name is None and quantity is None and lot is None and expiry is None:
            continue

        errors: list[str] = []

        product = None
        if barcode is None:
            errors.append("Barcode missing")
        else:
            if barcode not in product_cache:
                product_cache[barcode] = db.session.query(Product).filter_by(barcode=barcode).first()
            product = product_cache[barcode]
            if product is None:
                errors.append(f"Product not found: {barcode}")

        branch = None
        if branch_name is None:
            errors.append("Branch missing")
        else:
            key = str(branch_name)
            if key not in branch_cache:
                branch_cache[key] = db.session.query(Branch).filter_by(name=key).first()
            branch = branch_cache[key]
            if branch is None:
                errors.append(f"Branch not found: {branch_name}")

        if quantity is None:
            errors.append("Quantity missing")
        else:
            try:
                quantity = coerce_positive_int(quantity, "quantity")
            except ValidationError:
                errors.append(f"Invalid quantity: {quantity}")

        try:
            expiry = parse_expiry(expiry)
        except ValueError:
            errors.append(f"Invalid expiry: {expiry}")

        preview.append(PreviewRow(
            row=index + 2,
            barcode=barcode,
            product_name=product.name if product else "Unknown",
            product_id=product.id if product else None,
            branch_name=branch_name,
            branch_id=branch.id if branch else None,
            quantity=quantity,
            lot=None if lot is None else str(lot),
            expiry=expiry,
            status=ROW_ERROR if errors else ROW_VALID,
            error="; ".join(errors) if errors else None,
        ))

    return preview


def import_confirm(*, items: Sequence[dict], user_id: int) -> BatchResult:
    """
    Apply previewed import rows as receipts under one IMPORT document id.

    Items without a product or branch reference are skipped silently, as
    are references that no longer resolve or non-positive quantities.
    Each applied item is a receive: quantity up, batch appended (lot
    defaults to "IMPORT"), IN movement tagged with the document id.

    items: [{"product_id", "branch_id", "quantity", "lot"?, "expiry"?}]
    """
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("No items to import")

    def _op():
        document_id = new_import_document_id()
        imported = 0
        skipped: list[dict] = []
        products: dict[int, bool] = {}
        branches: dict[int, bool] = {}

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                skipped.append({"index": index, "reason": "malformed item"})
                continue
            if item.get("product_id") in (None, "") or item.get("branch_id") in (None, ""):
                skipped.append({"index": index, "reason": "missing product or branch"})
                continue
            try:
                product_id = coerce_positive_int(item["product_id"], "product_id")
                branch_id = coerce_positive_int(item["branch_id"], "branch_id")
            except ValidationError:
                skipped.append({"index": index, "reason": "invalid product or branch id"})
                continue

            if product_id not in products:
                products[product_id] = db.session.get(Product, product_id) is not None
            if branch_id not in branches:
                branches[branch_id] = db.session.get(Branch, branch_id) is not None
            if not products[product_id] or not branches[branch_id]:
                skipped.append({"index": index, "reason": "product or branch not found"})
                continue

            try:
                quantity = coerce_positive_int(item.get("quantity"), "quantity")
                expiry = parse_expiry(item.get("expiry"))
            except (ValidationError, ValueError):
                skipped.append({"index": index, "reason": "invalid quantity or expiry"})
                continue

            _receive_inner(
                product_id=product_id,
                branch_id=branch_id,
                quantity=quantity,
                user_id=user_id,
                lot=item.get("lot") or IMPORT_LOT,
                expiry=expiry,
                reason=f"Excel Import {document_id}",
                document_id=document_id,
            )
            imported += 1

        return BatchResult(count=imported, document_id=document_id, skipped=skipped)

    result = run_atomic(_op)

    if result.skipped:
        current_app.logger.warning(
            "Import %s skipped %s of %s items",
            result.document_id, len(result.skipped), len(items),
        )
    current_app.logger.info("Import %s received %s items", result.document_id, result.count)
    if result.count:
        emit(stock_updated, {"type": "import", "document_id": result.document_id, "count": result.count})
    return result
