# backend/branchpos/routes/inventory.py
"""
Inventory routes.

SECURITY: All routes require authentication.
- Listing is open to every role, scoped by role (cashier/supervisor: own branch)
- History, receive and spreadsheet import: admin, supervisor, warehouse
- Single transfer: admin, supervisor
- Bulk transfer: admin, supervisor, warehouse

Time semantics:
- start_date / end_date accept ISO-8601 datetimes with Z/offsets; the
  backend normalizes to UTC-naive internally. Both bounds are inclusive.
"""
from flask import Blueprint, current_app, g, request

from branchpos.time_utils import parse_iso_datetime
from ..decorators import require_auth, require_role
from ..errors import ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_WAREHOUSE
from ..scoping import scope_inventory_filter
from ..services import inventory_service, ledger_service, stock_service
from ..services.filters import InventoryFilter, MovementFilter, normalize_paging
from ..services.spreadsheet import read_spreadsheet
from ..validation import coerce_amount, require_fields


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

STOCK_ROLES = (ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_WAREHOUSE)


def _paging(default_size: int | None = None) -> tuple[int, int]:
    return normalize_paging(
        request.args.get("page", type=int),
        request.args.get("limit", type=int),
        default_size=default_size or current_app.config["DEFAULT_PAGE_SIZE"],
        max_size=current_app.config["MAX_PAGE_SIZE"],
    )


def _parse_dt_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@inventory_bp.get("")
@require_auth
def list_inventory():
    """
    Query params: branch_id, product_id, search, status (out|low|ok),
    sort ("name,-quantity"), page, limit.
    """
    page, page_size = _paging()
    filters = InventoryFilter(
        branch_id=request.args.get("branch_id", type=int),
        product_id=request.args.get("product_id", type=int),
        search=request.args.get("search") or None,
        status=request.args.get("status") or None,
        sort=request.args.get("sort") or None,
        page=page,
        page_size=page_size,
    )
    filters = scope_inventory_filter(g.current_user, filters)
    result = inventory_service.query_inventory(filters)
    return result.to_dict(lambda r: r.to_dict())


@inventory_bp.get("/history")
@require_auth
@require_role(*STOCK_ROLES)
def inventory_history():
    """
    Stock ledger, newest first.

    Query params: product_id, branch_id, user_id, type, document_id,
    start_date, end_date, page, limit (default 20).
    """
    page, page_size = _paging(default_size=20)
    filters = MovementFilter(
        product_id=request.args.get("product_id", type=int),
        branch_id=request.args.get("branch_id", type=int),
        user_id=request.args.get("user_id", type=int),
        movement_type=request.args.get("type") or None,
        document_id=request.args.get("document_id") or None,
        start=_parse_dt_arg("start_date"),
        end=_parse_dt_arg("end_date"),
        page=page,
        page_size=page_size,
    )
    result = ledger_service.query_movements(filters)
    return result.to_dict(lambda m: m.to_dict())


@inventory_bp.post("/add")
@require_auth
@require_role(*STOCK_ROLES)
def add_stock():
    data = require_fields(request.get_json(silent=True), "product_id", "branch_id", "quantity")
    record = stock_service.receive_stock(
        product_id=data["product_id"],
        branch_id=data["branch_id"],
        quantity=data["quantity"],
        user_id=g.current_user.id,
        lot=data.get("lot"),
        expiry=data.get("expiry"),
        reason=data.get("reason"),
    )
    return {"success": True, "data": record.to_dict()}


@inventory_bp.post("/transfer")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def transfer_stock():
    data = require_fields(
        request.get_json(silent=True),
        "product_id", "from_branch_id", "to_branch_id", "quantity",
    )
    result = stock_service.transfer_stock(
        product_id=data["product_id"],
        from_branch_id=data["from_branch_id"],
        to_branch_id=data["to_branch_id"],
        quantity=data["quantity"],
        user_id=g.current_user.id,
        reason=data.get("reason"),
    )
    return {"success": True, "message": "Transfer successful", "data": result.to_dict()}


@inventory_bp.post("/transfer-bulk")
@require_auth
@require_role(*STOCK_ROLES)
def transfer_stock_bulk():
    data = request.get_json(silent=True) or {}
    result = stock_service.bulk_transfer(
        items=data.get("items"),
        to_branch_id=data.get("to_branch_id"),
        user_id=g.current_user.id,
        reason=data.get("reason"),
    )
    return {
        "success": True,
        "message": f"{result.count} products transferred successfully",
        "data": result.to_dict(),
    }


@inventory_bp.post("/import-preview")
@require_auth
@require_role(*STOCK_ROLES)
def import_preview():
    """
    multipart/form-data with a "file" part (.xlsx or .csv).

    Nothing is written; the client reviews the rows and posts the valid ones
    to /import-confirm.
    """
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("Please upload a file")

    rows = read_spreadsheet(upload.stream, upload.filename)
    preview = stock_service.import_preview(rows)
    valid = sum(1 for row in preview if row.status == stock_service.ROW_VALID)
    return {
        "success": True,
        "count": len(preview),
        "valid": valid,
        "errors": len(preview) - valid,
        "data": [row.to_dict() for row in preview],
    }


@inventory_bp.post("/import-confirm")
@require_auth
@require_role(*STOCK_ROLES)
def import_confirm():
    data = request.get_json(silent=True) or {}
    result = stock_service.import_confirm(items=data.get("items"), user_id=g.current_user.id)
    return {
        "success": True,
        "message": f"{result.count} items imported successfully",
        "data": result.to_dict(),
    }


@inventory_bp.put("/threshold")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def update_threshold():
    data = require_fields(request.get_json(silent=True), "product_id", "branch_id", "low_stock_threshold")
    threshold = coerce_amount(data["low_stock_threshold"], "low_stock_threshold")
    record = inventory_service.set_low_stock_threshold(data["product_id"], data["branch_id"], threshold)
    return {"success": True, "data": record.to_dict(include_batches=False)}
