from flask import Blueprint, jsonify, request, g

from branchpos.decorators import require_auth, require_role
from branchpos.errors import PermissionDeniedError
from branchpos.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_SUPERVISOR, ROLE_WAREHOUSE
from branchpos.scoping import scope_sales_filter, scope_shift_filter
from branchpos.services import reporting_service, shift_service
from branchpos.services.filters import SaleFilter, ShiftFilter


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

STOCK_ROLES = (ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_WAREHOUSE)


@reports_bp.get("/import-receipt/<string:document_id>")
@require_auth
@require_role(*STOCK_ROLES)
def import_receipt(document_id: str):
    report = reporting_service.import_receipt(document_id)
    return jsonify({"success": True, "data": report}), 200


@reports_bp.get("/transfer/<string:document_id>")
@require_auth
@require_role(*STOCK_ROLES)
def transfer_document(document_id: str):
    report = reporting_service.transfer_document(document_id)
    return jsonify({"success": True, "data": report}), 200


@reports_bp.post("/stock-checklist")
@require_auth
@require_role(*STOCK_ROLES)
def stock_checklist():
    data = request.get_json(silent=True) or {}
    report = reporting_service.stock_checklist(data.get("items"))
    return jsonify({"success": True, "data": report}), 200


@reports_bp.get("/sales")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_CASHIER)
def sales_report():
    filters = SaleFilter(
        branch_id=request.args.get("branch_id", type=int),
        user_id=request.args.get("user_id", type=int),
        date=request.args.get("date") or None,
    )
    filters = scope_sales_filter(g.current_user, filters)
    report = reporting_service.sales_report(filters)
    return jsonify({"success": True, "data": report}), 200


@reports_bp.get("/cash-shift/<int:shift_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def cash_shift_report(shift_id: int):
    user = g.current_user
    if user.role == ROLE_SUPERVISOR:
        shift = shift_service.get_shift(shift_id)
        if shift.branch_id != user.branch_id:
            raise PermissionDeniedError("Shift belongs to another branch")
    report = reporting_service.cash_shift_report(shift_id)
    return jsonify({"success": True, "data": report}), 200


@reports_bp.get("/daily-cash")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def daily_cash_report():
    filters = ShiftFilter(
        branch_id=request.args.get("branch_id", type=int),
        date=request.args.get("date") or None,
    )
    filters = scope_shift_filter(g.current_user, filters)
    report = reporting_service.daily_cash_report(filters)
    return jsonify({"success": True, "data": report}), 200
