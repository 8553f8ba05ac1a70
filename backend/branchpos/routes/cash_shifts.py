# Overview: Flask API routes for cash shifts (open, close, current, listing).

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_SUPERVISOR
from ..scoping import scope_shift_filter
from ..services import shift_service
from ..services.filters import ShiftFilter
from .sales import resolve_sale_branch


cash_shifts_bp = Blueprint("cash_shifts", __name__, url_prefix="/api/cash-shifts")

TILL_ROLES = (ROLE_CASHIER, ROLE_SUPERVISOR, ROLE_ADMIN)


@cash_shifts_bp.post("/start")
@require_auth
@require_role(*TILL_ROLES)
def start_shift_route():
    """Body: {"start_amount", "branch_id"? (admin only)}"""
    data = request.get_json(silent=True) or {}
    user = g.current_user
    shift = shift_service.start_shift(
        user_id=user.id,
        branch_id=resolve_sale_branch(user, data.get("branch_id")),
        start_amount=data.get("start_amount"),
    )
    return jsonify({"success": True, "data": shift.to_dict()}), 201


@cash_shifts_bp.post("/close")
@require_auth
@require_role(*TILL_ROLES)
def close_shift_route():
    """Body: {"actual_cash", "observations"?, "branch_id"? (admin only)}"""
    data = request.get_json(silent=True) or {}
    user = g.current_user
    shift = shift_service.close_shift(
        user_id=user.id,
        branch_id=resolve_sale_branch(user, data.get("branch_id")),
        actual_cash=data.get("actual_cash"),
        observations=data.get("observations"),
    )
    return jsonify({"success": True, "data": shift.to_dict()})


@cash_shifts_bp.get("/current")
@require_auth
@require_role(*TILL_ROLES)
def current_shift_route():
    """The caller's open shift, or data: null."""
    user = g.current_user
    branch_id = resolve_sale_branch(user, request.args.get("branch_id", type=int))
    shift = shift_service.get_current_shift(user.id, branch_id)
    return jsonify({"success": True, "data": shift.to_dict() if shift else None})


@cash_shifts_bp.get("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def list_shifts_route():
    """Query params: date (YYYY-MM-DD, local day of start_time), branch_id, user_id, status."""
    filters = ShiftFilter(
        branch_id=request.args.get("branch_id", type=int),
        user_id=request.args.get("user_id", type=int),
        date=request.args.get("date") or None,
        status=request.args.get("status") or None,
    )
    filters = scope_shift_filter(g.current_user, filters)
    shifts = shift_service.list_shifts(filters)
    return jsonify({
        "success": True,
        "count": len(shifts),
        "data": [shift.to_dict() for shift in shifts],
    })
