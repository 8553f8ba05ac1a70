# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/branchpos/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..errors import PermissionDeniedError, ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_SUPERVISOR
from ..scoping import scope_sales_filter
from ..services import sales_service
from ..services.filters import SaleFilter
from ..validation import coerce_positive_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALES_ROLES = (ROLE_CASHIER, ROLE_SUPERVISOR, ROLE_ADMIN)


def resolve_sale_branch(user, requested_branch_id) -> int:
    """
    Branch a user sells at: their own, unless an admin picks one.
    """
    if requested_branch_id in (None, ""):
        requested_branch_id = None
    else:
        requested_branch_id = coerce_positive_int(requested_branch_id, "branch_id")

    if user.role == ROLE_ADMIN:
        branch_id = requested_branch_id or user.branch_id
    else:
        if requested_branch_id and requested_branch_id != user.branch_id:
            raise PermissionDeniedError("You can only sell at your own branch")
        branch_id = user.branch_id
    if not branch_id:
        raise ValidationError("branch_id is required")
    return branch_id


@sales_bp.post("")
@require_auth
@require_role(*SALES_ROLES)
def create_sale_route():
    """
    Checkout.

    Body: {"items": [{"product_id", "quantity", "price"?}],
           "payment_method": "cash" | "card", "branch_id"?}
    """
    data = request.get_json(silent=True) or {}
    user = g.current_user

    sale = sales_service.create_sale(
        branch_id=resolve_sale_branch(user, data.get("branch_id")),
        user_id=user.id,
        items=data.get("items"),
        payment_method=data.get("payment_method"),
    )
    return jsonify({"success": True, "data": sale.to_dict()}), 201


@sales_bp.get("")
@require_auth
@require_role(*SALES_ROLES)
def list_sales_route():
    """
    Query params: branch_id, user_id, date (YYYY-MM-DD, local day), status.

    Cashiers only see their own sales; supervisors their branch.
    """
    filters = SaleFilter(
        branch_id=request.args.get("branch_id", type=int),
        user_id=request.args.get("user_id", type=int),
        date=request.args.get("date") or None,
        status=request.args.get("status") or None,
    )
    filters = scope_sales_filter(g.current_user, filters)
    sales = sales_service.list_sales(filters)
    return jsonify({
        "success": True,
        "count": len(sales),
        "data": [sale.to_dict() for sale in sales],
    })


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_role(*SALES_ROLES)
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    user = g.current_user
    scoped = scope_sales_filter(user, SaleFilter(branch_id=sale.branch_id, user_id=sale.user_id))
    if scoped.branch_id != sale.branch_id or scoped.user_id != sale.user_id:
        raise PermissionDeniedError("You can not view this sale")
    return jsonify({"success": True, "data": sale.to_dict()})
