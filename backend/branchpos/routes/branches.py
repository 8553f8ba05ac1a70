# Overview: Flask API routes for branch management.

from flask import Blueprint, jsonify, request

from branchpos.decorators import require_auth, require_role
from branchpos.models.auth import ROLE_ADMIN
from branchpos.services import catalog_service


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
def list_branches():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true")
    branches = catalog_service.list_branches(include_inactive=include_inactive)
    return jsonify({
        "success": True,
        "count": len(branches),
        "data": [branch.to_dict() for branch in branches],
    }), 200


@branches_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_branch():
    branch = catalog_service.create_branch(request.get_json(silent=True))
    return jsonify({"success": True, "data": branch.to_dict()}), 201


@branches_bp.get("/<int:branch_id>")
@require_auth
def get_branch(branch_id: int):
    branch = catalog_service.get_branch(branch_id)
    return jsonify({"success": True, "data": branch.to_dict()}), 200


@branches_bp.put("/<int:branch_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_branch(branch_id: int):
    branch = catalog_service.update_branch(branch_id, request.get_json(silent=True))
    return jsonify({"success": True, "data": branch.to_dict()}), 200


@branches_bp.delete("/<int:branch_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_branch(branch_id: int):
    """Soft delete: history keeps pointing at the branch."""
    branch = catalog_service.deactivate_branch(branch_id)
    return jsonify({"success": True, "data": branch.to_dict()}), 200
