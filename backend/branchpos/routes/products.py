# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

# backend/branchpos/routes/products.py
"""
Catalog routes.

SECURITY: All routes require authentication.
- Read operations are open to every role (the till scans barcodes)
- Write operations are admin-only
"""
from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN
from ..services import catalog_service
from ..services.filters import normalize_paging


products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - search: matches name, barcode or SKU
    - category_id: int
    - include_inactive: "true" to list deactivated products
    - page, limit: pagination
    """
    page, page_size = normalize_paging(
        request.args.get("page", type=int),
        request.args.get("limit", type=int),
        default_size=current_app.config["DEFAULT_PAGE_SIZE"],
        max_size=current_app.config["MAX_PAGE_SIZE"],
    )
    result = catalog_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        include_inactive=request.args.get("include_inactive", "").lower() in ("1", "true"),
        page=page,
        page_size=page_size,
    )
    return result.to_dict(lambda p: p.to_dict())


@products_bp.get("/barcode/<string:barcode>")
@require_auth
def get_by_barcode(barcode: str):
    product = catalog_service.get_product_by_barcode(barcode)
    return {"success": True, "data": product.to_dict()}


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product():
    product = catalog_service.create_product(request.get_json(silent=True))
    return {"success": True, "data": product.to_dict()}, 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    product = catalog_service.get_product(product_id)
    return {"success": True, "data": product.to_dict()}


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product(product_id: int):
    product = catalog_service.update_product(product_id, request.get_json(silent=True))
    return {"success": True, "data": product.to_dict()}


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_product(product_id: int):
    product = catalog_service.deactivate_product(product_id)
    return {"success": True, "data": product.to_dict()}


@categories_bp.get("")
@require_auth
def list_categories():
    categories = catalog_service.list_categories()
    return {
        "success": True,
        "count": len(categories),
        "data": [c.to_dict() for c in categories],
    }


@categories_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_category():
    category = catalog_service.create_category(request.get_json(silent=True))
    return {"success": True, "data": category.to_dict()}, 201
