# backend/branchpos/services/catalog_service.py
"""
Catalog Service: branches, categories and products.

Catalog rows are never hard-deleted: stock movements, sale lines and
shifts reference them. "Delete" deactivates.

All writes go through validate_payload with a per-model allowlist so a
client can not set ids, timestamps or flags it does not own.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError
from ..models import Branch, Category, Product
from ..validation import WritePolicy, enforce_rules_product, validate_payload
from .filters import Page, paginate


BRANCH_POLICY = WritePolicy.of(
    {"name", "address", "phone", "manager", "is_active"},
    required={"name", "address"},
)

CATEGORY_POLICY = WritePolicy.of(
    {"name", "description", "is_active"},
    required={"name"},
)

PRODUCT_POLICY = WritePolicy.of(
    {"barcode", "sku", "name", "description", "category_id", "price", "cost", "tax_rate", "is_active"},
    required={"barcode", "name", "price"},
)


def _apply_patch(obj, patch: dict) -> None:
    for k, v in patch.items():
        setattr(obj, k, v)


# =============================================================================
# BRANCHES
# =============================================================================

def list_branches(include_inactive: bool = False) -> list[Branch]:
    q = db.session.query(Branch)
    if not include_inactive:
        q = q.filter(Branch.is_active.is_(True))
    return q.order_by(Branch.name.asc(), Branch.id.asc()).all()


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError(f"Branch {branch_id} not found")
    return branch


def _ensure_branch_name_free(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Branch).filter(Branch.name == name)
    if exclude_id is not None:
        q = q.filter(Branch.id != exclude_id)
    if q.first():
        raise ConflictError(f"Branch name already exists: {name}")


def create_branch(payload: dict) -> Branch:
    patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=False)
    _ensure_branch_name_free(patch["name"])
    branch = Branch(**patch)
    db.session.add(branch)
    db.session.commit()
    return branch


def update_branch(branch_id: int, payload: dict) -> Branch:
    branch = get_branch(branch_id)
    patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=True)
    if "name" in patch:
        _ensure_branch_name_free(patch["name"], exclude_id=branch.id)
    _apply_patch(branch, patch)
    db.session.commit()
    return branch


def deactivate_branch(branch_id: int) -> Branch:
    branch = get_branch(branch_id)
    branch.is_active = False
    db.session.commit()
    return branch


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories(include_inactive: bool = False) -> list[Category]:
    q = db.session.query(Category)
    if not include_inactive:
        q = q.filter(Category.is_active.is_(True))
    return q.order_by(Category.name.asc()).all()


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    if db.session.query(Category).filter_by(name=patch["name"]).first():
        raise ConflictError(f"Category already exists: {patch['name']}")
    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category


# =============================================================================
# PRODUCTS
# =============================================================================

def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    include_inactive: bool = False,
    page: int = 1,
    page_size: int = 10,
) -> Page:
    """Name/barcode/SKU search, alphabetical."""
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Product.name.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.sku.ilike(pattern),
        ))
    q = q.order_by(Product.name.asc(), Product.id.asc())
    return paginate(q, page, page_size)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_product_by_barcode(barcode: str) -> Product:
    """Scanner lookup; only active products are sellable."""
    product = (
        db.session.query(Product)
        .filter(Product.barcode == (barcode or "").strip(), Product.is_active.is_(True))
        .first()
    )
    if product is None:
        raise NotFoundError(f"No product with barcode {barcode}")
    return product


def _check_product_refs(patch: dict, exclude_id: int | None = None) -> None:
    if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
        raise NotFoundError(f"Category {patch['category_id']} not found")
    if "barcode" in patch:
        q = db.session.query(Product).filter(Product.barcode == patch["barcode"])
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise ConflictError(f"Barcode already exists: {patch['barcode']}")


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_product_refs(patch)
    product = Product(**patch)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    _check_product_refs(patch, exclude_id=product.id)
    _apply_patch(product, patch)
    db.session.commit()
    return product


def deactivate_product(product_id: int) -> Product:
    product = get_product(product_id)
    product.is_active = False
    db.session.commit()
    return product
