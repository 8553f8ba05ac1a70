from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z, to_iso_date


MOVEMENT_TYPES = ("IN", "OUT", "TRANSFER", "ADJUST", "SALE")


class InventoryRecord(db.Model):
    """
    On-hand quantity of one product at one branch.

    INVARIANTS:
    - (product_id, branch_id) is unique; rows are created lazily on the
      first stock-affecting operation.
    - quantity never goes negative. Writers change it only through the
      conditional UPDATE in inventory_service.adjust_quantity; the CHECK
      constraint is the last line.
    - quantity == SUM(stock_movements.quantity) for the same pair. Nothing
      recomputes it; every writer appends the matching movement in the same
      transaction.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_inventory_product_branch"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.Index("ix_inventory_branch_quantity", "branch_id", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    last_updated = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product")
    branch = db.relationship("Branch")
    batches = db.relationship(
        "InventoryBatch",
        backref="inventory",
        lazy=True,
        order_by=lambda: [InventoryBatch.received_at, InventoryBatch.id],
    )

    @property
    def stock_status(self) -> str:
        if self.quantity == 0:
            return "out"
        if self.quantity <= self.low_stock_threshold:
            return "low"
        return "ok"

    def to_dict(self, include_batches: bool = True) -> dict:
        rv = {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "barcode": self.product.barcode,
                "price": self.product.price,
                "category": self.product.category.name if self.product.category else None,
            } if self.product else None,
            "branch": {"id": self.branch.id, "name": self.branch.name} if self.branch else None,
            "quantity": self.quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "status": self.stock_status,
            "last_updated": to_utc_z(self.last_updated),
        }
        if include_batches:
            rv["batches"] = [b.to_dict() for b in self.batches]
        return rv


class InventoryBatch(db.Model):
    """
    A received lot. Append-only history of what arrived, oldest first.

    Sales deduct from the aggregate InventoryRecord.quantity, never from a
    specific batch, so batch quantities are not decremented.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False, index=True)

    lot = db.Column(db.String(64), nullable=True)
    expiry = db.Column(db.Date, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lot": self.lot,
            "expiry": to_iso_date(self.expiry),
            "quantity": self.quantity,
            "received_at": to_utc_z(self.received_at),
        }


class StockMovement(db.Model):
    """
    Immutable audit record of one quantity change.

    SIGN: quantity is signed. Receipts and the arriving leg of a transfer
    are positive; sales and the departing leg of a transfer are negative.

    document_id groups the movements of one logical operation: both legs
    of a transfer, every pair of a bulk transfer, every row of an import.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_product_branch_created", "product_id", "branch_id", "created_at"),
        db.Index("ix_movements_document", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)

    batch_lot = db.Column(db.String(64), nullable=True)
    batch_expiry = db.Column(db.Date, nullable=True)

    document_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")
    branch = db.relationship("Branch")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "barcode": self.product.barcode,
            } if self.product else None,
            "branch_id": self.branch_id,
            "branch": {"id": self.branch.id, "name": self.branch.name} if self.branch else None,
            "user_id": self.user_id,
            "user": {"id": self.user.id, "name": self.user.name} if self.user else None,
            "quantity": self.quantity,
            "type": self.type,
            "reason": self.reason,
            "batch": {
                "lot": self.batch_lot,
                "expiry": to_iso_date(self.batch_expiry),
            } if (self.batch_lot or self.batch_expiry) else None,
            "document_id": self.document_id,
            "created_at": to_utc_z(self.created_at),
        }
