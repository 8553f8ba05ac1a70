from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z


PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD)

SALE_COMPLETED = "completed"


class Sale(db.Model):
    """
    Completed sale at a branch.

    Lines snapshot the product name and unit price at the time of sale so
    later catalog edits never rewrite history.

    A sale row exists only after payment succeeded and stock was deducted;
    a declined card never leaves a partial record behind.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_user_created", "branch_id", "user_id", "created_at"),
        db.Index("ix_sales_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Human-readable order id, also sent to the card terminal (e.g. "INV-1718203930123")
    order_id = db.Column(db.String(64), nullable=False, unique=True)

    total_amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)

    # Card terminal response (only for payment_method="card")
    card_authorization_code = db.Column(db.String(32), nullable=True)
    card_amount = db.Column(db.Integer, nullable=True)
    card_response_code = db.Column(db.String(16), nullable=True)
    card_transaction_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    branch = db.relationship("Branch")
    user = db.relationship("User")
    lines = db.relationship("SaleLine", backref="sale", lazy=True, order_by="SaleLine.position")

    def card_payment_dict(self) -> dict | None:
        if self.payment_method != PAYMENT_CARD:
            return None
        return {
            "order_id": self.order_id,
            "authorization_code": self.card_authorization_code,
            "amount": self.card_amount,
            "response_code": self.card_response_code,
            "transaction_date": to_utc_z(self.card_transaction_date),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "branch_id": self.branch_id,
            "branch": {"id": self.branch.id, "name": self.branch.name} if self.branch else None,
            "user_id": self.user_id,
            "user": {"id": self.user.id, "name": self.user.name} if self.user else None,
            "items": [line.to_dict() for line in self.lines],
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "status": self.status,
            "card_payment": self.card_payment_dict(),
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Individual line item on a sale, with snapshotted name and price."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False)

    name = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        price = self.price
        if price is not None and price == int(price):
            price = int(price)
        elif price is not None:
            price = float(price)
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "price": price,
            "quantity": self.quantity,
            "line_total": self.line_total,
        }
