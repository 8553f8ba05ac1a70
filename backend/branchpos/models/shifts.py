from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z


SHIFT_OPEN = "open"
SHIFT_CLOSED = "closed"


class CashShift(db.Model):
    """
    Cashier shift ("turno de caja") at one branch.

    WHY: Cashier accountability. The till is counted at open and close and
    the difference against the system's expectation is recorded.

    LIFECYCLE:
    - open: started, accumulating sales
    - closed: totals computed, cash counted, difference recorded

    INVARIANT: at most one open shift per (user, branch). Enforced by
    shift_service.start_shift, not by a database constraint.

    Totals are whole pesos:
        expected_cash = start_amount + cash_sales_total
        difference    = actual_cash - expected_cash
    """
    __tablename__ = "cash_shifts"
    __table_args__ = (
        db.Index("ix_cash_shifts_user_branch_status", "user_id", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    start_amount = db.Column(db.Integer, nullable=False, default=0)

    # Calculated when closing
    sales_total = db.Column(db.Integer, nullable=False, default=0)
    cash_sales_total = db.Column(db.Integer, nullable=False, default=0)
    card_sales_total = db.Column(db.Integer, nullable=False, default=0)
    expected_cash = db.Column(db.Integer, nullable=False, default=0)
    actual_cash = db.Column(db.Integer, nullable=True)
    difference = db.Column(db.Integer, nullable=True)

    observations = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User")
    branch = db.relationship("Branch")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": {"id": self.user.id, "name": self.user.name} if self.user else None,
            "branch_id": self.branch_id,
            "branch": {"id": self.branch.id, "name": self.branch.name} if self.branch else None,
            "status": self.status,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "start_amount": self.start_amount,
            "sales_total": self.sales_total,
            "cash_sales_total": self.cash_sales_total,
            "card_sales_total": self.card_sales_total,
            "expected_cash": self.expected_cash,
            "actual_cash": self.actual_cash,
            "difference": self.difference,
            "observations": self.observations,
        }
