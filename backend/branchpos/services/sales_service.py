"""
Sales Service - point-of-sale checkout

WHY: A sale is one unit of work across three systems: the card terminal,
the branch inventory and the sales journal. The order of steps makes every
failure leave no trace:

1. Validate lines against a stock snapshot (no writes).
2. Charge the card, if paying by card (no writes yet).
3. Deduct stock, write SALE movements and the Sale in ONE transaction.
4. Emit sale-created after commit.

WEAK-CONSISTENCY WINDOW: step 1 reads a snapshot, step 3 re-checks with the
conditional decrement. If another till sold the last units in between, step
3 fails with InsufficientStockError, the transaction rolls back and a card
charge from step 2 is refunded.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..errors import (
    InsufficientStockError,
    NotFoundError,
    PaymentFailedError,
    PaymentGatewayUnavailableError,
    ValidationError,
)
from ..events import emit, sale_created
from ..models import Branch, Product, Sale, SaleLine
from ..models.sales import PAYMENT_CARD, PAYMENT_METHODS, SALE_COMPLETED
from ..time_utils import local_day_bounds, utcnow
from ..validation import MAX_PRICE, coerce_positive_int
from . import inventory_service, ledger_service
from .concurrency import run_atomic
from .filters import SaleFilter
from .payment_gateway import get_payment_gateway


@dataclass
class _PricedLine:
    product_id: int
    name: str
    price: Decimal
    quantity: int
    line_total: int


def new_order_id() -> str:
    return f"INV-{int(time.time() * 1000)}-{secrets.token_hex(2)}"


def _line_total(price: Decimal, quantity: int) -> int:
    """Whole pesos, half-up."""
    return int((price * quantity).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_price(value, product: Product) -> Decimal:
    if value is None:
        return Decimal(product.price)
    if isinstance(value, bool):
        raise ValidationError("price must be a number")
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("price must be a number")
    if not price.is_finite() or price < 0 or price > MAX_PRICE:
        raise ValidationError("price must be between 0 and the maximum allowed price")
    return price


def _price_lines(branch_id: int, items: list) -> list[_PricedLine]:
    """
    Resolve and price every line against the branch stock snapshot.

    Requested quantities are summed per product before comparing with the
    available quantity, so two lines of the same product can not oversell.
    """
    priced: list[_PricedLine] = []
    requested: dict[int, int] = {}

    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Each sale item must be an object")
        product_id = item.get("product_id")
        if not product_id:
            raise ValidationError("product_id is required for each sale item")
        quantity = coerce_positive_int(item.get("quantity"), "quantity")

        record = inventory_service.get_record(product_id, branch_id)
        if record is None or record.product is None:
            raise NotFoundError(
                f"Product {product_id} not found in this branch",
                details={"product_id": product_id, "branch_id": branch_id},
            )

        requested[product_id] = requested.get(product_id, 0) + quantity
        if requested[product_id] > record.quantity:
            raise InsufficientStockError(
                f"Insufficient stock for product: {record.product.name}. Available: {record.quantity}",
                details={
                    "product_id": product_id,
                    "available": record.quantity,
                    "requested": requested[product_id],
                },
            )

        price = _parse_price(item.get("price"), record.product)
        priced.append(_PricedLine(
            product_id=product_id,
            name=record.product.name,
            price=price,
            quantity=quantity,
            line_total=_line_total(price, quantity),
        ))

    return priced


def _charge_card(amount: int, order_id: str):
    gateway = get_payment_gateway()
    try:
        result = gateway.sale(amount, order_id)
    except PaymentGatewayUnavailableError:
        current_app.logger.warning("Card terminal unavailable for order %s", order_id)
        raise

    if not result.success:
        current_app.logger.warning(
            "Card payment declined for order %s (response_code=%s)",
            order_id, result.response_code,
        )
        raise PaymentFailedError(
            "Card payment failed",
            details={"order_id": order_id, "response_code": result.response_code, "message": result.message},
        )
    return result


def _refund_card(amount: int, order_id: str) -> None:
    """Compensate a charge whose sale could not be persisted."""
    current_app.logger.warning("Refunding card charge for order %s after failed persist", order_id)
    try:
        result = get_payment_gateway().refund(amount, order_id)
    except PaymentGatewayUnavailableError:
        current_app.logger.exception("Refund failed for order %s; manual reversal required", order_id)
        return

    if not result.success:
        current_app.logger.error(
            "Refund declined for order %s (response_code=%s); manual reversal required",
            order_id, result.response_code,
        )


def create_sale(*, branch_id: int, user_id: int, items, payment_method: str) -> Sale:
    """
    Checkout: validate, charge, deduct and persist.

    Raises ValidationError (empty sale, bad method/line), NotFoundError
    (product not stocked in branch), InsufficientStockError,
    PaymentFailedError (declined) and PaymentGatewayUnavailableError. On
    any of these nothing is written.
    """
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("No items in sale")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    if not branch_id or db.session.get(Branch, branch_id) is None:
        raise NotFoundError(f"Branch {branch_id} not found")

    lines = _price_lines(branch_id, list(items))
    total_amount = sum(line.line_total for line in lines)
    order_id = new_order_id()

    card = None
    if payment_method == PAYMENT_CARD:
        card = _charge_card(total_amount, order_id)

    def _persist():
        now = utcnow()
        for line in lines:
            inventory_service.adjust_quantity(line.product_id, branch_id, -line.quantity)
            ledger_service.record_movement(
                product_id=line.product_id,
                branch_id=branch_id,
                user_id=user_id,
                quantity=-line.quantity,
                movement_type="SALE",
                reason=f"Sale {order_id}",
                document_id=order_id,
                created_at=now,
            )

        sale = Sale(
            branch_id=branch_id,
            user_id=user_id,
            order_id=order_id,
            total_amount=total_amount,
            payment_method=payment_method,
            status=SALE_COMPLETED,
            created_at=now,
        )
        if card is not None:
            sale.card_authorization_code = card.authorization_code
            sale.card_amount = card.amount if card.amount is not None else total_amount
            sale.card_response_code = card.response_code
            sale.card_transaction_date = card.transaction_date

        for position, line in enumerate(lines, start=1):
            sale.lines.append(SaleLine(
                product_id=line.product_id,
                position=position,
                name=line.name,
                price=line.price,
                quantity=line.quantity,
                line_total=line.line_total,
            ))

        db.session.add(sale)
        db.session.flush()
        return sale

    try:
        sale = run_atomic(_persist)
    except Exception:
        if card is not None:
            _refund_card(total_amount, order_id)
        raise

    current_app.logger.info(
        "Sale %s completed at branch %s: %s (%s)",
        order_id, branch_id, total_amount, payment_method,
    )
    emit(sale_created, sale.to_dict())
    return sale


def list_sales(filters: SaleFilter) -> list[Sale]:
    """
    Sales matching an already-scoped filter, newest first.

    date is a local calendar day (LOCAL_TIMEZONE), half-open in UTC.
    """
    q = db.session.query(Sale)
    if filters.branch_id is not None:
        q = q.filter(Sale.branch_id == filters.branch_id)
    if filters.user_id is not None:
        q = q.filter(Sale.user_id == filters.user_id)
    if filters.status is not None:
        q = q.filter(Sale.status == filters.status)
    if filters.date:
        try:
            start, end = local_day_bounds(filters.date, current_app.config["LOCAL_TIMEZONE"])
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        q = q.filter(Sale.created_at >= start, Sale.created_at < end)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale
