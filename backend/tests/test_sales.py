"""
Checkout tests.

Verifies:
- Cash and card sales deduct stock, write SALE movements and a Sale
- A declined or unreachable card terminal leaves no trace
- Line totals are whole pesos rounded half-up
- A lost stock race after a card charge is refunded
"""

import logging
import re
from decimal import Decimal

import pytest

from branchpos.errors import (
    InsufficientStockError,
    NotFoundError,
    PaymentFailedError,
    PaymentGatewayUnavailableError,
    ValidationError,
)
from branchpos.extensions import db
from branchpos.models import Sale, SaleLine, StockMovement
from branchpos.services import inventory_service, ledger_service, sales_service, stock_service
from branchpos.services.filters import SaleFilter


@pytest.fixture
def stocked(db_session, product, other_product, branch, admin):
    stock_service.receive_stock(product_id=product.id, branch_id=branch.id, quantity=10, user_id=admin.id)
    stock_service.receive_stock(product_id=other_product.id, branch_id=branch.id, quantity=3, user_id=admin.id)


def _no_trace(db_session, product, branch, expected_quantity):
    assert db_session.query(Sale).count() == 0
    assert db_session.query(SaleLine).count() == 0
    assert db_session.query(StockMovement).filter_by(type="SALE").count() == 0
    assert inventory_service.available_quantity(product.id, branch.id) == expected_quantity


class TestCashSale:

    def test_cash_sale(self, stocked, db_session, product, other_product, branch, cashier, terminal):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            items=[
                {"product_id": product.id, "quantity": 2},
                {"product_id": other_product.id, "quantity": 1},
            ],
            payment_method="cash",
        )

        assert re.fullmatch(r"INV-\d+-[0-9a-f]+", sale.order_id)
        assert sale.total_amount == 4000
        assert sale.status == "completed"
        assert sale.card_payment_dict() is None
        assert [(l.position, l.name, l.quantity, l.line_total) for l in sale.lines] == [
            (1, "Agua Mineral 1.5L", 2, 2000),
            (2, "Bebida Cola 2L", 1, 2000),
        ]
        assert terminal.sales == []

        assert inventory_service.available_quantity(product.id, branch.id) == 8
        assert inventory_service.available_quantity(other_product.id, branch.id) == 2

        movements = ledger_service.movements_for_document(sale.order_id)
        assert [(m.product_id, m.quantity, m.type) for m in movements] == [
            (product.id, -2, "SALE"),
            (other_product.id, -1, "SALE"),
        ]
        assert movements[0].reason == f"Sale {sale.order_id}"
        assert ledger_service.ledger_balance(product.id, branch.id) == 8

    def test_line_total_rounds_half_up(self, stocked, product, branch, cashier):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            items=[{"product_id": product.id, "quantity": 3, "price": "0.5"}],
            payment_method="cash",
        )
        assert sale.lines[0].line_total == 2  # 1.5 -> 2
        assert sale.lines[0].price == Decimal("0.5")
        assert sale.total_amount == 2

    def test_default_price_from_catalog(self, stocked, product, branch, cashier):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="cash",
        )
        assert sale.lines[0].price == Decimal(1000)

    def test_emits_sale_created_after_commit(self, stocked, product, branch, cashier, events):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="cash",
        )
        name, payload = events[-1]
        assert name == "sale-created"
        assert payload["order_id"] == sale.order_id
        assert payload["items"][0]["product_id"] == product.id

    def test_filters_by_branch_and_user(self, stocked, product, branch, cashier, supervisor):
        for user in (cashier, supervisor, cashier):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=user.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="cash",
            )

        mine = sales_service.list_sales(SaleFilter(user_id=cashier.id))
        assert len(mine) == 2
        assert mine[0].id > mine[1].id
        assert len(sales_service.list_sales(SaleFilter(branch_id=branch.id))) == 3

    def test_bad_date_filter(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(SaleFilter(date="31-01-2025"))

    def test_get_sale_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.get_sale(12345)


class TestSaleValidation:

    @pytest.mark.parametrize("items", [[], None, "x"])
    def test_empty_sale(self, stocked, branch, cashier, items):
        with pytest.raises(ValidationError):
            sales_service.create_sale(branch_id=branch.id, user_id=cashier.id, items=items, payment_method="cash")

    def test_unknown_payment_method(self, stocked, product, branch, cashier):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="cheque",
            )

    def test_product_not_stocked_in_branch(self, stocked, db_session, product, other_branch, cashier):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                branch_id=other_branch.id,
                user_id=cashier.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="cash",
            )

    def test_quantity_is_aggregated_per_product(self, stocked, db_session, other_product, branch, cashier):
        # 2 + 2 of a product with 3 on hand
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                items=[
                    {"product_id": other_product.id, "quantity": 2},
                    {"product_id": other_product.id, "quantity": 2},
                ],
                payment_method="cash",
            )
        assert exc.value.details["requested"] == 4
        _no_trace(db_session, other_product, branch, 3)

    @pytest.mark.parametrize("price", [-1, "abc", True, "NaN"])
    def test_bad_price(self, stocked, product, branch, cashier, price):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                items=[{"product_id": product.id, "quantity": 1, "price": price}],
                payment_method="cash",
            )


class TestCardSale:

    def test_approved_card_sale_stores_terminal_response(self, stocked, product, branch, cashier, terminal):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            user_id=cashier.id,
            items=[{"product_id": product.id, "quantity": 3}],
            payment_method="card",
        )

        assert terminal.sales == [(3000, sale.order_id)]
        card = sale.card_payment_dict()
        assert card["authorization_code"] == "123456"
        assert card["amount"] == 3000
        assert card["response_code"] == "0"
        assert terminal.refunds == []

    def test_declined_card_leaves_no_trace(self, stocked, db_session, product, branch, cashier, terminal, events):
        terminal.mode = "decline"

        with pytest.raises(PaymentFailedError) as exc:
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="card",
            )

        assert exc.value.status_code == 502
        _no_trace(db_session, product, branch, 10)
        assert [name for name, _ in events if name == "sale-created"] == []

    def test_unreachable_terminal_leaves_no_trace(self, stocked, db_session, product, branch, cashier, terminal):
        terminal.mode = "unavailable"

        with pytest.raises(PaymentGatewayUnavailableError) as exc:
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="card",
            )

        assert exc.value.status_code == 504
        _no_trace(db_session, product, branch, 10)

    def test_lost_stock_race_refunds_the_charge(
        self, stocked, db_session, product, branch, cashier, admin, terminal
    ):
        # Another till sells 9 of the 10 units while the card is being authorized
        def _other_till():
            inventory_service.adjust_quantity(product.id, branch.id, -9)
            ledger_service.record_movement(
                product_id=product.id,
                branch_id=branch.id,
                user_id=admin.id,
                quantity=-9,
                movement_type="SALE",
                reason="Sale elsewhere",
            )
            db.session.commit()

        terminal.before_approve = _other_till

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                branch_id=branch.id,
                user_id=cashier.id,
                items=[{"product_id": product.id, "quantity": 2}],
                payment_method="card",
            )

        assert len(terminal.sales) == 1
        assert terminal.refunds == [terminal.sales[0]]
        assert db_session.query(Sale).count() == 0
        assert inventory_service.available_quantity(product.id, branch.id) == 1
        assert ledger_service.ledger_balance(product.id, branch.id) == 1

    @pytest.mark.parametrize("refund_mode", ["decline", "unavailable"])
    def test_failed_refund_is_logged_as_error(
        self, stocked, db_session, product, branch, cashier, admin, terminal, caplog, refund_mode
    ):
        def _other_till():
            inventory_service.adjust_quantity(product.id, branch.id, -9)
            db.session.commit()

        terminal.before_approve = _other_till
        terminal.refund_mode = refund_mode

        with caplog.at_level(logging.WARNING):
            with pytest.raises(InsufficientStockError):
                sales_service.create_sale(
                    branch_id=branch.id,
                    user_id=cashier.id,
                    items=[{"product_id": product.id, "quantity": 2}],
                    payment_method="card",
                )

        order_id = terminal.sales[0][1]
        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert len(errors) == 1
        assert order_id in errors[0].getMessage()
        assert "manual reversal required" in errors[0].getMessage()
        assert db_session.query(Sale).count() == 0
