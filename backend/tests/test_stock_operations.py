"""
Stock operation tests.

Verifies:
- Every quantity change has a ledger movement and the ledger sums match
- Single transfers are all-or-nothing
- Bulk transfers and imports are best-effort per item
- Import preview classifies rows without writing anything
"""

import random
import re
from datetime import date

import pytest

from branchpos.errors import InsufficientStockError, NotFoundError, ValidationError
from branchpos.models import InventoryBatch, InventoryRecord, StockMovement
from branchpos.services import inventory_service, ledger_service, stock_service
from branchpos.services.filters import MovementFilter


def _movements(db_session):
    return db_session.query(StockMovement).order_by(StockMovement.id).all()


# =============================================================================
# RECEIVE
# =============================================================================


class TestReceive:

    def test_receive_creates_record_batch_and_movement(self, db_session, product, branch, warehouse):
        record = stock_service.receive_stock(
            product_id=product.id,
            branch_id=branch.id,
            quantity=24,
            user_id=warehouse.id,
            lot="L-2024-01",
            expiry="2025-06-30",
        )

        assert record.quantity == 24
        batch = db_session.query(InventoryBatch).one()
        assert batch.lot == "L-2024-01"
        assert batch.expiry == date(2025, 6, 30)

        movement = db_session.query(StockMovement).one()
        assert movement.type == "IN"
        assert movement.quantity == 24
        assert movement.reason == "Manual Entry"
        assert movement.batch_lot == "L-2024-01"
        assert movement.user_id == warehouse.id

    @pytest.mark.parametrize("quantity", [0, -3, "abc", 2.5, None])
    def test_receive_rejects_non_positive_quantity(self, db_session, product, branch, warehouse, quantity):
        with pytest.raises(ValidationError):
            stock_service.receive_stock(
                product_id=product.id, branch_id=branch.id, quantity=quantity, user_id=warehouse.id,
            )
        assert db_session.query(StockMovement).count() == 0

    def test_receive_unknown_product(self, db_session, branch, warehouse):
        with pytest.raises(NotFoundError):
            stock_service.receive_stock(product_id=999, branch_id=branch.id, quantity=1, user_id=warehouse.id)

    def test_receive_bad_expiry(self, db_session, product, branch, warehouse):
        with pytest.raises(ValidationError):
            stock_service.receive_stock(
                product_id=product.id, branch_id=branch.id, quantity=1,
                user_id=warehouse.id, expiry="30/06/2025",
            )

    def test_receive_emits_stock_updated(self, db_session, product, branch, warehouse, events):
        stock_service.receive_stock(product_id=product.id, branch_id=branch.id, quantity=5, user_id=warehouse.id)
        assert events == [("stock-updated", {"product_id": product.id, "branch_id": branch.id, "quantity": 5})]


# =============================================================================
# TRANSFER
# =============================================================================


class TestTransfer:

    @pytest.fixture
    def stocked(self, db_session, product, branch, admin):
        stock_service.receive_stock(product_id=product.id, branch_id=branch.id, quantity=10, user_id=admin.id)

    def test_transfer_moves_stock_with_shared_document(
        self, stocked, db_session, product, branch, other_branch, supervisor
    ):
        result = stock_service.transfer_stock(
            product_id=product.id,
            from_branch_id=branch.id,
            to_branch_id=other_branch.id,
            quantity=4,
            user_id=supervisor.id,
        )

        assert re.fullmatch(r"TRANS-\d+-[0-9a-f]+", result.document_id)
        assert result.source.quantity == 6
        assert result.destination.quantity == 4

        legs = ledger_service.movements_for_document(result.document_id)
        assert [(m.branch_id, m.quantity, m.type) for m in legs] == [
            (branch.id, -4, "TRANSFER"),
            (other_branch.id, 4, "TRANSFER"),
        ]
        assert legs[0].reason == "Transfer to Sucursal Centro"
        assert legs[1].reason == "Transfer from Casa Matriz"
        assert legs[1].batch_lot == "TRANSFER"

        destination = inventory_service.get_record(product.id, other_branch.id)
        assert [b.lot for b in destination.batches] == ["TRANSFER"]

    def test_insufficient_source_changes_nothing(
        self, stocked, db_session, product, branch, other_branch, supervisor
    ):
        before = len(_movements(db_session))

        with pytest.raises(InsufficientStockError):
            stock_service.transfer_stock(
                product_id=product.id,
                from_branch_id=branch.id,
                to_branch_id=other_branch.id,
                quantity=11,
                user_id=supervisor.id,
            )

        assert inventory_service.available_quantity(product.id, branch.id) == 10
        assert inventory_service.get_record(product.id, other_branch.id) is None
        assert len(_movements(db_session)) == before

    def test_missing_source_record(self, db_session, product, branch, other_branch, supervisor):
        with pytest.raises(InsufficientStockError):
            stock_service.transfer_stock(
                product_id=product.id,
                from_branch_id=other_branch.id,
                to_branch_id=branch.id,
                quantity=1,
                user_id=supervisor.id,
            )
        assert db_session.query(InventoryRecord).count() == 0

    def test_same_branch_rejected(self, stocked, product, branch, supervisor):
        with pytest.raises(ValidationError):
            stock_service.transfer_stock(
                product_id=product.id,
                from_branch_id=branch.id,
                to_branch_id=branch.id,
                quantity=1,
                user_id=supervisor.id,
            )

    def test_same_branch_rejected_when_ids_arrive_as_text(self, db_session, stocked, product, branch, supervisor):
        before = db_session.query(StockMovement).count()
        with pytest.raises(ValidationError):
            stock_service.transfer_stock(
                product_id=product.id,
                from_branch_id=str(branch.id),
                to_branch_id=branch.id,
                quantity=3,
                user_id=supervisor.id,
            )
        assert db_session.query(StockMovement).count() == before
        assert inventory_service.available_quantity(product.id, branch.id) == 10
        assert db_session.query(InventoryBatch).filter_by(lot="TRANSFER").count() == 0

    def test_text_ids_are_accepted(self, stocked, product, branch, other_branch, supervisor):
        result = stock_service.transfer_stock(
            product_id=str(product.id),
            from_branch_id=str(branch.id),
            to_branch_id=str(other_branch.id),
            quantity="4",
            user_id=supervisor.id,
        )
        assert result.source.quantity == 6
        assert result.destination.quantity == 4

    def test_transfer_event_carries_both_branches(
        self, stocked, product, branch, other_branch, supervisor, events
    ):
        result = stock_service.transfer_stock(
            product_id=product.id,
            from_branch_id=branch.id,
            to_branch_id=other_branch.id,
            quantity=3,
            user_id=supervisor.id,
        )
        name, payload = events[-1]
        assert name == "stock-updated"
        assert payload["document_id"] == result.document_id
        assert payload["branches"] == [
            {"id": branch.id, "quantity": 7},
            {"id": other_branch.id, "quantity": 3},
        ]


class TestBulkTransfer:

    def test_partial_success(self, db_session, make_branch, product, other_product, branch, admin):
        destination = make_branch("Bodega Central")
        stock_service.receive_stock(product_id=product.id, branch_id=branch.id, quantity=5, user_id=admin.id)

        result = stock_service.bulk_transfer(
            items=[
                {"product_id": product.id, "from_branch_id": branch.id, "quantity": 3},
                # no stock record at source
                {"product_id": other_product.id, "from_branch_id": branch.id, "quantity": 1},
                # more than what is left after the first item
                {"product_id": product.id, "from_branch_id": branch.id, "quantity": 5},
            ],
            to_branch_id=destination.id,
            user_id=admin.id,
        )

        assert result.count == 1
        assert [s["index"] for s in result.skipped] == [1, 2]
        assert inventory_service.available_quantity(product.id, branch.id) == 2
        assert inventory_service.available_quantity(product.id, destination.id) == 3

        legs = ledger_service.movements_for_document(result.document_id)
        assert [m.quantity for m in legs] == [-3, 3]
        assert legs[0].reason == "Bulk Transfer to Bodega Central"

    def test_item_ids_given_as_text(self, db_session, product, branch, other_branch, admin):
        stock_service.receive_stock(product_id=product.id, branch_id=branch.id, quantity=5, user_id=admin.id)

        result = stock_service.bulk_transfer(
            items=[
                {"product_id": product.id, "from_branch_id": str(other_branch.id), "quantity": 1},
                {"product_id": str(product.id), "from_branch_id": str(branch.id), "quantity": 2},
                {"product_id": product.id, "from_branch_id": "abc", "quantity": 1},
            ],
            to_branch_id=str(other_branch.id),
            user_id=admin.id,
        )

        assert result.count == 1
        assert result.skipped == [
            {"index": 0, "reason": "source equals destination"},
            {"index": 2, "reason": "invalid product or source branch id"},
        ]
        assert inventory_service.available_quantity(product.id, branch.id) == 3
        assert inventory_service.available_quantity(product.id, other_branch.id) == 2

    def test_requires_items_and_destination(self, db_session, branch, admin):
        with pytest.raises(ValidationError):
            stock_service.bulk_transfer(items=[], to_branch_id=branch.id, user_id=admin.id)
        with pytest.raises(ValidationError):
            stock_service.bulk_transfer(items=[{"product_id": 1}], to_branch_id=None, user_id=admin.id)

    def test_nothing_transferred_still_returns_document(self, db_session, product, branch, other_branch, admin):
        result = stock_service.bulk_transfer(
            items=[{"product_id": product.id, "from_branch_id": branch.id, "quantity": 1}],
            to_branch_id=other_branch.id,
            user_id=admin.id,
        )
        assert result.count == 0
        assert result.document_id.startswith("TRANS-")
        assert db_session.query(StockMovement).count() == 0


# =============================================================================
# SPREADSHEET IMPORT
# =============================================================================


class TestImportPreview:

    def test_classifies_rows_without_writing(self, db_session, product, branch):
        rows = [
            ("7801234000011", "Casa Matriz", 10, "L1", "2025-01-31"),
            (7801234000011.0, "Casa Matriz", 2.0, None, None),
            ("0000000000000", "Casa Matriz", 5, None, None),
            ("7801234000011", "Sucursal Fantasma", 5, None, None),
            ("7801234000011", "Casa Matriz", -1, None, None),
            ("7801234000011", "Casa Matriz", None, None, None),
            (None, None, None, None, None),
            ("7801234000011", "Casa Matriz", 1, None, "not-a-date"),
        ]

        preview = stock_service.import_preview(rows)

        assert [p.row for p in preview] == [2, 3, 4, 5, 6, 7, 9]
        assert [p.status for p in preview] == ["Valid", "Valid", "Error", "Error", "Error", "Error", "Error"]

        assert preview[0].product_id == product.id
        assert preview[0].branch_id == branch.id
        assert preview[0].expiry == date(2025, 1, 31)
        assert preview[1].barcode == "7801234000011"
        assert preview[1].quantity == 2
        assert preview[2].product_name == "Unknown"
        assert "0000000000000" in preview[2].error
        assert "Sucursal Fantasma" in preview[3].error
        assert "Invalid quantity" in preview[4].error
        assert "Quantity missing" in preview[5].error
        assert "Invalid expiry" in preview[6].error

        assert db_session.query(InventoryRecord).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_multiple_errors_joined(self, db_session):
        preview = stock_service.import_preview([("999", "Nowhere", "x", None, None)])
        assert preview[0].error.count(";") == 2


class TestImportConfirm:

    def test_applies_valid_items_and_skips_incomplete(
        self, db_session, product, other_product, branch, warehouse, events
    ):
        result = stock_service.import_confirm(
            items=[
                {"product_id": product.id, "branch_id": branch.id, "quantity": 10, "lot": "L1", "expiry": "2025-03-01"},
                {"product_id": other_product.id, "branch_id": branch.id, "quantity": 4},
                {"product_id": None, "branch_id": branch.id, "quantity": 4},
                {"product_id": 9999, "branch_id": branch.id, "quantity": 4},
            ],
            user_id=warehouse.id,
        )

        assert result.count == 2
        assert re.fullmatch(r"IMPORT-\d+-\d{1,3}", result.document_id)

        movements = ledger_service.movements_for_document(result.document_id)
        assert [(m.product_id, m.quantity, m.batch_lot) for m in movements] == [
            (product.id, 10, "L1"),
            (other_product.id, 4, "IMPORT"),
        ]
        assert all(m.type == "IN" for m in movements)
        assert movements[0].reason == f"Excel Import {result.document_id}"
        assert events[-1] == ("stock-updated", {"type": "import", "document_id": result.document_id, "count": 2})

    def test_text_ids_resolve_to_the_same_record(self, db_session, product, branch, warehouse):
        result = stock_service.import_confirm(
            items=[
                {"product_id": str(product.id), "branch_id": str(branch.id), "quantity": "3"},
                {"product_id": product.id, "branch_id": branch.id, "quantity": 2},
                {"product_id": "x1", "branch_id": branch.id, "quantity": 2},
            ],
            user_id=warehouse.id,
        )

        assert result.count == 2
        assert result.skipped == [{"index": 2, "reason": "invalid product or branch id"}]
        assert db_session.query(InventoryRecord).count() == 1
        assert inventory_service.available_quantity(product.id, branch.id) == 5

    def test_empty_items_rejected(self, db_session, warehouse):
        with pytest.raises(ValidationError):
            stock_service.import_confirm(items=[], user_id=warehouse.id)


# =============================================================================
# INVARIANTS
# =============================================================================


def test_random_operations_keep_ledger_and_stock_consistent(
    db_session, product, other_product, branch, other_branch, admin
):
    """
    Random receives and transfers, some of which must fail: stock never
    goes negative and each record equals the sum of its movements.
    """
    rng = random.Random(20240301)
    products = [product.id, other_product.id]
    branches = [branch.id, other_branch.id]

    for _ in range(60):
        product_id = rng.choice(products)
        if rng.random() < 0.4:
            stock_service.receive_stock(
                product_id=product_id,
                branch_id=rng.choice(branches),
                quantity=rng.randint(1, 6),
                user_id=admin.id,
            )
        else:
            source, destination = rng.sample(branches, 2)
            try:
                stock_service.transfer_stock(
                    product_id=product_id,
                    from_branch_id=source,
                    to_branch_id=destination,
                    quantity=rng.randint(1, 8),
                    user_id=admin.id,
                )
            except InsufficientStockError:
                pass

    for record in db_session.query(InventoryRecord).all():
        assert record.quantity >= 0
        assert record.quantity == ledger_service.ledger_balance(record.product_id, record.branch_id)

    page = ledger_service.query_movements(MovementFilter(movement_type="TRANSFER", page_size=500))
    assert sum(m.quantity for m in page.items) == 0
