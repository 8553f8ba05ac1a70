"""
Pytest fixtures for branchpos backend tests.

Provides the test app on in-memory SQLite, a per-test table wipe, entity
factories, a scriptable card terminal and authenticated API headers.
"""

import pytest
from branchpos import create_app
from branchpos.errors import PaymentGatewayUnavailableError
from branchpos.events import sale_created, stock_updated
from branchpos.extensions import db
from branchpos.models import Branch, Category, Product
from branchpos.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_SUPERVISOR, ROLE_WAREHOUSE
from branchpos.services import auth_service
from branchpos.services.payment_gateway import PaymentResult
from branchpos.time_utils import utcnow


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYMENT_GATEWAY': 'simulated',
        'LOCAL_TIMEZONE': 'America/Santiago',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# CARD TERMINAL
# =============================================================================


class FakeTerminal:
    """
    Scriptable card terminal.

    mode, refund_mode: "approve" | "decline" | "unavailable"
    before_approve: optional callable run inside sale() before approving,
    used to simulate another till selling in the meantime.
    """

    name = "fake"

    def __init__(self):
        self.mode = "approve"
        self.refund_mode = "approve"
        self.before_approve = None
        self.sales: list[tuple[int, str]] = []
        self.refunds: list[tuple[int, str]] = []

    def sale(self, amount, order_id):
        self.sales.append((amount, order_id))
        if self.mode == "unavailable":
            raise PaymentGatewayUnavailableError("Error connecting to card terminal")
        if self.mode == "decline":
            return PaymentResult(success=False, amount=amount, response_code="-1", message="Declined")
        if self.before_approve is not None:
            self.before_approve()
        return PaymentResult(
            success=True,
            authorization_code="123456",
            amount=amount,
            response_code="0",
            transaction_date=utcnow(),
        )

    def refund(self, amount, order_id):
        self.refunds.append((amount, order_id))
        if self.refund_mode == "unavailable":
            raise PaymentGatewayUnavailableError("Error connecting to card terminal")
        if self.refund_mode == "decline":
            return PaymentResult(success=False, amount=amount, response_code="-8", message="Refund rejected")
        return PaymentResult(success=True, amount=amount, response_code="0")


@pytest.fixture(scope='function')
def terminal(app):
    """Install a FakeTerminal for the duration of one test."""
    previous = app.extensions["payment_gateway"]
    fake = FakeTerminal()
    app.extensions["payment_gateway"] = fake
    yield fake
    app.extensions["payment_gateway"] = previous


# =============================================================================
# EVENTS
# =============================================================================


@pytest.fixture(scope='function')
def events(app):
    """Collects (signal name, payload) for every emitted event."""
    received = []

    def _on_sale(sender, payload):
        received.append(("sale-created", payload))

    def _on_stock(sender, payload):
        received.append(("stock-updated", payload))

    sale_created.connect(_on_sale)
    stock_updated.connect(_on_stock)
    yield received
    sale_created.disconnect(_on_sale)
    stock_updated.disconnect(_on_stock)


# =============================================================================
# FACTORIES
# =============================================================================


@pytest.fixture(scope='function')
def make_branch(db_session):
    def _make(name="Casa Matriz", address="Av. Providencia 1234"):
        branch = Branch(name=name, address=address)
        db_session.add(branch)
        db_session.commit()
        return branch
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(barcode="7801234000011", name="Agua Mineral 1.5L", price=1000, category=None):
        product = Product(barcode=barcode, name=name, price=price, cost=0, category=category)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_user(db_session):
    counter = {"n": 0}

    def _make(role=ROLE_CASHIER, branch=None, name=None, email=None):
        counter["n"] += 1
        return auth_service.create_user(
            name=name or f"{role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@pos.local",
            password=TEST_PASSWORD,
            role=role,
            branch_id=branch.id if branch is not None else None,
            bcrypt_rounds=4,
        )
    return _make


@pytest.fixture(scope='function')
def branch(make_branch):
    return make_branch("Casa Matriz")


@pytest.fixture(scope='function')
def other_branch(make_branch):
    return make_branch("Sucursal Centro", "Huerfanos 850")


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Bebidas")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product(make_product, category):
    return make_product("7801234000011", "Agua Mineral 1.5L", 1000, category)


@pytest.fixture(scope='function')
def other_product(make_product, category):
    return make_product("7801234000028", "Bebida Cola 2L", 2000, category)


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user(ROLE_ADMIN)


@pytest.fixture(scope='function')
def supervisor(make_user, branch):
    return make_user(ROLE_SUPERVISOR, branch)


@pytest.fixture(scope='function')
def cashier(make_user, branch):
    return make_user(ROLE_CASHIER, branch)


@pytest.fixture(scope='function')
def warehouse(make_user, branch):
    return make_user(ROLE_WAREHOUSE, branch)


# =============================================================================
# API AUTH
# =============================================================================


def get_auth_token(client, email: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.email))


@pytest.fixture(scope='function')
def supervisor_headers(client, supervisor):
    return auth_headers(get_auth_token(client, supervisor.email))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, cashier.email))


@pytest.fixture(scope='function')
def warehouse_headers(client, warehouse):
    return auth_headers(get_auth_token(client, warehouse.email))
