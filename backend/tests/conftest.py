"""
Pytest fixtures for StockFlow backend tests.

Provides test database setup, stores/products/users per role, stock helpers,
and a recorder for cache invalidation signals.
"""

import pytest

from stockflow import create_app
from stockflow.extensions import db
from stockflow.models import Product, Store, StockRecord, User, UserStoreAccess
from stockflow.services import session_service
from stockflow.services.scope_service import ActorScope, Role, resolve_scope
from stockflow.services.store_service import all_store_ids
from stockflow.signals import cache_invalidated


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'TAX_RATE_BPS': 2000,
    'MAX_DISCOUNT_RATE_BPS': 5000,
    'MAX_ITEMS_PER_SALE': 100,
    'LOW_STOCK_THRESHOLD': 5,
    'STOCK_SHORTAGE_POLICY': 'abort',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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


@pytest.fixture(scope='function')
def store_1(db_session):
    store = Store(name="Store One", code="S1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_2(db_session):
    store = Store(name="Store Two", code="S2")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def product_a(db_session):
    product = Product(sku="PROD-A-001", name="Product A", price_cents=1000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    product = Product(sku="PROD-B-001", name="Product B", price_cents=2500)
    db_session.add(product)
    db_session.commit()
    return product


def make_user(db_session, username: str, role: str, store_ids=()) -> User:
    user = User(username=username, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    for store_id in store_ids:
        db_session.add(UserStoreAccess(user_id=user.id, store_id=store_id))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def manager_user(db_session, store_1):
    return make_user(db_session, "manager", "manager", [store_1.id])


@pytest.fixture(scope='function')
def seller_user(db_session, store_1):
    """Seller assigned to store_1 only."""
    return make_user(db_session, "seller", "seller", [store_1.id])


def scope_of(user: User):
    """StoreScope for a user, resolved the way the request decorator does it."""
    actor = ActorScope(
        actor_id=user.id,
        role=Role.parse(user.role),
        assigned_store_ids=session_service.assigned_store_ids(user.id),
    )
    return resolve_scope(actor, all_store_ids())


@pytest.fixture(scope='function')
def admin_scope(admin_user):
    return scope_of(admin_user)


@pytest.fixture(scope='function')
def manager_scope(manager_user):
    return scope_of(manager_user)


@pytest.fixture(scope='function')
def seller_scope(seller_user):
    return scope_of(seller_user)


def put_stock(db_session, product, store, quantity: int, min_threshold: int = 5) -> StockRecord:
    """Create a stock record directly (test setup only)."""
    record = StockRecord(
        product_id=product.id,
        store_id=store.id,
        quantity=quantity,
        min_threshold=min_threshold,
        reserved_quantity=0,
    )
    db_session.add(record)
    db_session.commit()
    return record


def quantity_of(product, store) -> int:
    row = (
        db.session.query(StockRecord.quantity)
        .filter_by(product_id=product.id, store_id=store.id)
        .first()
    )
    return row[0] if row else 0


@pytest.fixture(scope='function')
def invalidations():
    """Collects (sender, tags, store_id) of every cache_invalidated signal."""
    received = []

    def _record(sender, tags, store_id=None, **extra):
        received.append({"sender": sender, "tags": tags, "store_id": store_id, **extra})

    cache_invalidated.connect(_record)
    yield received
    cache_invalidated.disconnect(_record)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(session_service.issue_token(admin_user.id))


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return auth_headers(session_service.issue_token(manager_user.id))


@pytest.fixture(scope='function')
def seller_headers(seller_user):
    return auth_headers(session_service.issue_token(seller_user.id))
