"""
Catalogue, session boundary and CLI tests.

Verifies:
- Store/product creation rules
- Tokens resolve to the user's ActorScope; expiry and revocation
- CLI bootstrap and stock receiving
"""

from datetime import timedelta

import pytest

from stockflow.models import SessionToken, Store, User
from stockflow.services import session_service
from stockflow.services.products_service import ProductError, create_product
from stockflow.services.scope_service import Role
from stockflow.services.store_service import StoreError, all_store_ids, create_store
from stockflow.time_utils import utcnow

from conftest import quantity_of


class TestStores:

    def test_create_store(self, db_session):
        store = create_store("Harbour", code="HB", tax_rate_bps=1000)
        assert store.id is not None
        assert store.tax_rate_bps == 1000

    def test_duplicate_name(self, db_session):
        create_store("Harbour")
        with pytest.raises(StoreError):
            create_store("Harbour")

    def test_tax_rate_bounds(self, db_session):
        with pytest.raises(StoreError):
            create_store("Bad", tax_rate_bps=10001)

    def test_inactive_stores_not_listed(self, db_session, store_1, store_2):
        store_2.is_active = False
        db_session.commit()
        assert all_store_ids() == {store_1.id}
        assert all_store_ids(active_only=False) == {store_1.id, store_2.id}


class TestProducts:

    def test_create_product(self, db_session):
        product = create_product(sku=" SKU-9 ", name="Tea", price_cents=350)
        assert product.sku == "SKU-9"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"sku": "", "name": "x"},
            {"sku": "S", "name": " "},
            {"sku": "S", "name": "x", "price_cents": -1},
        ],
    )
    def test_invalid(self, db_session, kwargs):
        with pytest.raises(ProductError):
            create_product(**kwargs)

    def test_duplicate_sku(self, db_session, product_a):
        with pytest.raises(ProductError):
            create_product(sku=product_a.sku, name="Other")


class TestSessions:

    def test_token_resolves_to_scope(self, db_session, seller_user, store_1):
        token = session_service.issue_token(seller_user.id)

        user = session_service.validate_session(token)
        actor = session_service.load_actor_scope(user)

        assert user.id == seller_user.id
        assert actor.role is Role.SELLER
        assert actor.assigned_store_ids == frozenset({store_1.id})

    def test_token_stored_hashed(self, db_session, seller_user):
        token = session_service.issue_token(seller_user.id)
        stored = db_session.query(SessionToken).one()
        assert stored.token_hash == session_service.hash_token(token)
        assert stored.token_hash != token

    def test_expired_token(self, db_session, seller_user):
        token = session_service.issue_token(seller_user.id)
        stored = db_session.query(SessionToken).one()
        stored.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_unknown_token(self, db_session):
        assert session_service.validate_session("nope") is None
        assert session_service.validate_session("") is None

    def test_create_user_and_grant(self, db_session, store_1):
        user = session_service.create_user(username="bob", role="Manager")
        session_service.grant_store(user_id=user.id, store_id=store_1.id)
        session_service.grant_store(user_id=user.id, store_id=store_1.id)

        assert user.role == "manager"
        assert session_service.assigned_store_ids(user.id) == frozenset({store_1.id})

    def test_create_user_rejects_unknown_role(self, db_session):
        with pytest.raises(ValueError):
            session_service.create_user(username="eve", role="cashier")


class TestCli:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init"])
        second = runner.invoke(args=["system", "init"])

        assert first.exit_code == 0
        assert second.exit_code == 0
        assert db_session.query(Store).count() == 1
        assert {u.username for u in db_session.query(User).all()} == {"admin", "manager", "seller"}

    def test_receive_stock(self, app, db_session, store_1, product_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "stock", "receive",
            "--product-id", str(product_a.id),
            "--store-id", str(store_1.id),
            "--quantity", "12",
        ])

        assert result.exit_code == 0
        assert "quantity now 12" in result.output
        assert quantity_of(product_a, store_1) == 12
