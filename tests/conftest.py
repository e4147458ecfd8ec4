"""Shared test fixtures for the storefront checkout test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite)
- client: Flask test client
- db_session: clean database + rate-limit counters per test
- auth_tokens: bearer tokens that resolve to known Supabase user ids
- pagbank_ok: PagBank checkout API stubbed with a successful response
- make_pending: helper to stage a pending purchase directly
"""

from unittest.mock import MagicMock, patch

import pytest

from storefront import create_app
from storefront.extensions import db as _db
from storefront.models.pending_purchase import PendingPurchase
from storefront.security import reset_rate_limits

ALICE_ID = "3f2b8c4e-5a6d-4e7f-9a1b-2c3d4e5f6a7b"
BOB_ID = "9c8d7e6f-1a2b-4c3d-8e4f-5a6b7c8d9e0f"

TOKENS = {
    "token-alice": ALICE_ID,
    "token-bob": BOB_ID,
}


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after.

    No app context is held during the test itself, so every request gets
    its own session and its own Flask-Login user, like in production.
    """
    with app.app_context():
        _db.create_all()
    reset_rate_limits()

    yield _db

    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def auth_tokens():
    """Resolve the tokens in TOKENS without calling Supabase."""
    with patch(
        "storefront.services.auth_service.get_user_id_from_token",
        side_effect=lambda token: TOKENS.get(token),
    ):
        yield TOKENS


@pytest.fixture
def pagbank_ok():
    """Stub requests.post in the PagBank service with a created checkout."""
    response = MagicMock()
    response.ok = True
    response.status_code = 201
    response.json.return_value = {
        "id": "CHEC_8A1B2C3D-0000-1111-2222-333344445555",
        "links": [
            {"rel": "SELF", "href": "https://sandbox.api.pagseguro.com/checkouts/CHEC_8A1B"},
            {"rel": "PAY", "href": "https://pagamento.sandbox.pagbank.com.br/pagamento?code=abc123"},
        ],
    }
    with patch(
        "storefront.services.pagbank_service.requests.post",
        return_value=response,
    ) as mock_post:
        yield mock_post


@pytest.fixture
def make_pending(app):
    """Stage a pending purchase the way the checkout endpoint would."""

    def _make(reference_id, user_id=ALICE_ID, items=None, created_at=None):
        if items is None:
            items = [
                {"name": "Livro A", "price": 29.9, "quantity": 2, "handle": "livro-a"},
            ]
        with app.app_context():
            pending = PendingPurchase(
                reference_id=reference_id,
                user_id=user_id,
                items=items,
            )
            if created_at is not None:
                pending.created_at = created_at
            _db.session.add(pending)
            _db.session.commit()
        return reference_id

    return _make
