"""Tests for the purchases blueprint and purchase service.

Covers:
- Success-page recording (auth, validation, idempotency)
- Webhook vs success page, in both orders: one set of records
- Purchase history listing
- Bestsellers aggregation
- purge-pending-purchases CLI
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from flask.cli import ScriptInfo

from conftest import ALICE_ID, BOB_ID, bearer
from storefront.extensions import db
from storefront.models.pending_purchase import PendingPurchase
from storefront.models.purchase_history import PurchaseHistory
from storefront.security import ANONYMOUS_USER_ID
from storefront.services import purchase_service

REF = "order_1718031234567_9f86d081"

ITEMS = [
    {"name": "Livro A", "price": 29.9, "quantity": 2, "handle": "livro-a"},
    {"name": "Dom Casmurro", "price": 45.0, "quantity": 1},
]


def _record(client, token="token-alice", reference_id=REF, items=ITEMS):
    return client.post(
        "/api/purchases/record",
        json={"referenceId": reference_id, "items": items},
        headers=bearer(token),
    )


def _paid_webhook(client, reference_id=REF):
    return client.post("/pagbank/webhooks", json={
        "reference_id": reference_id,
        "charges": [{"id": "CHAR_1", "status": "PAID"}],
    })


def _count(app, order_id=REF):
    with app.app_context():
        return PurchaseHistory.query.filter_by(order_id=order_id).count()


def _add_history(app, user_id, order_id, handle, quantity, purchased_at=None, price=10):
    with app.app_context():
        record = PurchaseHistory(
            user_id=user_id,
            order_id=order_id,
            product_handle=handle,
            product_title=handle.replace("-", " ").title(),
            product_price=price,
            quantity=quantity,
        )
        if purchased_at is not None:
            record.purchased_at = purchased_at
        db.session.add(record)
        db.session.commit()


class TestRecordPurchase:

    def test_requires_authentication(self, client, app):
        resp = client.post("/api/purchases/record", json={"referenceId": REF, "items": ITEMS})
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Authentication required"}
        assert _count(app) == 0

    def test_unknown_token_is_rejected(self, client, auth_tokens):
        resp = _record(client, token="token-mallory")
        assert resp.status_code == 401

    def test_records_items(self, client, app, auth_tokens):
        resp = _record(client)
        assert resp.status_code == 200
        assert resp.get_json() == {"success": True, "recordsCount": 2}

        with app.app_context():
            rows = {r.product_handle: r for r in PurchaseHistory.query.all()}
            assert set(rows) == {"livro-a", "dom-casmurro"}
            assert rows["livro-a"].user_id == ALICE_ID
            assert rows["livro-a"].quantity == 2
            assert float(rows["dom-casmurro"].product_price) == 45.0

    def test_consumes_pending_purchase(self, client, app, auth_tokens, make_pending):
        make_pending(REF)
        _record(client)
        with app.app_context():
            assert PendingPurchase.query.filter_by(reference_id=REF).first() is None

    def test_second_call_is_already_recorded(self, client, app, auth_tokens):
        _record(client)
        resp = _record(client)

        assert resp.status_code == 200
        assert resp.get_json() == {
            "success": True,
            "recordsCount": 0,
            "message": "Order already recorded",
        }
        assert _count(app) == 2

    def test_missing_reference_is_400(self, client, auth_tokens):
        resp = client.post(
            "/api/purchases/record", json={"items": ITEMS}, headers=bearer("token-alice")
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Missing referenceId or items"

    def test_empty_items_is_400(self, client, auth_tokens):
        resp = _record(client, items=[])
        assert resp.status_code == 400

    def test_invalid_item_is_400_and_writes_nothing(self, client, app, auth_tokens):
        resp = _record(client, items=[ITEMS[0], {"name": "X", "price": 10, "quantity": 1}])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Item 2 has invalid name"
        assert _count(app) == 0

    def test_same_order_for_another_user_is_separate(self, client, app, auth_tokens):
        _record(client, token="token-alice")
        resp = _record(client, token="token-bob")
        assert resp.get_json()["recordsCount"] == 2

        with app.app_context():
            assert PurchaseHistory.query.filter_by(user_id=BOB_ID).count() == 2


class TestWebhookAndSuccessPage:

    def test_webhook_first_then_success_page(self, client, app, auth_tokens, make_pending):
        make_pending(REF, items=ITEMS)

        assert _paid_webhook(client).get_json()["processed"] is True
        resp = _record(client)

        assert resp.get_json()["message"] == "Order already recorded"
        assert _count(app) == 2

    def test_success_page_first_then_webhook(self, client, app, auth_tokens, make_pending):
        make_pending(REF, items=ITEMS)

        assert _record(client).get_json()["recordsCount"] == 2
        hook = _paid_webhook(client)

        assert hook.status_code == 200
        assert hook.get_json()["processed"] is False
        assert _count(app) == 2

    def test_other_user_cannot_consume_pending_purchase(self, client, app,
                                                        auth_tokens, make_pending):
        make_pending(REF, user_id=ALICE_ID)

        assert _record(client, token="token-bob", items=[ITEMS[0]]).status_code == 200
        with app.app_context():
            assert PendingPurchase.query.filter_by(reference_id=REF).first() is not None

        hook = _paid_webhook(client)
        assert hook.get_json()["processed"] is True

        with app.app_context():
            assert PurchaseHistory.query.filter_by(user_id=ALICE_ID, order_id=REF).count() == 1
            assert PendingPurchase.query.filter_by(reference_id=REF).first() is None

    def test_anonymous_pending_is_consumed_by_success_page(self, client, app,
                                                           auth_tokens, make_pending):
        make_pending(REF, user_id=ANONYMOUS_USER_ID)

        assert _record(client).get_json()["recordsCount"] == 2
        with app.app_context():
            assert PendingPurchase.query.filter_by(reference_id=REF).first() is None

    def test_webhook_loses_claim_after_reading_pending(self, app, make_pending):
        make_pending(REF, items=ITEMS)
        real_claim = purchase_service.claim_pending_purchase

        def success_page_claims_first(reference_id, owners=None):
            # The other path commits its claim between the read and the DELETE
            real_claim(reference_id, owners=(ALICE_ID, ANONYMOUS_USER_ID))
            db.session.commit()
            return real_claim(reference_id, owners)

        with app.app_context():
            with patch(
                "storefront.services.purchase_service.claim_pending_purchase",
                side_effect=success_page_claims_first,
            ):
                result = purchase_service.reconcile_pending_purchase(REF)

        assert result == (False, "already_processed")
        assert _count(app) == 0


class TestPurchaseHistory:

    def test_requires_authentication(self, client):
        assert client.get("/api/purchases").status_code == 401

    def test_lists_own_purchases_newest_first(self, client, app, auth_tokens):
        now = datetime.now(timezone.utc)
        _add_history(app, ALICE_ID, "order_1_aaaa", "velho", 1, now - timedelta(days=3))
        _add_history(app, ALICE_ID, "order_2_bbbb", "novo", 1, now - timedelta(hours=1))
        _add_history(app, BOB_ID, "order_3_cccc", "de-outro", 1, now)

        resp = client.get("/api/purchases", headers=bearer("token-alice"))
        assert resp.status_code == 200

        body = resp.get_json()
        assert [p["product_handle"] for p in body] == ["novo", "velho"]
        assert body[0]["order_id"] == "order_2_bbbb"
        assert body[0]["product_price"] == 10.0


class TestBestsellers:

    def test_empty(self, client):
        resp = client.get("/api/bestsellers")
        assert resp.status_code == 200
        assert resp.get_json() == []

    def test_sums_quantity_per_handle(self, client, app):
        _add_history(app, ALICE_ID, "order_1_aaaa", "livro-a", 2)
        _add_history(app, BOB_ID, "order_2_bbbb", "livro-a", 3)
        _add_history(app, BOB_ID, "order_2_bbbb", "livro-b", 4)
        _add_history(app, ALICE_ID, "order_3_cccc", "livro-c", 1)

        resp = client.get("/api/bestsellers")
        assert resp.get_json() == [
            {"handle": "livro-a", "total_sold": 5},
            {"handle": "livro-b", "total_sold": 4},
            {"handle": "livro-c", "total_sold": 1},
        ]

    def test_limit(self, app):
        from storefront.services.purchase_service import get_bestsellers

        for n in range(5):
            _add_history(app, ALICE_ID, f"order_{n}_aaaa", f"livro-{n}", n + 1)

        with app.app_context():
            top = get_bestsellers(limit=2)
        assert [b["handle"] for b in top] == ["livro-4", "livro-3"]


class TestPurgeCommand:

    def _stage(self, make_pending):
        old = datetime.now(timezone.utc) - timedelta(hours=72)
        make_pending("order_1_old0", created_at=old)
        make_pending("order_2_new0")

    def _invoke(self, app, *args):
        # Keep the CLI runner from resetting app.debug on the shared app
        info = ScriptInfo(create_app=lambda: app, set_debug_flag=False)
        return app.test_cli_runner().invoke(args=["purge-pending-purchases", *args], obj=info)

    def _remaining(self, app):
        with app.app_context():
            return sorted(p.reference_id for p in PendingPurchase.query.all())

    def test_dry_run_deletes_nothing(self, app, make_pending):
        self._stage(make_pending)

        result = self._invoke(app, "--dry-run")

        assert result.exit_code == 0
        assert "Would delete 1 pending purchase(s) older than 48h." in result.output
        assert self._remaining(app) == ["order_1_old0", "order_2_new0"]

    def test_purges_expired_rows(self, app, make_pending):
        self._stage(make_pending)

        result = self._invoke(app)

        assert result.exit_code == 0
        assert "Deleted 1 pending purchase(s)" in result.output
        assert self._remaining(app) == ["order_2_new0"]

    def test_custom_threshold(self, app, make_pending):
        self._stage(make_pending)

        result = self._invoke(app, "--older-than-hours", "100")

        assert "Deleted 0 pending purchase(s) older than 100h." in result.output
        assert len(self._remaining(app)) == 2
