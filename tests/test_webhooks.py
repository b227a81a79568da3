"""Tests for the gateway webhooks and the checkout redirect."""
import base64
import hashlib
import hmac

import pytest
from sqlmodel import select

from app.config import settings
from app.constants import purchase_status
from app.models.purchase import Purchase, PurchaseItem
from app.models.user_library import UserLibrary
from app.routes.webhooks import nomba_signature_payload, verify_nomba_signature


@pytest.fixture
def purchase_for(session, user):
    def make(books, reference="BOOK_WH_1", status=purchase_status.PENDING, gateway_data=None):
        purchase = Purchase(
            user_id=user.id,
            book_id=books[0].id,
            amount_paid=sum(b.price for b in books),
            status=status,
            transaction_id=reference,
            gateway_data=gateway_data,
            items=[PurchaseItem(book_id=b.id, unit_price=b.price) for b in books],
        )
        session.add(purchase)
        session.commit()
        session.refresh(purchase)
        return purchase

    return make


def _library_ids(session, user_id):
    rows = session.exec(select(UserLibrary).where(UserLibrary.user_id == user_id)).all()
    return sorted(row.book_id for row in rows)


def _sign(body, timestamp, secret):
    digest = hmac.new(
        secret.encode(),
        nomba_signature_payload(body, timestamp).encode(),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode()


SIGNED_EVENT = {
    "event_type": "payment.success",
    "requestId": "req-1",
    "data": {
        "orderReference": "BOOK_WH_1",
        "merchant": {"userId": "u-1", "walletId": "w-1"},
        "transaction": {"transactionId": "tx-1", "type": "online_checkout", "time": "2024-01-01T00:00:00Z", "responseCode": ""},
    },
}


class TestSignature:
    """Nomba webhook signature checks."""

    def test_payload_joins_fields_in_order(self):
        payload = nomba_signature_payload(SIGNED_EVENT, "1700000000")

        assert payload == "payment.success:req-1:u-1:w-1:tx-1:online_checkout:2024-01-01T00:00:00Z::1700000000"

    def test_null_response_code_is_blank(self):
        body = {"event_type": "e", "data": {"transaction": {"responseCode": "null"}}}

        assert nomba_signature_payload(body, "t").endswith("::t")

    def test_valid_signature_passes(self, monkeypatch):
        monkeypatch.setattr(settings, "nomba_webhook_secret", "shh")
        headers = {"nomba-signature": _sign(SIGNED_EVENT, "1700000000", "shh"), "nomba-timestamp": "1700000000"}

        assert verify_nomba_signature(SIGNED_EVENT, headers) == (True, None)

    def test_missing_header_fails(self, monkeypatch):
        monkeypatch.setattr(settings, "nomba_webhook_secret", "shh")

        ok, reason = verify_nomba_signature(SIGNED_EVENT, {"nomba-timestamp": "1"})

        assert ok is False
        assert "nomba-signature" in reason

    def test_no_secret_skips_check(self):
        assert verify_nomba_signature(SIGNED_EVENT, {}) == (True, None)

    def test_disabled_verification_skips_check(self, monkeypatch):
        monkeypatch.setattr(settings, "nomba_webhook_secret", "shh")
        monkeypatch.setattr(settings, "nomba_webhook_verify", False)

        assert verify_nomba_signature(SIGNED_EVENT, {"nomba-signature": "garbage"}) == (True, None)

    def test_bad_signature_is_401_and_changes_nothing(self, client, session, make_book, purchase_for, monkeypatch):
        monkeypatch.setattr(settings, "nomba_webhook_secret", "shh")
        purchase = purchase_for([make_book()])

        response = client.post(
            "/api/webhooks/nomba",
            json=SIGNED_EVENT,
            headers={"nomba-signature": "bm9wZQ==", "nomba-timestamp": "1700000000"},
        )

        assert response.status_code == 401
        session.refresh(purchase)
        assert purchase.status == purchase_status.PENDING

    def test_signed_event_is_processed(self, client, session, user, make_book, purchase_for, monkeypatch):
        monkeypatch.setattr(settings, "nomba_webhook_secret", "shh")
        book = make_book()
        purchase = purchase_for([book])

        response = client.post(
            "/api/webhooks/nomba",
            json=SIGNED_EVENT,
            headers={"nomba-signature": _sign(SIGNED_EVENT, "1700000000", "shh"), "nomba-timestamp": "1700000000"},
        )

        assert response.status_code == 200
        session.refresh(purchase)
        assert purchase.status == purchase_status.COMPLETED
        assert _library_ids(session, user.id) == [book.id]


class TestNombaWebhook:
    """POST /api/webhooks/nomba"""

    def test_success_grants_every_book(self, client, session, user, make_book, purchase_for):
        first, second = make_book(), make_book()
        purchase = purchase_for([first, second])

        response = client.post("/api/webhooks/nomba", json={
            "event_type": "payment.success",
            "data": {"orderReference": purchase.transaction_id},
        })

        assert response.json() == {"status": "success"}
        session.refresh(purchase)
        assert purchase.status == purchase_status.COMPLETED
        assert _library_ids(session, user.id) == sorted([first.id, second.id])

    def test_echoed_metadata_is_used(self, client, session, user, make_book, purchase_for):
        first, second = make_book(), make_book()
        purchase = purchase_for([first])

        client.post("/api/webhooks/nomba", json={
            "event_type": "payment.success",
            "data": {"orderReference": purchase.transaction_id, "metadata": {"bookIds": [first.id, second.id]}},
        })

        assert _library_ids(session, user.id) == sorted([first.id, second.id])

    def test_failure_event_fails_purchase(self, client, session, user, make_book, purchase_for):
        purchase = purchase_for([make_book()])

        client.post("/api/webhooks/nomba", json={
            "event_type": "payment.failed",
            "data": {"orderReference": purchase.transaction_id},
        })

        session.refresh(purchase)
        assert purchase.status == purchase_status.FAILED
        assert _library_ids(session, user.id) == []

    def test_failure_after_completion_is_ignored(self, client, session, make_book, purchase_for):
        purchase = purchase_for([make_book()], status=purchase_status.COMPLETED)

        client.post("/api/webhooks/nomba", json={
            "event_type": "payment.failed",
            "data": {"orderReference": purchase.transaction_id},
        })

        session.refresh(purchase)
        assert purchase.status == purchase_status.COMPLETED

    def test_success_after_cancellation_is_ignored(self, client, session, user, make_book, purchase_for):
        purchase = purchase_for([make_book()], status=purchase_status.CANCELLED)

        client.post("/api/webhooks/nomba", json={
            "event_type": "payment.success",
            "data": {"orderReference": purchase.transaction_id},
        })

        session.refresh(purchase)
        assert purchase.status == purchase_status.CANCELLED
        assert _library_ids(session, user.id) == []

    def test_unknown_reference_still_returns_200(self, client):
        response = client.post("/api/webhooks/nomba", json={
            "event_type": "payment.success",
            "data": {"orderReference": "BOOK_UNKNOWN"},
        })

        assert response.status_code == 200
        assert response.json() == {"status": "success"}

    def test_unhandled_event_returns_200(self, client):
        response = client.post("/api/webhooks/nomba", json={"event_type": "payout.created", "data": {}})

        assert response.status_code == 200

    def test_processing_error_still_returns_200(self, client, make_book, purchase_for, mocker):
        purchase_for([make_book()])
        mocker.patch(
            "app.routes.webhooks.process_provider_event",
            side_effect=RuntimeError("database went away"),
        )

        response = client.post("/api/webhooks/nomba", json={
            "event_type": "payment.success",
            "data": {"orderReference": "BOOK_WH_1"},
        })

        assert response.status_code == 200
        assert response.json() == {"status": "success"}


class TestPaystackWebhook:
    """POST /api/webhooks/paystack"""

    def test_charge_success_grants_metadata_books(self, client, session, user, make_book, purchase_for):
        first, second = make_book(), make_book()
        purchase = purchase_for([first], reference="PS-REF")

        response = client.post("/api/webhooks/paystack", json={
            "event": "charge.success",
            "data": {"reference": "PS-REF", "status": "success", "metadata": {"bookIds": [first.id, second.id]}},
        })

        assert response.json() == {"status": "success"}
        session.refresh(purchase)
        assert purchase.status == purchase_status.COMPLETED
        assert _library_ids(session, user.id) == sorted([first.id, second.id])

    def test_other_events_are_ignored(self, client, session, make_book, purchase_for):
        purchase = purchase_for([make_book()], reference="PS-REF")

        response = client.post("/api/webhooks/paystack", json={"event": "charge.failed", "data": {"reference": "PS-REF"}})

        assert response.status_code == 200
        session.refresh(purchase)
        assert purchase.status == purchase_status.PENDING


class TestRedirect:
    """GET /api/webhooks/nomba"""

    def test_index_documents_endpoints(self, client):
        assert client.get("/api/webhooks").json()["ok"] is True
        assert client.get("/api/webhooks/nomba").json()["ok"] is True

    def test_redirects_to_verification_page(self, client):
        response = client.get(
            "/api/webhooks/nomba",
            params={"orderReference": "BOOK_1", "status": "success"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "http://shop.test/payment-verification?reference=BOOK_1&status=success"

    def test_cancelled_redirects_to_cart(self, client):
        response = client.get(
            "/api/webhooks/nomba",
            params={"orderReference": "BOOK_1", "status": "cancelled"},
            follow_redirects=False,
        )

        assert response.headers["location"] == "http://shop.test/cart?payment=cancelled"

    def test_redirect_never_completes_purchase(self, client, session, make_book, purchase_for):
        purchase = purchase_for([make_book()])

        client.get(
            "/api/webhooks/nomba",
            params={"orderReference": purchase.transaction_id, "status": "success"},
            follow_redirects=False,
        )

        session.refresh(purchase)
        assert purchase.status == purchase_status.PENDING
