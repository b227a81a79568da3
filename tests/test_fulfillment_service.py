"""Tests for payload parsing, reconciliation and fulfillment."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import select

from app.constants import purchase_status
from app.models.cart import Cart, CartItem
from app.models.purchase import Purchase, PurchaseItem
from app.models.user_library import UserLibrary
from app.services import fulfillment_service
from app.services.fulfillment_service import (
    ProviderPayload,
    apply_reconciliation,
    grant_library_books,
    is_stale,
    parse_nomba_event,
    parse_paystack_event,
    parse_verification_payload,
    process_provider_event,
    reconcile_purchase,
    resolve_book_ids,
    transition_purchase,
)


@pytest.fixture
def make_purchase(session, user):
    def make(books, status=purchase_status.PENDING, reference="BOOK_REF_1", gateway_data=None, items=True):
        purchase = Purchase(
            user_id=user.id,
            book_id=books[0].id if books else None,
            amount_paid=sum(b.price for b in books),
            status=status,
            transaction_id=reference,
            gateway_data=gateway_data,
            items=[PurchaseItem(book_id=b.id, unit_price=b.price) for b in books] if items else [],
        )
        session.add(purchase)
        session.commit()
        session.refresh(purchase)
        return purchase

    return make


def _library_ids(session, user_id):
    rows = session.exec(select(UserLibrary).where(UserLibrary.user_id == user_id)).all()
    return sorted(row.book_id for row in rows)


class TestParseVerificationPayload:
    """Success detection on verify responses."""

    @pytest.mark.parametrize("raw", [
        {"code": "00", "data": {}},
        {"data": {"success": True}},
        {"data": {"transactionDetails": {"statusCode": "Payment Approved"}}},
        {"data": {"order": {"status": "SUCCESSFUL"}}},
        {"data": {"order": {"paymentStatus": "paid"}}},
        {"data": {"order": {"paid": True}}},
        {"status": "completed"},
    ])
    def test_any_single_success_signal_is_enough(self, raw):
        assert parse_verification_payload(raw).outcome == "success"

    def test_pending_status(self):
        payload = parse_verification_payload({"code": "01", "data": {"order": {"status": "PENDING"}}})

        assert payload.outcome == "pending"

    def test_other_status_is_failure(self):
        payload = parse_verification_payload({"code": "01", "data": {"order": {"status": "DECLINED"}}})

        assert payload.outcome == "failed"
        assert payload.status == "DECLINED"

    def test_no_status_is_undetermined(self):
        assert parse_verification_payload({"code": "99"}).outcome is None
        assert parse_verification_payload(None).outcome is None

    def test_metadata_and_references_are_extracted(self):
        payload = parse_verification_payload({
            "code": "00",
            "data": {
                "order": {"orderReference": "BOOK_1", "metadata": {"bookIds": [3]}},
                "transactionDetails": {"transactionId": "TX-9"},
            },
        })

        assert payload.metadata == {"bookIds": [3]}
        assert payload.references == ["BOOK_1", "TX-9"]


class TestParseWebhookEvents:
    """Nomba and Paystack event parsing."""

    def test_nomba_success_event(self):
        payload = parse_nomba_event({
            "event_type": "payment.success",
            "data": {"orderReference": "BOOK_1", "reference": "TX-1", "metadata": {"bookIds": ["4"]}},
        })

        assert payload.outcome == "success"
        assert payload.references == ["BOOK_1", "TX-1"]
        assert payload.metadata == {"bookIds": ["4"]}

    def test_nomba_failure_event(self):
        payload = parse_nomba_event({"event": "payment_failed", "data": {"orderReference": "BOOK_1"}})

        assert payload.outcome == "failed"

    def test_nomba_unknown_event_is_ignored(self):
        assert parse_nomba_event({"event_type": "payout.success", "data": {}}) is None

    def test_paystack_only_charge_success(self):
        assert parse_paystack_event({"event": "charge.failed", "data": {}}) is None

        payload = parse_paystack_event({
            "event": "charge.success",
            "data": {"reference": "PS-1", "metadata": {"bookIds": [1, 2]}},
        })
        assert payload.outcome == "success"
        assert payload.references == ["PS-1"]


class TestResolveBookIds:
    """Book id resolution order."""

    def test_provider_metadata_wins(self, make_book, make_purchase):
        book = make_book()
        purchase = make_purchase([book], gateway_data={"metadata": {"bookIds": [77]}})

        assert resolve_book_ids(purchase, {"bookIds": ["5", 6]}) == [5, 6]

    def test_stored_metadata_second(self, make_book, make_purchase):
        book = make_book()
        purchase = make_purchase([book], gateway_data={"metadata": {"bookIds": [77, 78]}})

        assert resolve_book_ids(purchase, {}) == [77, 78]

    def test_stored_full_response_metadata(self, make_book, make_purchase):
        book = make_book()
        purchase = make_purchase([book], gateway_data={"fullResponse": {"data": {"metadata": {"bookId": 9}}}})

        assert resolve_book_ids(purchase) == [9]

    def test_purchase_items_third(self, make_book, make_purchase):
        first, second = make_book(), make_book()
        purchase = make_purchase([first, second])

        assert resolve_book_ids(purchase) == [first.id, second.id]

    def test_legacy_book_id_last(self, make_book, make_purchase):
        book = make_book()
        purchase = make_purchase([book], items=False)

        assert resolve_book_ids(purchase) == [book.id]

    def test_malformed_ids_are_skipped(self, make_book, make_purchase):
        purchase = make_purchase([make_book()])

        assert resolve_book_ids(purchase, {"bookIds": ["x", 3, 3]}) == [3]


class TestReconcilePurchase:
    """Status decisions without side effects."""

    def test_pending_and_success_completes(self, make_book, make_purchase):
        book = make_book()
        purchase = make_purchase([book])

        result = reconcile_purchase(purchase, ProviderPayload(outcome="success"))

        assert result.new_status == purchase_status.COMPLETED
        assert result.book_ids == [book.id]

    def test_pending_and_failure_fails(self, make_book, make_purchase):
        purchase = make_purchase([make_book()])

        result = reconcile_purchase(purchase, ProviderPayload(outcome="failed"))

        assert result.new_status == purchase_status.FAILED
        assert result.book_ids == []

    def test_pending_and_undetermined_does_nothing(self, make_book, make_purchase):
        purchase = make_purchase([make_book()])

        assert reconcile_purchase(purchase, ProviderPayload(outcome="pending")).new_status is None
        assert reconcile_purchase(purchase, ProviderPayload(outcome=None)).new_status is None

    def test_completed_keeps_status_but_lists_books(self, make_book, make_purchase):
        book = make_book()
        purchase = make_purchase([book], status=purchase_status.COMPLETED)

        result = reconcile_purchase(purchase, ProviderPayload(outcome="failed"))

        assert result.new_status is None
        assert result.book_ids == [book.id]

    @pytest.mark.parametrize("status", [purchase_status.FAILED, purchase_status.CANCELLED])
    def test_failed_or_cancelled_is_never_revived(self, make_book, make_purchase, status):
        purchase = make_purchase([make_book()], status=status)

        result = reconcile_purchase(purchase, ProviderPayload(outcome="success"))

        assert result.new_status is None
        assert result.book_ids == []


class TestTransitionPurchase:
    """Conditional status updates."""

    def test_only_first_transition_wins(self, session, make_book, make_purchase):
        purchase = make_purchase([make_book()])

        assert transition_purchase(session, purchase, purchase_status.COMPLETED) is True
        assert transition_purchase(session, purchase, purchase_status.FAILED) is False
        assert purchase.status == purchase_status.COMPLETED

    def test_stale_object_cannot_overwrite(self, session, make_book, make_purchase):
        purchase = make_purchase([make_book()])
        session.execute(
            Purchase.__table__.update()
            .where(Purchase.__table__.c.id == purchase.id)
            .values(status=purchase_status.CANCELLED)
        )
        session.commit()

        assert transition_purchase(session, purchase, purchase_status.COMPLETED) is False
        assert purchase.status == purchase_status.CANCELLED

    def test_extra_values_are_written(self, session, make_book, make_purchase):
        purchase = make_purchase([make_book()])

        transition_purchase(session, purchase, purchase_status.COMPLETED, payment_reference="TX-1")

        assert purchase.payment_reference == "TX-1"

    def test_rejects_unknown_target(self, session, make_book, make_purchase):
        purchase = make_purchase([make_book()])

        with pytest.raises(ValueError):
            transition_purchase(session, purchase, purchase_status.PENDING)


class TestGrantLibraryBooks:
    """Idempotent library grants."""

    def test_grants_each_book_once(self, session, user, make_book, make_purchase):
        first, second = make_book(), make_book()
        purchase = make_purchase([first, second], status=purchase_status.COMPLETED)

        assert grant_library_books(session, purchase, [first.id, second.id]) == [first.id, second.id]
        assert grant_library_books(session, purchase, [first.id, second.id]) == []
        assert _library_ids(session, user.id) == sorted([first.id, second.id])

    def test_missing_book_is_skipped(self, session, user, make_book, make_purchase):
        book = make_book()
        purchase = make_purchase([book], status=purchase_status.COMPLETED)

        assert grant_library_books(session, purchase, [book.id, 9999]) == [book.id]

    def test_duplicate_insert_is_tolerated(self, session, user, make_book, make_purchase, monkeypatch):
        book = make_book()
        purchase = make_purchase([book], status=purchase_status.COMPLETED)
        original_commit = session.commit
        calls = {"n": 0}

        def racing_commit():
            calls["n"] += 1
            if calls["n"] == 1:
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
            return original_commit()

        monkeypatch.setattr(session, "commit", racing_commit)

        assert grant_library_books(session, purchase, [book.id]) == []


class TestApplyReconciliation:
    """Status change plus side effects."""

    def test_completion_grants_and_purges_cart(self, session, user, make_book, make_purchase):
        bought, kept = make_book(), make_book()
        session.add(Cart(user_id=user.id, items=[CartItem(book_id=bought.id), CartItem(book_id=kept.id)]))
        session.commit()
        purchase = make_purchase([bought])

        reconciliation = reconcile_purchase(purchase, ProviderPayload(outcome="success"))
        apply_reconciliation(session, purchase, reconciliation, payment_reference="TX-1")

        assert purchase.status == purchase_status.COMPLETED
        assert purchase.payment_reference == "TX-1"
        assert _library_ids(session, user.id) == [bought.id]
        cart = session.exec(select(Cart).where(Cart.user_id == user.id)).one()
        assert [item.book_id for item in cart.items] == [kept.id]
        assert cart.total_amount == kept.price

    def test_cart_failure_does_not_undo_grant(self, session, user, make_book, make_purchase, mocker):
        book = make_book()
        purchase = make_purchase([book])
        mocker.patch.object(
            fulfillment_service,
            "remove_books_from_cart",
            side_effect=OperationalError("SELECT", {}, Exception("cart table locked")),
        )

        reconciliation = reconcile_purchase(purchase, ProviderPayload(outcome="success"))
        apply_reconciliation(session, purchase, reconciliation)

        assert purchase.status == purchase_status.COMPLETED
        assert _library_ids(session, user.id) == [book.id]

    def test_gateway_updates_merge_metadata(self, session, make_book, make_purchase):
        purchase = make_purchase([make_book()], gateway_data={"metadata": {"bookIds": [1]}, "checkoutLink": "x"})

        reconciliation = reconcile_purchase(purchase, ProviderPayload(outcome="pending"))
        apply_reconciliation(session, purchase, reconciliation, gateway_updates={"metadata": {"userId": "3"}})

        assert purchase.status == purchase_status.PENDING
        assert purchase.gateway_data["metadata"] == {"bookIds": [1], "userId": "3"}
        assert purchase.gateway_data["checkoutLink"] == "x"


class TestProcessProviderEvent:
    """Webhook path shared by both providers."""

    def test_unknown_reference_is_ignored(self, session):
        assert process_provider_event(session, ProviderPayload(outcome="success", order_reference="NOPE")) is None

    def test_matches_on_payment_reference_fallback(self, session, user, make_book, make_purchase):
        book = make_book()
        make_purchase([book], reference="BOOK_A")

        purchase = process_provider_event(
            session,
            ProviderPayload(outcome="success", order_reference="OTHER", payment_reference="BOOK_A"),
        )

        assert purchase.status == purchase_status.COMPLETED
        assert _library_ids(session, user.id) == [book.id]

    def test_repeated_events_converge(self, session, user, make_book, make_purchase):
        book = make_book()
        make_purchase([book], reference="BOOK_A")
        payload = ProviderPayload(outcome="success", order_reference="BOOK_A")

        process_provider_event(session, payload)
        purchase = process_provider_event(session, payload)

        assert purchase.status == purchase_status.COMPLETED
        assert _library_ids(session, user.id) == [book.id]


class TestIsStale:
    def test_older_than_timeout(self, make_book, make_purchase):
        purchase = make_purchase([make_book()])

        assert is_stale(purchase) is False
        assert is_stale(purchase, now=datetime.utcnow() + timedelta(minutes=6)) is True

    def test_reloaded_purchase_keeps_utc_timestamp(self, session, make_book, make_purchase):
        purchase_id = make_purchase([make_book()]).id
        session.expire_all()

        purchase = session.get(Purchase, purchase_id)

        assert purchase.created_at.tzinfo is None
        assert is_stale(purchase) is False
