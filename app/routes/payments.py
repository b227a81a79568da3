import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from app.config import settings
from app.constants import purchase_status
from app.database import get_session
from app.models.book import Book
from app.models.purchase import Purchase, PurchaseItem
from app.models.user import User
from app.schemas.payment_schemas import CheckoutRequest, serialize_purchase
from app.services.fulfillment_service import (
    apply_reconciliation,
    ensure_fulfilled,
    is_stale,
    merge_gateway_data,
    parse_verification_payload,
    reconcile_purchase,
    transition_purchase,
)
from app.services.nomba_client import NombaClient, generate_order_reference, get_payment_gateway
from app.utils.token import get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, **extra):
    return JSONResponse(status_code=status_code, content={"message": message, **extra})


def _checkout_link(data: dict):
    return (
        data.get("checkoutLink")
        or data.get("checkout_url")
        or data.get("paymentLink")
        or data.get("url")
    )


@router.post("/checkout")
def create_checkout(
    payload: CheckoutRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: NombaClient = Depends(get_payment_gateway),
):
    if not payload.amount or payload.amount <= 0 or not payload.book_ids:
        return _error(400, "Amount and bookIds are required")

    book_ids = list(dict.fromkeys(payload.book_ids))
    books = []
    for book_id in book_ids:
        book = session.get(Book, book_id)
        if not book:
            return _error(404, "Book not found", error=f"No book with id {book_id}")
        if book.is_free:
            return _error(400, "Free books cannot be purchased", error=f"Book {book_id} is free")
        books.append(book)

    customer_email = payload.customer_email or current_user.email
    if not customer_email:
        return _error(400, "Customer email is required")

    order_reference = generate_order_reference()

    # persisted before the gateway call so the reference survives a gateway failure
    purchase = Purchase(
        user_id=current_user.id,
        book_id=book_ids[0],
        amount_paid=payload.amount,
        status=purchase_status.PENDING,
        transaction_id=order_reference,
        payment_method="nomba",
        items=[PurchaseItem(book_id=book.id, unit_price=book.price) for book in books],
    )
    session.add(purchase)
    session.commit()
    session.refresh(purchase)
    logger.info(f"Purchase {purchase.id} created for user {current_user.id}, reference {order_reference}")

    callback_url = f"{settings.base_url}/api/webhooks/nomba"
    return_url = f"{settings.base_url}/api/webhooks/nomba?orderReference={order_reference}"

    result = gateway.create_checkout_order(
        order_reference=order_reference,
        amount=payload.amount,
        customer_email=customer_email,
        callback_url=callback_url,
        return_url=return_url,
        metadata={
            "purchaseId": str(purchase.id),
            "userId": str(current_user.id),
            "bookIds": book_ids,
        },
    )

    if not result.get("success"):
        transition_purchase(session, purchase, purchase_status.FAILED)
        logger.error(f"Nomba checkout failed for purchase {purchase.id}: {result.get('error')}")
        return _error(
            500,
            "Failed to create checkout order",
            error=result.get("error") or "Unknown error",
        )

    data = result.get("data") or {}
    checkout_link = _checkout_link(data)
    gateway_reference = data.get("orderReference") or order_reference

    purchase.gateway_data = merge_gateway_data(purchase, {
        "checkoutLink": checkout_link,
        "orderReference": gateway_reference,
        "fullResponse": result.get("full_response"),
        # the gateway does not reliably echo metadata back, keep our own copy
        "metadata": {"bookIds": book_ids},
    })
    session.add(purchase)
    session.commit()

    if not checkout_link:
        logger.error(f"No checkout link in Nomba response for purchase {purchase.id}")
        return _error(
            500,
            "No checkout link received from Nomba",
            error="Gateway response did not contain a checkout link",
        )

    return {
        "success": True,
        "checkoutLink": checkout_link,
        "orderReference": gateway_reference,
        "purchaseId": purchase.id,
    }


def _completed_response(purchase: Purchase, message: str):
    return {
        "success": True,
        "status": purchase_status.COMPLETED,
        "message": message,
        "purchase": serialize_purchase(purchase),
    }


def _verification_failed(session: Session, purchase: Purchase, error: str):
    # a webhook may have completed the purchase while we were talking to the gateway
    session.refresh(purchase)
    if purchase.status == purchase_status.COMPLETED:
        ensure_fulfilled(session, purchase)
        return _completed_response(purchase, "Payment already verified")

    if purchase.status == purchase_status.PENDING and not is_stale(purchase):
        logger.info(
            f"Purchase {purchase.id} still pending, re-checking in {settings.verify_recheck_delay_seconds}s"
        )
        time.sleep(settings.verify_recheck_delay_seconds)
        session.refresh(purchase)
        if purchase.status == purchase_status.COMPLETED:
            ensure_fulfilled(session, purchase)
            return _completed_response(purchase, "Payment verified")

    if purchase.status == purchase_status.PENDING and is_stale(purchase):
        transition_purchase(session, purchase, purchase_status.CANCELLED)

    pending = purchase.status == purchase_status.PENDING
    content = {
        "success": False,
        "message": "Transaction verification failed. If payment was successful, please wait a moment and refresh.",
        "error": error,
        "purchaseStatus": purchase.status,
        "retrySuggested": pending,
    }
    if pending:
        content["note"] = "Payment may still be processing. Webhook will update status automatically."
    return JSONResponse(status_code=400, content=content)


@router.get("/verify/{reference}")
def verify_payment(
    reference: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateway: NombaClient = Depends(get_payment_gateway),
):
    purchase = session.exec(
        select(Purchase).where(Purchase.transaction_id == reference)
    ).first()

    if not purchase or purchase.user_id != current_user.id:
        return JSONResponse(status_code=404, content={
            "success": False,
            "message": "Purchase not found",
            "error": "No purchase record found for this reference",
        })

    if purchase.status == purchase_status.COMPLETED:
        ensure_fulfilled(session, purchase)
        return _completed_response(purchase, "Payment already verified")

    if purchase.status in (purchase_status.CANCELLED, purchase_status.FAILED):
        return {
            "success": False,
            "status": purchase.status,
            "message": f"Payment was {purchase.status}",
            "purchase": serialize_purchase(purchase),
        }

    result = gateway.verify_transaction(purchase.transaction_id)
    alternate = purchase.payment_reference
    if not result.get("success") and alternate and alternate != purchase.transaction_id:
        logger.info(f"Retrying verification of purchase {purchase.id} with payment reference {alternate}")
        result = gateway.verify_transaction(alternate)

    if not result.get("success"):
        logger.warning(f"Could not verify purchase {purchase.id}: {result.get('error')}")
        return _verification_failed(session, purchase, result.get("error"))

    payload = parse_verification_payload(result.get("data"))
    reconciliation = reconcile_purchase(purchase, payload)
    purchase = apply_reconciliation(
        session,
        purchase,
        reconciliation,
        payment_reference=reference,
        gateway_updates={"verification": result.get("data")},
    )

    return {
        "success": purchase.status == purchase_status.COMPLETED,
        "status": purchase.status,
        "purchase": serialize_purchase(purchase),
        "transaction": result.get("data"),
    }
