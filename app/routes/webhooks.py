import base64
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlmodel import Session

from app.config import settings
from app.database import get_session
from app.services.fulfillment_service import (
    parse_nomba_event,
    parse_paystack_event,
    process_provider_event,
)

router = APIRouter()
logger = logging.getLogger(__name__)

REACHABILITY = {
    "ok": True,
    "webhooks": {
        "nomba": "POST /api/webhooks/nomba for events, GET /api/webhooks/nomba for payment redirects",
        "paystack": "POST /api/webhooks/paystack",
    },
}


def _field(source: Dict[str, Any], *names) -> str:
    for name in names:
        value = source.get(name)
        if value is not None:
            return str(value)
    return ""


def nomba_signature_payload(body: Dict[str, Any], timestamp: str) -> str:
    data = body.get("data") or {}
    merchant = data.get("merchant") or {}
    transaction = data.get("transaction") or {}

    response_code = _field(transaction, "responseCode", "response_code")
    if response_code == "null":
        response_code = ""

    return ":".join([
        _field(body, "event_type", "event"),
        _field(body, "requestId", "request_id"),
        _field(merchant, "userId", "user_id"),
        _field(merchant, "walletId", "wallet_id"),
        _field(transaction, "transactionId", "transaction_id"),
        _field(transaction, "type"),
        _field(transaction, "time"),
        response_code,
        timestamp,
    ])


def verify_nomba_signature(body: Dict[str, Any], headers) -> Tuple[bool, Optional[str]]:
    """HMAC-SHA256 (base64) of the colon-joined event fields, keyed with the webhook secret."""
    if not settings.nomba_webhook_verify:
        logger.warning("Nomba webhook signature verification is disabled")
        return True, None

    secret = settings.nomba_webhook_secret
    if not secret:
        return True, None

    signature = (headers.get("nomba-signature") or headers.get("nomba-sig-value") or "").strip()
    timestamp = (headers.get("nomba-timestamp") or "").strip()
    if not signature:
        return False, "missing nomba-signature header"
    if not timestamp:
        return False, "missing nomba-timestamp header"

    digest = hmac.new(
        secret.encode("utf-8"),
        nomba_signature_payload(body, timestamp).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    expected = base64.b64encode(digest).decode("utf-8")

    if hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
        return True, None
    return False, "signature mismatch"


@router.get("")
@router.get("/")
def webhooks_index():
    return REACHABILITY


@router.post("/nomba")
@router.post("/nomba/")
def nomba_webhook(
    request: Request,
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    verified, reason = verify_nomba_signature(body, request.headers)
    if not verified:
        logger.warning(f"Nomba webhook rejected: {reason}")
        return JSONResponse(status_code=401, content={
            "status": "error",
            "message": "Invalid webhook signature",
        })

    logger.info(f"Nomba webhook received: {body.get('event_type') or body.get('event')}")

    # always 200 so the gateway does not redeliver forever
    try:
        payload = parse_nomba_event(body)
        if payload is None:
            logger.info("Nomba webhook event ignored")
        else:
            process_provider_event(session, payload)
    except Exception:
        session.rollback()
        logger.exception("Nomba webhook processing failed")

    return {"status": "success"}


@router.get("/nomba")
@router.get("/nomba/")
def nomba_redirect(
    orderReference: Optional[str] = None,
    reference: Optional[str] = None,
    status: Optional[str] = None,
):
    """Where the checkout page sends the browser back. Only verify may complete a purchase."""
    payment_ref = orderReference or reference
    if not payment_ref:
        return {
            **REACHABILITY,
            "get": "GET with orderReference/status for payment redirects",
        }

    frontend = settings.frontend_url.rstrip("/")
    if status in ("failed", "cancelled", "cancel"):
        return RedirectResponse(f"{frontend}/cart?payment=cancelled", status_code=302)

    query = {"reference": payment_ref}
    if status in ("success", "completed"):
        query["status"] = "success"
    return RedirectResponse(f"{frontend}/payment-verification?{urlencode(query)}", status_code=302)


@router.post("/paystack")
def paystack_webhook(
    body: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    logger.info(f"Paystack webhook received: {body.get('event')}")

    try:
        payload = parse_paystack_event(body)
        if payload is not None:
            process_provider_event(session, payload)
    except Exception:
        session.rollback()
        logger.exception("Paystack webhook processing failed")

    return {"status": "success"}
