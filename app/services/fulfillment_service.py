"""
Turning confirmed payments into library entitlements.

Both fulfillment entry points, the verify endpoint (client polling after
the checkout redirect) and the gateway webhooks, parse what the provider
sent into a ProviderPayload and hand it to reconcile_purchase(). The
result is applied with apply_reconciliation(), which moves the purchase
out of "pending" with a conditional UPDATE and then grants library rows
and purges the cart. Running either path any number of times, in any
order, converges on the same state.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.config import settings
from app.constants import purchase_status
from app.models.book import Book
from app.models.purchase import Purchase
from app.models.user_library import UserLibrary
from app.services.cart_service import remove_books_from_cart

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"
PENDING = "pending"

SUCCESS_STATUSES = {"success", "successful", "completed", "paid"}
SUCCESS_DESCRIPTION = re.compile(r"approved|success", re.IGNORECASE)

NOMBA_SUCCESS_EVENTS = {"payment.success", "payment_success", "order.completed"}
NOMBA_FAILURE_EVENTS = {"payment.failed", "payment_failed", "order.failed"}


@dataclass
class ProviderPayload:
    outcome: Optional[str]  # success | failed | pending | None when undetermined
    status: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    order_reference: Optional[str] = None
    payment_reference: Optional[str] = None
    raw: Any = None

    @property
    def references(self) -> List[str]:
        refs = [self.order_reference, self.payment_reference]
        return [r for i, r in enumerate(refs) if r and r not in refs[:i]]


@dataclass
class Reconciliation:
    new_status: Optional[str]
    book_ids: List[int] = field(default_factory=list)


def _as_dict(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(*values):
    for value in values:
        if value not in (None, ""):
            return value
    return None


# ---------- provider payload parsing ----------

def parse_verification_payload(raw: Any) -> ProviderPayload:
    """
    Interpret a checkout/transaction lookup.

    The body is {code, description, data: {order, transactionDetails}} on
    the usual path but the shape is not stable, so any one success signal
    is enough: code "00", a truthy success flag, an approved/success
    status description, a success-like status string or a paid flag.
    """
    root = _as_dict(raw)
    inner = _as_dict(root.get("data")) or root
    order = _as_dict(inner.get("order")) or inner
    details = _as_dict(inner.get("transactionDetails")) or _as_dict(inner.get("transaction"))

    code = _first(root.get("code"), inner.get("code"))
    success_flag = inner.get("success") in (True, "true")
    status_code = str(_first(details.get("statusCode"), details.get("status")) or "")
    payment_status = _first(
        order.get("status"),
        order.get("paymentStatus"),
        inner.get("status"),
        inner.get("paymentStatus"),
        inner.get("orderStatus"),
        status_code,
    )

    successful = (
        code == "00"
        or success_flag
        or bool(SUCCESS_DESCRIPTION.search(status_code))
        or str(payment_status or "").lower() in SUCCESS_STATUSES
        or order.get("paid") is True
        or inner.get("paid") is True
    )

    if successful:
        outcome = SUCCESS
    elif payment_status:
        outcome = PENDING if str(payment_status).lower() == PENDING else FAILED
    else:
        outcome = None

    return ProviderPayload(
        outcome=outcome,
        status=str(payment_status) if payment_status else None,
        metadata=_as_dict(order.get("metadata")) or _as_dict(inner.get("metadata")),
        order_reference=order.get("orderReference"),
        payment_reference=_first(details.get("transactionId"), details.get("reference")),
        raw=raw,
    )


def parse_nomba_event(body: Dict[str, Any]) -> Optional[ProviderPayload]:
    event = _first(body.get("event_type"), body.get("event"))
    if event in NOMBA_SUCCESS_EVENTS:
        outcome = SUCCESS
    elif event in NOMBA_FAILURE_EVENTS:
        outcome = FAILED
    else:
        return None

    data = _as_dict(body.get("data"))
    order = _as_dict(data.get("order"))
    transaction = _as_dict(data.get("transaction"))

    return ProviderPayload(
        outcome=outcome,
        status=_first(data.get("status"), order.get("status"), event),
        metadata=_as_dict(data.get("metadata")) or _as_dict(order.get("metadata")),
        order_reference=_first(data.get("orderReference"), order.get("orderReference")),
        payment_reference=_first(
            data.get("reference"),
            data.get("transactionReference"),
            data.get("transactionId"),
            transaction.get("transactionId"),
        ),
        raw=body,
    )


def parse_paystack_event(body: Dict[str, Any]) -> Optional[ProviderPayload]:
    if body.get("event") != "charge.success":
        return None

    data = _as_dict(body.get("data"))
    return ProviderPayload(
        outcome=SUCCESS,
        status=data.get("status") or SUCCESS,
        metadata=_as_dict(data.get("metadata")),
        order_reference=data.get("reference"),
        payment_reference=data.get("reference"),
        raw=body,
    )


# ---------- book id resolution ----------

def _coerce_book_ids(value) -> List[int]:
    if value is None:
        return []
    values = value if isinstance(value, (list, tuple)) else [value]
    book_ids = []
    for v in values:
        try:
            book_id = int(v)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed book id in purchase metadata: {v!r}")
            continue
        if book_id not in book_ids:
            book_ids.append(book_id)
    return book_ids


def _metadata_book_ids(metadata: Dict[str, Any]) -> List[int]:
    return _coerce_book_ids(_first(metadata.get("bookIds"), metadata.get("bookId")))


def stored_metadata(purchase: Purchase) -> Dict[str, Any]:
    data = _as_dict(purchase.gateway_data)
    full = _as_dict(data.get("fullResponse"))
    return (
        _as_dict(data.get("metadata"))
        or _as_dict(full.get("metadata"))
        or _as_dict(_as_dict(full.get("data")).get("metadata"))
    )


def resolve_book_ids(purchase: Purchase, provider_metadata: Optional[Dict[str, Any]] = None) -> List[int]:
    """
    Book ids covered by a purchase, first non-empty source wins:

    ======  ===========================================  ==============================
    order   source                                       why
    ======  ===========================================  ==============================
    1       metadata echoed by the provider              freshest, when the gateway echoes
    2       gateway_data["metadata"] stored at checkout  gateway does not reliably echo
    3       purchase.items                               native purchase/book relation
    4       purchase.book_id                             legacy single-book column
    ======  ===========================================  ==============================
    """
    book_ids = _metadata_book_ids(_as_dict(provider_metadata))
    if not book_ids:
        book_ids = _metadata_book_ids(stored_metadata(purchase))
    if not book_ids:
        book_ids = _coerce_book_ids(purchase.book_ids)
    if not book_ids and purchase.book_id:
        book_ids = [purchase.book_id]
    return book_ids


# ---------- reconciliation ----------

def reconcile_purchase(purchase: Purchase, payload: Optional[ProviderPayload]) -> Reconciliation:
    """Decide the next status and the books to grant. Touches nothing."""
    metadata = payload.metadata if payload else None

    if purchase.status == purchase_status.COMPLETED:
        return Reconciliation(new_status=None, book_ids=resolve_book_ids(purchase, metadata))

    if purchase.status in purchase_status.TERMINAL_STATUSES or payload is None:
        return Reconciliation(new_status=None)

    if payload.outcome == SUCCESS:
        return Reconciliation(
            new_status=purchase_status.COMPLETED,
            book_ids=resolve_book_ids(purchase, metadata),
        )
    if payload.outcome == FAILED:
        return Reconciliation(new_status=purchase_status.FAILED)

    return Reconciliation(new_status=None)


def merge_gateway_data(purchase: Purchase, updates: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    data = dict(_as_dict(purchase.gateway_data))
    for key, value in (updates or {}).items():
        if key == "metadata" and isinstance(value, dict):
            data["metadata"] = {**_as_dict(data.get("metadata")), **value}
        else:
            data[key] = value
    return data


def transition_purchase(session: Session, purchase: Purchase, new_status: str, **values) -> bool:
    """
    Move a pending purchase to new_status. The status check lives in the
    UPDATE's WHERE clause, so of two racing callers exactly one gets
    rowcount 1. Returns whether this call made the transition.
    """
    if new_status not in purchase_status.ALLOWED_TRANSITIONS[purchase_status.PENDING]:
        raise ValueError(f"Cannot move a purchase from pending to {new_status}")

    result = session.exec(
        update(Purchase)
        .where(Purchase.id == purchase.id)
        .where(Purchase.status == purchase_status.PENDING)
        .values(status=new_status, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    session.refresh(purchase)

    won = result.rowcount == 1
    if won:
        logger.info(f"Purchase {purchase.id} moved pending -> {new_status}")
    else:
        logger.info(f"Purchase {purchase.id} already left pending (now {purchase.status}), skipped -> {new_status}")
    return won


def is_stale(purchase: Purchase, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return now - purchase.created_at > timedelta(minutes=settings.pending_purchase_timeout_minutes)


# ---------- side effects ----------

def grant_library_books(session: Session, purchase: Purchase, book_ids: Iterable[int]) -> List[int]:
    """Insert missing UserLibrary rows. Returns the ids inserted by this call."""
    user_id = purchase.user_id
    purchase_id = purchase.id
    granted = []

    for book_id in book_ids:
        if session.get(Book, book_id) is None:
            logger.warning(f"Purchase {purchase_id} references missing book {book_id}, not granted")
            continue

        existing = session.exec(
            select(UserLibrary).where(
                UserLibrary.user_id == user_id,
                UserLibrary.book_id == book_id,
            )
        ).first()
        if existing:
            continue

        session.add(UserLibrary(
            user_id=user_id,
            book_id=book_id,
            purchase_id=purchase_id,
            is_free_book=False,
        ))
        try:
            session.commit()
        except IntegrityError:
            # a concurrent fulfillment inserted the same row first
            session.rollback()
            logger.info(f"Book {book_id} already granted to user {user_id}")
            continue

        granted.append(book_id)
        logger.info(f"Book {book_id} added to library of user {user_id} (purchase {purchase_id})")

    return granted


def fulfill_purchase(session: Session, purchase: Purchase, book_ids: List[int]) -> List[int]:
    granted = grant_library_books(session, purchase, book_ids)
    try:
        remove_books_from_cart(session, purchase.user_id, book_ids)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Failed to purge purchased books from cart of user {purchase.user_id}")
    return granted


def ensure_fulfilled(session: Session, purchase: Purchase) -> List[int]:
    """Re-run the idempotent side effects of an already completed purchase."""
    reconciliation = reconcile_purchase(purchase, None)
    return fulfill_purchase(session, purchase, reconciliation.book_ids)


def apply_reconciliation(
    session: Session,
    purchase: Purchase,
    reconciliation: Reconciliation,
    payment_reference: Optional[str] = None,
    gateway_updates: Optional[Dict[str, Any]] = None,
) -> Purchase:
    if reconciliation.new_status:
        values = {"gateway_data": merge_gateway_data(purchase, gateway_updates)}
        if payment_reference:
            values["payment_reference"] = payment_reference
        transition_purchase(session, purchase, reconciliation.new_status, **values)

        if reconciliation.new_status == purchase_status.COMPLETED and purchase.status != purchase_status.COMPLETED:
            logger.warning(
                f"Payment confirmed for purchase {purchase.id} but it is already {purchase.status}"
            )
    elif gateway_updates or payment_reference:
        if gateway_updates:
            purchase.gateway_data = merge_gateway_data(purchase, gateway_updates)
        if payment_reference and not purchase.payment_reference and purchase.status == purchase_status.PENDING:
            purchase.payment_reference = payment_reference
        purchase.updated_at = datetime.utcnow()
        session.add(purchase)
        session.commit()
        session.refresh(purchase)

    if purchase.status == purchase_status.COMPLETED:
        book_ids = reconciliation.book_ids or resolve_book_ids(purchase)
        fulfill_purchase(session, purchase, book_ids)

    return purchase


def find_purchase(session: Session, references: Iterable[str]) -> Optional[Purchase]:
    for reference in references:
        purchase = session.exec(
            select(Purchase).where(Purchase.transaction_id == reference)
        ).first()
        if purchase:
            return purchase
    return None


def process_provider_event(session: Session, payload: ProviderPayload) -> Optional[Purchase]:
    """Shared webhook path: find the purchase, reconcile, apply."""
    purchase = find_purchase(session, payload.references)
    if not purchase:
        logger.warning(f"No purchase found for gateway references {payload.references}")
        return None

    reconciliation = reconcile_purchase(purchase, payload)
    gateway_updates = {"webhook": payload.raw}
    if payload.metadata:
        gateway_updates["metadata"] = payload.metadata

    return apply_reconciliation(
        session,
        purchase,
        reconciliation,
        payment_reference=payload.payment_reference or payload.order_reference,
        gateway_updates=gateway_updates,
    )
