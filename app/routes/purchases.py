from fastapi import APIRouter, Depends
from sqlalchemy import func, or_
from sqlmodel import Session, select
from app.constants import purchase_status
from app.database import get_session
from app.dependencies.admin import require_admin
from app.models.purchase import Purchase, PurchaseItem
from app.models.user import User
from app.schemas.payment_schemas import serialize_purchase
from app.utils.token import get_current_user

router = APIRouter()


@router.get("/my")
def my_purchases(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    purchases = session.exec(
        select(Purchase)
        .where(Purchase.user_id == current_user.id)
        .order_by(Purchase.created_at.desc(), Purchase.id.desc())
    ).all()

    return [serialize_purchase(p) for p in purchases]


@router.get("/")
def all_purchases(
    status: str | None = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    query = select(Purchase).order_by(Purchase.created_at.desc(), Purchase.id.desc())
    if status:
        query = query.where(Purchase.status == status)

    return [serialize_purchase(p) for p in session.exec(query).all()]


def _covers_book(book_id: int):
    in_items = select(PurchaseItem.purchase_id).where(PurchaseItem.book_id == book_id)
    return or_(Purchase.id.in_(in_items), Purchase.book_id == book_id)


@router.get("/book/{book_id}/count")
def purchase_count_for_book(
    book_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    count = session.exec(
        select(func.count())
        .select_from(Purchase)
        .where(Purchase.status == purchase_status.COMPLETED)
        .where(_covers_book(book_id))
    ).one()

    return {"count": count}


@router.get("/check/{book_id}")
def check_book_purchase(
    book_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    purchase = session.exec(
        select(Purchase)
        .where(Purchase.user_id == current_user.id)
        .where(Purchase.status == purchase_status.COMPLETED)
        .where(_covers_book(book_id))
    ).first()

    return {
        "hasPurchased": purchase is not None,
        "purchase": serialize_purchase(purchase) if purchase else None,
    }
