from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from app.database import get_session
from app.models.wishlist import Wishlist
from app.models.book import Book
from app.models.user import User
from app.schemas.wishlist_schemas import WishlistNotes
from app.utils.pagination import paginate
from app.utils.token import get_current_user
from typing import Optional

router = APIRouter()


def serialize_item(item: Wishlist, book: Book | None):
    return {
        "id": item.id,
        "book_id": item.book_id,
        "notes": item.notes,
        "added_at": item.added_at,
        "book": {
            "title": book.title,
            "author": book.author,
            "cover_image_url": book.cover_image_url,
            "price": book.price,
            "is_free": book.is_free,
        } if book else None,
    }


def _get_item(session: Session, user_id: int, book_id: int):
    return session.exec(
        select(Wishlist)
        .where(Wishlist.user_id == user_id, Wishlist.book_id == book_id)
    ).first()


@router.post("/{book_id}", status_code=201)
def add_to_wishlist(
    book_id: int,
    data: Optional[WishlistNotes] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    book = session.get(Book, book_id)
    if not book:
        raise HTTPException(404, "Book not found")

    if _get_item(session, current_user.id, book_id):
        raise HTTPException(400, "Book is already in your wishlist")

    new_item = Wishlist(
        user_id=current_user.id,
        book_id=book_id,
        notes=data.notes if data else None,
    )
    session.add(new_item)
    session.commit()
    session.refresh(new_item)

    return serialize_item(new_item, book)


@router.delete("/{book_id}")
def remove_from_wishlist(
    book_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    item = _get_item(session, current_user.id, book_id)
    if not item:
        raise HTTPException(404, "Book not found in wishlist")

    session.delete(item)
    session.commit()

    return {"message": "Book removed from wishlist"}


@router.get("/")
def get_wishlist(
    page: int = Query(1),
    limit: int = Query(20),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(Wishlist)
        .where(Wishlist.user_id == current_user.id)
        .order_by(Wishlist.added_at.desc(), Wishlist.id.desc())
    )
    result = paginate(session=session, query=query, page=page, limit=limit)

    return {
        "wishlist": [serialize_item(w, session.get(Book, w.book_id)) for w in result["results"]],
        "totalPages": result["total_pages"],
        "currentPage": result["current_page"],
        "total": result["total_items"],
    }


@router.get("/status/{book_id}")
def wishlist_status(
    book_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    item = _get_item(session, current_user.id, book_id)

    return {
        "isInWishlist": bool(item),
        "wishlistItem": {
            "id": item.id,
            "added_at": item.added_at,
            "notes": item.notes,
        } if item else None,
    }


@router.put("/{book_id}/notes")
def update_wishlist_notes(
    book_id: int,
    data: WishlistNotes,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    item = _get_item(session, current_user.id, book_id)
    if not item:
        raise HTTPException(404, "Book not found in wishlist")

    item.notes = data.notes
    session.add(item)
    session.commit()
    session.refresh(item)

    return serialize_item(item, session.get(Book, book_id))
