from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlmodel import Session, select
from app.constants import purchase_status
from app.database import get_session
from app.dependencies.admin import require_admin
from app.models.book import Book
from app.models.purchase import Purchase, PurchaseItem
from app.models.user import User
from app.models.user_library import UserLibrary
from app.schemas.library_schemas import LibraryAddRequest, ReadingProgressUpdate
from app.utils.token import get_current_user
from datetime import datetime

router = APIRouter()


def serialize_entry(entry: UserLibrary, book: Book | None):
    return {
        "id": entry.id,
        "book_id": entry.book_id,
        "purchase_id": entry.purchase_id,
        "is_free_book": entry.is_free_book,
        "added_at": entry.added_at,
        "reading_status": entry.reading_status,
        "current_chapter": entry.current_chapter,
        "current_page": entry.current_page,
        "reading_progress": entry.reading_progress,
        "last_read_at": entry.last_read_at,
        "book": {
            "title": book.title,
            "author": book.author,
            "genre": book.genre,
            "cover_image_url": book.cover_image_url,
            "is_free": book.is_free,
            "price": book.price,
        } if book else None,
    }


def has_completed_purchase(session: Session, user_id: int, book_id: int) -> bool:
    native = session.exec(
        select(Purchase.id)
        .join(PurchaseItem, PurchaseItem.purchase_id == Purchase.id)
        .where(Purchase.user_id == user_id)
        .where(Purchase.status == purchase_status.COMPLETED)
        .where(PurchaseItem.book_id == book_id)
    ).first()
    if native:
        return True

    legacy = session.exec(
        select(Purchase.id)
        .where(Purchase.user_id == user_id)
        .where(Purchase.status == purchase_status.COMPLETED)
        .where(Purchase.book_id == book_id)
    ).first()
    return legacy is not None


@router.get("/")
def my_library(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    rows = session.exec(
        select(UserLibrary, Book)
        .join(Book, UserLibrary.book_id == Book.id)
        .where(UserLibrary.user_id == current_user.id)
        .order_by(UserLibrary.added_at.desc(), UserLibrary.id.desc())
    ).all()

    return [serialize_entry(entry, book) for entry, book in rows]


@router.post("/", status_code=201)
def add_to_library(
    data: LibraryAddRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    book = session.get(Book, data.book_id)
    if not book:
        raise HTTPException(404, "Book not found")

    existing = session.exec(
        select(UserLibrary).where(
            UserLibrary.user_id == current_user.id,
            UserLibrary.book_id == data.book_id
        )
    ).first()
    if existing:
        raise HTTPException(400, "Book already in library")

    if not book.is_free and not has_completed_purchase(session, current_user.id, book.id):
        raise HTTPException(403, "Purchase this book to add it to your library")

    entry = UserLibrary(
        user_id=current_user.id,
        book_id=book.id,
        is_free_book=book.is_free,
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)

    return serialize_entry(entry, book)


@router.delete("/{book_id}")
def remove_from_library(
    book_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    entry = session.exec(
        select(UserLibrary).where(
            UserLibrary.user_id == current_user.id,
            UserLibrary.book_id == book_id
        )
    ).first()

    if not entry:
        raise HTTPException(404, "Book not found in library")

    session.delete(entry)
    session.commit()

    return {"message": "Book removed from library"}


@router.put("/{book_id}/progress")
def update_reading_progress(
    book_id: int,
    data: ReadingProgressUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    entry = session.exec(
        select(UserLibrary).where(
            UserLibrary.user_id == current_user.id,
            UserLibrary.book_id == book_id
        )
    ).first()

    if not entry:
        raise HTTPException(404, "Book not found in library")

    if data.reading_status is not None:
        entry.reading_status = data.reading_status
    if data.current_chapter is not None:
        entry.current_chapter = data.current_chapter
    if data.current_page is not None:
        entry.current_page = data.current_page
    if data.progress is not None:
        entry.reading_progress = max(0.0, min(100.0, data.progress))
    entry.last_read_at = datetime.utcnow()

    session.add(entry)
    session.commit()
    session.refresh(entry)

    return serialize_entry(entry, session.get(Book, book_id))


@router.get("/book/{book_id}/count")
def library_count_for_book(
    book_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    count = session.exec(
        select(func.count()).select_from(UserLibrary).where(UserLibrary.book_id == book_id)
    ).one()

    return {"count": count}
