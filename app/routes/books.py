from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from app.database import get_session
from app.dependencies.admin import require_admin
from app.models.book import Book
from app.models.chapter import Chapter
from app.models.purchase import Purchase, PurchaseItem
from app.models.user import User
from app.models.user_library import UserLibrary
from app.schemas.book_schemas import BookCreate, BookUpdate, ChapterCreate
from app.services.cart_service import remove_book_from_all_carts
from app.utils.slug import unique_book_slug
from datetime import datetime
from slugify import slugify
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_book_or_404(session: Session, book_id: int) -> Book:
    book = session.get(Book, book_id)
    if not book:
        raise HTTPException(404, "Book not found")
    return book


def _has_owners(session: Session, book_id: int) -> bool:
    for model in (PurchaseItem, Purchase, UserLibrary):
        if session.exec(select(model.id).where(model.book_id == book_id)).first() is not None:
            return True
    return False


@router.post("/", status_code=201)
def create_book(
    data: BookCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    book = Book(
        **data.model_dump(exclude={"slug"}),
        slug=unique_book_slug(session, data.slug or data.title),
        created_by=admin.id,
    )
    if book.is_free:
        book.price = 0.0

    session.add(book)
    session.commit()
    session.refresh(book)
    logger.info(f"Book {book.id} created by admin {admin.id}")

    return book


@router.put("/{book_id}")
def update_book(
    book_id: int,
    data: BookUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    book = _get_book_or_404(session, book_id)
    updates = data.model_dump(exclude_unset=True)

    slug = updates.pop("slug", None)
    for field, value in updates.items():
        setattr(book, field, value)

    if slug is not None or "title" in updates:
        book.slug = unique_book_slug(session, slug or book.title, exclude_id=book.id)
    if book.is_free:
        book.price = 0.0
    book.updated_at = datetime.utcnow()

    session.add(book)
    session.commit()
    session.refresh(book)

    return book


@router.delete("/{book_id}")
def delete_book(
    book_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    book = _get_book_or_404(session, book_id)
    remove_book_from_all_carts(session, book_id)

    # bought books stay readable by their owners
    if _has_owners(session, book_id):
        book.status = "archived"
        book.updated_at = datetime.utcnow()
        session.add(book)
        session.commit()
        logger.info(f"Book {book_id} archived by admin {admin.id}, it has purchases")
        return {"message": "Book archived", "archived": True}

    session.delete(book)
    session.commit()
    logger.info(f"Book {book_id} deleted by admin {admin.id}")

    return {"message": "Book deleted", "archived": False}


@router.get("/{id_or_slug}")
def get_book(id_or_slug: str, session: Session = Depends(get_session)):
    book = session.get(Book, int(id_or_slug)) if id_or_slug.isdigit() else None
    if not book:
        book = session.exec(select(Book).where(Book.slug == id_or_slug)).first()
    if not book:
        raise HTTPException(404, "Book not found")

    return book


@router.post("/{book_id}/chapters", status_code=201)
def add_chapter(
    book_id: int,
    data: ChapterCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    book = _get_book_or_404(session, book_id)

    order = data.order
    if order is None:
        order = len(book.chapters) + 1

    chapter = Chapter(
        book_id=book.id,
        title=data.title,
        slug=slugify(data.title) or f"chapter-{order}",
        content=data.content,
        order=order,
    )
    session.add(chapter)
    session.commit()
    session.refresh(chapter)

    return chapter


@router.get("/{book_id}/chapters")
def list_chapters(book_id: int, session: Session = Depends(get_session)):
    book = _get_book_or_404(session, book_id)

    return [
        {"id": c.id, "title": c.title, "slug": c.slug, "order": c.order}
        for c in book.chapters
    ]
