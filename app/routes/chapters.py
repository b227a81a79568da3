from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from app.database import get_session
from app.dependencies.admin import is_admin
from app.models.book import Book
from app.models.chapter import Chapter
from app.models.user import User
from app.models.user_library import UserLibrary
from app.utils.token import get_current_user

router = APIRouter()


@router.get("/{chapter_id}")
def read_chapter(
    chapter_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    chapter = session.get(Chapter, chapter_id)
    if not chapter:
        raise HTTPException(404, "Chapter not found")

    book = session.get(Book, chapter.book_id)
    if not book.is_free and not is_admin(current_user):
        owned = session.exec(
            select(UserLibrary).where(
                UserLibrary.user_id == current_user.id,
                UserLibrary.book_id == book.id
            )
        ).first()
        if not owned:
            raise HTTPException(403, "You do not own this book")

    return {
        "id": chapter.id,
        "book_id": book.id,
        "book_title": book.title,
        "title": chapter.title,
        "order": chapter.order,
        "content": chapter.content,
    }
