from slugify import slugify
from sqlmodel import Session, select

from app.models.book import Book


def unique_book_slug(session: Session, title: str, exclude_id: int | None = None) -> str:
    """Slugify the title, appending -2, -3, ... until no other book uses it."""
    base = slugify(title) or "book"
    candidate = base
    suffix = 2

    while True:
        existing = session.exec(select(Book).where(Book.slug == candidate)).first()
        if not existing or existing.id == exclude_id:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1
