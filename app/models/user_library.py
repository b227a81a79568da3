from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime


class UserLibrary(SQLModel, table=True):
    # one row per (user, book); the database enforces it
    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_userlibrary_user_book"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    purchase_id: Optional[int] = Field(default=None, foreign_key="purchase.id")
    is_free_book: bool = False
    added_at: datetime = Field(default_factory=datetime.utcnow)

    # reading progress
    reading_status: str = Field(default="not_started")  # not_started | reading | completed
    current_chapter: int = 0
    current_page: int = 0
    reading_progress: float = 0.0
    last_read_at: Optional[datetime] = None
