from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint


class Wishlist(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "book_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    book_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("book.id", ondelete="CASCADE"),
            nullable=False
        )
    )
    notes: Optional[str] = Field(default=None, max_length=200)
    added_at: datetime = Field(default_factory=datetime.utcnow)
