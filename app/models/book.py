from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, TYPE_CHECKING, List
from datetime import datetime

if TYPE_CHECKING:
    from .chapter import Chapter


class Book(SQLModel, table=True):
    #main info
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True, unique=True)
    author: str
    description: Optional[str] = None
    genre: Optional[str] = None
    isbn: Optional[str] = None

    #Shop Details
    price: float = 0.0
    is_free: bool = False
    cover_image_url: Optional[str] = None
    status: str = Field(default="draft")  # draft | published | archived

    created_by: Optional[int] = Field(default=None, foreign_key="user.id")

    #timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    chapters: List["Chapter"] = Relationship(
        back_populates="book",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Chapter.order"},
    )

    @property
    def effective_price(self) -> float:
        return 0.0 if self.is_free else (self.price or 0.0)
