from pydantic import BaseModel, Field
from typing import Literal, Optional


BookStatus = Literal["draft", "published", "archived"]


class BookCreate(BaseModel):
    title: str
    author: str
    slug: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    isbn: Optional[str] = None
    price: float = Field(default=0.0, ge=0)
    is_free: bool = False
    cover_image_url: Optional[str] = None
    status: BookStatus = "draft"


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    isbn: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    is_free: Optional[bool] = None
    cover_image_url: Optional[str] = None
    status: Optional[BookStatus] = None


class ChapterCreate(BaseModel):
    title: str
    content: str = ""
    order: Optional[int] = None
