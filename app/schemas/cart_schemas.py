from datetime import datetime
from typing import List, Optional

from sqlmodel import SQLModel


class CartAddRequest(SQLModel):
    quantity: int = 1


class CartUpdateRequest(SQLModel):
    quantity: int


class CartLine(SQLModel):
    book_id: int
    title: str
    author: str
    cover_image_url: Optional[str] = None
    price: float
    is_free: bool
    quantity: int
    added_at: datetime
    total: float


class CartRead(SQLModel):
    id: int
    user_id: int
    items: List[CartLine] = []
    item_count: int = 0
    total_amount: float = 0.0
    last_updated: datetime
