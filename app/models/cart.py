from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from typing import Optional, List
from datetime import datetime


class Cart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)
    total_amount: float = 0.0
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["CartItem"] = Relationship(
        back_populates="cart",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "CartItem.added_at"},
    )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class CartItem(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("cart_id", "book_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    cart_id: int = Field(foreign_key="cart.id", index=True)
    book_id: int = Field(
        sa_column=Column(Integer, ForeignKey("book.id", ondelete="CASCADE"), nullable=False)
    )
    quantity: int = 1
    added_at: datetime = Field(default_factory=datetime.utcnow)

    cart: Optional[Cart] = Relationship(back_populates="items")
