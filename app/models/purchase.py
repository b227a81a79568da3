from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint
from typing import Optional, List, Any, Dict
from datetime import datetime

from app.constants import purchase_status


class Purchase(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    # legacy single-book column, first book of the checkout
    book_id: Optional[int] = Field(default=None, foreign_key="book.id")

    amount_paid: float
    payment_method: str = Field(default="nomba")
    status: str = Field(default=purchase_status.PENDING, index=True)  # pending | completed | failed | cancelled

    # merchant order reference, one per checkout attempt
    transaction_id: str = Field(index=True, unique=True)
    # gateway-assigned reference, may differ from transaction_id
    payment_reference: Optional[str] = Field(default=None, index=True)

    gateway_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    purchased_at: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["PurchaseItem"] = Relationship(
        back_populates="purchase",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def book_ids(self) -> List[int]:
        return [item.book_id for item in self.items]


class PurchaseItem(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("purchase_id", "book_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    purchase_id: int = Field(foreign_key="purchase.id", index=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    unit_price: float = 0.0

    purchase: Optional[Purchase] = Relationship(back_populates="items")
