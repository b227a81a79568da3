from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from datetime import datetime


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[float] = None
    book_ids: Optional[List[int]] = Field(default=None, alias="bookIds")
    customer_email: Optional[EmailStr] = Field(default=None, alias="customerEmail")


class PurchaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    book_id: Optional[int] = None
    book_ids: List[int] = []
    amount_paid: float
    payment_method: str
    status: str
    transaction_id: str
    payment_reference: Optional[str] = None
    purchased_at: datetime
    created_at: datetime
    updated_at: datetime


def serialize_purchase(purchase) -> dict:
    return PurchaseRead.model_validate(purchase).model_dump(mode="json")
