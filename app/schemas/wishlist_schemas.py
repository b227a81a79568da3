from pydantic import BaseModel, Field
from typing import Optional


class WishlistNotes(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=200)
