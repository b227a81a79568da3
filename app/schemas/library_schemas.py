from pydantic import BaseModel, Field
from typing import Literal, Optional


class LibraryAddRequest(BaseModel):
    book_id: int


class ReadingProgressUpdate(BaseModel):
    reading_status: Optional[Literal["not_started", "reading", "completed"]] = None
    current_chapter: Optional[int] = Field(default=None, ge=0)
    current_page: Optional[int] = Field(default=None, ge=0)
    progress: Optional[float] = None
