from typing import Optional

from pydantic import BaseModel, Field


class NoteIn(BaseModel):
    title: str = Field(default="", max_length=500)
    content: str = ""
    color: Optional[str] = Field(default=None, max_length=64)
    sort_order: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: str


class NoteOut(BaseModel):
    id: str
    user_id: str
    title: str
    content: str
    color: Optional[str] = None
    sort_order: Optional[int] = None
    created_at: str
    updated_at: str
    synced_at: Optional[str] = None


class SyncOut(BaseModel):
    applied: bool
    note: NoteOut
