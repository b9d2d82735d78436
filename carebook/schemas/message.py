from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class MessageCreate(BaseModel):
    recipient_id: int = Field(..., gt=0)
    appointment_id: Optional[int] = Field(None, gt=0)
    content: str = Field(..., min_length=1, max_length=2000)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("Message content cannot be blank")
        return v.strip()


class MessageResponse(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    appointment_id: Optional[int] = None
    content: str
    is_read: bool
    read_at: Optional[datetime] = None
    sender_name: Optional[str] = None
    recipient_name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginatedMessages(BaseModel):
    data: List[MessageResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class UnreadCount(BaseModel):
    unread_count: int


class ConversationRead(BaseModel):
    marked_read: int


class MessageStatistics(BaseModel):
    sent_messages: int
    received_messages: int
    unread_messages: int
