from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from app.models.enums import SenderType


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError('must not be blank')
    return value


class CreateSessionRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=255)

    @field_validator('user_id', 'title')
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


class RenameSessionRequest(BaseModel):
    new_title: str = Field(..., min_length=1, max_length=255)

    @field_validator('new_title')
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


class ToggleFavoriteRequest(BaseModel):
    is_favorite: bool


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1)
    context: Optional[str] = None
    use_ai: bool = True

    @field_validator('content')
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


class ChatMessageOut(BaseModel):
    id: int
    session_id: int
    sender: SenderType
    content: str
    context: Optional[str] = None
    timestamp: datetime


class ChatSessionOut(BaseModel):
    id: int
    user_id: str
    title: str
    is_favorite: bool
    created_at: datetime
    updated_at: datetime
    message_count: int


class ChatSessionWithMessagesOut(BaseModel):
    id: int
    user_id: str
    title: str
    is_favorite: bool
    created_at: datetime
    updated_at: datetime
    messages: list[ChatMessageOut]
