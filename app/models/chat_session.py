from typing import TYPE_CHECKING
from sqlmodel import Field, Relationship, SQLModel
from app.models.base import IDModel, TimestampModel

if TYPE_CHECKING:
    from app.models.chat_message import ChatMessage


class ChatSession(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'chat_sessions'

    user_id: str = Field(index=True, max_length=255)
    title: str = Field(max_length=255)
    is_favorite: bool = Field(default=False, index=True)

    messages: list['ChatMessage'] = Relationship(
        back_populates='session',
        sa_relationship_kwargs={
            'cascade': 'all, delete-orphan',
            'order_by': 'ChatMessage.id',
        },
    )
