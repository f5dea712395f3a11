from datetime import datetime
from typing import TYPE_CHECKING, Optional
from sqlalchemy import Text
from sqlmodel import Field, Relationship, SQLModel
from app.models.base import IDModel, _utc_now, timestamp_type
from app.models.enums import SenderType, enum_column

if TYPE_CHECKING:
    from app.models.chat_session import ChatSession


class ChatMessage(IDModel, SQLModel, table=True):
    __tablename__ = 'chat_messages'

    session_id: int = Field(foreign_key='chat_sessions.id', ondelete='CASCADE', index=True)
    sender: SenderType = Field(sa_column=enum_column(SenderType, 'sender_type'))
    content: str = Field(sa_type=Text)
    context: Optional[str] = Field(default=None, sa_type=Text)
    timestamp: datetime = Field(
        default_factory=_utc_now,
        sa_type=timestamp_type(),
        sa_column_kwargs={"nullable": False},
    )

    session: Optional['ChatSession'] = Relationship(back_populates='messages')
