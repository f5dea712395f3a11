from app.models.base import IDModel, TimestampModel
from app.models.chat_session import ChatSession
from app.models.chat_message import ChatMessage

__all__ = [
    'IDModel',
    'TimestampModel',
    'ChatSession',
    'ChatMessage',
]
