"""
Domain exceptions raised by the chat services.

Gate rejections (missing key, exhausted bucket) never reach this module:
the admission middleware answers them directly.
"""

from typing import Any, Optional


class ChatServiceError(Exception):
    """Base exception for the chat service."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ResourceNotFoundError(ChatServiceError):
    """Requested resource does not exist."""

    @classmethod
    def session(cls, session_id: int) -> 'ResourceNotFoundError':
        return cls(f"Session not found with ID: {session_id}", details={'session_id': session_id})
