from typing import Optional, Protocol
from loguru import logger
from sqlalchemy import func
from sqlmodel import Session, select
from app.core.exceptions import ResourceNotFoundError
from app.models.base import touch
from app.models.chat_session import ChatSession
from app.models.chat_message import ChatMessage
from app.models.enums import SenderType


class Responder(Protocol):
    def is_available(self) -> bool:
        ...

    def generate(self, message: str, context: Optional[str] = None) -> str:
        ...


def get_session(session: Session, session_id: int) -> Optional[ChatSession]:
    return session.get(ChatSession, session_id)


def session_exists(session: Session, session_id: int) -> bool:
    statement = select(ChatSession.id).where(ChatSession.id == session_id)
    return session.exec(statement).first() is not None


def require_session(session: Session, session_id: int) -> ChatSession:
    record = get_session(session, session_id)
    if not record:
        raise ResourceNotFoundError.session(session_id)
    return record


def _ensure_exists(session: Session, session_id: int) -> None:
    if not session_exists(session, session_id):
        raise ResourceNotFoundError.session(session_id)


def create_session(session: Session, user_id: str, title: str) -> ChatSession:
    logger.info('Creating new chat session for user: {}', user_id)
    record = ChatSession(user_id=user_id, title=title, is_favorite=False)
    session.add(record)
    session.commit()
    session.refresh(record)
    logger.info('Chat session created with ID: {}', record.id)
    return record


def list_sessions(session: Session, user_id: str, favorites_only: bool = False) -> list[ChatSession]:
    statement = select(ChatSession).where(ChatSession.user_id == user_id)
    if favorites_only:
        statement = statement.where(ChatSession.is_favorite == True)  # noqa: E712
    statement = statement.order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
    return list(session.exec(statement).all())


def count_messages(session: Session, session_id: int) -> int:
    statement = select(func.count()).select_from(ChatMessage).where(ChatMessage.session_id == session_id)
    return int(session.exec(statement).one())


def count_messages_by_session(session: Session, session_ids: list[int]) -> dict[int, int]:
    if not session_ids:
        return {}
    statement = (
        select(ChatMessage.session_id, func.count())
        .where(ChatMessage.session_id.in_(session_ids))
        .group_by(ChatMessage.session_id)
    )
    counts = {session_id: 0 for session_id in session_ids}
    for session_id, total in session.exec(statement).all():
        counts[session_id] = int(total)
    return counts


def send_message(
    session: Session,
    session_id: int,
    content: str,
    context: Optional[str],
    use_ai: bool,
    assistant: Optional[Responder] = None,
) -> ChatMessage:
    """Store a user message and, when asked and possible, the assistant's reply.

    Both messages are committed together. The existence check's read
    transaction is closed and the AI call happens before any write, so no
    transaction is held open while waiting on the remote service; the
    session row is then re-read with a locking read so a concurrent delete
    either wins (NotFound here) or waits for this commit.
    """
    logger.info('Sending message to session: {}', session_id)
    _ensure_exists(session, session_id)
    session.rollback()

    user_message = ChatMessage(
        session_id=session_id,
        sender=SenderType.USER,
        content=content,
        context=context,
    )
    reply: Optional[ChatMessage] = None
    if use_ai and assistant is not None and assistant.is_available():
        text = assistant.generate(content, context)
        reply = ChatMessage(
            session_id=session_id,
            sender=SenderType.AI_ASSISTANT,
            content=text,
            context=context,
        )

    try:
        statement = (
            select(ChatSession)
            .where(ChatSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        record = session.exec(statement).first()
        if record is None:
            raise ResourceNotFoundError.session(session_id)
        session.add(user_message)
        if reply is not None:
            session.add(reply)
        touch(record)
        session.add(record)
        session.commit()
    except Exception:
        session.rollback()
        raise

    result = reply if reply is not None else user_message
    session.refresh(result)
    if reply is not None:
        logger.info('AI response generated and saved for session: {}', session_id)
    else:
        logger.info('User message saved for session: {}', session_id)
    return result


def _messages_statement(session_id: int):
    return (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.timestamp.asc(), ChatMessage.id.asc())
    )


def get_messages(session: Session, session_id: int) -> list[ChatMessage]:
    _ensure_exists(session, session_id)
    return list(session.exec(_messages_statement(session_id)).all())


def get_messages_page(
    session: Session,
    session_id: int,
    page: int,
    size: int,
) -> tuple[list[ChatMessage], int]:
    if page < 0:
        raise ValueError('page must be >= 0')
    if size < 1:
        raise ValueError('size must be >= 1')
    _ensure_exists(session, session_id)
    total = count_messages(session, session_id)
    statement = _messages_statement(session_id).offset(page * size).limit(size)
    return list(session.exec(statement).all()), total


def rename_session(session: Session, session_id: int, title: str) -> ChatSession:
    logger.info("Renaming session: {} to '{}'", session_id, title)
    record = require_session(session, session_id)
    record.title = title
    touch(record)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def set_favorite(session: Session, session_id: int, is_favorite: bool) -> ChatSession:
    logger.info('Setting favorite status for session: {} to {}', session_id, is_favorite)
    record = require_session(session, session_id)
    record.is_favorite = is_favorite
    touch(record)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def delete_session(session: Session, session_id: int) -> None:
    logger.info('Deleting session: {}', session_id)
    record = require_session(session, session_id)
    session.delete(record)
    session.commit()
    logger.info('Session {} deleted', session_id)
