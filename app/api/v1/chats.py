from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from app.db.session import get_session
from app.models.chat_message import ChatMessage
from app.models.chat_session import ChatSession
from app.schemas.chat import (
    ChatMessageOut,
    ChatSessionOut,
    ChatSessionWithMessagesOut,
    CreateSessionRequest,
    RenameSessionRequest,
    SendMessageRequest,
    ToggleFavoriteRequest,
)
from app.schemas.common import ApiResponse, PageResponse
from app.services.ai_assistant import AIAssistant, get_ai_assistant
from app.services.chat_service import (
    count_messages,
    count_messages_by_session,
    create_session,
    delete_session,
    get_messages,
    get_messages_page,
    list_sessions,
    rename_session,
    require_session,
    send_message,
    set_favorite,
)

router = APIRouter(prefix='/chat', tags=['chat'])


def _message_out(record: ChatMessage) -> ChatMessageOut:
    return ChatMessageOut(
        id=record.id,
        session_id=record.session_id,
        sender=record.sender,
        content=record.content,
        context=record.context,
        timestamp=record.timestamp,
    )


def _session_out(record: ChatSession, message_count: int) -> ChatSessionOut:
    return ChatSessionOut(
        id=record.id,
        user_id=record.user_id,
        title=record.title,
        is_favorite=record.is_favorite,
        created_at=record.created_at,
        updated_at=record.updated_at,
        message_count=message_count,
    )


def _sessions_out(session: Session, records: list[ChatSession]) -> list[ChatSessionOut]:
    counts = count_messages_by_session(session, [record.id for record in records])
    return [_session_out(record, counts.get(record.id, 0)) for record in records]


@router.post(
    '/sessions',
    response_model=ApiResponse[ChatSessionOut],
    status_code=status.HTTP_201_CREATED,
)
def create_chat_session(
    payload: CreateSessionRequest,
    session: Session = Depends(get_session),
) -> ApiResponse[ChatSessionOut]:
    record = create_session(session, payload.user_id, payload.title)
    return ApiResponse.ok(_session_out(record, 0), message='Session created successfully')


@router.post('/sessions/{session_id}/messages', response_model=ApiResponse[ChatMessageOut])
def send_chat_message(
    session_id: int,
    payload: SendMessageRequest,
    session: Session = Depends(get_session),
    assistant: AIAssistant = Depends(get_ai_assistant),
) -> ApiResponse[ChatMessageOut]:
    record = send_message(
        session,
        session_id,
        payload.content,
        payload.context,
        payload.use_ai,
        assistant,
    )
    return ApiResponse.ok(_message_out(record), message='Message sent successfully')


@router.get('/sessions/{session_id}/messages', response_model=ApiResponse[list[ChatMessageOut]])
def list_chat_messages(
    session_id: int,
    session: Session = Depends(get_session),
) -> ApiResponse[list[ChatMessageOut]]:
    messages = get_messages(session, session_id)
    return ApiResponse.ok([_message_out(record) for record in messages])


@router.get(
    '/sessions/{session_id}/messages/paginated',
    response_model=ApiResponse[PageResponse[ChatMessageOut]],
)
def list_chat_messages_paginated(
    session_id: int,
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
) -> ApiResponse[PageResponse[ChatMessageOut]]:
    messages, total = get_messages_page(session, session_id, page, size)
    return ApiResponse.ok(
        PageResponse[ChatMessageOut].build(
            [_message_out(record) for record in messages],
            page=page,
            size=size,
            total=total,
        )
    )


@router.get('/sessions/{session_id}', response_model=ApiResponse[ChatSessionWithMessagesOut])
def get_chat_session(
    session_id: int,
    session: Session = Depends(get_session),
) -> ApiResponse[ChatSessionWithMessagesOut]:
    record = require_session(session, session_id)
    messages = get_messages(session, session_id)
    return ApiResponse.ok(
        ChatSessionWithMessagesOut(
            id=record.id,
            user_id=record.user_id,
            title=record.title,
            is_favorite=record.is_favorite,
            created_at=record.created_at,
            updated_at=record.updated_at,
            messages=[_message_out(message) for message in messages],
        )
    )


@router.get('/users/{user_id}/sessions', response_model=ApiResponse[list[ChatSessionOut]])
def list_user_sessions(
    user_id: str,
    session: Session = Depends(get_session),
) -> ApiResponse[list[ChatSessionOut]]:
    return ApiResponse.ok(_sessions_out(session, list_sessions(session, user_id)))


@router.get('/users/{user_id}/sessions/favorites', response_model=ApiResponse[list[ChatSessionOut]])
def list_favorite_sessions(
    user_id: str,
    session: Session = Depends(get_session),
) -> ApiResponse[list[ChatSessionOut]]:
    return ApiResponse.ok(_sessions_out(session, list_sessions(session, user_id, favorites_only=True)))


@router.put('/sessions/{session_id}/rename', response_model=ApiResponse[ChatSessionOut])
def rename_chat_session(
    session_id: int,
    payload: RenameSessionRequest,
    session: Session = Depends(get_session),
) -> ApiResponse[ChatSessionOut]:
    record = rename_session(session, session_id, payload.new_title)
    return ApiResponse.ok(
        _session_out(record, count_messages(session, record.id)),
        message='Session renamed successfully',
    )


@router.put('/sessions/{session_id}/favorite', response_model=ApiResponse[ChatSessionOut])
def toggle_favorite_session(
    session_id: int,
    payload: ToggleFavoriteRequest,
    session: Session = Depends(get_session),
) -> ApiResponse[ChatSessionOut]:
    record = set_favorite(session, session_id, payload.is_favorite)
    return ApiResponse.ok(
        _session_out(record, count_messages(session, record.id)),
        message='Favorite status updated successfully',
    )


@router.delete('/sessions/{session_id}', response_model=ApiResponse[None])
def delete_chat_session(
    session_id: int,
    session: Session = Depends(get_session),
) -> ApiResponse[None]:
    delete_session(session, session_id)
    return ApiResponse.ok(None, message='Session deleted successfully')
