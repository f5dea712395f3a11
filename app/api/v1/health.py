from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from app.db import session as db_session
from app.services.ai_assistant import AIAssistant, get_ai_assistant

router = APIRouter(prefix='/health', tags=['health'])


class HealthOut(BaseModel):
    status: str
    database: str
    ai_assistant: str
    environment: str


def _database_status() -> str:
    try:
        with db_session.engine.connect() as connection:
            connection.execute(text('SELECT 1'))
    except SQLAlchemyError as exc:
        logger.warning('health.database_unreachable: {}', exc)
        return 'disconnected'
    return 'connected'


@router.get('', response_model=HealthOut)
def health_check(request: Request, assistant: AIAssistant = Depends(get_ai_assistant)) -> HealthOut:
    return HealthOut(
        status='ok',
        database=_database_status(),
        ai_assistant='available' if assistant.is_available() else 'unavailable',
        environment=request.app.state.settings.ENV,
    )
