from typing import Optional
from sqlmodel import SQLModel
from app.db.session import engine
from app.core.config import Settings, settings
from app.models import chat_message, chat_session  # noqa: F401


def init_db(drop_all: bool = False, config: Optional[Settings] = None) -> None:
    # the engine is bound to DATABASE_URL at import; config only decides whether to create tables
    config = config or settings
    if drop_all:
        SQLModel.metadata.drop_all(engine)
    if (
        config.DATABASE_URL.startswith('sqlite')
        or config.ENV != 'production'
        or config.AUTO_CREATE_TABLES
    ):
        SQLModel.metadata.create_all(engine)
