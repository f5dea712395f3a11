from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine
from app.core.config import settings


def _engine_kwargs(url: str) -> dict:
    if not url.startswith('sqlite'):
        return {'pool_pre_ping': True}
    kwargs: dict = {'connect_args': {'check_same_thread': False}}
    if ':memory:' in url or url in {'sqlite://', 'sqlite+pysqlite://'}:
        kwargs['poolclass'] = StaticPool
    return kwargs


def build_engine(url: str):
    engine = create_engine(url, **_engine_kwargs(url))
    if url.startswith('sqlite'):

        @event.listens_for(engine, 'connect')
        def _enable_foreign_keys(dbapi_connection, _):  # noqa: ANN001
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

    return engine


engine = build_engine(settings.DATABASE_URL)


def get_session():
    with Session(engine) as session:
        yield session
