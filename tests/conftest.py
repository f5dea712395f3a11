import os

import pytest

TEST_API_KEY = "test-api-key"
TEST_DB_URL = os.getenv("TEST_DB_URL", "sqlite:///:memory:")

os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["API_KEY"] = TEST_API_KEY
os.environ["AI_ASSISTANT_ENABLED"] = "false"
os.environ["AI_ASSISTANT_API_KEY"] = ""
os.environ["RATE_LIMIT_CAPACITY"] = "10000"
os.environ["RATE_LIMIT_REFILL_TOKENS"] = "10000"

from fastapi.testclient import TestClient
from sqlmodel import Session

from app.core.config import Settings, settings
from app.db.init_db import init_db
from app.db.session import engine

settings.DATABASE_URL = TEST_DB_URL


class FakeResponder:
    def __init__(self, reply: str = "Hi there!", available: bool = True) -> None:
        self.reply = reply
        self.available = available
        self.calls: list[tuple[str, object]] = []

    def is_available(self) -> bool:
        return self.available

    def generate(self, message, context=None) -> str:
        self.calls.append((message, context))
        return self.reply


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_state():
    init_db(drop_all=True)
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def api_headers() -> dict:
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def client():
    from app.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def responder() -> FakeResponder:
    return FakeResponder()


@pytest.fixture
def settings_factory():
    def _make(**overrides) -> Settings:
        values = {
            "API_KEY": TEST_API_KEY,
            "RATE_LIMIT_CAPACITY": 10000,
            "RATE_LIMIT_REFILL_TOKENS": 10000,
            "RATE_LIMIT_REFILL_DURATION": 60,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make
