from typing import Annotated
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_PROJECT_NAME = "RAG Chat Service"
DEFAULT_API_V1_PREFIX = "/api/v1"
DEFAULT_AUTH_EXEMPT_PATHS = ['/health', '/docs', '/redoc', '/openapi.json']
DEFAULT_SYSTEM_PROMPT = "You are a concise and helpful AI assistant."


def _split_csv(value):
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return []
        return [item.strip() for item in value.split(',') if item.strip()]
    return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    PROJECT_NAME: str = DEFAULT_PROJECT_NAME
    API_V1_PREFIX: str = DEFAULT_API_V1_PREFIX
    ENV: str = 'development'
    DEBUG: bool = False

    DATABASE_URL: str = 'sqlite:///./rag_chat.db'
    LOG_LEVEL: str = 'INFO'
    LOG_JSON: bool = False
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ['*']
    AUTO_CREATE_TABLES: bool = False

    API_KEY: str = 'change-me'
    API_KEY_HEADER: str = 'X-API-Key'
    AUTH_EXEMPT_PATHS: Annotated[list[str], NoDecode] = DEFAULT_AUTH_EXEMPT_PATHS

    RATE_LIMIT_CAPACITY: int = 100
    RATE_LIMIT_REFILL_TOKENS: int = 100
    RATE_LIMIT_REFILL_DURATION: int = 60
    RATE_LIMIT_IDLE_TTL: int = 0

    AI_ASSISTANT_ENABLED: bool = True
    AI_ASSISTANT_API_KEY: str = ''
    AI_ASSISTANT_API_URL: str = 'https://router.huggingface.co/v1'
    AI_ASSISTANT_MODEL: str = 'meta-llama/Meta-Llama-3-8B-Instruct'
    AI_ASSISTANT_MAX_TOKENS: int = 300
    AI_ASSISTANT_TIMEOUT: int = 30000
    AI_ASSISTANT_SYSTEM_PROMPT: str = DEFAULT_SYSTEM_PROMPT

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, value):  # type: ignore[override]
        if isinstance(value, str) and value.strip() == '*':
            return ['*']
        return _split_csv(value)

    @field_validator('AUTH_EXEMPT_PATHS', mode='before')
    @classmethod
    def parse_exempt_paths(cls, value):  # type: ignore[override]
        return _split_csv(value)

    @field_validator('RATE_LIMIT_CAPACITY', 'RATE_LIMIT_REFILL_TOKENS', 'RATE_LIMIT_REFILL_DURATION')
    @classmethod
    def require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('must be a positive integer')
        return value


settings = Settings()
