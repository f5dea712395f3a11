from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from app.api.errors import register_exception_handlers
from app.api.v1 import health
from app.api.v1.router import api_router
from app.core.admission import AdmissionMiddleware, build_gates
from app.core.config import Settings, settings
from app.core.logging import configure_logging
from app.core.rate_limit import BucketRegistry
from app.db.init_db import init_db
from app.services.ai_assistant import AIAssistant

configure_logging(settings.LOG_LEVEL, serialize=settings.LOG_JSON)


@asynccontextmanager
async def lifespan(application: FastAPI):
    config = application.state.settings
    logger.info('Starting {} (env: {})', config.PROJECT_NAME, config.ENV)
    init_db(config=config)
    if not application.state.ai_assistant.is_available():
        logger.warning('AI assistant unavailable: replies will only store user messages')
    yield
    logger.info('Shutting down {}', config.PROJECT_NAME)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings
    application = FastAPI(title=config.PROJECT_NAME, debug=config.DEBUG, lifespan=lifespan)

    application.state.settings = config
    application.state.ai_assistant = AIAssistant.from_settings(config)

    registry = BucketRegistry.from_settings(config)
    application.state.bucket_registry = registry

    # Starlette wraps in reverse order: CORS outermost, then admission.
    application.add_middleware(AdmissionMiddleware, gates=build_gates(config, registry))

    allow_origins = config.CORS_ORIGINS
    allow_credentials = '*' not in allow_origins
    application.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    register_exception_handlers(application)
    application.include_router(health.router)
    application.include_router(api_router)
    return application


app = create_app()
