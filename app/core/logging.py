"""
Loguru setup for the chat service.

Standard-library records (uvicorn, SQLAlchemy, httpx under the OpenAI client)
are funnelled into loguru so every line shares one sink and format. The AI
assistant runs its calls on a worker pool, so the thread name is part of each
line; ``LOG_JSON`` switches the sink to loguru's serialized output.
"""

import logging
import sys

from loguru import logger

LOG_FORMAT = (
    '<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | '
    '{thread.name} | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>'
)

# library logger -> minimum level forwarded (None follows the root level)
FORWARDED_LOGGERS = {
    'uvicorn': None,
    'uvicorn.error': None,
    'uvicorn.access': None,
    'sqlalchemy.engine': 'WARNING',
    'httpx': 'WARNING',
    'openai': 'WARNING',
}


class _InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str, *, serialize: bool = False) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format=LOG_FORMAT,
        serialize=serialize,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    logging.root.handlers = [_InterceptHandler()]
    logging.root.setLevel(level)
    for name, floor in FORWARDED_LOGGERS.items():
        forwarded = logging.getLogger(name)
        forwarded.handlers = []
        forwarded.propagate = True
        forwarded.setLevel(floor or logging.NOTSET)
